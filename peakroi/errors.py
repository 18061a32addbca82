"""Exceptions raised by the peak and ROI engine."""


class PeakUsageError(ValueError):
    """Caller violated a contract of a Peak, Continuum, or ROI search call."""
    pass


class InsufficientDataError(ValueError):
    """Spectrum is missing or has too few channels for the requested analysis."""
    pass
