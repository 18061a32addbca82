"""
peakroi - peak shape, continuum, and automatic ROI determination for
gamma-ray spectra.
"""

from peakroi.errors import PeakUsageError, InsufficientDataError
from peakroi.spectrum import Spectrum
from peakroi.continuum import Continuum, ContinuumType
from peakroi.peak import (
    Peak,
    PeakType,
    SkewType,
    CoefficientType,
    SourceGammaType,
    CandidateNuclide,
)
from peakroi.roi_search import (
    find_roi_limit,
    find_roi_energy_limits,
    estimate_peak_fit_range,
    is_statistically_greater_or_equal,
    poisson_quantile,
)
from peakroi.peak_groups import group_causally_connected, share_continuum
from peakroi.fitting_engine import PeakFitEngine, PeakFitResult
from peakroi.peak_json import peak_json
from peakroi.core import configure_logging, DEFAULT_ROI_SETTINGS

__version__ = "0.1.0"

__all__ = [
    "PeakUsageError",
    "InsufficientDataError",
    "Spectrum",
    "Continuum",
    "ContinuumType",
    "Peak",
    "PeakType",
    "SkewType",
    "CoefficientType",
    "SourceGammaType",
    "CandidateNuclide",
    "find_roi_limit",
    "find_roi_energy_limits",
    "estimate_peak_fit_range",
    "is_statistically_greater_or_equal",
    "poisson_quantile",
    "group_causally_connected",
    "share_continuum",
    "PeakFitEngine",
    "PeakFitResult",
    "peak_json",
    "configure_logging",
    "DEFAULT_ROI_SETTINGS",
]
