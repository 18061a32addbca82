"""
Peak Fitting Bridge

Prepares peaks for the least-squares optimizer and writes its answer back:
- seeds the ROI (ROI search) and a linear continuum (sidebands) when unset
- packs every fit-for coefficient of the peaks and continuum, with bounds
- models each channel as the integral of peaks + continuum over its width
- runs scipy.optimize.curve_fit and stores values, uncertainties and chi2/dof

Peaks fit together must share one Continuum; `fit_all` takes care of the
grouping for an arbitrary list of peaks.
"""

import logging
import math
import warnings
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import curve_fit

from peakroi.continuum import Continuum, ContinuumType
from peakroi.errors import PeakUsageError
from peakroi.peak import Peak, CoefficientType, SKEW_COEFFICIENTS
from peakroi.peak_groups import group_causally_connected, share_continuum
from peakroi.roi_search import find_roi_energy_limits
from peakroi.spectrum import Spectrum

logger = logging.getLogger(__name__)

_SHAPE_COEFFICIENTS = (
    CoefficientType.MEAN,
    CoefficientType.SIGMA,
    CoefficientType.GAUSS_AMPLITUDE,
)

_POSITIVE_COEFFICIENTS = (
    CoefficientType.SIGMA,
    CoefficientType.LANDAU_SIGMA,
    CoefficientType.SKEW_TAIL_TAU,
)

_NON_NEGATIVE_COEFFICIENTS = (
    CoefficientType.GAUSS_AMPLITUDE,
    CoefficientType.LANDAU_AMPLITUDE,
    CoefficientType.SKEW_TAIL_FRACTION,
)


@dataclass
class PeakFitResult:
    """Result of fitting one group of peaks on a shared continuum."""
    peaks: List[Peak]
    continuum: Continuum
    lower_energy: float
    upper_energy: float
    chi2: float
    dof: int
    chi2_dof: float
    r_squared: float


@dataclass
class _Parameter:
    """One free parameter: where it lives and how to read/write it."""
    label: str
    get: Callable[[], float]
    set: Callable[[float], None]
    set_uncert: Callable[[float], None]
    lower: float
    upper: float


class PeakFitEngine:
    """
    Drives curve_fit for peaks sharing a continuum.

    Attributes:
        n_sideband_channels: Channels each side of an ROI edge averaged for
                             the seed continuum
        maxfev: Maximum model evaluations per fit
        causality_nsigma: Sigma reach used by `fit_all` to group peaks
    """

    def __init__(self, n_sideband_channels: int = 2, maxfev: int = 10000,
                 causality_nsigma: float = 4.0):
        self.n_sideband_channels = n_sideband_channels
        self.maxfev = maxfev
        self.causality_nsigma = causality_nsigma

    # =========================================================================
    # Preparation
    # =========================================================================

    def prepare_roi(self, peaks: Sequence[Peak], data: Spectrum) -> Tuple[float, float]:
        """
        Make sure the shared continuum has a range and a starting estimate.

        Returns:
            (lower_energy, upper_energy) of the ROI
        """
        continuum = peaks[0].continuum

        if not continuum.energy_range_defined():
            lowers, uppers = zip(*(find_roi_energy_limits(p, data) for p in peaks))
            continuum.set_range(min(lowers), max(uppers))
            logger.debug(
                f"ROI for {len(peaks)} peak(s) set to "
                f"{continuum.lower_energy:.2f}-{continuum.upper_energy:.2f} keV"
            )

        if continuum.type == ContinuumType.EXTERNAL:
            return continuum.lower_energy, continuum.upper_energy

        if continuum.type == ContinuumType.NONE or not continuum.defined():
            requested = continuum.type
            lower, upper = continuum.lower_energy, continuum.upper_energy
            continuum.calc_linear_continuum_eqn(data, lower, upper, self.n_sideband_channels)
            if requested not in (ContinuumType.NONE, ContinuumType.LINEAR):
                continuum.set_type(requested)

        return continuum.lower_energy, continuum.upper_energy

    def _collect_parameters(self, peaks: Sequence[Peak], continuum: Continuum,
                            lower: float, upper: float) -> List[_Parameter]:
        params = []
        width = upper - lower

        for i, peak in enumerate(peaks):
            coefs = _SHAPE_COEFFICIENTS + SKEW_COEFFICIENTS[peak.skew_type]
            for t in coefs:
                if not peak.fit_for(t):
                    continue

                if t == CoefficientType.MEAN:
                    lo, hi = lower, upper
                elif t == CoefficientType.SIGMA:
                    lo, hi = 1e-6 * max(width, 1.0), width
                elif t in _POSITIVE_COEFFICIENTS:
                    lo, hi = 1e-6, np.inf
                elif t in _NON_NEGATIVE_COEFFICIENTS:
                    lo, hi = 0.0, np.inf
                else:
                    lo, hi = -np.inf, np.inf

                params.append(_Parameter(
                    label=f"peak{i}.{t.value}",
                    get=lambda p=peak, t=t: p.coefficient(t),
                    set=lambda v, p=peak, t=t: p.set_coefficient(t, v),
                    set_uncert=lambda u, p=peak, t=t: p.set_uncertainty(t, u),
                    lower=lo,
                    upper=hi,
                ))

        if continuum.is_polynomial():
            fit_for = continuum.fit_for_parameter
            for k in range(continuum.order):
                if not fit_for[k]:
                    continue
                params.append(_Parameter(
                    label=f"continuum.c{k}",
                    get=lambda k=k: continuum.parameters[k],
                    set=lambda v, k=k: continuum.set_polynomial_coef(k, v),
                    set_uncert=lambda u, k=k: continuum.set_polynomial_uncert(k, u),
                    lower=-np.inf,
                    upper=np.inf,
                ))

        return params

    # =========================================================================
    # Fitting
    # =========================================================================

    @staticmethod
    def channel_model(peaks: Sequence[Peak], continuum: Continuum,
                      edges: np.ndarray) -> np.ndarray:
        """Expected counts per channel: peak plus continuum integral over each channel."""
        model = np.empty(len(edges) - 1)
        for i in range(len(edges) - 1):
            x0, x1 = edges[i], edges[i + 1]
            value = continuum.offset_integral(x0, x1)
            for peak in peaks:
                value += peak.gauss_integral(x0, x1)
            model[i] = value
        return model

    def fit_peaks(self, peaks: Sequence[Peak], data: Spectrum) -> Optional[PeakFitResult]:
        """
        Fit a group of peaks that share one continuum.

        Coefficients not flagged fit-for are left untouched. On failure the
        peaks and continuum keep their starting values.

        Returns:
            PeakFitResult, or None if the fit failed

        Raises:
            PeakUsageError: empty list, data-defined peaks, or peaks that do
                            not share a continuum
        """
        if not peaks:
            raise PeakUsageError("No peaks to fit")
        for peak in peaks:
            if not peak.gaus_peak():
                raise PeakUsageError("Only Gaussian-defined peaks can be fit")
            if not peak.shares_continuum_with(peaks[0]):
                raise PeakUsageError("Peaks fit together must share one continuum")

        continuum = peaks[0].continuum
        lower, upper = self.prepare_roi(peaks, data)

        low_channel = data.find_channel(lower)
        high_channel = data.find_channel(upper - 0.00001)
        edges = np.array(data.bin_edges[low_channel:high_channel + 2], dtype=float)
        y = np.array(data.counts[low_channel:high_channel + 1], dtype=float)
        y_err = np.sqrt(np.maximum(y, 1.0))

        params = self._collect_parameters(peaks, continuum, lower, upper)
        if not params:
            logger.warning("Nothing to fit: no coefficient is flagged fit-for")
            return None
        if len(y) <= len(params):
            logger.warning(f"Too few channels ({len(y)}) for {len(params)} fit parameters")
            return None

        start = [p.get() for p in params]

        # Seed empty amplitudes from the counts above the continuum
        excess = max(float(np.sum(y)) - continuum.offset_integral(lower, upper), 1.0)
        for p, value in zip(params, start):
            if p.label.endswith("." + CoefficientType.GAUSS_AMPLITUDE.value) and value <= 0.0:
                p.set(excess / len(peaks))
        p0 = [float(np.clip(p.get(), p.lower, p.upper)) for p in params]
        bounds = ([p.lower for p in params], [p.upper for p in params])

        def model(_x, *values):
            for p, v in zip(params, values):
                p.set(v)
            return self.channel_model(peaks, continuum, edges)

        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                popt, pcov = curve_fit(
                    model,
                    np.arange(len(y)), y,
                    p0=p0,
                    sigma=y_err,
                    absolute_sigma=True,
                    bounds=bounds,
                    maxfev=self.maxfev,
                )
        except (RuntimeError, ValueError, ZeroDivisionError, FloatingPointError) as e:
            logger.warning(f"Peak fit failed for {len(peaks)} peak(s) at {lower:.1f}-{upper:.1f} keV: {e}")
            for p, value in zip(params, start):
                p.set(value)
            return None

        for p, value in zip(params, popt):
            p.set(float(value))
        perr = np.sqrt(np.abs(np.diag(pcov)))
        for p, err in zip(params, perr):
            p.set_uncert(float(err) if math.isfinite(err) else -1.0)

        y_fit = self.channel_model(peaks, continuum, edges)
        residuals = y - y_fit
        chi2 = float(np.sum((residuals / y_err) ** 2))
        dof = max(len(y) - len(params), 1)
        chi2_dof = chi2 / dof
        ss_res = np.sum(residuals ** 2)
        ss_tot = np.sum((y - np.mean(y)) ** 2)
        r_squared = float(1 - ss_res / ss_tot) if ss_tot > 0 else 0.0

        for peak in peaks:
            peak.set_coefficient(CoefficientType.CHI2_DOF, chi2_dof)

        logger.debug(f"Fit {len(peaks)} peak(s) at {lower:.1f}-{upper:.1f} keV, chi2/dof={chi2_dof:.3f}")

        return PeakFitResult(
            peaks=list(peaks),
            continuum=continuum,
            lower_energy=lower,
            upper_energy=upper,
            chi2=chi2,
            dof=dof,
            chi2_dof=chi2_dof,
            r_squared=r_squared,
        )

    def fit_peak(self, peak: Peak, data: Spectrum) -> Optional[PeakFitResult]:
        """Fit a single peak on its own continuum."""
        return self.fit_peaks([peak], data)

    def fit_all(self, peaks: Sequence[Peak], data: Spectrum,
                use_roi_as_well: bool = False) -> List[Optional[PeakFitResult]]:
        """
        Group peaks by causal connection and fit each group.

        Peaks in a multi-peak group are moved onto one new continuum that
        spans every member's ROI; single peaks keep their own.
        """
        results = []
        for group in group_causally_connected(peaks, self.causality_nsigma, use_roi_as_well):
            if len(group) > 1 and not all(p.shares_continuum_with(group[0]) for p in group):
                lowers, uppers = zip(*(find_roi_energy_limits(p, data) for p in group))
                merged = group[0].make_unique_new_continuum()
                merged.set_range(min(lowers), max(uppers))
                share_continuum(group)
            results.append(self.fit_peaks(group, data))
        return results
