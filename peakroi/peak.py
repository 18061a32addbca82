"""
Peak Model

A peak is a Gaussian, optionally with a low-energy skew tail, sitting on a
Continuum that may be shared with neighbouring peaks. Data-defined peaks
have no Gaussian shape; their extent is the continuum's energy range and
their area comes from the data.

Usage:
    from peakroi import Peak, SkewType

    peak = Peak(661.7, 1.2, 5000.0)
    peak.continuum.set_range(650.0, 675.0)
    area = peak.peak_area()
"""

import copy
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from peakroi.continuum import Continuum, ContinuumType
from peakroi.core import (
    PROVISIONAL_ROI_NSIGMA,
    LANDAU_MODE_OFFSET,
    LANDAU_ROI_SCALE_WIDTHS,
    EXP_TAIL_ROI_TAU_WIDTHS,
)
from peakroi.errors import PeakUsageError
from peakroi.skew import gaus_integral, landau_integral, low_tail_exp_gaussian_integral
from peakroi.spectrum import Spectrum

logger = logging.getLogger(__name__)

ANNIHILATION_ENERGY_KEV = 510.99891


class PeakType(str, Enum):
    GAUSSIAN_DEFINED = "GaussianDefined"
    DATA_DEFINED = "DataDefined"


class SkewType(str, Enum):
    NONE = "NoSkew"
    LANDAU = "LandauSkew"
    EXP_GAUSSIAN = "ExpGaussianSkew"


class CoefficientType(str, Enum):
    MEAN = "Centroid"
    SIGMA = "Width"
    GAUSS_AMPLITUDE = "Amplitude"
    LANDAU_AMPLITUDE = "LandauAmplitude"
    LANDAU_MODE = "LandauMode"
    LANDAU_SIGMA = "LandauSigma"
    SKEW_TAIL_FRACTION = "SkewTailFraction"
    SKEW_TAIL_TAU = "SkewTailTau"
    CHI2_DOF = "Chi2"


class SourceGammaType(str, Enum):
    NORMAL = "NormalGamma"
    ANNIHILATION = "AnnihilationGamma"
    SINGLE_ESCAPE = "SingleEscapeGamma"
    DOUBLE_ESCAPE = "DoubleEscapeGamma"
    XRAY = "XrayGamma"


# Coefficients that belong to each skew family
SKEW_COEFFICIENTS = {
    SkewType.NONE: (),
    SkewType.LANDAU: (
        CoefficientType.LANDAU_AMPLITUDE,
        CoefficientType.LANDAU_MODE,
        CoefficientType.LANDAU_SIGMA,
    ),
    SkewType.EXP_GAUSSIAN: (
        CoefficientType.SKEW_TAIL_FRACTION,
        CoefficientType.SKEW_TAIL_TAU,
    ),
}

# Amplitude-like coefficient of each skew family, for uncertainty propagation
SKEW_AMPLITUDE_COEFFICIENT = {
    SkewType.LANDAU: CoefficientType.LANDAU_AMPLITUDE,
    SkewType.EXP_GAUSSIAN: CoefficientType.SKEW_TAIL_FRACTION,
}

_DEFAULT_FIT_FOR = {
    CoefficientType.MEAN: True,
    CoefficientType.SIGMA: True,
    CoefficientType.GAUSS_AMPLITUDE: True,
}


@dataclass
class CandidateNuclide:
    """Possible source of a peak; advisory only."""
    nuclide: str
    energy: float
    weight: float = 1.0
    source_gamma_type: SourceGammaType = SourceGammaType.NORMAL


def _landau_tail(peak: "Peak", x0: float, x1: float) -> float:
    c = peak._coefficients
    return c[CoefficientType.GAUSS_AMPLITUDE] * landau_integral(
        x0, x1,
        c[CoefficientType.MEAN],
        c[CoefficientType.LANDAU_AMPLITUDE],
        c[CoefficientType.LANDAU_MODE],
        c[CoefficientType.LANDAU_SIGMA],
    )


def _exp_gaussian_tail(peak: "Peak", x0: float, x1: float) -> float:
    c = peak._coefficients
    return low_tail_exp_gaussian_integral(
        x0, x1,
        c[CoefficientType.GAUSS_AMPLITUDE] * c[CoefficientType.SKEW_TAIL_FRACTION],
        c[CoefficientType.MEAN],
        c[CoefficientType.SIGMA],
        c[CoefficientType.SKEW_TAIL_TAU],
    )


# One integral per skew family; a peak only ever evaluates its own
SKEW_INTEGRALS: Dict[SkewType, Callable[["Peak", float, float], float]] = {
    SkewType.NONE: lambda peak, x0, x1: 0.0,
    SkewType.LANDAU: _landau_tail,
    SkewType.EXP_GAUSSIAN: _exp_gaussian_tail,
}


class Peak:
    """
    Gaussian (+ skew) peak on a shared continuum.

    Coefficients, uncertainties and fit-for flags are keyed by
    CoefficientType. Uncertainties default to -1 (not yet fit).
    """

    def __init__(self, mean: float = 0.0, sigma: float = 0.0, amplitude: float = 0.0):
        self._type = PeakType.GAUSSIAN_DEFINED
        self._skew_type = SkewType.NONE
        self._coefficients = {t: 0.0 for t in CoefficientType}
        self._uncertainties = {t: -1.0 for t in CoefficientType}
        self._fit_for = {t: _DEFAULT_FIT_FOR.get(t, False) for t in CoefficientType}
        self._continuum = Continuum()

        self.user_label = ""
        self.use_for_calibration = True
        self.use_for_shielding_source_fit = False

        self._clear_source_fields()
        self._candidates: List[CandidateNuclide] = []

        self._coefficients[CoefficientType.MEAN] = float(mean)
        self._coefficients[CoefficientType.SIGMA] = float(sigma)
        self._coefficients[CoefficientType.GAUSS_AMPLITUDE] = float(amplitude)

    @classmethod
    def from_data(cls, xlow: float, xhigh: float, mean: float,
                  data: Optional[Spectrum], background: Optional[Spectrum] = None) -> "Peak":
        """
        Data-defined peak over [xlow, xhigh].

        The amplitude is the data integral minus the background integral;
        the background becomes the peak's external continuum.
        """
        peak = cls(mean=mean)
        peak._type = PeakType.DATA_DEFINED
        peak._continuum.set_range(xlow, xhigh)

        if data is None:
            return peak

        peak._continuum.set_type(ContinuumType.EXTERNAL)
        peak._continuum.set_external_continuum(background)
        peak._continuum.set_range(xlow, xhigh)

        amplitude = data.integral(xlow, xhigh)
        if background is not None:
            amplitude -= background.integral(xlow, xhigh)
        peak._coefficients[CoefficientType.GAUSS_AMPLITUDE] = amplitude
        return peak

    # =========================================================================
    # Shape Parameters
    # =========================================================================

    @property
    def type(self) -> PeakType:
        return self._type

    def gaus_peak(self) -> bool:
        return self._type == PeakType.GAUSSIAN_DEFINED

    @property
    def skew_type(self) -> SkewType:
        return self._skew_type

    def set_skew_type(self, skew_type: SkewType) -> None:
        """Select the active skew family; coefficients of other families stop being fit."""
        skew_type = SkewType(skew_type)
        for family, coefs in SKEW_COEFFICIENTS.items():
            for t in coefs:
                self._fit_for[t] = (family == skew_type)
        self._skew_type = skew_type

    def coefficient(self, t: CoefficientType) -> float:
        return self._coefficients[CoefficientType(t)]

    def set_coefficient(self, t: CoefficientType, value: float) -> None:
        self._coefficients[CoefficientType(t)] = float(value)

    def uncertainty(self, t: CoefficientType) -> float:
        return self._uncertainties[CoefficientType(t)]

    def set_uncertainty(self, t: CoefficientType, value: float) -> None:
        self._uncertainties[CoefficientType(t)] = float(value)

    def fit_for(self, t: CoefficientType) -> bool:
        return self._fit_for[CoefficientType(t)]

    def set_fit_for(self, t: CoefficientType, fit: bool) -> None:
        self._fit_for[CoefficientType(t)] = bool(fit)

    @property
    def mean(self) -> float:
        return self._coefficients[CoefficientType.MEAN]

    @mean.setter
    def mean(self, value: float):
        self._coefficients[CoefficientType.MEAN] = float(value)

    @property
    def sigma(self) -> float:
        return self._coefficients[CoefficientType.SIGMA]

    @sigma.setter
    def sigma(self, value: float):
        self._coefficients[CoefficientType.SIGMA] = float(value)

    @property
    def amplitude(self) -> float:
        return self._coefficients[CoefficientType.GAUSS_AMPLITUDE]

    @amplitude.setter
    def amplitude(self, value: float):
        self._coefficients[CoefficientType.GAUSS_AMPLITUDE] = float(value)

    @property
    def fwhm(self) -> float:
        return 2.35482 * self.sigma

    @property
    def chi2_dof(self) -> float:
        return self._coefficients[CoefficientType.CHI2_DOF]

    # =========================================================================
    # Continuum
    # =========================================================================

    @property
    def continuum(self) -> Continuum:
        return self._continuum

    def set_continuum(self, continuum: Continuum) -> None:
        """Point this peak at another (possibly shared) continuum."""
        if continuum is None:
            raise PeakUsageError("A peak must always have a continuum")
        self._continuum = continuum

    def make_unique_new_continuum(self) -> Continuum:
        """Give this peak its own copy of the continuum, detaching it from any siblings."""
        self._continuum = self._continuum.copy()
        return self._continuum

    def shares_continuum_with(self, other: "Peak") -> bool:
        return self._continuum is other._continuum

    # =========================================================================
    # Extent
    # =========================================================================

    def lower_x(self) -> float:
        """Lower ROI edge; provisional unless the continuum range is defined."""
        if self._continuum.energy_range_defined():
            return self._continuum.lower_energy

        c = self._coefficients
        gauss_lower = c[CoefficientType.MEAN] - PROVISIONAL_ROI_NSIGMA * c[CoefficientType.SIGMA]

        if self._skew_type == SkewType.LANDAU:
            # LANDAU_MODE locates the tail and LANDAU_SIGMA scales it, as in landau_integral
            scale = c[CoefficientType.LANDAU_SIGMA]
            landau_lower = (c[CoefficientType.MEAN] - c[CoefficientType.LANDAU_MODE]
                            + LANDAU_MODE_OFFSET * scale - LANDAU_ROI_SCALE_WIDTHS * scale)
            return min(landau_lower, gauss_lower)

        if self._skew_type == SkewType.EXP_GAUSSIAN:
            tau = max(c[CoefficientType.SKEW_TAIL_TAU], 0.0)
            return gauss_lower - EXP_TAIL_ROI_TAU_WIDTHS * tau

        return gauss_lower

    def upper_x(self) -> float:
        """Upper ROI edge; provisional unless the continuum range is defined."""
        if self._continuum.energy_range_defined():
            return self._continuum.upper_energy
        c = self._coefficients
        return c[CoefficientType.MEAN] + PROVISIONAL_ROI_NSIGMA * c[CoefficientType.SIGMA]

    @staticmethod
    def landau_potential_lower_x(peak_mean: float, peak_sigma: float) -> float:
        return peak_mean - 8.0 * peak_sigma

    @staticmethod
    def landau_potential_upper_x(peak_mean: float, peak_sigma: float) -> float:
        return peak_mean

    # =========================================================================
    # Integrals and Areas
    # =========================================================================

    def skew_integral(self, x0: float, x1: float) -> float:
        """Counts in the skew tail between x0 and x1 (0 when unskewed)."""
        return SKEW_INTEGRALS[self._skew_type](self, x0, x1)

    def gauss_integral(self, x0: float, x1: float) -> float:
        """
        Peak counts (Gaussian plus skew tail) between x0 and x1.

        Raises:
            PeakUsageError: for data-defined peaks, which have no shape
        """
        if not self.gaus_peak():
            raise PeakUsageError("Data-defined peaks have no Gaussian integral")

        c = self._coefficients
        integral = gaus_integral(c[CoefficientType.MEAN], c[CoefficientType.SIGMA],
                                 c[CoefficientType.GAUSS_AMPLITUDE], x0, x1)
        return integral + self.skew_integral(x0, x1)

    def offset_integral(self, x0: float, x1: float) -> float:
        return self._continuum.offset_integral(x0, x1)

    def peak_area(self) -> float:
        """Gaussian amplitude plus the skew tail area over the ROI."""
        area = self.amplitude
        if self._skew_type != SkewType.NONE:
            area += self.skew_integral(self.lower_x(), self.upper_x())
        return area

    def peak_area_uncert(self) -> float:
        """
        Area uncertainty, adding the skew-tail contribution in quadrature.

        The tail uncertainty is the tail area scaled by the fractional
        uncertainty of the tail amplitude; the correlation with the Gaussian
        amplitude is ignored.
        """
        uncert = self._uncertainties[CoefficientType.GAUSS_AMPLITUDE]
        if self._skew_type == SkewType.NONE:
            return uncert

        amp_coef = SKEW_AMPLITUDE_COEFFICIENT[self._skew_type]
        skew_amp = self._coefficients[amp_coef]
        if skew_amp == 0.0:
            return uncert

        skew_area = self.skew_integral(self.lower_x(), self.upper_x())
        skew_uncert = skew_area * self._uncertainties[amp_coef] / skew_amp
        return (uncert * uncert + skew_uncert * skew_uncert) ** 0.5

    def set_peak_area(self, area: float) -> None:
        """
        Set the total area, keeping the current skew-to-total ratio.

        Skew parameters are not re-solved; only the Gaussian amplitude changes.
        """
        gauss_area = area
        if self._skew_type != SkewType.NONE:
            skew_area = self.skew_integral(self.lower_x(), self.upper_x())
            denom = skew_area + area
            if denom != 0.0:
                skew_frac = skew_area / denom
                gauss_area = (1.0 - skew_frac) * area
        self.amplitude = gauss_area

    def set_peak_area_uncert(self, uncert: float) -> None:
        """Set the total-area uncertainty; only the Gaussian-amplitude share is stored."""
        if self._skew_type == SkewType.NONE:
            self._uncertainties[CoefficientType.GAUSS_AMPLITUDE] = float(uncert)
            return

        skew_area = self.skew_integral(self.lower_x(), self.upper_x())
        gauss_area = self.amplitude
        total = skew_area + gauss_area
        if total == 0.0:
            self._uncertainties[CoefficientType.GAUSS_AMPLITUDE] = float(uncert)
            return
        self._uncertainties[CoefficientType.GAUSS_AMPLITUDE] = (uncert / total) * gauss_area

    def area_from_data(self, data: Optional[Spectrum]) -> float:
        """Sum over ROI channels of the data counts exceeding the continuum."""
        if data is None or not self._continuum.energy_range_defined():
            return 0.0

        start = self._continuum.lower_energy
        end = self._continuum.upper_energy
        total = 0.0
        for channel in range(data.find_channel(start), data.find_channel(end) + 1):
            e0 = max(start, data.channel_lower(channel))
            e1 = min(end, data.channel_upper(channel))
            if e1 <= e0:
                continue
            excess = data.integral(e0, e1) - self._continuum.offset_integral(e0, e1)
            if excess > 0.0:
                total += excess
        return total

    # =========================================================================
    # Causality
    # =========================================================================

    @staticmethod
    def causally_disconnected(a: "Peak", b: "Peak", n_sigma: float,
                              use_roi_as_well: bool) -> bool:
        """
        True if two peaks are far enough apart to be fit independently.

        Each peak's reach is mean +/- n_sigma*sigma (the ROI edge for
        data-defined peaks), optionally widened to its ROI. Peaks sharing a
        continuum are never disconnected.
        """
        if a._continuum is b._continuum:
            return False

        lower, upper = (a, b) if a.mean <= b.mean else (b, a)

        lower_reach = lower.mean + n_sigma * lower.sigma if lower.gaus_peak() else lower.upper_x()
        upper_reach = upper.mean - n_sigma * upper.sigma if upper.gaus_peak() else upper.lower_x()

        if use_roi_as_well:
            lower_reach = max(lower_reach, lower.upper_x())
            upper_reach = min(upper_reach, upper.lower_x())

        return upper_reach > lower_reach

    @staticmethod
    def causally_connected(a: "Peak", b: "Peak", n_sigma: float,
                           use_roi_as_well: bool) -> bool:
        return not Peak.causally_disconnected(a, b, n_sigma, use_roi_as_well)

    # =========================================================================
    # Source Assignment
    # =========================================================================

    def _clear_source_fields(self):
        self.nuclide: Optional[str] = None
        self.transition_energy = 0.0
        self.source_gamma_type = SourceGammaType.NORMAL
        self.xray_element: Optional[str] = None
        self.xray_energy = 0.0
        self.reaction: Optional[str] = None
        self.reaction_energy = 0.0

    def clear_sources(self) -> None:
        self._clear_source_fields()

    def has_source_gamma_assigned(self) -> bool:
        return bool(self.nuclide) or bool(self.xray_element) or bool(self.reaction)

    def set_nuclear_transition(self, nuclide: Optional[str], energy: float = 0.0,
                               source_type: SourceGammaType = SourceGammaType.NORMAL) -> None:
        """Attribute the peak to a decay gamma of a nuclide."""
        self.nuclide = nuclide
        self.transition_energy = float(energy)
        self.source_gamma_type = SourceGammaType(source_type)
        if nuclide or self.source_gamma_type == SourceGammaType.ANNIHILATION:
            self.xray_element = None
            self.xray_energy = 0.0
            self.reaction = None
            self.reaction_energy = 0.0

    def set_xray(self, element: Optional[str], energy: float) -> None:
        self.xray_element = element
        self.xray_energy = float(energy)
        if element:
            self.nuclide = None
            self.transition_energy = 0.0
            self.reaction = None
            self.reaction_energy = 0.0
            self.source_gamma_type = SourceGammaType.NORMAL

    def set_reaction(self, reaction: Optional[str], energy: float,
                     source_type: SourceGammaType = SourceGammaType.NORMAL) -> None:
        source_type = SourceGammaType(source_type)
        if reaction and source_type == SourceGammaType.ANNIHILATION:
            raise PeakUsageError("A reaction gamma cannot be an annihilation gamma")

        self.reaction = reaction
        self.reaction_energy = float(energy)
        if reaction:
            self.nuclide = None
            self.transition_energy = 0.0
            self.xray_element = None
            self.xray_energy = 0.0
            self.source_gamma_type = source_type

    def gamma_particle_energy(self) -> float:
        """
        Energy of the assigned source gamma, after escape-peak corrections.

        Raises:
            PeakUsageError: if no source is assigned
        """
        if self.nuclide:
            if self.source_gamma_type == SourceGammaType.ANNIHILATION:
                return ANNIHILATION_ENERGY_KEV
            if self.source_gamma_type == SourceGammaType.SINGLE_ESCAPE:
                return self.transition_energy - ANNIHILATION_ENERGY_KEV
            if self.source_gamma_type == SourceGammaType.DOUBLE_ESCAPE:
                return self.transition_energy - 2.0 * ANNIHILATION_ENERGY_KEV
            return self.transition_energy
        if self.xray_element:
            return self.xray_energy
        if self.reaction:
            return self.reaction_energy
        raise PeakUsageError("Peak doesn't have a gamma associated with it")

    @property
    def candidate_nuclides(self) -> List[CandidateNuclide]:
        return list(self._candidates)

    def add_candidate_nuclide(self, candidate: CandidateNuclide) -> None:
        self._candidates.append(candidate)

    def set_candidate_nuclides(self, candidates: List[CandidateNuclide]) -> None:
        self._candidates = list(candidates)

    def inherit_user_selected_options(self, parent: "Peak",
                                      inherit_non_fit_for_values: bool) -> None:
        """
        Copy user choices (source, flags, fit-for settings) from a parent peak.

        With inherit_non_fit_for_values, fixed shape coefficients are copied
        as well, so a refit keeps the values the user pinned.
        """
        if parent.nuclide:
            self.set_nuclear_transition(parent.nuclide, parent.transition_energy,
                                        parent.source_gamma_type)
        elif parent.xray_element:
            self.set_xray(parent.xray_element, parent.xray_energy)
        elif parent.reaction:
            self.set_reaction(parent.reaction, parent.reaction_energy,
                              parent.source_gamma_type)
        else:
            self._clear_source_fields()

        self.use_for_calibration = parent.use_for_calibration
        self.use_for_shielding_source_fit = parent.use_for_shielding_source_fit

        for t in CoefficientType:
            self._fit_for[t] = parent._fit_for[t]
            if inherit_non_fit_for_values and not self._fit_for[t] and t != CoefficientType.CHI2_DOF:
                self._coefficients[t] = parent._coefficients[t]
                self._uncertainties[t] = parent._uncertainties[t]

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def copy(self) -> "Peak":
        """Copy of the peak that still shares this peak's continuum."""
        dup = copy.copy(self)
        dup._coefficients = dict(self._coefficients)
        dup._uncertainties = dict(self._uncertainties)
        dup._fit_for = dict(self._fit_for)
        dup._candidates = list(self._candidates)
        return dup

    @staticmethod
    def less_than_by_mean(lhs: "Peak", rhs: "Peak") -> bool:
        return lhs.mean < rhs.mean

    def sort_key(self) -> float:
        return self.mean

    def __repr__(self) -> str:
        if self.gaus_peak():
            return (f"Peak(mean={self.mean:.2f}, sigma={self.sigma:.3f}, "
                    f"amplitude={self.amplitude:.1f}, skew={self._skew_type.value})")
        return (f"Peak(data-defined, mean={self.mean:.2f}, "
                f"{self._continuum.lower_energy:.2f}-{self._continuum.upper_energy:.2f} keV)")
