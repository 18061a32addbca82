"""
Continuum Model

Background under a peak, or under a group of peaks that share one ROI.
Either a polynomial in (E - reference_energy), or an external background
spectrum that is integrated channel by channel.

A Continuum may be referenced by several Peaks at once; it holds no
reference back to them. Any change to a shared continuum is seen by every
peak using it, so callers wanting an independent copy use `copy()`.
"""

import copy
import logging
import math
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np
from numpy.polynomial import polynomial as P

from peakroi.errors import PeakUsageError
from peakroi.spectrum import Spectrum

logger = logging.getLogger(__name__)


class ContinuumType(str, Enum):
    NONE = "NoOffset"
    CONSTANT = "Constant"
    LINEAR = "Linear"
    QUADRATIC = "Quadratic"
    CUBIC = "Cubic"
    EXTERNAL = "External"


# Number of polynomial coefficients implied by each continuum type
POLYNOMIAL_ORDER = {
    ContinuumType.NONE: 0,
    ContinuumType.CONSTANT: 1,
    ContinuumType.LINEAR: 2,
    ContinuumType.QUADRATIC: 3,
    ContinuumType.CUBIC: 4,
    ContinuumType.EXTERNAL: 0,
}


class Continuum:
    """
    Polynomial or external background over an energy range.

    Attributes:
        type (ContinuumType): Kind of continuum
        lower_energy, upper_energy (float): ROI bounds; equal means undefined
        reference_energy (float): Polynomial expansion point
        parameters (List[float]): Polynomial coefficients, constant term first
        uncertainties (List[float]): One per coefficient
        fit_for_parameter (List[bool]): Whether the optimizer may vary each coefficient
        external_continuum (Spectrum): Background spectrum for EXTERNAL type
    """

    def __init__(self, continuum_type: ContinuumType = ContinuumType.NONE):
        self._type = ContinuumType.NONE
        self._lower_energy = 0.0
        self._upper_energy = 0.0
        self._reference_energy = 0.0
        self._values: List[float] = []
        self._uncertainties: List[float] = []
        self._fit_for: List[bool] = []
        self._external: Optional[Spectrum] = None

        if continuum_type != ContinuumType.NONE:
            self.set_type(continuum_type)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def type(self) -> ContinuumType:
        return self._type

    @property
    def lower_energy(self) -> float:
        return self._lower_energy

    @property
    def upper_energy(self) -> float:
        return self._upper_energy

    @property
    def reference_energy(self) -> float:
        return self._reference_energy

    @property
    def parameters(self) -> List[float]:
        return list(self._values)

    @property
    def uncertainties(self) -> List[float]:
        return list(self._uncertainties)

    @property
    def fit_for_parameter(self) -> List[bool]:
        return list(self._fit_for)

    @property
    def external_continuum(self) -> Optional[Spectrum]:
        return self._external

    @property
    def order(self) -> int:
        """Number of polynomial coefficients for the current type."""
        return POLYNOMIAL_ORDER[self._type]

    def is_polynomial(self) -> bool:
        return self.order > 0

    def energy_range_defined(self) -> bool:
        return self._lower_energy != self._upper_energy

    def defined(self) -> bool:
        """True if the continuum would contribute any counts."""
        if self._type == ContinuumType.EXTERNAL:
            return self._external is not None
        return any(v != 0.0 for v in self._values)

    # =========================================================================
    # Mutators
    # =========================================================================

    def set_type(self, continuum_type: ContinuumType) -> None:
        """
        Change the continuum kind, resizing the coefficient arrays.

        Existing coefficients are kept where the new order allows. Switching
        to a polynomial drops any external spectrum; switching to EXTERNAL
        drops the coefficients. NONE resets the range too.
        """
        continuum_type = ContinuumType(continuum_type)
        self._type = continuum_type

        if continuum_type == ContinuumType.NONE:
            self._values = []
            self._uncertainties = []
            self._fit_for = []
            self._external = None
            self._lower_energy = self._upper_energy = self._reference_energy = 0.0
        elif continuum_type == ContinuumType.EXTERNAL:
            self._values = []
            self._uncertainties = []
            self._fit_for = []
            self._reference_energy = 0.0
        else:
            n = POLYNOMIAL_ORDER[continuum_type]
            self._values = (self._values + [0.0] * n)[:n]
            self._uncertainties = (self._uncertainties + [0.0] * n)[:n]
            self._fit_for = (self._fit_for + [True] * n)[:n]
            self._external = None

    def set_range(self, lower: float, upper: float) -> None:
        if lower > upper:
            lower, upper = upper, lower
        self._lower_energy = float(lower)
        self._upper_energy = float(upper)

    def set_parameters(self, reference_energy: float, values: Sequence[float],
                       uncertainties: Optional[Sequence[float]] = None) -> None:
        """
        Set all polynomial coefficients at once.

        Raises:
            PeakUsageError: type is NONE/EXTERNAL, or an array length does
                            not match the polynomial order
        """
        if not self.is_polynomial():
            raise PeakUsageError(f"Cannot set polynomial parameters on a {self._type.value} continuum")

        n = self.order
        if len(values) != n:
            raise PeakUsageError(f"{self._type.value} continuum needs {n} parameters, got {len(values)}")

        if uncertainties is not None and len(uncertainties) > 0:
            if len(uncertainties) != n:
                raise PeakUsageError(f"{self._type.value} continuum needs {n} uncertainties, got {len(uncertainties)}")
            self._uncertainties = [float(u) for u in uncertainties]
        else:
            self._uncertainties = [0.0] * n

        self._values = [float(v) for v in values]
        self._reference_energy = float(reference_energy)
        self._fit_for = (self._fit_for + [True] * n)[:n]

    def set_polynomial_coef(self, index: int, value: float) -> bool:
        if not 0 <= index < len(self._values):
            return False
        self._values[index] = float(value)
        return True

    def set_polynomial_uncert(self, index: int, value: float) -> bool:
        if not 0 <= index < len(self._uncertainties):
            return False
        self._uncertainties[index] = float(value)
        return True

    def set_polynomial_coef_fit_for(self, index: int, fit: bool) -> bool:
        if not 0 <= index < len(self._fit_for):
            return False
        self._fit_for[index] = bool(fit)
        return True

    def set_external_continuum(self, data: Optional[Spectrum]) -> None:
        if self._type != ContinuumType.EXTERNAL:
            raise PeakUsageError("External spectrum can only be set on an External continuum")
        self._external = data

    def copy(self) -> "Continuum":
        """Independent copy; the external spectrum (immutable) is shared."""
        dup = copy.copy(self)
        dup._values = list(self._values)
        dup._uncertainties = list(self._uncertainties)
        dup._fit_for = list(self._fit_for)
        return dup

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate(self, energy: float) -> float:
        """Continuum density (counts per keV) at an energy."""
        if not self.is_polynomial():
            raise PeakUsageError(f"Cannot evaluate a {self._type.value} continuum as a polynomial")
        return float(P.polyval(energy - self._reference_energy, self._values))

    def evaluate_integral(self, x0: float, x1: float) -> float:
        """
        Continuum counts between two energies.

        Limits outside [lower_energy, upper_energy] are not checked.
        """
        if self._type == ContinuumType.NONE:
            return 0.0
        if self._type == ContinuumType.EXTERNAL:
            if self._external is None:
                return 0.0
            return self._external.integral(x0, x1)
        return self.polynomial_integral(self._values, x0, x1, self._reference_energy)

    # Alias matching the peak-side naming
    offset_integral = evaluate_integral

    @staticmethod
    def polynomial_integral(coefs: Sequence[float], x0: float, x1: float,
                            reference: float) -> float:
        """
        Integral of sum_k coefs[k] * (E - reference)^k from x0 to x1.

        Negative results are clamped to zero.
        """
        if len(coefs) == 0:
            raise PeakUsageError("Polynomial integral needs at least one coefficient")

        x0 -= reference
        x1 -= reference
        answer = 0.0
        for order, c in enumerate(coefs):
            power = order + 1.0
            answer += (c / power) * (x1 ** power - x0 ** power)
        return max(answer, 0.0)

    def translate_polynomial(self, new_reference: float) -> None:
        """Re-express the polynomial about a new reference energy."""
        if not self.is_polynomial():
            raise PeakUsageError(f"Cannot translate a {self._type.value} continuum")

        shift = new_reference - self._reference_energy
        # p(E - old) == q(E - new) where q(y) = p(y + shift)
        translated = [0.0] * self.order
        for k, c in enumerate(self._values):
            for j in range(k + 1):
                translated[j] += c * math.comb(k, j) * shift ** (k - j)

        self._values = translated
        self._reference_energy = float(new_reference)

    # =========================================================================
    # Sideband Estimation
    # =========================================================================

    @staticmethod
    def eqn_from_offsets(low_channel: int, high_channel: int, reference: float,
                         data: Spectrum, n_sideband: int) -> Tuple[float, float]:
        """
        Linear continuum through the sideband averages at two channels.

        The continuum density is b + m * (E - reference). Its integral over
        the low channel is matched to the average of the 2n+1 channels
        centred there, and likewise for the high channel.

        Returns:
            (slope, intercept); both zero if the system is degenerate
        """
        nchannel = data.num_channels

        def solve(low: int, high: int) -> Optional[Tuple[float, float]]:
            x1 = data.channel_lower(low) - reference
            dx1 = data.channel_width(low)
            x2 = data.channel_lower(high) - reference
            dx2 = data.channel_width(high)

            a1 = 0.5 * (2.0 * x1 * dx1 + dx1 * dx1)
            a2 = 0.5 * (2.0 * x2 * dx2 + dx2 * dx2)
            det = dx1 * a2 - dx2 * a1
            scale = abs(dx1 * a2) + abs(dx2 * a1)
            if abs(det) <= np.finfo(float).eps * max(scale, 1.0):
                return None

            avg_low = max(low, n_sideband)
            avg_high = min(high, nchannel - 1)
            norm = 1.0 / (1.0 + 2.0 * n_sideband)
            y1 = norm * data.channels_sum(avg_low - n_sideband, avg_low + n_sideband)
            y2 = norm * data.channels_sum(avg_high - n_sideband, avg_high + n_sideband)

            intercept = (y1 * a2 - y2 * a1) / det
            slope = (dx1 * y2 - dx2 * y1) / det
            if not (math.isfinite(slope) and math.isfinite(intercept)):
                return None
            return slope, intercept

        result = solve(low_channel, high_channel)
        if result is None:
            logger.debug(
                f"Degenerate sideband system for channels {low_channel}-{high_channel}, widening by one channel"
            )
            result = solve(max(low_channel - 1, 0), min(high_channel + 1, nchannel - 1))

        if result is None:
            logger.warning(
                f"Could not estimate linear continuum from channels {low_channel}-{high_channel}; using zero"
            )
            return 0.0, 0.0
        return result

    def estimate_linear_from_sidebands(self, data: Spectrum, x0: float, x1: float,
                                       n_sideband: int) -> None:
        """
        Make this a linear continuum over [x0, x1] estimated from sideband data.

        The reference energy becomes x0.
        """
        if x0 > x1:
            x0, x1 = x1, x0

        self.set_type(ContinuumType.LINEAR)
        self._reference_energy = float(x0)
        self._lower_energy = float(x0)
        self._upper_energy = float(x1)

        low_channel = data.find_channel(x0)
        high_channel = data.find_channel(x1)
        slope, intercept = self.eqn_from_offsets(low_channel, high_channel, x0, data, n_sideband)
        self._values = [intercept, slope]

    # Name used by callers that compute the range first
    calc_linear_continuum_eqn = estimate_linear_from_sidebands

    def __repr__(self) -> str:
        if self._type == ContinuumType.EXTERNAL:
            detail = "external" if self._external is not None else "no spectrum"
        elif self.is_polynomial():
            coefs = ", ".join(f"{v:.4g}" for v in self._values)
            detail = f"ref={self._reference_energy:.2f}, coefs=[{coefs}]"
        else:
            detail = "undefined"
        return (f"Continuum({self._type.value}, {self._lower_energy:.2f}-"
                f"{self._upper_energy:.2f} keV, {detail})")
