"""
Peak-Shape Integral Math

Closed-form integrals used for peak areas:
- Gaussian integral over [x0, x1] via the error function
- Landau cumulative distribution (Kolbig & Schorr rational approximation)
  and the Landau low-energy tail integral built on it
- Exponentially-modified Gaussian tail, the erf-based skew family

References:
- K.S. Kolbig and B. Schorr, "A program package for the Landau
  distribution", Computer Phys. Comm. 31 (1984) 97-111 (CERNLIB G110)
"""

import math
from scipy.special import erf, erfc, erfcx

SQRT2 = math.sqrt(2.0)

# Rational approximation coefficients for the Landau CDF, one set per region
_P1 = (0.2514091491e+0, -0.6250580444e-1, 0.1458381230e-1, -0.2108817737e-2, 0.7411247290e-3)
_Q1 = (1.0, -0.5571175625e-2, 0.6225310236e-1, -0.3137378427e-2, 0.1931496439e-2)

_P2 = (0.2868328584e+0, 0.3564363231e+0, 0.1523518695e+0, 0.2251304883e-1)
_Q2 = (1.0, 0.6191136137e+0, 0.1720721448e+0, 0.2278594771e-1)

_P3 = (0.2868329066e+0, 0.3003828436e+0, 0.9950951941e-1, 0.8733827185e-2)
_Q3 = (1.0, 0.4237190502e+0, 0.1095631512e+0, 0.8693851567e-2)

_P4 = (0.1000351630e+1, 0.4503592498e+1, 0.1085883880e+2, 0.7536052269e+1)
_Q4 = (1.0, 0.5539969678e+1, 0.1933581111e+2, 0.2721321508e+2)

_P5 = (0.1000006517e+1, 0.4909414111e+2, 0.8505544753e+2, 0.1532153455e+3)
_Q5 = (1.0, 0.5009928881e+2, 0.1399819104e+3, 0.4200002909e+3)

_P6 = (0.1000000983e+1, 0.1329868456e+3, 0.9162149244e+3, -0.9605054274e+3)
_Q6 = (1.0, 0.1339887843e+3, 0.1055990413e+4, 0.5532224619e+3)

_A1 = (0.0, -0.4583333333e+0, 0.6675347222e+0, -0.1641741416e+1)
_A2 = (0.0, 1.0, -0.4227843351e+0, -0.2043403138e+1)


def _horner(coeffs, x):
    result = 0.0
    for c in reversed(coeffs):
        result = result * x + c
    return result


def landau_cdf(x: float, scale: float, location: float) -> float:
    """
    Cumulative Landau distribution.

    Seven-region piecewise approximation in v = (x - location) / scale;
    the regions join smoothly and cover the whole real line.

    Args:
        x: Point to evaluate at
        scale: Landau width parameter (> 0)
        location: Landau location parameter
    """
    v = (x - location) / scale

    if v < -5.5:
        u = math.exp(v + 1.0)
        if u == 0.0:
            return 0.0
        return 0.3989422803 * math.exp(-1.0 / u) * math.sqrt(u) * (
            1.0 + (_A1[1] + (_A1[2] + _A1[3] * u) * u) * u
        )
    if v < -1.0:
        u = math.exp(-v - 1.0)
        return (math.exp(-u) / math.sqrt(u)) * _horner(_P1, v) / _horner(_Q1, v)
    if v < 1.0:
        return _horner(_P2, v) / _horner(_Q2, v)
    if v < 4.0:
        return _horner(_P3, v) / _horner(_Q3, v)
    if v < 12.0:
        u = 1.0 / v
        return _horner(_P4, u) / _horner(_Q4, u)
    if v < 50.0:
        u = 1.0 / v
        return _horner(_P5, u) / _horner(_Q5, u)
    if v < 300.0:
        u = 1.0 / v
        return _horner(_P6, u) / _horner(_Q6, u)

    u = 1.0 / (v - v * math.log(v) / (v + 1.0))
    return 1.0 - (_A2[1] + (_A2[2] + _A2[3] * u) * u) * u


def landau_integral(x0: float, x1: float, peak_mean: float,
                    amplitude: float, mode: float, sigma: float) -> float:
    """
    Area of a Landau low-energy tail between x0 and x1.

    The tail is a Landau distribution in (peak_mean - x), so it extends
    toward lower energy. Returns 0 for non-positive amplitude or scale.

    Args:
        x0, x1: Energy range (keV)
        peak_mean: Centroid of the Gaussian the tail is attached to
        amplitude: Total tail area
        mode: Landau location, relative to the peak mean
        sigma: Landau scale
    """
    if amplitude <= 0.0 or sigma <= 0.0:
        return 0.0

    # Mode is the location and sigma the scale; keep in step with Peak.lower_x
    y0 = landau_cdf(peak_mean - x0, sigma, mode)
    y1 = landau_cdf(peak_mean - x1, sigma, mode)
    return amplitude * (y0 - y1)


def gaus_integral(peak_mean: float, peak_sigma: float, peak_amplitude: float,
                  x0: float, x1: float) -> float:
    """
    Area of a Gaussian (total area `peak_amplitude`) between x0 and x1.

    Zero sigma or zero amplitude gives zero.
    """
    if peak_sigma == 0.0 or peak_amplitude == 0.0:
        return 0.0

    scale = SQRT2 * peak_sigma
    cdf_low = 0.5 * (1.0 + erf((x0 - peak_mean) / scale))
    cdf_high = 0.5 * (1.0 + erf((x1 - peak_mean) / scale))
    return peak_amplitude * (cdf_high - cdf_low)


def exp_gaussian_indefinite_integral(x: float, amplitude: float, centroid: float,
                                     width: float, tau: float) -> float:
    """
    Antiderivative of an exponentially-modified Gaussian with a high-side tail.

    Integrand:
        (A / t) * exp(w^2 / (2 t^2) - (x - c) / t) * (1 + erf(((x - c) / w - w / t) / sqrt(2))) / 2
    """
    v = x - centroid
    gauss_part = erf(v / (SQRT2 * width))
    y = -(v / width - width / tau) / SQRT2
    if y > 0.0:
        # exp(...) * erfc(y) rewritten with erfcx so the exponential cannot overflow
        tail_part = math.exp(-v * v / (2.0 * width * width)) * erfcx(y)
    else:
        tail_part = math.exp(width * width / (2.0 * tau * tau) - v / tau) * erfc(y)
    return 0.5 * amplitude * (gauss_part - tail_part)


def exp_gaussian_integral(x0: float, x1: float, amplitude: float,
                          centroid: float, width: float, tau: float) -> float:
    """Area of a high-side exponentially-modified Gaussian between x0 and x1."""
    return (exp_gaussian_indefinite_integral(x1, amplitude, centroid, width, tau)
            - exp_gaussian_indefinite_integral(x0, amplitude, centroid, width, tau))


def low_tail_exp_gaussian_integral(x0: float, x1: float, amplitude: float,
                                   centroid: float, width: float, tau: float) -> float:
    """
    Area of an exponential low-energy tail convolved with the peak Gaussian.

    Mirror image of `exp_gaussian_integral` about the centroid, so the tail
    extends toward lower energy like the Landau tail does. Returns 0 for
    non-positive amplitude, width, or tau.
    """
    if amplitude <= 0.0 or width <= 0.0 or tau <= 0.0:
        return 0.0

    # Reflect x -> 2c - x; the integration limits swap
    return exp_gaussian_integral(2.0 * centroid - x1, 2.0 * centroid - x0,
                                 amplitude, centroid, width, tau)
