"""
ROI Boundary Search

Decides how far a peak's region of interest extends on each side by
walking outward from the mean and watching the data itself:

    Phase A: find the lowest background anchor near the peak, stopping
             early if the counts jump (a new feature).
    Phase B: walk out from the anchor with a cumulative background
             average, stopping at the first channel outside the control band.
    Phase C: if the walk went past the good-continuum point, clamp to it
             unless the far region shows a real low-energy tail.
    Phase D: never end closer to the mean than the minimum width.

Control limits switch to Poisson quantiles in the low-count regime.
"""

import logging
import math
import warnings
from typing import Callable, Optional, Tuple

import numpy as np
from scipy.stats import poisson

from peakroi.core import (
    MIN_ROI_SEARCH_CHANNELS,
    HIGH_RES_CHANNEL_THRESHOLD,
    ROI_START_NSIGMA,
    ROI_MAX_NSIGMA,
    ROI_MIN_NSIGMA,
    GOOD_CONTINUUM_NSIGMA,
    NEAR_TAIL_NSIGMA,
    SIDEBAND_CHANNELS,
    FEATURE_NSIGMA,
    BAND_NSIGMA,
    TAIL_COMPAT_NSIGMA,
    POISSON_REGIME_COUNTS,
    POISSON_UPPER_QUANTILE,
    POISSON_LOWER_QUANTILE,
    FEATURE_SAFETY_CHANNELS,
    LOW_ENERGY_EXTENT_FRACTION,
    PROVISIONAL_ROI_NSIGMA,
    LANDAU_MODE_OFFSET,
    LANDAU_FIT_SCALE_WIDTHS,
    MIN_FIT_CHANNELS,
)
from peakroi.continuum import ContinuumType
from peakroi.errors import InsufficientDataError, PeakUsageError
from peakroi.peak import Peak, CoefficientType, SkewType
from peakroi.spectrum import Spectrum

logger = logging.getLogger(__name__)

ExtentFinder = Callable[[Spectrum], Tuple[int, int]]


def poisson_quantile(mean: float, q: float) -> float:
    """
    Inverse CDF of Poisson(mean): smallest count k with P(X <= k) >= q.

    Returns 0 for a non-positive mean.
    """
    if mean <= 0.0:
        return 0.0
    return float(poisson.ppf(q, mean))


def _default_extent(data: Spectrum) -> Tuple[int, int]:
    return data.spectroscopic_extent()


def _local_slope_background(data: Spectrum, channel: int, direction: int,
                            nbackbin: int) -> Optional[float]:
    """
    Background at `channel` from a weighted straight-line fit to the
    `nbackbin` channels already accepted on the mean side of it.

    Returns None if the window falls off the spectrum or the fit fails.
    """
    if direction < 0:
        first = channel + 1
    else:
        first = channel - 1 - nbackbin
    last = first + nbackbin
    if first < 0 or last > data.num_channels:
        return None

    x = data.lower_energies[first:last]
    y = data.counts[first:last]
    weights = 1.0 / np.sqrt(np.maximum(y, 1.0))

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            slope, intercept = np.polyfit(x, y, 1, w=weights)
        except (np.linalg.LinAlgError, ValueError) as e:
            logger.debug(f"Slope fit failed at channel {channel}: {e}")
            return None

    value = intercept + slope * data.channel_lower(channel)
    if not math.isfinite(value):
        return None
    return value


def is_statistically_greater_or_equal(start1: int, end1: int, start2: int, end2: int,
                                      data: Spectrum, nsigma: float) -> bool:
    """
    Whether region 2's average counts per channel are not significantly
    below region 1's.

    Each region's average carries a Poisson uncertainty; the two are added
    in quadrature. True unless region 2 sits more than `nsigma` combined
    uncertainties below region 1.
    """
    lo1, hi1 = min(start1, end1), max(start1, end1)
    lo2, hi2 = min(start2, end2), max(start2, end2)

    area1 = data.channels_sum(lo1, hi1)
    n1 = hi1 - lo1 + 1
    avg1 = area1 / n1
    uncert1 = math.sqrt(area1) / n1

    area2 = data.channels_sum(lo2, hi2)
    n2 = hi2 - lo2 + 1
    avg2 = area2 / n2
    uncert2 = math.sqrt(area2) / n2

    uncert = math.sqrt(uncert1 * uncert1 + uncert2 * uncert2)
    return avg2 >= avg1 - nsigma * uncert


def find_roi_limit(peak: Peak, data: Spectrum, high: bool,
                   extent_finder: Optional[ExtentFinder] = None) -> int:
    """
    Channel where the peak's ROI should end in one direction.

    Args:
        peak: Gaussian-defined peak; only its mean, sigma and continuum
              range are used
        data: Spectrum to search
        high: True to search toward higher energy
        extent_finder: Returns the (lower, upper) channels carrying real
                       data; defaults to Spectrum.spectroscopic_extent

    Returns:
        Channel index of the ROI edge

    Raises:
        PeakUsageError: data-defined peak, or non-positive sigma
        InsufficientDataError: missing spectrum or fewer than 128 channels
    """
    if not peak.gaus_peak():
        raise PeakUsageError("ROI search requires a Gaussian-defined peak")

    nchannel = data.num_channels if data is not None else 0
    if nchannel < MIN_ROI_SEARCH_CHANNELS:
        raise InsufficientDataError(
            f"ROI search needs at least {MIN_ROI_SEARCH_CHANNELS} channels, got {nchannel}"
        )

    continuum = peak.continuum
    if continuum.energy_range_defined():
        if high:
            return data.find_channel(continuum.upper_energy - 0.00001)
        return data.find_channel(continuum.lower_energy)

    mean = peak.mean
    sigma = peak.sigma
    if not sigma > 0.0:
        raise PeakUsageError(f"ROI search requires a positive sigma, got {sigma}")

    if extent_finder is None:
        extent_finder = _default_extent

    highres = nchannel > HIGH_RES_CHANNEL_THRESHOLD
    contents = data.counts
    direction = 1 if high else -1
    nside = SIDEBAND_CHANNELS
    side = "upper" if high else "lower"

    # === PHASE A: background anchor ===
    startchannel = data.find_channel(mean + direction * ROI_START_NSIGMA * sigma)
    if not high and startchannel < nside:
        startchannel = nside

    minchannel = startchannel
    minval = contents[startchannel]
    nbackbin = 1 + 2 * nside
    backval = max(data.channels_sum(startchannel - nside, startchannel + nside), nbackbin)

    meanchannel = data.find_channel(mean)
    lastchannel = data.find_channel(mean + direction * ROI_MAX_NSIGMA * sigma + direction * 0.0001)

    if high:
        lastchannel = min(lastchannel, nchannel - 2)
    else:
        lastchannel = max(lastchannel, 1)
    if (startchannel - lastchannel) * direction > 0:
        startchannel = lastchannel
    lastchannel += direction

    channel = startchannel + direction * nside
    while (lastchannel - channel) * direction > 0 and channel > nside:
        val = contents[channel]

        if val <= minval and (not highres or contents[channel + direction] <= minval):
            minval = val
            minchannel = channel
            nbackbin = 1 + 2 * nside
            backval = max(data.channels_sum(channel - nside, channel + nside), nbackbin)
            channel += direction
            if channel == lastchannel:
                break
        else:
            background = backval / nbackbin
            background_sigma = math.sqrt(backval) / nbackbin

            # Low resolution: background from a weighted local slope fit
            if nbackbin > 2 and not highres and channel > nbackbin:
                fitted = _local_slope_background(data, channel, direction, nbackbin)
                if fitted is not None:
                    background = max(fitted, float(nbackbin))

            spread = math.sqrt(background_sigma * background_sigma + background)
            max_allowable = math.ceil(background + FEATURE_NSIGMA * spread) + 0.001
            if background < POISSON_REGIME_COUNTS:
                max_allowable = poisson_quantile(background, POISSON_UPPER_QUANTILE)

            if val > max_allowable and (not highres or contents[channel + direction] > max_allowable):
                if channel >= FEATURE_SAFETY_CHANNELS * direction:
                    lastchannel = channel - FEATURE_SAFETY_CHANNELS * direction
                logger.debug(
                    f"{side} ROI for {mean:.2f}: new feature at channel {channel} "
                    f"(val={val:.1f} > {max_allowable:.1f}), limit now {lastchannel}"
                )
                break

            nbackbin += 1
            backval += val

        channel += direction

    logger.debug(f"{side} ROI for {mean:.2f}: anchor channel {minchannel}, limit {lastchannel}")

    # === PHASE B: boundary refinement ===
    nbackbin = 1 + 2 * nside
    backval = max(data.channels_sum(minchannel - nside, minchannel + nside), nbackbin)

    if high:
        lastchannel = min(lastchannel, nchannel - 2)
    else:
        lastchannel = max(lastchannel, 1)
    if (minchannel - lastchannel) * direction > 0:
        minchannel = lastchannel
    lastchannel += direction

    if direction < 0 and (lastchannel / nchannel) < LOW_ENERGY_EXTENT_FRACTION:
        lower_extent, _ = extent_finder(data)
        if lower_extent >= lastchannel:
            lastchannel = lower_extent - 1 if lower_extent else 0
            minchannel = max(minchannel, lastchannel)
            logger.debug(f"lower ROI for {mean:.2f}: held at spectroscopic extent, channel {lastchannel}")

    channel = minchannel + direction * nside
    while ((lastchannel - channel) * direction > 0 and channel != meanchannel
           and 0 <= channel < nchannel):
        val = contents[channel]
        if channel > 1 and 0 <= channel + direction < nchannel:
            nextval = contents[channel + direction]
        else:
            nextval = val

        back = backval / nbackbin
        back_uncert = math.sqrt(backval) / nbackbin
        spread = math.sqrt(back + back_uncert * back_uncert)
        max_allowable = math.ceil(back + BAND_NSIGMA * spread) + 0.001
        min_allowable = math.floor(back - BAND_NSIGMA * spread) - 0.001
        if back < POISSON_REGIME_COUNTS:
            max_allowable = poisson_quantile(back, POISSON_UPPER_QUANTILE)
            min_allowable = poisson_quantile(back, POISSON_LOWER_QUANTILE)

        # High resolution: two consecutive channels must be out of band
        above = val > max_allowable and (not highres or nextval > max_allowable)
        below = val < min_allowable and (not highres or nextval < min_allowable)
        if above or below:
            lastchannel = channel - (direction if channel > 0 else 0)
            logger.debug(
                f"{side} ROI for {mean:.2f}: channel {channel} outside "
                f"[{min_allowable:.1f}, {max_allowable:.1f}] (val={val:.1f}), limit now {lastchannel}"
            )
            break

        nbackbin += 1
        backval += val
        channel += direction

    # === PHASE C: good-continuum clamp ===
    good_cont_channel = data.find_channel(mean + direction * GOOD_CONTINUUM_NSIGMA * sigma)
    if abs(lastchannel - meanchannel) > abs(good_cont_channel - meanchannel):
        nearest_channel = data.find_channel(mean + direction * NEAR_TAIL_NSIGMA * sigma)
        not_decreasing = is_statistically_greater_or_equal(
            nearest_channel, good_cont_channel, good_cont_channel, lastchannel,
            data, TAIL_COMPAT_NSIGMA
        )
        if high or not_decreasing:
            logger.debug(f"{side} ROI for {mean:.2f}: clamped to good continuum channel {good_cont_channel}")
            lastchannel = good_cont_channel

    # === PHASE D: minimum width ===
    edge = data.channel_center(lastchannel)
    if direction * (edge - mean) / sigma < ROI_MIN_NSIGMA:
        lastchannel = data.find_channel(mean + direction * ROI_MIN_NSIGMA * sigma)
        logger.debug(f"{side} ROI for {mean:.2f}: widened to minimum, channel {lastchannel}")

    return int(lastchannel)


def find_roi_energy_limits(peak: Peak, data: Optional[Spectrum],
                           extent_finder: Optional[ExtentFinder] = None) -> Tuple[float, float]:
    """
    (lower, upper) ROI energies for a peak.

    Uses the continuum range when defined, the provisional peak extent when
    there is no data, and otherwise the ROI search in both directions.
    """
    continuum = peak.continuum
    if continuum.energy_range_defined():
        return continuum.lower_energy, continuum.upper_energy

    if data is None:
        return peak.lower_x(), peak.upper_x()

    lowbin = find_roi_limit(peak, data, False, extent_finder)
    upbin = find_roi_limit(peak, data, True, extent_finder)
    return data.channel_lower(lowbin), data.channel_upper(upbin)


def estimate_peak_fit_range(peak: Peak, data: Optional[Spectrum],
                            extent_finder: Optional[ExtentFinder] = None) -> Optional[Tuple[int, int]]:
    """
    (low_channel, high_channel) to hand to the fitter for a peak.

    Returns None without data. The range is at least MIN_FIT_CHANNELS wide
    and, for Landau-skewed peaks, extended to cover the tail.
    """
    if data is None:
        return None

    nchannel = data.num_channels
    continuum = peak.continuum

    if continuum.energy_range_defined():
        return (data.find_channel(continuum.lower_energy),
                data.find_channel(continuum.upper_energy - 0.00001))

    mean = peak.mean
    if peak.gaus_peak():
        sigma = peak.sigma
    else:
        sigma = 0.125 * (peak.upper_x() - peak.lower_x())

    if continuum.type == ContinuumType.EXTERNAL:
        return (data.find_channel(mean - PROVISIONAL_ROI_NSIGMA * sigma),
                data.find_channel(mean + PROVISIONAL_ROI_NSIGMA * sigma))

    if continuum.is_polynomial() and peak.gaus_peak():
        low_channel = find_roi_limit(peak, data, False, extent_finder)
        high_channel = find_roi_limit(peak, data, True, extent_finder)
    else:
        low_channel = data.find_channel(mean - PROVISIONAL_ROI_NSIGMA * sigma)
        high_channel = data.find_channel(mean + PROVISIONAL_ROI_NSIGMA * sigma)

    if peak.skew_type == SkewType.LANDAU:
        mode = peak.coefficient(CoefficientType.LANDAU_MODE)
        scale = peak.coefficient(CoefficientType.LANDAU_SIGMA)
        tail_lower = mean - mode + LANDAU_MODE_OFFSET * scale - LANDAU_FIT_SCALE_WIDTHS * scale
        low_channel = min(low_channel, data.find_channel(tail_lower))

    nfit = high_channel - low_channel
    if nfit < MIN_FIT_CHANNELS:
        pad = (MIN_FIT_CHANNELS - nfit) // 2
        low_channel -= pad
        high_channel += MIN_FIT_CHANNELS - nfit - pad

    return max(low_channel, 0), min(high_channel, nchannel - 1)
