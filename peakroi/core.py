"""
Core constants and settings for ROI determination and peak modelling.

The boundary-search numbers below are empirical. Phase A and Phase B use
different control-band multipliers on purpose; do not merge them.
"""

import logging

# === SPECTRUM REQUIREMENTS ===
MIN_ROI_SEARCH_CHANNELS = 128      # Fewer channels than this cannot be searched
HIGH_RES_CHANNEL_THRESHOLD = 3000  # More channels than this is treated as HPGe-like

# === ROI SEARCH GEOMETRY (in units of peak sigma) ===
ROI_START_NSIGMA = 1.5            # Walk starts here
ROI_MAX_NSIGMA = 7.5              # Furthest the walk may go
ROI_MIN_NSIGMA = 1.75             # Floor applied after the walk
GOOD_CONTINUUM_NSIGMA = 7.05      # Phase C clamp position
NEAR_TAIL_NSIGMA = 3.5            # Start of the near band compared in Phase C

# === ROI SEARCH STATISTICS ===
SIDEBAND_CHANNELS = 1             # Channels each side of the anchor in the moving average
FEATURE_NSIGMA = 3.0              # Phase A upper control limit
BAND_NSIGMA = 2.8                 # Phase B symmetric control band
TAIL_COMPAT_NSIGMA = 3.0          # Phase C statistical-equivalence threshold
POISSON_REGIME_COUNTS = 20.0      # Below this background, use Poisson quantiles
POISSON_UPPER_QUANTILE = 0.99
POISSON_LOWER_QUANTILE = 0.01
FEATURE_SAFETY_CHANNELS = 3       # Back-off from a detected new feature
LOW_ENERGY_EXTENT_FRACTION = 0.04 # Fraction of channel range where the hardware threshold applies

# === PEAK SHAPE ===
PROVISIONAL_ROI_NSIGMA = 4.0      # lower_x/upper_x without a defined range
LANDAU_MODE_OFFSET = 0.22278      # Mode of the standard Landau distribution, negated
LANDAU_ROI_SCALE_WIDTHS = 25.0    # Landau scale widths kept in the provisional ROI
LANDAU_FIT_SCALE_WIDTHS = 10.0    # Landau scale widths kept when estimating a fit range
EXP_TAIL_ROI_TAU_WIDTHS = 8.0     # Exponential-tail decay lengths kept in the provisional ROI
MIN_FIT_CHANNELS = 10             # Narrowest fit range estimate_peak_fit_range returns

# Settings dict for display/inspection, mirrors the constants above
DEFAULT_ROI_SETTINGS = {
    "min_channels": MIN_ROI_SEARCH_CHANNELS,
    "high_res_channels": HIGH_RES_CHANNEL_THRESHOLD,
    "start_nsigma": ROI_START_NSIGMA,
    "max_nsigma": ROI_MAX_NSIGMA,
    "min_nsigma": ROI_MIN_NSIGMA,
    "good_continuum_nsigma": GOOD_CONTINUUM_NSIGMA,
    "near_tail_nsigma": NEAR_TAIL_NSIGMA,
    "sideband_channels": SIDEBAND_CHANNELS,
    "feature_nsigma": FEATURE_NSIGMA,
    "band_nsigma": BAND_NSIGMA,
    "tail_compat_nsigma": TAIL_COMPAT_NSIGMA,
    "poisson_regime_counts": POISSON_REGIME_COUNTS,
    "feature_safety_channels": FEATURE_SAFETY_CHANNELS,
    "low_energy_extent_fraction": LOW_ENERGY_EXTENT_FRACTION,
}


def configure_logging(level=logging.INFO):
    """
    Install a basic log handler for scripts and notebooks.

    The library itself never configures logging on import.
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s"
    )
    logging.getLogger("peakroi").setLevel(level)
