"""
Peak-set relationships: which peaks must be fit together.
"""

import logging
from typing import List, Sequence

from peakroi.peak import Peak

logger = logging.getLogger(__name__)


def group_causally_connected(peaks: Sequence[Peak], n_sigma: float,
                             use_roi_as_well: bool) -> List[List[Peak]]:
    """
    Split peaks into groups that have to be fit jointly.

    Connection is transitive: if A reaches B and B reaches C, all three end
    up in one group even when A and C are far apart. Groups come back
    ordered by mean, as do the peaks within each group.
    """
    groups: List[List[Peak]] = []
    for peak in sorted(peaks, key=Peak.sort_key):
        connected = [g for g in groups
                     if any(Peak.causally_connected(member, peak, n_sigma, use_roi_as_well)
                            for member in g)]
        merged = [peak]
        for g in connected:
            merged.extend(g)
            groups.remove(g)
        merged.sort(key=Peak.sort_key)
        groups.append(merged)

    groups.sort(key=lambda g: g[0].mean)
    logger.debug(f"Grouped {len(peaks)} peaks into {len(groups)} fit groups")
    return groups


def share_continuum(peaks: Sequence[Peak]) -> None:
    """
    Point every peak at the first peak's continuum.

    Siblings are re-pointed explicitly; nothing is refit.
    """
    if not peaks:
        return
    continuum = peaks[0].continuum
    for peak in peaks[1:]:
        peak.set_continuum(continuum)
