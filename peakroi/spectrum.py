"""
Spectrum Module
===============

Histogram abstraction consumed by the continuum, peak, and ROI search code.

A `Spectrum` is an ordered set of channels, each covering
`[lower_energy, upper_energy)` with a non-negative count. Binning may be
non-uniform. Instances are treated as immutable snapshots during an
analysis pass; the underlying arrays are flagged read-only.

Usage:
    from peakroi.spectrum import Spectrum

    spec = Spectrum(counts, bin_edges=edges)
    channel = spec.find_channel(661.7)
    area = spec.integral(655.0, 668.0)
"""

import numpy as np
from typing import Optional, Union, List, Tuple


class Spectrum:
    """
    Gamma spectrum histogram with energy calibration.

    Attributes:
        counts (np.ndarray): Counts per channel
        bin_edges (np.ndarray): Channel edges in keV (len(counts) + 1 values)
        energies (np.ndarray): Channel centres in keV
    """

    def __init__(
        self,
        counts: Union[List, np.ndarray],
        bin_edges: Optional[Union[List, np.ndarray]] = None,
        energies: Optional[Union[List, np.ndarray]] = None
    ):
        """
        Initialize Spectrum.

        Args:
            counts: Count data (1D)
            bin_edges: Channel edges in keV. Takes precedence over energies.
            energies: Channel centres in keV (edges estimated assuming the
                      spacing of neighbouring centres). If neither is given,
                      channel numbers are used as energies.
        """
        counts_arr = np.array(counts, dtype=float)
        if counts_arr.ndim != 1:
            raise ValueError("Spectrum counts must be one dimensional")

        if bin_edges is not None:
            edges = np.array(bin_edges, dtype=float)
            if len(edges) != len(counts_arr) + 1:
                raise ValueError(
                    f"Expected {len(counts_arr) + 1} bin edges, got {len(edges)}"
                )
        elif energies is not None:
            centres = np.asarray(energies, dtype=float)
            if len(centres) != len(counts_arr):
                raise ValueError(
                    f"Counts ({len(counts_arr)}) and energies ({len(centres)}) must have same length"
                )
            edges = self._edges_from_centres(centres)
        else:
            edges = np.arange(len(counts_arr) + 1, dtype=float)

        if len(edges) > 1 and np.any(np.diff(edges) <= 0):
            raise ValueError("Spectrum bin edges must be strictly increasing")

        self._counts = counts_arr
        self._bin_edges = edges

        self._counts.setflags(write=False)
        self._bin_edges.setflags(write=False)

    @staticmethod
    def _edges_from_centres(centres: np.ndarray) -> np.ndarray:
        if len(centres) == 0:
            return np.array([0.0])
        if len(centres) == 1:
            return np.array([centres[0] - 0.5, centres[0] + 0.5])
        mids = 0.5 * (centres[:-1] + centres[1:])
        first = centres[0] - (mids[0] - centres[0])
        last = centres[-1] + (centres[-1] - mids[-1])
        return np.concatenate([[first], mids, [last]])

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def counts(self) -> np.ndarray:
        """Counts per channel."""
        return self._counts

    @property
    def bin_edges(self) -> np.ndarray:
        """Channel edges in keV."""
        return self._bin_edges

    @property
    def energies(self) -> np.ndarray:
        """Channel centres in keV."""
        return 0.5 * (self._bin_edges[:-1] + self._bin_edges[1:])

    @property
    def lower_energies(self) -> np.ndarray:
        """Lower edge of every channel."""
        return self._bin_edges[:-1]

    @property
    def num_channels(self) -> int:
        return len(self._counts)

    @property
    def total_counts(self) -> float:
        return float(np.sum(self._counts))

    # =========================================================================
    # Channel Accessors
    # =========================================================================

    def channel_lower(self, channel: int) -> float:
        return float(self._bin_edges[channel])

    def channel_upper(self, channel: int) -> float:
        return float(self._bin_edges[channel + 1])

    def channel_width(self, channel: int) -> float:
        return float(self._bin_edges[channel + 1] - self._bin_edges[channel])

    def channel_center(self, channel: int) -> float:
        return 0.5 * (self.channel_lower(channel) + self.channel_upper(channel))

    def channel_content(self, channel: int) -> float:
        return float(self._counts[channel])

    def find_channel(self, energy: float) -> int:
        """
        Channel whose [lower, upper) range contains the energy.

        Energies below the first channel map to channel 0, energies above
        the last channel map to the last channel.
        """
        channel = int(np.searchsorted(self._bin_edges, energy, side="right")) - 1
        return min(max(channel, 0), self.num_channels - 1)

    def channels_sum(self, start: int, end: int) -> float:
        """
        Sum of counts over channels start..end inclusive.

        Order-insensitive; indices are clamped to the valid channel range.
        """
        if start > end:
            start, end = end, start
        n = self.num_channels
        if n == 0 or end < 0 or start >= n:
            return 0.0
        start = max(start, 0)
        end = min(end, n - 1)
        return float(np.sum(self._counts[start:end + 1]))

    def integral(self, x0: float, x1: float) -> float:
        """
        Counts between two energies.

        Channels only partially inside [x0, x1] contribute in proportion to
        the overlapped fraction of their width.
        """
        if x0 > x1:
            x0, x1 = x1, x0
        edges = self._bin_edges
        if self.num_channels == 0 or x1 <= edges[0] or x0 >= edges[-1]:
            return 0.0

        lows = edges[:-1]
        highs = edges[1:]
        overlap = np.clip(np.minimum(highs, x1) - np.maximum(lows, x0), 0.0, None)
        fractions = overlap / (highs - lows)
        return float(np.sum(fractions * self._counts))

    def spectroscopic_extent(self) -> Tuple[int, int]:
        """
        Range of channels that actually carry data.

        Returns the first and last channel with non-zero content, which
        excludes channels cut by the hardware threshold and empty overflow
        channels. Returns (0, 0) for an empty spectrum.
        """
        nonzero = np.flatnonzero(self._counts > 0)
        if len(nonzero) == 0:
            return 0, 0
        return int(nonzero[0]), int(nonzero[-1])

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def __repr__(self) -> str:
        if self.num_channels:
            span = f"{self._bin_edges[0]:.1f}-{self._bin_edges[-1]:.1f} keV"
        else:
            span = "empty"
        return f"Spectrum({self.num_channels} channels, {self.total_counts:.0f} counts, {span})"

    def __len__(self) -> int:
        return self.num_channels
