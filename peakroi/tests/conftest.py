import pytest
import numpy as np

from peakroi.skew import gaus_integral
from peakroi.spectrum import Spectrum


def make_spectrum(peaks=(), background=100.0, nchannel=2048, channel_width=1.0):
    """
    Noise-free synthetic spectrum: flat background plus Gaussian peaks.

    `peaks` is a sequence of (mean, sigma, amplitude); each channel holds
    the exact expected counts.
    """
    edges = np.arange(nchannel + 1) * channel_width
    counts = np.full(nchannel, float(background))
    for mean, sigma, amplitude in peaks:
        for i in range(nchannel):
            counts[i] += gaus_integral(mean, sigma, amplitude, edges[i], edges[i + 1])
    return Spectrum(counts, bin_edges=edges)


@pytest.fixture
def flat_spectrum():
    """2048 channels of 1 keV, 100 counts each."""
    return make_spectrum()


@pytest.fixture
def single_peak_spectrum():
    """Peak at 661 keV (sigma 3, area 5000) on a flat 100-count background."""
    return make_spectrum([(661.0, 3.0, 5000.0)])


@pytest.fixture
def doublet_spectrum():
    """The single-peak spectrum plus a stronger peak at 690 keV."""
    return make_spectrum([(661.0, 3.0, 5000.0), (690.0, 3.0, 8000.0)])


@pytest.fixture
def linear_spectrum():
    """Counts rising linearly: 50 + 0.1 * channel, 1 keV channels."""
    counts = 50.0 + 0.1 * np.arange(2048)
    return Spectrum(counts, bin_edges=np.arange(2049, dtype=float))


@pytest.fixture
def spectrum_factory():
    """Build custom synthetic spectra inside a test."""
    return make_spectrum
