import pytest
import numpy as np

from peakroi.spectrum import Spectrum


def test_channel_geometry():
    spec = Spectrum([1, 2, 3, 4], bin_edges=[0.0, 1.0, 3.0, 6.0, 10.0])

    assert spec.num_channels == 4
    assert spec.channel_lower(1) == 1.0
    assert spec.channel_upper(1) == 3.0
    assert spec.channel_width(2) == 3.0
    assert spec.channel_center(3) == 8.0
    assert spec.total_counts == 10.0


def test_find_channel_clamps():
    spec = Spectrum([1, 2, 3, 4], bin_edges=[0.0, 1.0, 3.0, 6.0, 10.0])

    assert spec.find_channel(-5.0) == 0
    assert spec.find_channel(0.0) == 0
    assert spec.find_channel(1.0) == 1
    assert spec.find_channel(2.99) == 1
    assert spec.find_channel(9.99) == 3
    assert spec.find_channel(50.0) == 3


def test_channels_sum_inclusive_and_order_insensitive():
    spec = Spectrum([1, 2, 3, 4])

    assert spec.channels_sum(1, 2) == 5.0
    assert spec.channels_sum(2, 1) == 5.0
    assert spec.channels_sum(-3, 10) == 10.0
    assert spec.channels_sum(7, 9) == 0.0


def test_integral_fractional_edges():
    spec = Spectrum([10.0] * 10)

    assert spec.integral(2.5, 4.5) == pytest.approx(20.0)
    assert spec.integral(4.5, 2.5) == pytest.approx(20.0)
    assert spec.integral(3.0, 3.0) == 0.0
    assert spec.integral(-5.0, 100.0) == pytest.approx(100.0)


def test_edges_from_energies():
    spec = Spectrum([1, 1, 1], energies=[0.5, 1.5, 2.5])
    np.testing.assert_allclose(spec.bin_edges, [0.0, 1.0, 2.0, 3.0])


def test_invalid_input():
    with pytest.raises(ValueError):
        Spectrum([1, 2, 3], bin_edges=[0, 1, 2])
    with pytest.raises(ValueError):
        Spectrum([1, 2], bin_edges=[0, 2, 1])


def test_counts_are_snapshot():
    source = np.array([1.0, 2.0, 3.0])
    spec = Spectrum(source)
    source[0] = 100.0

    assert spec.channel_content(0) == 1.0
    with pytest.raises(ValueError):
        spec.counts[0] = 5.0


def test_spectroscopic_extent():
    spec = Spectrum([0, 0, 5, 6, 0, 7, 0])
    assert spec.spectroscopic_extent() == (2, 5)
    assert Spectrum([0, 0]).spectroscopic_extent() == (0, 0)
