import math

import pytest

from peakroi.continuum import Continuum, ContinuumType
from peakroi.errors import PeakUsageError
from peakroi.peak import (
    Peak,
    PeakType,
    SkewType,
    CoefficientType,
    SourceGammaType,
    CandidateNuclide,
)
from peakroi.spectrum import Spectrum


def landau_peak():
    peak = Peak(600.0, 2.0, 4000.0)
    peak.set_skew_type(SkewType.LANDAU)
    peak.set_coefficient(CoefficientType.LANDAU_AMPLITUDE, 0.2)
    peak.set_coefficient(CoefficientType.LANDAU_MODE, 1.0)
    peak.set_coefficient(CoefficientType.LANDAU_SIGMA, 1.5)
    return peak


def test_defaults():
    peak = Peak(661.0, 3.0, 5000.0)

    assert peak.type == PeakType.GAUSSIAN_DEFINED
    assert peak.skew_type == SkewType.NONE
    assert peak.fit_for(CoefficientType.MEAN)
    assert peak.fit_for(CoefficientType.SIGMA)
    assert peak.fit_for(CoefficientType.GAUSS_AMPLITUDE)
    assert not peak.fit_for(CoefficientType.LANDAU_AMPLITUDE)
    assert not peak.fit_for(CoefficientType.CHI2_DOF)
    assert peak.uncertainty(CoefficientType.MEAN) == -1.0
    assert peak.continuum.type == ContinuumType.NONE
    assert peak.use_for_calibration
    assert not peak.use_for_shielding_source_fit


def test_gauss_integral_symmetric_and_complete():
    peak = Peak(661.0, 3.0, 5000.0)

    left = peak.gauss_integral(661.0 - 6.0, 661.0)
    right = peak.gauss_integral(661.0, 661.0 + 6.0)
    assert left == pytest.approx(right)

    total = peak.gauss_integral(661.0 - 30.0, 661.0 + 30.0)
    assert total >= 0.99999 * 5000.0


def test_gauss_integral_degenerate_peaks_are_zero():
    assert Peak(100.0, 0.0, 50.0).gauss_integral(90.0, 110.0) == 0.0
    assert Peak(100.0, 2.0, 0.0).gauss_integral(90.0, 110.0) == 0.0


def test_provisional_extent():
    peak = Peak(661.0, 3.0, 5000.0)
    assert peak.lower_x() == pytest.approx(649.0)
    assert peak.upper_x() == pytest.approx(673.0)

    peak.continuum.set_range(640.0, 690.0)
    assert peak.lower_x() == 640.0
    assert peak.upper_x() == 690.0


def test_landau_extent_is_asymmetric():
    peak = landau_peak()
    expected = 600.0 - 1.0 + 0.22278 * 1.5 - 25.0 * 1.5
    assert peak.lower_x() == pytest.approx(expected)
    assert peak.upper_x() == pytest.approx(608.0)


def test_exp_gaussian_extent():
    peak = Peak(600.0, 2.0, 4000.0)
    peak.set_skew_type(SkewType.EXP_GAUSSIAN)
    peak.set_coefficient(CoefficientType.SKEW_TAIL_TAU, 1.5)
    assert peak.lower_x() == pytest.approx(600.0 - 8.0 - 12.0)


def test_landau_potential_range():
    assert Peak.landau_potential_lower_x(100.0, 2.0) == 84.0
    assert Peak.landau_potential_upper_x(100.0, 2.0) == 100.0


def test_set_skew_type_selects_fit_coefficients():
    peak = Peak(600.0, 2.0, 4000.0)
    peak.set_skew_type(SkewType.LANDAU)
    assert peak.fit_for(CoefficientType.LANDAU_MODE)
    assert not peak.fit_for(CoefficientType.SKEW_TAIL_TAU)

    peak.set_skew_type(SkewType.EXP_GAUSSIAN)
    assert not peak.fit_for(CoefficientType.LANDAU_MODE)
    assert peak.fit_for(CoefficientType.SKEW_TAIL_TAU)


def test_area_without_skew():
    peak = Peak(661.0, 3.0, 5000.0)
    peak.set_uncertainty(CoefficientType.GAUSS_AMPLITUDE, 80.0)

    assert peak.peak_area() == 5000.0
    assert peak.peak_area_uncert() == 80.0

    peak.set_peak_area(1234.0)
    peak.set_peak_area_uncert(40.0)
    assert peak.amplitude == 1234.0
    assert peak.uncertainty(CoefficientType.GAUSS_AMPLITUDE) == 40.0


def test_area_with_landau_skew():
    peak = landau_peak()
    skew_area = peak.skew_integral(peak.lower_x(), peak.upper_x())

    assert skew_area > 0.0
    assert peak.peak_area() == pytest.approx(4000.0 + skew_area)
    assert peak.gauss_integral(0.0, 2000.0) == pytest.approx(
        4000.0 + peak.skew_integral(0.0, 2000.0))


def test_narrow_landau_tail_far_above_mean():
    peak = Peak(661.0, 1.0, 1000.0)
    peak.set_skew_type(SkewType.LANDAU)
    peak.set_coefficient(CoefficientType.LANDAU_AMPLITUDE, 0.1)
    peak.set_coefficient(CoefficientType.LANDAU_MODE, 0.0)
    peak.set_coefficient(CoefficientType.LANDAU_SIGMA, 0.01)

    assert peak.skew_integral(670.0, 671.0) == 0.0
    assert peak.gauss_integral(670.0, 671.0) == pytest.approx(0.0, abs=1e-9)
    assert peak.peak_area() > 1000.0


def test_area_uncert_adds_skew_in_quadrature():
    peak = landau_peak()
    peak.set_uncertainty(CoefficientType.GAUSS_AMPLITUDE, 60.0)
    peak.set_uncertainty(CoefficientType.LANDAU_AMPLITUDE, 0.02)

    skew_area = peak.skew_integral(peak.lower_x(), peak.upper_x())
    expected = math.sqrt(60.0 ** 2 + (skew_area * 0.1) ** 2)
    assert peak.peak_area_uncert() == pytest.approx(expected)


def test_set_peak_area_keeps_skew_fraction():
    peak = landau_peak()
    skew_area = peak.skew_integral(peak.lower_x(), peak.upper_x())

    peak.set_peak_area(3000.0)

    skew_frac = skew_area / (skew_area + 3000.0)
    assert peak.amplitude == pytest.approx((1.0 - skew_frac) * 3000.0)


def test_set_peak_area_uncert_scales_gauss_share():
    peak = landau_peak()
    skew_area = peak.skew_integral(peak.lower_x(), peak.upper_x())
    total = skew_area + 4000.0

    peak.set_peak_area_uncert(100.0)

    assert peak.uncertainty(CoefficientType.GAUSS_AMPLITUDE) == pytest.approx(100.0 / total * 4000.0)
    assert peak.uncertainty(CoefficientType.LANDAU_AMPLITUDE) == -1.0


def test_exp_gaussian_skew_integral():
    peak = Peak(600.0, 2.0, 4000.0)
    peak.set_skew_type(SkewType.EXP_GAUSSIAN)
    peak.set_coefficient(CoefficientType.SKEW_TAIL_FRACTION, 0.1)
    peak.set_coefficient(CoefficientType.SKEW_TAIL_TAU, 3.0)

    assert peak.skew_integral(0.0, 1200.0) == pytest.approx(400.0)
    assert peak.skew_integral(0.0, 600.0) > peak.skew_integral(600.0, 1200.0)


def test_offset_integral_delegates():
    peak = Peak(500.0, 2.0, 100.0)
    peak.continuum.set_type(ContinuumType.LINEAR)
    peak.continuum.set_parameters(500.0, [10.0, 0.5])
    assert peak.offset_integral(500.0, 510.0) == pytest.approx(125.0)


def test_data_defined_peak():
    data = Spectrum([10.0] * 200)
    background = Spectrum([4.0] * 200)

    peak = Peak.from_data(100.0, 110.0, 105.0, data, background)

    assert peak.type == PeakType.DATA_DEFINED
    assert not peak.gaus_peak()
    assert peak.amplitude == pytest.approx(60.0)
    assert peak.continuum.type == ContinuumType.EXTERNAL
    assert (peak.lower_x(), peak.upper_x()) == (100.0, 110.0)
    assert peak.area_from_data(data) == pytest.approx(60.0)
    with pytest.raises(PeakUsageError):
        peak.gauss_integral(100.0, 110.0)


def test_data_defined_peak_without_data():
    peak = Peak.from_data(100.0, 110.0, 105.0, None)
    assert peak.continuum.type == ContinuumType.NONE
    assert peak.continuum.energy_range_defined()
    assert peak.amplitude == 0.0


def test_area_from_data(single_peak_spectrum):
    peak = Peak(661.0, 3.0, 5000.0)
    peak.continuum.set_type(ContinuumType.CONSTANT)
    peak.continuum.set_parameters(661.0, [100.0])
    peak.continuum.set_range(630.0, 692.0)

    assert peak.area_from_data(single_peak_spectrum) == pytest.approx(5000.0, rel=1e-4)
    assert peak.area_from_data(None) == 0.0


def test_causality_symmetric():
    a = Peak(100.0, 1.0, 10.0)
    b = Peak(103.0, 1.0, 10.0)
    c = Peak(120.0, 1.0, 10.0)

    for x, y in [(a, b), (a, c), (b, c)]:
        assert Peak.causally_connected(x, y, 4.0, False) == Peak.causally_connected(y, x, 4.0, False)

    assert Peak.causally_connected(a, b, 4.0, False)
    assert Peak.causally_disconnected(a, c, 4.0, False)


def test_causality_use_roi_as_well():
    a = Peak(100.0, 1.0, 10.0)
    b = Peak(110.0, 1.0, 10.0)
    assert Peak.causally_disconnected(a, b, 4.0, True)

    a.continuum.set_range(95.0, 107.0)
    assert Peak.causally_disconnected(a, b, 4.0, False)
    assert Peak.causally_connected(a, b, 4.0, True)


def test_shared_continuum_always_connected():
    a = Peak(100.0, 1.0, 10.0)
    b = Peak(500.0, 1.0, 10.0)
    b.set_continuum(a.continuum)

    assert a.shares_continuum_with(b)
    assert Peak.causally_connected(a, b, 1.0, False)


def test_continuum_must_not_be_none():
    with pytest.raises(PeakUsageError):
        Peak().set_continuum(None)


def test_copy_shares_continuum_until_made_unique():
    peak = Peak(100.0, 1.0, 10.0)
    dup = peak.copy()
    dup.mean = 101.0

    assert peak.mean == 100.0
    assert dup.shares_continuum_with(peak)

    dup.make_unique_new_continuum()
    dup.continuum.set_range(90.0, 110.0)
    assert not dup.shares_continuum_with(peak)
    assert not peak.continuum.energy_range_defined()


def test_nuclear_transition_energies():
    peak = Peak(2103.5, 1.0, 10.0)
    assert not peak.has_source_gamma_assigned()
    with pytest.raises(PeakUsageError):
        peak.gamma_particle_energy()

    peak.set_nuclear_transition("Tl208", 2614.5, SourceGammaType.SINGLE_ESCAPE)
    assert peak.has_source_gamma_assigned()
    assert peak.gamma_particle_energy() == pytest.approx(2614.5 - 510.99891)

    peak.set_nuclear_transition("Tl208", 2614.5, SourceGammaType.DOUBLE_ESCAPE)
    assert peak.gamma_particle_energy() == pytest.approx(2614.5 - 2 * 510.99891)

    peak.set_nuclear_transition("Na22", 1274.5, SourceGammaType.ANNIHILATION)
    assert peak.gamma_particle_energy() == pytest.approx(510.99891)


def test_source_kinds_are_exclusive():
    peak = Peak(74.97, 0.5, 10.0)
    peak.set_nuclear_transition("Cs137", 661.657)
    peak.set_xray("Pb", 74.97)

    assert peak.nuclide is None
    assert peak.gamma_particle_energy() == pytest.approx(74.97)

    peak.set_reaction("Fe(n,n')", 846.8)
    assert peak.xray_element is None
    assert peak.gamma_particle_energy() == pytest.approx(846.8)

    with pytest.raises(PeakUsageError):
        peak.set_reaction("H(n,g)", 2223.2, SourceGammaType.ANNIHILATION)

    peak.clear_sources()
    assert not peak.has_source_gamma_assigned()


def test_candidate_nuclides():
    peak = Peak(661.0, 3.0, 5000.0)
    peak.add_candidate_nuclide(CandidateNuclide("Cs137", 661.657, weight=0.9))
    peak.add_candidate_nuclide(CandidateNuclide("Bi214", 665.4, weight=0.1))
    assert [c.nuclide for c in peak.candidate_nuclides] == ["Cs137", "Bi214"]

    peak.set_candidate_nuclides([])
    assert peak.candidate_nuclides == []


def test_inherit_user_selected_options():
    parent = Peak(661.0, 3.0, 5000.0)
    parent.set_nuclear_transition("Cs137", 661.657)
    parent.use_for_calibration = False
    parent.set_fit_for(CoefficientType.SIGMA, False)
    parent.set_uncertainty(CoefficientType.SIGMA, 0.01)

    child = Peak(662.0, 2.5, 4000.0)
    child.inherit_user_selected_options(parent, inherit_non_fit_for_values=True)

    assert child.nuclide == "Cs137"
    assert not child.use_for_calibration
    assert not child.fit_for(CoefficientType.SIGMA)
    assert child.sigma == 3.0
    assert child.uncertainty(CoefficientType.SIGMA) == 0.01
    assert child.mean == 662.0

    other = Peak(662.0, 2.5, 4000.0)
    other.inherit_user_selected_options(parent, inherit_non_fit_for_values=False)
    assert other.sigma == 2.5


def test_sorting_helpers():
    peaks = [Peak(300.0, 1.0, 1.0), Peak(100.0, 1.0, 1.0), Peak(200.0, 1.0, 1.0)]
    assert Peak.less_than_by_mean(peaks[1], peaks[0])
    assert [p.mean for p in sorted(peaks, key=Peak.sort_key)] == [100.0, 200.0, 300.0]
