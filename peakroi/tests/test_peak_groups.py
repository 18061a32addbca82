from peakroi.peak import Peak
from peakroi.peak_groups import group_causally_connected, share_continuum


def test_groups_split_on_gaps():
    peaks = [Peak(200.0, 1.0, 10.0), Peak(105.0, 1.0, 10.0), Peak(100.0, 1.0, 10.0)]

    groups = group_causally_connected(peaks, 4.0, False)

    assert [[p.mean for p in g] for g in groups] == [[100.0, 105.0], [200.0]]


def test_groups_are_transitive():
    a, b, c = Peak(100.0, 1.0, 10.0), Peak(107.0, 1.0, 10.0), Peak(114.0, 1.0, 10.0)
    assert Peak.causally_disconnected(a, c, 4.0, False)

    groups = group_causally_connected([c, a, b], 4.0, False)

    assert len(groups) == 1
    assert groups[0] == [a, b, c]


def test_wide_roi_joins_groups():
    a = Peak(100.0, 1.0, 10.0)
    b = Peak(110.0, 1.0, 10.0)
    a.continuum.set_range(95.0, 112.0)

    assert len(group_causally_connected([a, b], 4.0, False)) == 2
    assert len(group_causally_connected([a, b], 4.0, True)) == 1


def test_empty_input():
    assert group_causally_connected([], 4.0, False) == []


def test_share_continuum():
    peaks = [Peak(100.0, 1.0, 10.0), Peak(103.0, 1.0, 10.0), Peak(106.0, 1.0, 10.0)]
    share_continuum(peaks)

    assert all(p.continuum is peaks[0].continuum for p in peaks)
    assert group_causally_connected(peaks, 0.0, False) == [peaks]

    share_continuum([])
