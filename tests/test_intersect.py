"""
Tests for sorted sequence intersection.
"""

from opentsdb_datasource.domain.utils.intersect import intersect_sorted


def test_intersect_common_values():
    """Only values present in both inputs are returned, ascending."""
    assert intersect_sorted(["a", "c", "d", "f"], ["b", "c", "f", "g"]) == ["c", "f"]


def test_intersect_is_commutative_in_content():
    """Swapping the arguments yields the same values."""
    a = [1, 3, 5, 7, 9]
    b = [2, 3, 4, 7, 10]
    assert set(intersect_sorted(a, b)) == set(intersect_sorted(b, a)) == {3, 7}


def test_intersect_with_itself_is_identity():
    """A strictly ascending sequence intersected with itself is unchanged."""
    a = ["cpu", "disk", "mem", "net"]
    assert intersect_sorted(a, a) == a


def test_intersect_with_empty_input():
    """An empty input yields an empty result."""
    assert intersect_sorted([], ["a"]) == []
    assert intersect_sorted(["a"], []) == []


def test_intersect_disjoint_inputs():
    """Disjoint inputs share nothing."""
    assert intersect_sorted(["a", "b"], ["c", "d"]) == []


def test_intersect_output_is_duplicate_free_and_ascending():
    """Duplicate-free ascending inputs give duplicate-free ascending output."""
    result = intersect_sorted(list(range(0, 100, 2)), list(range(0, 100, 3)))
    assert result == list(range(0, 100, 6))
    assert len(result) == len(set(result))
