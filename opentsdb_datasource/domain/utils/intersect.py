"""Linear intersection of ascending sequences."""

from typing import List, Sequence, TypeVar

T = TypeVar("T")


def intersect_sorted(a: Sequence[T], b: Sequence[T]) -> List[T]:
    """
    Return the values present in both ``a`` and ``b``.

    Both inputs must already be sorted ascending; this is not checked. Runs
    in O(len(a) + len(b)) with a two-pointer merge, so duplicate-free inputs
    produce a duplicate-free ascending output.

    Examples
    --------
    >>> intersect_sorted(["a", "b", "d"], ["b", "c", "d"])
    ['b', 'd']
    """
    ai = 0
    bi = 0
    result: List[T] = []

    while ai < len(a) and bi < len(b):
        if a[ai] < b[bi]:  # type: ignore[operator]
            ai += 1
        elif a[ai] > b[bi]:  # type: ignore[operator]
            bi += 1
        else:
            result.append(a[ai])
            ai += 1
            bi += 1

    return result
