import random
from enum import Enum
from typing import Callable, Iterable, List, MutableSequence, Optional, TypeVar

T = TypeVar("T")


class EvenCountBehavior(Enum):
    """How the median of an even number of values is reported"""

    MIDPOINT_AVERAGE = "midpoint_average"
    NEAREST = "nearest"


def nth_order_statistic(
    values: MutableSequence[float], n: int, rng: Optional[random.Random] = None
) -> float:
    """
    Return the value that would be at index n if values were sorted ascending.

    Quickselect with a three way partition, so runs of identical values do not degrade the
    search. The sequence is reordered in place.

    Parameters
    ----------
    values : MutableSequence[float]
        Values to search, reordered in place
    n : int
        Zero based rank of the requested value
    rng : Optional[random.Random]
        Generator used to pick the pivots; the last element of the range is the pivot when None

    Returns
    -------
    float
        The n-th smallest value
    """
    if n < 0 or n >= len(values):
        raise IndexError(f"Rank {n} is out of range for {len(values)} values")

    left = 0
    right = len(values) - 1
    while True:
        if left == right:
            return values[left]

        pivot_index = rng.randint(left, right) if rng is not None else right
        pivot = values[pivot_index]

        # [left, lower) < pivot, [lower, upper] == pivot, (upper, right] > pivot
        lower = left
        current = left
        upper = right
        while current <= upper:
            value = values[current]
            if value < pivot:
                values[lower], values[current] = values[current], values[lower]
                lower += 1
                current += 1
            elif value > pivot:
                values[current], values[upper] = values[upper], values[current]
                upper -= 1
            else:
                current += 1

        if n < lower:
            right = lower - 1
        elif n > upper:
            left = upper + 1
        else:
            return pivot


class MedianUtilities:
    """
    Median of unsorted numeric lists in expected linear time.

    Parameters
    ----------
    even_count_behavior : EvenCountBehavior
        Whether an even sized list reports the mean of the two central values or the lower one
    seed : Optional[int]
        Seed of the pivot generator, for reproducible partitioning
    """

    def __init__(
        self,
        even_count_behavior: EvenCountBehavior = EvenCountBehavior.MIDPOINT_AVERAGE,
        seed: Optional[int] = None,
    ):
        self.even_count_behavior = even_count_behavior
        self._rng = random.Random(seed)

    def nth_order_statistic(self, values: MutableSequence[float], n: int) -> float:
        return nth_order_statistic(values, n, self._rng)

    def median(self, values: Iterable[float]) -> float:
        """
        Median of the values; 0 for an empty input. The input is copied, not reordered.
        """
        data: List[float] = list(values)
        count = len(data)
        if count == 0:
            return 0
        if count == 1:
            return data[0]

        mid_point1 = (count - 1) // 2
        median1 = nth_order_statistic(data, mid_point1, self._rng)
        if count % 2 == 1 or self.even_count_behavior == EvenCountBehavior.NEAREST:
            return median1

        # The upper central value is the smallest value right of the first midpoint
        median2 = min(data[mid_point1 + 1 :])
        return (median1 + median2) / 2.0

    def median_of(self, items: Iterable[T], getter: Callable[[T], float]) -> float:
        return self.median(getter(item) for item in items)
