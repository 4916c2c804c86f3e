import logging
import math
from typing import Callable, Iterable, List, Optional, Union

import numpy as np

from msdatastats.utils.constants import DEFAULT_MAXIMUM_DATA_COUNT_TO_KEEP, HISTOGRAM_BIN_COUNT

logger = logging.getLogger(__name__)

DEFAULT_SKIP_DATA_POINT_FLAG = -1.0
SUBTASK_STEP_COUNT = 4


class MaxCountFilter:
    """
    Keep (approximately) the N most abundant values of a large array without sorting all of it.

    A histogram of the abundances finds the bin where the cumulative count, walking down from the
    most abundant bin, reaches N. Values in higher bins are kept, values in lower bins are
    discarded and only the values of that boundary bin are ranked. Equal abundances in the
    boundary bin are kept in insertion order.

    Every abundance is stored with the caller's data point index; after filter_data the indices
    of the retained points are available from kept_data_point_indices.

    Parameters
    ----------
    maximum_data_count_to_keep : int
        Number of data points to keep
    skip_data_point_flag : float
        Abundance reported by get_abundance_by_index for discarded data points
    progress_callback : Optional[Callable[[float], None]]
        Called with the percent complete while filtering
    """

    def __init__(
        self,
        maximum_data_count_to_keep: int = DEFAULT_MAXIMUM_DATA_COUNT_TO_KEEP,
        skip_data_point_flag: float = DEFAULT_SKIP_DATA_POINT_FLAG,
        progress_callback: Optional[Callable[[float], None]] = None,
    ):
        self.maximum_data_count_to_keep = maximum_data_count_to_keep
        self.skip_data_point_flag = skip_data_point_flag
        self.progress_callback = progress_callback
        self.progress = 0.0
        self._abundance_chunks: List[np.ndarray] = []
        self._index_chunks: List[np.ndarray] = []
        self._keep: Optional[np.ndarray] = None

    def add_data_point(self, abundance: float, data_point_index: int) -> None:
        self.add_data_points([abundance], data_point_indices=[data_point_index])

    def add_data_points(
        self,
        abundances: Union[Iterable[float], np.ndarray],
        start_index: int = 0,
        data_point_indices: Optional[Union[Iterable[int], np.ndarray]] = None,
    ) -> None:
        """
        Add a block of abundances. The data point indices are start_index, start_index + 1, ...
        unless data_point_indices is given.
        """
        values = np.array(abundances, dtype=np.float64).ravel()
        if data_point_indices is None:
            indices = np.arange(start_index, start_index + values.size, dtype=np.int64)
        else:
            indices = np.array(data_point_indices, dtype=np.int64).ravel()
            if indices.size != values.size:
                raise ValueError(
                    f"{values.size} abundances but {indices.size} data point indices"
                )

        self._abundance_chunks.append(values)
        self._index_chunks.append(indices)
        self._keep = None

    def clear(self) -> None:
        self._abundance_chunks = []
        self._index_chunks = []
        self._keep = None
        self.progress = 0.0

    @property
    def data_count(self) -> int:
        return sum(chunk.size for chunk in self._abundance_chunks)

    @property
    def data_point_indices(self) -> np.ndarray:
        """Data point indices in insertion order"""
        return self._consolidate(self._index_chunks, np.int64)

    @property
    def kept_data_point_indices(self) -> np.ndarray:
        """Data point indices retained by the last filter_data call, in insertion order"""
        if self._keep is None:
            return np.empty(0, dtype=np.int64)
        return self.data_point_indices[self._keep]

    def get_abundance_by_index(self, position: int) -> float:
        """
        Abundance of the data point added at the given position; discarded points report the
        skip flag after filter_data. Out of range positions return -1.
        """
        values = self._consolidate(self._abundance_chunks, np.float64)
        if 0 <= position < values.size:
            return float(values[position])
        return -1

    def filter_data(self) -> np.ndarray:
        """
        Mark the data points to discard.

        Returns
        -------
        np.ndarray
            Boolean keep mask, in insertion order
        """
        values = self._consolidate(self._abundance_chunks, np.float64)
        self._update_progress(0)

        if values.size <= self.maximum_data_count_to_keep:
            self._keep = np.ones(values.size, dtype=bool)
            self._update_progress(100)
            return self._keep

        keep = self._select_by_histogram(values)
        if keep is None:
            keep = self._select_by_full_sort(values, self.maximum_data_count_to_keep)

        self._abundance_chunks = [np.where(keep, values, self.skip_data_point_flag)]
        self._keep = keep

        self._update_progress(100)
        return keep

    @staticmethod
    def _consolidate(chunks: List[np.ndarray], dtype) -> np.ndarray:
        """Merge the stored blocks into one array, keeping the merged array for the next call"""
        if not chunks:
            return np.empty(0, dtype=dtype)
        if len(chunks) > 1:
            merged = np.concatenate(chunks)
            chunks[:] = [merged]
        return chunks[0]

    def _select_by_histogram(self, values: np.ndarray) -> Optional[np.ndarray]:
        max_abundance = math.ceil(values.max())
        if max_abundance <= 0:
            return None

        bin_size = max(1.0, max_abundance / HISTOGRAM_BIN_COUNT)
        bin_count = int(max_abundance / bin_size) + 1

        bins = np.zeros(values.size, dtype=np.int64)
        positive = values > 0
        bins[positive] = np.floor(values[positive] / bin_size).astype(np.int64)
        np.clip(bins, 0, bin_count - 1, out=bins)

        bin_counts = np.bincount(bins, minlength=bin_count)
        self._update_progress(1 / SUBTASK_STEP_COUNT * 100)

        # Walk down from the most abundant bin until enough points are covered
        cumulative = np.cumsum(bin_counts[::-1])
        reached = np.flatnonzero(cumulative >= self.maximum_data_count_to_keep)
        if reached.size == 0:
            return None
        bin_to_sort = bin_count - 1 - int(reached[0])

        keep = bins > bin_to_sort
        implicitly_included = int(keep.sum())
        candidates = np.flatnonzero(bins == bin_to_sort)
        self._update_progress(2 / SUBTASK_STEP_COUNT * 100)

        remaining = self.maximum_data_count_to_keep - implicitly_included
        if remaining >= candidates.size:
            keep[candidates] = True
        else:
            order = np.argsort(-values[candidates], kind="stable")
            keep[candidates[order[:remaining]]] = True

        self._update_progress(3 / SUBTASK_STEP_COUNT * 100)
        return keep

    def _select_by_full_sort(self, values: np.ndarray, keep_count: int) -> np.ndarray:
        logger.debug(f"Sorting all {values.size} data points to keep the top {keep_count}")
        keep = np.zeros(values.size, dtype=bool)
        order = np.argsort(-values, kind="stable")
        keep[order[:keep_count]] = True
        return keep

    def _update_progress(self, progress: float) -> None:
        self.progress = progress
        if self.progress_callback is not None:
            self.progress_callback(progress)
