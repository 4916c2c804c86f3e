import gc
import logging
import math
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from msdatastats.reduction.max_count_filter import MaxCountFilter
from msdatastats.utils.config import LCMSDataCacheOptions
from msdatastats.utils.constants import (
    CHARGE,
    INTENSITY,
    MS_LEVEL,
    MZ,
    RETENTION_TIME,
    SCAN,
)
from msdatastats.utils.median import MedianUtilities

logger = logging.getLogger(__name__)

FLOAT32_MAX = float(np.finfo(np.float32).max)
MAX_CHARGE = 255

ArrayLike = Union[Sequence[float], np.ndarray]


class PointState(IntEnum):
    """Consolidation state of a data point"""

    UNDECIDED = 0
    KEPT = 1
    DROPPED = 2


class ScanData:
    """
    Retained data points of one spectrum.

    The buffers may be larger than the number of points in use (ion_count) after a trim; the
    mz, intensity and charge properties only expose the points in use.
    """

    def __init__(
        self,
        scan_number: int,
        ms_level: int,
        scan_time_minutes: float,
        mz: ArrayLike,
        intensity: ArrayLike,
        charge: Optional[ArrayLike] = None,
    ):
        self.scan_number = scan_number
        self.ms_level = ms_level
        self.scan_time_minutes = scan_time_minutes

        self._mz = np.array(mz, dtype=np.float64)
        self._intensity = np.array(intensity, dtype=np.float32)
        if charge is None:
            self._charge = np.zeros(self._mz.size, dtype=np.uint8)
        else:
            self._charge = np.array(charge, dtype=np.uint8)

        if not (self._mz.size == self._intensity.size == self._charge.size):
            raise ValueError(
                f"Scan {scan_number}: m/z, intensity and charge arrays differ in length"
            )
        self.ion_count = self._mz.size

    @property
    def mz(self) -> np.ndarray:
        return self._mz[: self.ion_count]

    @property
    def intensity(self) -> np.ndarray:
        return self._intensity[: self.ion_count]

    @property
    def charge(self) -> np.ndarray:
        return self._charge[: self.ion_count]

    @property
    def capacity(self) -> int:
        return self._mz.size

    def truncate(self, ion_count: int) -> None:
        self.ion_count = max(0, min(ion_count, self.ion_count))

    def compact(self, keep_mask: np.ndarray) -> None:
        """Move the points flagged in keep_mask to the front of the buffers, preserving order"""
        kept = np.flatnonzero(keep_mask[: self.ion_count])
        new_count = kept.size
        self._mz[:new_count] = self._mz[kept]
        self._intensity[:new_count] = self._intensity[kept]
        self._charge[:new_count] = self._charge[kept]
        self.ion_count = new_count

    def shrink_to_fit(self) -> None:
        if self.ion_count < self.capacity:
            self._mz = self._mz[: self.ion_count].copy()
            self._intensity = self._intensity[: self.ion_count].copy()
            self._charge = self._charge[: self.ion_count].copy()

    def update_ms_level(self, ms_level: int) -> None:
        self.ms_level = ms_level

    def __repr__(self) -> str:
        if self.ms_level > 0:
            return f"Scan {self.scan_number}, MS{self.ms_level}"
        return f"Scan {self.scan_number}"


@dataclass
class LCMSPlotData:
    """Retained points of an m/z vs. scan plot and the axis ranges to display them"""

    points: pd.DataFrame
    min_scan: int = 0
    max_scan: int = 0
    min_mz: float = 0.0
    max_mz: float = 0.0
    scan_time_max: float = 0.0
    color_scale_min_intensity: float = 0.0
    color_scale_max_intensity: float = 0.0


def consolidate_points(
    mz: np.ndarray, intensity: np.ndarray, charge: np.ndarray, mz_resolution: float
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Merge points closer than mz_resolution, keeping the most intense point of each group.

    Points are visited from the highest to the lowest intensity. An undecided point is kept and
    every undecided point within mz_resolution on either side is dropped. No two kept points end
    up closer than mz_resolution.

    Parameters
    ----------
    mz : np.ndarray
        Ascending m/z values
    intensity : np.ndarray
        Intensity of each point
    charge : np.ndarray
        Charge of each point
    mz_resolution : float
        Minimum spacing between retained points

    Returns
    -------
    Tuple[np.ndarray, np.ndarray, np.ndarray]
        The retained m/z, intensity and charge values, in m/z order
    """
    if mz_resolution <= 0 or mz.size < 2:
        return mz, intensity, charge

    # Neighbours of point i closer than mz_resolution are in [window_start[i], window_end[i])
    window_start = np.searchsorted(mz, mz - mz_resolution, side="right")
    window_end = np.searchsorted(mz, mz + mz_resolution, side="left")

    state = np.full(mz.size, PointState.UNDECIDED, dtype=np.int8)
    for index in np.argsort(-intensity, kind="stable"):
        if state[index] != PointState.UNDECIDED:
            continue
        window = state[window_start[index] : window_end[index]]
        window[window == PointState.UNDECIDED] = PointState.DROPPED
        state[index] = PointState.KEPT

    keep = state == PointState.KEPT
    return mz[keep], intensity[keep], charge[keep]


class LCMSDataCache:
    """
    Bounded cache of the data points of an LC-MS run, used to draw m/z vs. scan plots.

    Every spectrum is filtered and consolidated when it is added. Once the cache holds more than
    trim_budget_multiplier times max_points_to_plot points, the least abundant points across all
    spectra are discarded, down to max_points_to_plot, while every spectrum keeps at least
    min_points_per_spectrum points.

    Parameters
    ----------
    options : Optional[LCMSDataCacheOptions]
        Point budget, resolution and intensity filters
    """

    def __init__(self, options: Optional[LCMSDataCacheOptions] = None):
        self.options = options or LCMSDataCacheOptions()
        self.point_count_cached = 0
        self.point_count_cached_after_last_trim = 0
        self._scans: List[ScanData] = []
        self._sorting_warn_count = 0
        self._spectra_exceeding_max_ion_count = 0
        self._max_ion_count_reported = 0
        self._last_gc_time = time.monotonic()

    @property
    def scan_count_cached(self) -> int:
        return len(self._scans)

    def add_scan(
        self,
        scan_number: int,
        ms_level: int,
        scan_time_minutes: float,
        mz: ArrayLike,
        intensity: ArrayLike,
        charge: Optional[ArrayLike] = None,
    ) -> bool:
        """
        Filter the points of one spectrum and add them to the cache.

        Parameters
        ----------
        scan_number : int
            Scan number of the spectrum
        ms_level : int
            MS level of the spectrum
        scan_time_minutes : float
            Elution time of the spectrum
        mz : ArrayLike
            m/z values; sorted here when needed
        intensity : ArrayLike
            Intensity values; points with an intensity of zero or below min_intensity are removed
        charge : Optional[ArrayLike]
            Charge of each point, when known

        Returns
        -------
        bool
            False when the spectrum has no data points
        """
        mz = np.asarray(mz, dtype=np.float64)
        intensity = np.asarray(intensity, dtype=np.float64)
        if mz.size == 0:
            return False
        if mz.size != intensity.size:
            raise ValueError(
                f"Scan {scan_number}: {mz.size} m/z values but {intensity.size} intensities"
            )

        if charge is None:
            charge = np.zeros(mz.size, dtype=np.uint8)
        else:
            charge = np.clip(np.asarray(charge), 0, MAX_CHARGE).astype(np.uint8)

        usable = np.isfinite(mz) & ~np.isnan(intensity)
        if not usable.all():
            mz, intensity, charge = mz[usable], intensity[usable], charge[usable]

        if mz.size > 1 and np.any(mz[1:] < mz[:-1]):
            self._sorting_warn_count += 1
            if self._sorting_warn_count <= 10:
                logger.info(f"Sorting m/z data of scan {scan_number}")
            elif self._sorting_warn_count % 100 == 0:
                logger.info(f"Sorting m/z data (i = {self._sorting_warn_count})")
            order = np.argsort(mz, kind="stable")
            mz, intensity, charge = mz[order], intensity[order], charge[order]

        keep = (intensity > 0) & (intensity >= self.options.min_intensity)
        mz, intensity, charge = mz[keep], intensity[keep], charge[keep]
        intensity = np.minimum(intensity, FLOAT32_MAX).astype(np.float32)

        self.add_scan_check_data(scan_number, ms_level, scan_time_minutes, mz, intensity, charge)
        return True

    def add_scan_check_data(
        self,
        scan_number: int,
        ms_level: int,
        scan_time_minutes: float,
        mz: np.ndarray,
        intensity: np.ndarray,
        charge: np.ndarray,
    ) -> None:
        if mz.size > 1 and np.any(np.diff(mz) < self.options.mz_resolution):
            mz, intensity, charge = consolidate_points(
                mz, intensity, charge, self.options.mz_resolution
            )

        scan = ScanData(scan_number, ms_level, scan_time_minutes, mz, intensity, charge)

        max_ion_count = self.options.max_ion_count_per_spectrum
        if scan.ion_count > max_ion_count:
            self._spectra_exceeding_max_ion_count += 1
            if (
                self._spectra_exceeding_max_ion_count <= 10
                or scan.ion_count > self._max_ion_count_reported
            ):
                logger.info(
                    f"Scan {scan_number} has {scan.ion_count} ions; will only retain "
                    f"{max_ion_count} (trimmed {self._spectra_exceeding_max_ion_count} spectra)"
                )
                self._max_ion_count_reported = scan.ion_count
            self.discard_data_to_limit_ion_count(scan, 0, 0, max_ion_count)

        self._append_scan(scan)

    def add_scan_skip_filters(self, source: Optional[ScanData]) -> bool:
        """Copy a spectrum from another cache without filtering its points"""
        if source is None or source.ion_count <= 0:
            return False

        scan = ScanData(
            source.scan_number,
            source.ms_level,
            source.scan_time_minutes,
            source.mz,
            source.intensity,
            source.charge,
        )
        self._append_scan(scan)
        return True

    def _append_scan(self, scan: ScanData) -> None:
        self._scans.append(scan)
        self.point_count_cached += scan.ion_count

        budget = self.options.max_points_to_plot * self.options.trim_budget_multiplier
        if self.point_count_cached <= budget:
            return

        # Only trim again once the cache grew enough since the previous trim
        if (
            self.point_count_cached
            >= self.point_count_cached_after_last_trim * self.options.trim_growth_factor
        ):
            self.trim_cached_data(
                self.options.max_points_to_plot, self.options.min_points_per_spectrum
            )

    def discard_data_to_limit_ion_count(
        self,
        scan: ScanData,
        mz_ignore_range_start: float,
        mz_ignore_range_end: float,
        max_ion_count_to_retain: int,
    ) -> None:
        """
        Keep the most intense max_ion_count_to_retain points of a spectrum.

        Points with m/z between mz_ignore_range_start and mz_ignore_range_end are always kept;
        the range is disabled when both values are 0.
        """
        if scan.ion_count <= max_ion_count_to_retain:
            return

        max_count_filter = MaxCountFilter(max_ion_count_to_retain)
        max_count_filter.add_data_points(scan.intensity)
        keep = max_count_filter.filter_data()

        if mz_ignore_range_start > 0 or mz_ignore_range_end > 0:
            keep |= (scan.mz >= mz_ignore_range_start) & (scan.mz <= mz_ignore_range_end)

        scan.compact(keep)

    def trim_cached_data(self, target_data_point_count: int, min_points_per_spectrum: int) -> None:
        """
        Discard the least intense points across all cached spectra.

        Spectra with min_points_per_spectrum points or fewer are left alone. A spectrum that would
        drop below min_points_per_spectrum keeps its most intense min_points_per_spectrum points
        instead, so the number of points retained may exceed target_data_point_count.
        """
        eligible = [scan for scan in self._scans if scan.ion_count > min_points_per_spectrum]

        max_count_filter = MaxCountFilter(target_data_point_count)
        offset = 0
        for scan in eligible:
            max_count_filter.add_data_points(scan.intensity, offset)
            offset += scan.ion_count
        max_count_filter.filter_data()

        keep = np.zeros(offset, dtype=bool)
        keep[max_count_filter.kept_data_point_indices] = True

        point_count = 0
        position = 0
        for scan in self._scans:
            if scan.ion_count > min_points_per_spectrum:
                scan_keep = keep[position : position + scan.ion_count]
                position += scan.ion_count

                if int(scan_keep.sum()) < min_points_per_spectrum:
                    self.discard_data_to_limit_ion_count(scan, 0, 0, min_points_per_spectrum)
                else:
                    scan.compact(scan_keep)

                if scan.capacity > 5 and scan.ion_count < scan.capacity / 2:
                    scan.shrink_to_fit()
                    self._collect_garbage_if_due()

            point_count += scan.ion_count

        logger.debug(
            f"Trimmed the cached data from {self.point_count_cached} to {point_count} points"
        )
        self.point_count_cached = point_count
        self.point_count_cached_after_last_trim = point_count

    def _collect_garbage_if_due(self) -> None:
        now = time.monotonic()
        if now - self._last_gc_time > self.options.gc_interval_seconds:
            self._last_gc_time = now
            collected = gc.collect()
            logger.debug(f"Garbage collection released {collected} objects")

    def _trim_if_over_budget(self) -> None:
        if self.point_count_cached > self.options.max_points_to_plot:
            # The result may still exceed max_points_to_plot because of min_points_per_spectrum
            self.trim_cached_data(
                self.options.max_points_to_plot, self.options.min_points_per_spectrum
            )

    def validate_ms_level(self) -> None:
        """Spectra without an MS level are treated as MS1 spectra"""
        if any(scan.ms_level > 0 for scan in self._scans):
            return
        for scan in self._scans:
            scan.update_ms_level(1)

    def compute_average_intensity_all_scans(self, ms_level_filter: int = 0) -> float:
        if ms_level_filter > 0:
            self.validate_ms_level()

        self._trim_if_over_budget()

        intensities = [
            scan.intensity
            for scan in self._scans
            if ms_level_filter == 0 or scan.ms_level == ms_level_filter
        ]
        if not intensities:
            return 0.0

        data = np.concatenate(intensities).astype(np.float64)
        if data.size == 0:
            return 0.0
        return float(data.mean())

    def get_cached_scan_by_index(self, index: int) -> Optional[ScanData]:
        if 0 <= index < len(self._scans):
            return self._scans[index]
        return None

    def get_plot_data(self, ms_level_filter: int = 0, skip_trim: bool = False) -> LCMSPlotData:
        """
        Retained points for an m/z vs. scan plot.

        Parameters
        ----------
        ms_level_filter : int
            Only include spectra of this MS level; 0 for all spectra
        skip_trim : bool
            Do not trim the cache first. Use this when several plots are made in a row, each
            with a different ms_level_filter, and the first call already trimmed the data.

        Returns
        -------
        LCMSPlotData
            Points as a DataFrame, scan range rounded to multiples of 10, m/z range rounded to
            multiples of 100, and the median intensity as the color scale minimum
        """
        if ms_level_filter > 0:
            self.validate_ms_level()

        if not skip_trim:
            self._trim_if_over_budget()

        scans = [
            scan
            for scan in self._scans
            if ms_level_filter == 0 or scan.ms_level == ms_level_filter
        ]

        frames = [
            pd.DataFrame(
                {
                    SCAN: np.full(scan.ion_count, scan.scan_number, dtype=np.int64),
                    MS_LEVEL: np.full(scan.ion_count, scan.ms_level, dtype=np.int32),
                    RETENTION_TIME: np.full(scan.ion_count, scan.scan_time_minutes),
                    MZ: scan.mz,
                    INTENSITY: scan.intensity,
                    CHARGE: scan.charge,
                }
            )
            for scan in scans
            if scan.ion_count > 0
        ]
        if not frames:
            empty = pd.DataFrame(columns=[SCAN, MS_LEVEL, RETENTION_TIME, MZ, INTENSITY, CHARGE])
            return LCMSPlotData(points=empty)

        points = pd.concat(frames, ignore_index=True)
        scan_numbers = [scan.scan_number for scan in scans]

        return LCMSPlotData(
            points=points,
            min_scan=max(0, int(math.floor(min(scan_numbers) / 10.0)) * 10),
            max_scan=int(math.ceil(max(scan_numbers) / 10.0)) * 10,
            min_mz=math.floor(points[MZ].min() / 100.0) * 100,
            max_mz=math.ceil(points[MZ].max() / 100.0) * 100,
            scan_time_max=float(max(scan.scan_time_minutes for scan in scans)),
            color_scale_min_intensity=float(MedianUtilities().median(points[INTENSITY].tolist())),
            color_scale_max_intensity=float(points[INTENSITY].max()),
        )

    def reset(self) -> None:
        self.point_count_cached = 0
        self.point_count_cached_after_last_trim = 0
        self._scans = []
