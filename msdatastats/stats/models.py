from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Union

import numpy as np

NumericText = Union[str, float, int, None]


@dataclass
class ScanRecord:
    """
    One acquisition event as reported by the file reader.

    Elution time, TIC and BPI may be text straight from the reader; values that cannot be parsed
    are left out of the statistics. When a peak list is given, the peak derived fields that were
    not supplied are computed from it.
    """

    scan_number: int
    ms_level: int
    elution_time: NumericText = None
    mz: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.float64))
    intensity: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.float64))
    charge: Optional[np.ndarray] = None
    scan_type_name: str = ""
    scan_filter_text: str = ""
    total_ion_intensity: NumericText = None
    base_peak_intensity: NumericText = None
    base_peak_mz: float = 0.0
    isolation_window_width: float = 0.0
    is_dia: bool = False
    ion_count: int = 0
    ion_count_raw: int = 0
    mz_min: float = 0.0
    mz_max: float = 0.0

    def __post_init__(self):
        self.mz = np.asarray(self.mz, dtype=np.float64)
        self.intensity = np.asarray(self.intensity, dtype=np.float64)
        if self.mz.size != self.intensity.size:
            raise ValueError(
                f"Scan {self.scan_number}: {self.mz.size} m/z values "
                f"but {self.intensity.size} intensities"
            )

        if self.mz.size == 0:
            return

        if not self.ion_count:
            self.ion_count = int(self.mz.size)
        if not self.ion_count_raw:
            self.ion_count_raw = int(self.mz.size)

        finite = np.isfinite(self.mz) & np.isfinite(self.intensity)
        if not finite.any():
            return

        mz = self.mz[finite]
        intensity = self.intensity[finite]
        if not self.mz_min and not self.mz_max:
            self.mz_min = float(mz.min())
            self.mz_max = float(mz.max())
        if self.total_ion_intensity is None:
            self.total_ion_intensity = float(intensity.sum())
        if self.base_peak_intensity is None:
            base_peak_index = int(np.argmax(intensity))
            self.base_peak_intensity = float(intensity[base_peak_index])
            self.base_peak_mz = float(mz[base_peak_index])

    def release_peaks(self) -> None:
        """Drop the peak list once it has been classified and cached, keeping the derived fields"""
        self.mz = np.empty(0, dtype=np.float64)
        self.intensity = np.empty(0, dtype=np.float64)
        self.charge = None


@dataclass
class SummaryStatDetails:
    scan_count: int = 0
    tic_max: float = 0.0
    bpi_max: float = 0.0
    tic_median: float = 0.0
    bpi_median: float = 0.0


@dataclass
class DatasetSummaryStats:
    """
    Run level statistics.

    scan_type_stats maps each scan type key to the number of scans of that type and
    scan_type_window_widths to the isolation window widths seen for it. scan_type_name_order
    lists, per MS level, the scan type names in the order they were first seen.
    """

    ms_stats: SummaryStatDetails = field(default_factory=SummaryStatDetails)
    msn_stats: SummaryStatDetails = field(default_factory=SummaryStatDetails)
    elution_time_max: float = 0.0
    dia_scan_count: int = 0
    scan_type_stats: Dict[str, int] = field(default_factory=dict)
    scan_type_window_widths: Dict[str, Set[float]] = field(default_factory=dict)
    scan_type_name_order: Dict[int, List[str]] = field(default_factory=dict)
    scan_type_names_by_ms_level: Dict[int, Set[str]] = field(default_factory=dict)

    @property
    def total_scan_type_count(self) -> int:
        return sum(self.scan_type_stats.values())


@dataclass
class ExternalTotals:
    """
    True scan counts of a run, known from a cheaper pass over the file when only a sample of the
    scan records was stored. All zero means the stored records are complete.
    """

    hms: int = 0
    hmsn: int = 0
    ms: int = 0
    msn: int = 0
    dia: int = 0
    elution_time_max: float = 0.0

    @property
    def total_scans(self) -> int:
        return self.hms + self.hmsn + self.ms + self.msn


@dataclass
class ScanTypeScanInfo:
    scan_count: int
    isolation_window_widths: str
