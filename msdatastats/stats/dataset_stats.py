import copy
import logging
import math
import sys
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

import numpy as np
import pandas as pd

from msdatastats.classifier.spectrum_type_classifier import CentroidStatus, SpectrumTypeClassifier
from msdatastats.stats.models import (
    DatasetSummaryStats,
    ExternalTotals,
    NumericText,
    ScanRecord,
    ScanTypeScanInfo,
    SummaryStatDetails,
)
from msdatastats.stats.scan_type_key import (
    build_scan_type_key,
    get_basic_scan_type,
    get_scan_filter_with_generic_precursor_mz,
    parse_scan_type_key,
)
from msdatastats.utils.config import ClassifierOptions
from msdatastats.utils.constants import (
    BASE_PEAK_INTENSITY,
    BASE_PEAK_MZ,
    IS_DIA,
    ISOLATION_WINDOW_WIDTH,
    MS_LEVEL,
    MZ_MAX,
    MZ_MIN,
    NUM_PEAKS,
    RETENTION_TIME,
    SCAN,
    SCAN_COUNT_ADJUST_TOLERANCE,
    SCAN_FILTER,
    SCAN_TYPE_HMS,
    SCAN_TYPE_HMSN,
    SCAN_TYPE_MS,
    SCAN_TYPE_MSN,
    SCAN_TYPE_NAME,
    TOTAL_ION_INTENSITY,
)
from msdatastats.utils.median import MedianUtilities

logger = logging.getLogger(__name__)

BASIC_SCAN_TYPES = (SCAN_TYPE_HMS, SCAN_TYPE_HMSN, SCAN_TYPE_MS, SCAN_TYPE_MSN)


class ScanTypeOrderError(RuntimeError):
    """The scan type names of a summary are inconsistent; this is a programming bug"""


def assure_numeric(value: float) -> float:
    """Replace NaN with 0 and infinite values with the largest finite value of the same sign"""
    if math.isnan(value):
        return 0.0
    if math.isinf(value):
        return sys.float_info.max if value > 0 else -sys.float_info.max
    return value


def parse_numeric(value: NumericText) -> Optional[float]:
    """Parse a reader supplied value; None when it is missing or not a number"""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        return assure_numeric(float(value))
    except (TypeError, ValueError):
        return None


class DatasetStatsSummarizer:
    """
    Collect the scan records of a run and summarize them per MS level and per scan type.

    Parameters
    ----------
    classifier_options : Optional[ClassifierOptions]
        Thresholds of the centroid / profile classifier used by classify_spectrum
    median_utilities : Optional[MedianUtilities]
        Median implementation used for the TIC and BPI medians
    """

    def __init__(
        self,
        classifier_options: Optional[ClassifierOptions] = None,
        median_utilities: Optional[MedianUtilities] = None,
    ):
        self.median_utilities = median_utilities or MedianUtilities()
        self.spectra_type_classifier = SpectrumTypeClassifier(
            classifier_options, self.median_utilities
        )
        self.external_totals = ExternalTotals()
        self._scan_numbers: Set[int] = set()
        self._scan_stats: List[ScanRecord] = []
        self._summary_stats = DatasetSummaryStats()
        self._up_to_date = False
        self._include_precursor_mz = False

    @property
    def scan_stats(self) -> List[ScanRecord]:
        return self._scan_stats

    def add_dataset_scan(self, scan_record: ScanRecord) -> None:
        self._scan_numbers.add(scan_record.scan_number)
        self._scan_stats.append(scan_record)
        self._up_to_date = False

    def has_scan_number(self, scan_number: int) -> bool:
        return scan_number in self._scan_numbers

    def update_dataset_scan_type(
        self, scan_number: int, ms_level: int, scan_type_name: str
    ) -> bool:
        """Change the MS level and scan type name of a stored scan; False if it is not stored"""
        for scan_record in self._scan_stats:
            if scan_record.scan_number != scan_number:
                continue
            scan_record.ms_level = ms_level
            scan_record.scan_type_name = scan_type_name
            self._up_to_date = False
            return True
        return False

    def classify_spectrum(
        self,
        mz_values: Union[Iterable[float], np.ndarray],
        ms_level: int,
        centroiding_status: CentroidStatus = CentroidStatus.UNKNOWN,
        spectrum_title: str = "",
    ) -> Optional[CentroidStatus]:
        return self.spectra_type_classifier.check_spectrum(
            np.asarray(mz_values, dtype=np.float64), ms_level, centroiding_status, spectrum_title
        )

    def store_scan_type_totals(self, external_totals: ExternalTotals) -> None:
        """
        Store the true scan counts of the run, used to extrapolate the summary when only some of
        the scan records were added.
        """
        self.external_totals = external_totals
        self._up_to_date = False

    def clear_cached_data(self) -> None:
        self._scan_numbers.clear()
        self._scan_stats = []
        self._summary_stats = DatasetSummaryStats()
        self._up_to_date = False
        self._include_precursor_mz = False
        self.spectra_type_classifier.reset()
        self.external_totals = ExternalTotals()

    def compute_scan_stats_summary(
        self, scan_stats: Iterable[ScanRecord], include_precursor_mz: bool = False
    ) -> DatasetSummaryStats:
        """
        Summarize scan records per MS level and per scan type.

        Parameters
        ----------
        scan_stats : Iterable[ScanRecord]
            Scan records to summarize
        include_precursor_mz : bool
            Group scans by their full scan filter; by default the precursor m/z values are
            replaced with 0 so that e.g. all HCD MS2 scans share one scan type key

        Returns
        -------
        DatasetSummaryStats
            A new summary
        """
        summary_stats = DatasetSummaryStats()
        tic_list_ms: List[float] = []
        bpi_list_ms: List[float] = []
        tic_list_msn: List[float] = []
        bpi_list_msn: List[float] = []
        registered_names: Set[str] = set()

        for scan_record in scan_stats:
            if include_precursor_mz:
                scan_filter = scan_record.scan_filter_text
            else:
                scan_filter = get_scan_filter_with_generic_precursor_mz(
                    scan_record.scan_filter_text
                )

            ms_level = scan_record.ms_level
            if ms_level not in summary_stats.scan_type_names_by_ms_level:
                summary_stats.scan_type_name_order[ms_level] = []
                summary_stats.scan_type_names_by_ms_level[ms_level] = set()

            # MS2 and MS3 scans may share a name (e.g. HCD-HMSn); it is listed under the first
            # MS level it was seen at
            if scan_record.scan_type_name not in registered_names:
                registered_names.add(scan_record.scan_type_name)
                summary_stats.scan_type_names_by_ms_level[ms_level].add(
                    scan_record.scan_type_name
                )
                summary_stats.scan_type_name_order[ms_level].append(scan_record.scan_type_name)

            if ms_level > 1:
                self._update_details(
                    scan_record, summary_stats, summary_stats.msn_stats, tic_list_msn, bpi_list_msn
                )
            else:
                self._update_details(
                    scan_record, summary_stats, summary_stats.ms_stats, tic_list_ms, bpi_list_ms
                )

            scan_type_key = build_scan_type_key(scan_record.scan_type_name, scan_filter)
            summary_stats.scan_type_stats[scan_type_key] = (
                summary_stats.scan_type_stats.get(scan_type_key, 0) + 1
            )
            summary_stats.scan_type_window_widths.setdefault(scan_type_key, set()).add(
                float(scan_record.isolation_window_width)
            )

            if scan_record.is_dia:
                summary_stats.dia_scan_count += 1

        median = self.median_utilities.median
        summary_stats.ms_stats.tic_median = assure_numeric(float(median(tic_list_ms)))
        summary_stats.ms_stats.bpi_median = assure_numeric(float(median(bpi_list_ms)))
        summary_stats.msn_stats.tic_median = assure_numeric(float(median(tic_list_msn)))
        summary_stats.msn_stats.bpi_median = assure_numeric(float(median(bpi_list_msn)))

        return summary_stats

    @staticmethod
    def _update_details(
        scan_record: ScanRecord,
        summary_stats: DatasetSummaryStats,
        details: SummaryStatDetails,
        tic_list: List[float],
        bpi_list: List[float],
    ) -> None:
        elution_time = parse_numeric(scan_record.elution_time)
        if elution_time is not None and elution_time > summary_stats.elution_time_max:
            summary_stats.elution_time_max = elution_time

        total_ion_current = parse_numeric(scan_record.total_ion_intensity)
        if total_ion_current is not None:
            details.tic_max = max(details.tic_max, total_ion_current)
            tic_list.append(total_ion_current)

        base_peak_intensity = parse_numeric(scan_record.base_peak_intensity)
        if base_peak_intensity is not None:
            details.bpi_max = max(details.bpi_max, base_peak_intensity)
            bpi_list.append(base_peak_intensity)

        details.scan_count += 1

    def adjust_summary_stats(
        self, summary_stats: DatasetSummaryStats, external_totals: Optional[ExternalTotals] = None
    ) -> DatasetSummaryStats:
        """
        Extrapolate the scan counts of a summary built from a sample of the scan records.

        Nothing changes, and summary_stats itself is returned, when the stored scans account for
        at least 98% of the external totals. Otherwise a copy is returned where the count of each
        HMS, HMSn, MS and MSn scan type is the external total of its basic type, split in
        proportion to the stored counts.

        Parameters
        ----------
        summary_stats : DatasetSummaryStats
            Summary to adjust
        external_totals : Optional[ExternalTotals]
            True scan counts; the totals stored with store_scan_type_totals when None

        Returns
        -------
        DatasetSummaryStats
            The adjusted summary
        """
        totals = external_totals if external_totals is not None else self.external_totals

        basic_scan_type_by_key: Dict[str, str] = {}
        for scan_type_key in summary_stats.scan_type_stats:
            scan_type_name, _ = parse_scan_type_key(scan_type_key)
            basic_scan_type_by_key[scan_type_key] = get_basic_scan_type(scan_type_name)

        total_scans_in_summary = summary_stats.total_scan_type_count
        if total_scans_in_summary >= totals.total_scans * SCAN_COUNT_ADJUST_TOLERANCE:
            return summary_stats

        logger.warning(
            f"This dataset has a large number of missing spectra; detailed scan info was stored "
            f"for {total_scans_in_summary:,} of the {totals.total_scans:,} total spectra. "
            f"Will now extrapolate the scan counts based on the stored data."
        )

        adjusted = copy.deepcopy(summary_stats)
        external_count_by_basic_type = {
            SCAN_TYPE_HMS: totals.hms,
            SCAN_TYPE_HMSN: totals.hmsn,
            SCAN_TYPE_MS: totals.ms,
            SCAN_TYPE_MSN: totals.msn,
        }

        stored_count_by_basic_type: Dict[str, int] = {}
        for scan_type_key, basic_scan_type in basic_scan_type_by_key.items():
            if basic_scan_type not in BASIC_SCAN_TYPES:
                continue
            stored_count_by_basic_type[basic_scan_type] = (
                stored_count_by_basic_type.get(basic_scan_type, 0)
                + summary_stats.scan_type_stats[scan_type_key]
            )

        for scan_type_key, basic_scan_type in basic_scan_type_by_key.items():
            total_stored_count = stored_count_by_basic_type.get(basic_scan_type)
            if not total_stored_count:
                continue

            stored_count = summary_stats.scan_type_stats[scan_type_key]
            percent_of_total = stored_count / total_stored_count
            updated_count = int(external_count_by_basic_type[basic_scan_type] * percent_of_total)
            adjusted.scan_type_stats[scan_type_key] = updated_count

            scan_type_name, scan_filter = parse_scan_type_key(scan_type_key)
            if scan_filter.strip():
                logger.info(
                    f"Adjusted the scan count for {scan_type_name} ({scan_filter}) "
                    f"from {stored_count:,} to {updated_count:,}"
                )
            else:
                logger.info(
                    f"Adjusted the scan count for {scan_type_name} "
                    f"from {stored_count:,} to {updated_count:,}"
                )

        adjusted.ms_stats.scan_count = max(adjusted.ms_stats.scan_count, totals.hms + totals.ms)
        adjusted.msn_stats.scan_count = max(
            adjusted.msn_stats.scan_count, totals.hmsn + totals.msn
        )
        adjusted.elution_time_max = max(adjusted.elution_time_max, totals.elution_time_max)
        adjusted.dia_scan_count = max(adjusted.dia_scan_count, totals.dia)
        return adjusted

    def get_dataset_summary_stats(self, include_precursor_mz: bool = False) -> DatasetSummaryStats:
        """Summary of the stored scan records, recomputed only when records or totals changed"""
        if self._up_to_date and self._include_precursor_mz == include_precursor_mz:
            return self._summary_stats

        summary_stats = self.compute_scan_stats_summary(self._scan_stats, include_precursor_mz)
        self._summary_stats = self.adjust_summary_stats(summary_stats)
        self._up_to_date = True
        self._include_precursor_mz = include_precursor_mz
        return self._summary_stats

    @staticmethod
    def get_delimited_window_width_list(
        scan_type_key: str, scan_type_window_widths: Dict[str, Set[float]]
    ) -> str:
        """Positive isolation window widths of a scan type, ascending, e.g. "2, 4" """
        widths = scan_type_window_widths.get(scan_type_key)
        if not widths:
            return ""
        return ", ".join(f"{width:g}" for width in sorted(w for w in widths if w > 0))

    @classmethod
    def get_sorted_scan_type_summary_types(
        cls, summary_stats: DatasetSummaryStats
    ) -> Dict[str, Dict[str, ScanTypeScanInfo]]:
        """
        Group the scan type counts by scan type name, with the scan filters of each name sorted.

        Raises
        ------
        ScanTypeOrderError
            If a scan type name is registered for more than one MS level, or a scan type key
            names a type that was never registered
        """
        scan_type_names: Set[str] = set()
        for names in summary_stats.scan_type_name_order.values():
            for scan_type_name in names:
                if scan_type_name in scan_type_names:
                    raise ScanTypeOrderError(
                        f"Scan type {scan_type_name} occurs more than once in the scan type name "
                        f"order; this is a programming bug"
                    )
                scan_type_names.add(scan_type_name)

        scan_info_by_scan_type: Dict[str, Dict[str, ScanTypeScanInfo]] = {}
        for scan_type_key, scan_count in summary_stats.scan_type_stats.items():
            scan_type_name, scan_filter = parse_scan_type_key(scan_type_key)
            if scan_type_name not in scan_type_names:
                raise ScanTypeOrderError(
                    f"The scan type stats have scan type {scan_type_name}, but that name is not "
                    f"present in the scan type name order; this is a programming bug"
                )

            scan_info_by_scan_type.setdefault(scan_type_name, {})[scan_filter] = ScanTypeScanInfo(
                scan_count=scan_count,
                isolation_window_widths=cls.get_delimited_window_width_list(
                    scan_type_key, summary_stats.scan_type_window_widths
                ),
            )

        return {
            scan_type_name: dict(sorted(scan_info.items()))
            for scan_type_name, scan_info in scan_info_by_scan_type.items()
        }

    def validate_ms2_mz_min(
        self, required_mz_min: float, max_percent_allowed_failed: float
    ) -> Tuple[bool, str]:
        """
        Check that the MS2 (or else MS3) spectra were acquired with a low enough minimum m/z,
        e.g. to see reporter ions.

        Parameters
        ----------
        required_mz_min : float
            Largest allowed minimum m/z of a spectrum
        max_percent_allowed_failed : float
            Percentage of spectra allowed to start above required_mz_min

        Returns
        -------
        Tuple[bool, str]
            Whether the data is valid, and an error or warning message (empty when all spectra
            pass)
        """
        valid_ms2, scan_count_ms2, with_data_ms2, message_ms2 = self._validate_msn_mz_min(
            2, required_mz_min, max_percent_allowed_failed
        )
        if with_data_ms2 > 0 and valid_ms2:
            return True, message_ms2

        valid_ms3, scan_count_ms3, with_data_ms3, message_ms3 = self._validate_msn_mz_min(
            3, required_mz_min, max_percent_allowed_failed
        )
        if with_data_ms3 > 0 and valid_ms3:
            return True, message_ms3

        if scan_count_ms2 == 0 and scan_count_ms3 == 0:
            return True, "No MS2 or MS3 spectra"

        if with_data_ms2 > 0 and with_data_ms3 == 0:
            return False, message_ms2
        if with_data_ms2 == 0 and with_data_ms3 > 0:
            return False, message_ms3
        return False, f"{message_ms2}; {message_ms3}"

    def _validate_msn_mz_min(
        self, ms_level: int, required_mz_min: float, max_percent_allowed_failed: float
    ) -> Tuple[bool, int, int, str]:
        scan_count = 0
        scan_count_with_data = 0
        scan_count_invalid = 0

        for scan_record in self._scan_stats:
            if scan_record.ms_level != ms_level:
                continue
            scan_count += 1
            if scan_record.ion_count == 0 and scan_record.ion_count_raw == 0:
                continue
            scan_count_with_data += 1
            if scan_record.mz_min > required_mz_min:
                scan_count_invalid += 1

        spectra_type = {2: "MS2", 3: "MS3"}.get(ms_level, "MSn")

        if scan_count == 0:
            message = f"Dataset has no {spectra_type} spectra; cannot validate minimum m/z"
            return False, scan_count, scan_count_with_data, message

        if scan_count_with_data == 0:
            message = f"None of the {spectra_type} spectra has data; cannot validate minimum m/z"
            return False, scan_count, scan_count_with_data, message

        if scan_count_invalid == 0:
            return True, scan_count, scan_count_with_data, ""

        percent_invalid = scan_count_invalid / scan_count_with_data * 100
        if percent_invalid < 10:
            percent_rounded = f"{percent_invalid:.1f}"
        else:
            percent_rounded = f"{percent_invalid:.0f}"
        message = (
            f"{percent_rounded}% of the {spectra_type} spectra have a minimum m/z value larger "
            f"than {required_mz_min:.1f} m/z ({scan_count_invalid:,} / {scan_count_with_data:,})"
        )
        valid = percent_invalid < max_percent_allowed_failed
        return valid, scan_count, scan_count_with_data, message

    def scan_stats_dataframe(self) -> pd.DataFrame:
        """Per scan statistics of the stored scan records"""
        return pd.DataFrame(
            [
                {
                    SCAN: scan_record.scan_number,
                    MS_LEVEL: scan_record.ms_level,
                    RETENTION_TIME: parse_numeric(scan_record.elution_time),
                    SCAN_TYPE_NAME: scan_record.scan_type_name,
                    SCAN_FILTER: scan_record.scan_filter_text,
                    NUM_PEAKS: scan_record.ion_count_raw,
                    TOTAL_ION_INTENSITY: parse_numeric(scan_record.total_ion_intensity),
                    BASE_PEAK_INTENSITY: parse_numeric(scan_record.base_peak_intensity),
                    BASE_PEAK_MZ: scan_record.base_peak_mz,
                    MZ_MIN: scan_record.mz_min,
                    MZ_MAX: scan_record.mz_max,
                    ISOLATION_WINDOW_WIDTH: scan_record.isolation_window_width,
                    IS_DIA: scan_record.is_dia,
                }
                for scan_record in self._scan_stats
            ],
            columns=[
                SCAN,
                MS_LEVEL,
                RETENTION_TIME,
                SCAN_TYPE_NAME,
                SCAN_FILTER,
                NUM_PEAKS,
                TOTAL_ION_INTENSITY,
                BASE_PEAK_INTENSITY,
                BASE_PEAK_MZ,
                MZ_MIN,
                MZ_MAX,
                ISOLATION_WINDOW_WIDTH,
                IS_DIA,
            ],
        )
