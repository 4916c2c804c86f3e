import logging
from pathlib import Path
from typing import Optional, Tuple

import click
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
import pyopenms as oms

from msdatastats.openms import spectrum_to_scan_record
from msdatastats.reduction.lcms_data_cache import LCMSDataCache
from msdatastats.stats.dataset_stats import DatasetStatsSummarizer
from msdatastats.stats.models import DatasetSummaryStats
from msdatastats.utils.config import LCMSDataCacheOptions
from msdatastats.utils.constants import (
    BASE_PEAK_INTENSITY,
    BASE_PEAK_MZ,
    CHARGE,
    DEFAULT_MAX_POINTS_TO_PLOT,
    DEFAULT_MIN_POINTS_PER_SPECTRUM,
    DEFAULT_MZ_RESOLUTION,
    INTENSITY,
    IS_DIA,
    ISOLATION_WINDOW_WIDTH,
    ISOLATION_WINDOW_WIDTHS,
    MS_LEVEL,
    MZ,
    MZ_MAX,
    MZ_MIN,
    NUM_PEAKS,
    RETENTION_TIME,
    SCAN,
    SCAN_FILTER,
    SCAN_TYPE_COUNT,
    SCAN_TYPE_NAME,
    TOTAL_ION_INTENSITY,
)

logging.basicConfig(format="%(asctime)s [%(funcName)s] - %(message)s", level=logging.INFO)
logger = logging.getLogger(__name__)


def create_scan_stats_schema() -> pa.Schema:
    """Create and return the per scan statistics schema"""
    return pa.schema(
        [
            pa.field(SCAN, pa.int32(), nullable=True),
            pa.field(MS_LEVEL, pa.int32(), nullable=True),
            pa.field(RETENTION_TIME, pa.float64(), nullable=True),
            pa.field(SCAN_TYPE_NAME, pa.string(), nullable=True),
            pa.field(SCAN_FILTER, pa.string(), nullable=True),
            pa.field(NUM_PEAKS, pa.int32(), nullable=True),
            pa.field(TOTAL_ION_INTENSITY, pa.float64(), nullable=True),
            pa.field(BASE_PEAK_INTENSITY, pa.float64(), nullable=True),
            pa.field(BASE_PEAK_MZ, pa.float64(), nullable=True),
            pa.field(MZ_MIN, pa.float64(), nullable=True),
            pa.field(MZ_MAX, pa.float64(), nullable=True),
            pa.field(ISOLATION_WINDOW_WIDTH, pa.float64(), nullable=True),
            pa.field(IS_DIA, pa.bool_(), nullable=True),
        ]
    )


def create_scan_type_schema() -> pa.Schema:
    """Create and return the scan type summary schema"""
    return pa.schema(
        [
            (SCAN_TYPE_NAME, pa.string()),
            (SCAN_FILTER, pa.string()),
            (SCAN_TYPE_COUNT, pa.int64()),
            (ISOLATION_WINDOW_WIDTHS, pa.string()),
        ]
    )


def create_points_schema() -> pa.Schema:
    """Create and return the schema of the retained LC-MS points"""
    return pa.schema(
        [
            (SCAN, pa.int32()),
            (MS_LEVEL, pa.int32()),
            (RETENTION_TIME, pa.float64()),
            (MZ, pa.float64()),
            (INTENSITY, pa.float32()),
            (CHARGE, pa.int32()),
        ]
    )


def summarize_mzml(
    file_name: str, options: LCMSDataCacheOptions
) -> Tuple[DatasetStatsSummarizer, LCMSDataCache]:
    """
    Classify, cache and summarize every spectrum of an mzML file.

    Parameters
    ----------
    file_name : str
        Path to the mzML file
    options : LCMSDataCacheOptions
        Point budget of the LC-MS cache

    Returns
    -------
    Tuple[DatasetStatsSummarizer, LCMSDataCache]
        The summarizer holding the scan records and the classifier counts, and the point cache
    """
    logger.info(f"Processing mzML file: {file_name}")

    mzml_exp = oms.MSExperiment()
    oms.MzMLFile().load(file_name, mzml_exp)

    summarizer = DatasetStatsSummarizer()
    data_cache = LCMSDataCache(options)

    for i, spectrum in enumerate(mzml_exp):
        scan_record, centroid_status = spectrum_to_scan_record(spectrum, i)
        summarizer.classify_spectrum(
            scan_record.mz,
            scan_record.ms_level,
            centroid_status,
            spectrum_title=f"Scan {scan_record.scan_number}",
        )
        data_cache.add_scan(
            scan_record.scan_number,
            scan_record.ms_level,
            scan_record.elution_time,
            scan_record.mz,
            scan_record.intensity,
        )
        scan_record.release_peaks()
        summarizer.add_dataset_scan(scan_record)

    logger.info(
        f"Cached {data_cache.point_count_cached} points of {data_cache.scan_count_cached} spectra"
    )
    return summarizer, data_cache


def scan_type_summary_dataframe(summary_stats: DatasetSummaryStats) -> pd.DataFrame:
    rows = []
    sorted_types = DatasetStatsSummarizer.get_sorted_scan_type_summary_types(summary_stats)
    for scan_type_name, scan_info_by_filter in sorted_types.items():
        for scan_filter, scan_info in scan_info_by_filter.items():
            rows.append(
                {
                    SCAN_TYPE_NAME: scan_type_name,
                    SCAN_FILTER: scan_filter,
                    SCAN_TYPE_COUNT: scan_info.scan_count,
                    ISOLATION_WINDOW_WIDTHS: scan_info.isolation_window_widths,
                }
            )
    return pd.DataFrame(
        rows, columns=[SCAN_TYPE_NAME, SCAN_FILTER, SCAN_TYPE_COUNT, ISOLATION_WINDOW_WIDTHS]
    )


def write_parquet(data: pd.DataFrame, schema: pa.Schema, output_path: str) -> None:
    if data.empty:
        table = schema.empty_table()
    else:
        table = pa.Table.from_pandas(data[schema.names], schema=schema, preserve_index=False)
    pq.write_table(table, output_path, compression="gzip")
    logger.info(f"Wrote {len(data)} rows to {output_path}")


def log_summary(summarizer: DatasetStatsSummarizer, summary_stats: DatasetSummaryStats) -> None:
    classifier = summarizer.spectra_type_classifier
    logger.info(
        f"Centroided spectra: {classifier.centroided_spectra} of {classifier.total_spectra} "
        f"({classifier.fraction_centroided * 100:.1f}%), MSn: {classifier.centroided_msn_spectra} "
        f"of {classifier.total_msn_spectra}"
    )
    if classifier.centroided_ms1_spectra_classified_as_profile or (
        classifier.centroided_msn_spectra_classified_as_profile
    ):
        logger.warning(
            f"Spectra reported as centroid that look like profile mode data: "
            f"{classifier.centroided_ms1_spectra_classified_as_profile} MS1, "
            f"{classifier.centroided_msn_spectra_classified_as_profile} MSn"
        )
    logger.info(
        f"MS1 spectra: {summary_stats.ms_stats.scan_count}, "
        f"TIC max {summary_stats.ms_stats.tic_max:.4g}, "
        f"BPI max {summary_stats.ms_stats.bpi_max:.4g}; "
        f"MSn spectra: {summary_stats.msn_stats.scan_count}, "
        f"DIA spectra: {summary_stats.dia_scan_count}, "
        f"elution time max {summary_stats.elution_time_max:.2f} min"
    )


@click.command("datasetstats")
@click.option(
    "--ms_path",
    type=click.Path(exists=True),
    required=True,
    help="Path to the mzML file",
)
@click.option(
    "--max_points_to_plot",
    type=int,
    default=DEFAULT_MAX_POINTS_TO_PLOT,
    help="Number of LC-MS points to keep for the m/z vs. scan plot",
)
@click.option(
    "--min_points_per_spectrum",
    type=int,
    default=DEFAULT_MIN_POINTS_PER_SPECTRUM,
    help="Minimum number of points kept for each spectrum",
)
@click.option(
    "--mz_resolution",
    type=float,
    default=DEFAULT_MZ_RESOLUTION,
    help="Points closer than this m/z distance are merged",
)
@click.option(
    "--include_precursor_mz",
    is_flag=True,
    help="Group the scan types by the scan filter including the precursor m/z values",
)
@click.option(
    "--ms2_mz_min",
    type=float,
    default=None,
    help="Check that the MS2 spectra start at or below this m/z (e.g. 113 for iTRAQ)",
)
@click.option(
    "--max_percent_failed",
    type=float,
    default=10.0,
    help="Percentage of MS2 spectra allowed to fail the --ms2_mz_min check",
)
@click.pass_context
def dataset_statistics(
    ctx,
    ms_path: str,
    max_points_to_plot: int = DEFAULT_MAX_POINTS_TO_PLOT,
    min_points_per_spectrum: int = DEFAULT_MIN_POINTS_PER_SPECTRUM,
    mz_resolution: float = DEFAULT_MZ_RESOLUTION,
    include_precursor_mz: bool = False,
    ms2_mz_min: Optional[float] = None,
    max_percent_failed: float = 10.0,
) -> None:
    """
    Summarize an mzML file: classify the spectra as centroid or profile mode, compute the scan
    statistics per MS level and scan type, and keep a bounded set of LC-MS points for plotting.

    Example usage:
    msdatastatsc datasetstats --ms_path "path/to/file.mzML" --max_points_to_plot 100000
    """
    try:
        path_obj = Path(ms_path)
        if path_obj.suffix.lower() != ".mzml":
            raise ValueError(f"Unsupported file type: {path_obj.suffix}")

        options = LCMSDataCacheOptions(
            max_points_to_plot=max_points_to_plot,
            min_points_per_spectrum=min_points_per_spectrum,
            mz_resolution=mz_resolution,
        )
        summarizer, data_cache = summarize_mzml(ms_path, options)
        summary_stats = summarizer.get_dataset_summary_stats(include_precursor_mz)
        log_summary(summarizer, summary_stats)

        if ms2_mz_min is not None:
            valid, message = summarizer.validate_ms2_mz_min(ms2_mz_min, max_percent_failed)
            if valid:
                logger.info(message or f"The MS2 spectra start below {ms2_mz_min:.1f} m/z")
            else:
                logger.warning(message)

        write_parquet(
            summarizer.scan_stats_dataframe(),
            create_scan_stats_schema(),
            str(path_obj.with_name(f"{path_obj.stem}_scan_stats.parquet")),
        )
        write_parquet(
            scan_type_summary_dataframe(summary_stats),
            create_scan_type_schema(),
            str(path_obj.with_name(f"{path_obj.stem}_scan_type_summary.parquet")),
        )
        write_parquet(
            data_cache.get_plot_data().points,
            create_points_schema(),
            str(path_obj.with_name(f"{path_obj.stem}_lcms_points.parquet")),
        )

        logger.info(f"Successfully processed mass spectrometry file: {ms_path}")

    except Exception as e:
        logger.error(f"Error processing file {ms_path}: {e}")
        raise click.Abort()
