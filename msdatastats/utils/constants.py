"""
 Column names of the parquet tables written by msdatastats and the default values used by the
 classifier and the point cache. Column names follow the quantms.io naming where a column exists
 there (scan, ms_level, rt, base_peak_intensity): https://github.com/bigbio/quantms.io
"""

SCAN = "scan"
MS_LEVEL = "ms_level"
NUM_PEAKS = "num_peaks"  # number of peaks before any filtering
RETENTION_TIME = "rt"  # minutes
BASE_PEAK_INTENSITY = "base_peak_intensity"
BASE_PEAK_MZ = "base_peak_mz"
TOTAL_ION_INTENSITY = "total_ion_intensity"
MZ_MIN = "mz_min"
MZ_MAX = "mz_max"
SCAN_TYPE_NAME = "scan_type_name"
SCAN_FILTER = "scan_filter"
ISOLATION_WINDOW_WIDTH = "isolation_window_width"
IS_DIA = "is_dia"

MZ = "mz"
INTENSITY = "intensity"
CHARGE = "charge"

SCAN_TYPE_COUNT = "scan_count"
ISOLATION_WINDOW_WIDTHS = "isolation_window_widths"

# Separator between the scan type name and the scan filter text in a scan type key
SCAN_TYPE_STATS_SEP_CHAR = "::###::"

# Basic scan types used to extrapolate the per scan type counts
SCAN_TYPE_HMS = "HMS"
SCAN_TYPE_HMSN = "HMSn"
SCAN_TYPE_MS = "MS"
SCAN_TYPE_MSN = "MSn"

# Point cache
DEFAULT_MAX_POINTS_TO_PLOT = 200000
DEFAULT_MIN_POINTS_PER_SPECTRUM = 2
DEFAULT_MZ_RESOLUTION = 0.4
DEFAULT_MIN_INTENSITY = 0.0
MAX_ALLOWABLE_ION_COUNT = 50000
TRIM_BUDGET_MULTIPLIER = 5
TRIM_GROWTH_FACTOR = 1.1
GC_INTERVAL_SECONDS = 60

# Max count filter
DEFAULT_MAXIMUM_DATA_COUNT_TO_KEEP = 400000
HISTOGRAM_BIN_COUNT = 5000

# Classifier
DEFAULT_PPM_DIFF_THRESHOLD = 50
DEFAULT_REGION_COUNT = 5
FRACTION_REGIONS_PROFILE = 2 / 3
MIN_PPM_DIFFS_FOR_MEDIAN = 4

# Isolation windows at least this wide (m/z) are treated as DIA windows
DIA_ISOLATION_WIDTH_THRESHOLD = 15.0

# Stored scan counts within this fraction of the true totals are not extrapolated
SCAN_COUNT_ADJUST_TOLERANCE = 0.98
