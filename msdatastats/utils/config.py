from pydantic import BaseModel, Field

from msdatastats.utils.constants import (
    DEFAULT_MAX_POINTS_TO_PLOT,
    DEFAULT_MIN_INTENSITY,
    DEFAULT_MIN_POINTS_PER_SPECTRUM,
    DEFAULT_MZ_RESOLUTION,
    DEFAULT_PPM_DIFF_THRESHOLD,
    DEFAULT_REGION_COUNT,
    FRACTION_REGIONS_PROFILE,
    GC_INTERVAL_SECONDS,
    MAX_ALLOWABLE_ION_COUNT,
    TRIM_BUDGET_MULTIPLIER,
    TRIM_GROWTH_FACTOR,
)


class LCMSDataCacheOptions(BaseModel):
    """
    Options of the LC-MS point cache.

    max_points_to_plot is the target number of points kept after a trim. The cache is allowed to
    grow to trim_budget_multiplier times that value before the next trim starts.
    """

    max_points_to_plot: int = Field(DEFAULT_MAX_POINTS_TO_PLOT, gt=0)
    min_points_per_spectrum: int = Field(DEFAULT_MIN_POINTS_PER_SPECTRUM, ge=0)
    mz_resolution: float = Field(DEFAULT_MZ_RESOLUTION, ge=0)
    min_intensity: float = Field(DEFAULT_MIN_INTENSITY, ge=0)
    max_ion_count_per_spectrum: int = Field(MAX_ALLOWABLE_ION_COUNT, gt=0)
    trim_budget_multiplier: float = Field(TRIM_BUDGET_MULTIPLIER, ge=1)
    trim_growth_factor: float = Field(TRIM_GROWTH_FACTOR, ge=1)
    gc_interval_seconds: float = Field(GC_INTERVAL_SECONDS, ge=0)


class ClassifierOptions(BaseModel):
    """Thresholds of the centroid / profile classifier"""

    ppm_diff_threshold: float = Field(DEFAULT_PPM_DIFF_THRESHOLD, gt=0)
    region_count: int = Field(DEFAULT_REGION_COUNT, gt=0)
    fraction_regions_profile: float = Field(FRACTION_REGIONS_PROFILE, gt=0, le=1)
