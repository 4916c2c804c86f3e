import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np

from msdatastats.utils.config import ClassifierOptions
from msdatastats.utils.constants import MIN_PPM_DIFFS_FOR_MEDIAN
from msdatastats.utils.median import MedianUtilities

logger = logging.getLogger(__name__)

CDTA_HEADER_PREFIX = "============="


class CentroidStatus(Enum):
    """Acquisition mode of a spectrum, as reported by the instrument or concluded from the data"""

    UNKNOWN = "unknown"
    PROFILE = "profile"
    CENTROID = "centroid"


@dataclass
class ClassificationTally:
    """Per MS level counters of a classifier. MS1 is any level <= 1, MSn any level > 1."""

    total_spectra: Counter = field(default_factory=Counter)
    centroided_spectra: Counter = field(default_factory=Counter)
    centroided_classified_as_profile: Counter = field(default_factory=Counter)

    def reset(self) -> None:
        self.total_spectra.clear()
        self.centroided_spectra.clear()
        self.centroided_classified_as_profile.clear()


def _sum_ms1(counter: Counter) -> int:
    return sum(count for ms_level, count in counter.items() if ms_level <= 1)


def _sum_msn(counter: Counter) -> int:
    return sum(count for ms_level, count in counter.items() if ms_level > 1)


def compute_ppm_diffs(mz_values: Union[Sequence[float], np.ndarray]) -> np.ndarray:
    """
    Relative spacing (ppm) between adjacent m/z values. A pair only counts when the previous
    value is positive and the current value is larger than the previous one.
    """
    mz = np.asarray(mz_values, dtype=np.float64)
    if mz.size < 2:
        return np.empty(0, dtype=np.float64)

    previous = mz[:-1]
    current = mz[1:]
    usable = (previous > 0) & (current > previous)
    return 1e6 * (current[usable] - previous[usable]) / current[usable]


class SpectrumTypeClassifier:
    """
    Decide whether spectra were acquired as centroided or profile mode data.

    Profile data has many closely spaced m/z values across each peak, so the median ppm spacing
    between adjacent m/z values is small. Centroided data only keeps one value per peak.

    Parameters
    ----------
    options : Optional[ClassifierOptions]
        ppm threshold, number of m/z regions and profile region fraction used in the decision
    median_utilities : Optional[MedianUtilities]
        Median implementation; a fresh instance is created when None
    """

    def __init__(
        self,
        options: Optional[ClassifierOptions] = None,
        median_utilities: Optional[MedianUtilities] = None,
    ):
        self.options = options or ClassifierOptions()
        self.median_utilities = median_utilities or MedianUtilities()
        self.tally = ClassificationTally()

    @property
    def total_spectra(self) -> int:
        return sum(self.tally.total_spectra.values())

    @property
    def total_ms1_spectra(self) -> int:
        return _sum_ms1(self.tally.total_spectra)

    @property
    def total_msn_spectra(self) -> int:
        return _sum_msn(self.tally.total_spectra)

    @property
    def centroided_spectra(self) -> int:
        return sum(self.tally.centroided_spectra.values())

    @property
    def centroided_ms1_spectra(self) -> int:
        return _sum_ms1(self.tally.centroided_spectra)

    @property
    def centroided_msn_spectra(self) -> int:
        return _sum_msn(self.tally.centroided_spectra)

    @property
    def centroided_ms1_spectra_classified_as_profile(self) -> int:
        return _sum_ms1(self.tally.centroided_classified_as_profile)

    @property
    def centroided_msn_spectra_classified_as_profile(self) -> int:
        return _sum_msn(self.tally.centroided_classified_as_profile)

    @property
    def fraction_centroided(self) -> float:
        total = self.total_spectra
        if total == 0:
            return 0
        return self.centroided_spectra / total

    @property
    def fraction_centroided_msn(self) -> float:
        total = self.total_msn_spectra
        if total == 0:
            return 0
        return self.centroided_msn_spectra / total

    def reset(self) -> None:
        self.tally.reset()

    def check_spectrum(
        self,
        mz_values: Union[Sequence[float], np.ndarray],
        ms_level: int,
        centroiding_status: CentroidStatus = CentroidStatus.UNKNOWN,
        spectrum_title: str = "",
        assume_sorted: bool = False,
    ) -> Optional[CentroidStatus]:
        """
        Classify one spectrum and update the counters.

        Parameters
        ----------
        mz_values : Sequence[float]
            m/z values of the spectrum
        ms_level : int
            1 for MS1, 2 for MS2, etc.
        centroiding_status : CentroidStatus
            Mode reported by the instrument. A spectrum reported as centroid is always counted
            as centroid; when the data looks like profile mode the disagreement is counted.
        spectrum_title : str
            Optional title (e.g. scan number) used in the log messages
        assume_sorted : bool
            Skip the ascending order check of the m/z values

        Returns
        -------
        Optional[CentroidStatus]
            CENTROID or PROFILE, or None when the spectrum has no usable m/z spacing
        """
        mz = np.asarray(mz_values, dtype=np.float64)
        if not assume_sorted and mz.size > 1 and np.any(mz[1:] < mz[:-1]):
            mz = np.sort(mz)

        ppm_diffs = compute_ppm_diffs(mz)
        if ppm_diffs.size == 0:
            return None

        self.tally.total_spectra[ms_level] += 1

        centroided = self.is_data_centroided(ppm_diffs, spectrum_title)
        if not centroided:
            centroided = self.is_data_centroided_in_regions(mz, spectrum_title)

        if not centroided and centroiding_status == CentroidStatus.CENTROID:
            # The instrument reported centroid mode but the data looks like profile mode
            centroided = True
            self.tally.centroided_classified_as_profile[ms_level] += 1

        if centroided:
            self.tally.centroided_spectra[ms_level] += 1
            return CentroidStatus.CENTROID

        return CentroidStatus.PROFILE

    def is_data_centroided(self, ppm_diffs: np.ndarray, spectrum_title: str = "") -> bool:
        """
        Centroided when the median ppm difference is at least the threshold. Fewer than four
        differences are always treated as centroided.
        """
        prefix = f"{spectrum_title}: " if spectrum_title else ""
        if len(ppm_diffs) < MIN_PPM_DIFFS_FOR_MEDIAN:
            logger.debug(f"{prefix}Centroid spectrum, since only {len(ppm_diffs)} ppm differences")
            return True

        median_delta_ppm = self.median_utilities.median(ppm_diffs.tolist())
        threshold = self.options.ppm_diff_threshold
        if median_delta_ppm < threshold:
            logger.debug(
                f"{prefix}Profile mode spectrum, since {median_delta_ppm:.1f} "
                f"is less than {threshold} ppm"
            )
            return False

        logger.debug(
            f"{prefix}Centroid spectrum, since {median_delta_ppm:.1f} "
            f"is greater than {threshold} ppm"
        )
        return True

    def is_data_centroided_in_regions(
        self, mz_values: Union[Sequence[float], np.ndarray], spectrum_title: str = ""
    ) -> bool:
        """
        Split the m/z range into equal width regions and judge each region on its own spacing.

        Sparse centroided spectra may contain a single dense cluster (for example a reporter ion
        envelope) that pulls the global median below the threshold. The spectrum is centroided
        when less than the configured fraction of the regions look like profile data.
        """
        mz = np.unique(np.asarray(mz_values, dtype=np.float64))
        if mz.size < 2:
            return False

        # The region width comes from the whole number m/z range; the first region starts at
        # the lowest m/z value itself
        mz_range = math.ceil(mz[-1]) - math.floor(mz[0])
        if mz_range <= 0:
            return False

        bin_size = max(1, math.ceil(mz_range / self.options.region_count))
        region_ids = np.floor((mz - mz[0]) / bin_size).astype(np.int64)

        profile_regions = 0
        judged_regions = 0
        for region_id in np.unique(region_ids):
            region_diffs = compute_ppm_diffs(mz[region_ids == region_id])
            if region_diffs.size == 0:
                continue

            judged_regions += 1
            if not self.is_data_centroided(region_diffs):
                profile_regions += 1

        if judged_regions == 0:
            return True

        fraction_profile = profile_regions / judged_regions
        prefix = f"{spectrum_title}: " if spectrum_title else ""
        logger.debug(
            f"{prefix}{profile_regions} of {judged_regions} m/z regions "
            f"({fraction_profile * 100:.0f}%) look like profile mode"
        )
        return fraction_profile < self.options.fraction_regions_profile

    def check_cdta_file(self, cdta_path: Union[str, Path]) -> int:
        """
        Classify every spectrum of a concatenated DTA (_dta.txt) file as MS2 data.

        Each spectrum starts with a header line of equals signs, followed by the parent ion line
        and the "m/z intensity" data lines.

        Parameters
        ----------
        cdta_path : Union[str, Path]
            Path to the _dta.txt file

        Returns
        -------
        int
            Number of spectra that were classified
        """
        cdta_path = Path(cdta_path)
        if not cdta_path.exists():
            raise FileNotFoundError(f"CDTA file not found: {cdta_path}")

        logger.info(f"Checking the spectra in {cdta_path}")
        total_before = self.total_spectra
        mz_values: List[float] = []

        with open(cdta_path, "r") as cdta_file:
            for line in cdta_file:
                line = line.strip()
                if not line:
                    continue

                if line.startswith(CDTA_HEADER_PREFIX):
                    self.check_spectrum(mz_values, 2, CentroidStatus.UNKNOWN)
                    mz_values = []
                    # Parent ion m/z and charge
                    next(cdta_file, None)
                    continue

                try:
                    mz_values.append(float(line.split(None, 1)[0]))
                except ValueError:
                    continue

        self.check_spectrum(mz_values, 2, CentroidStatus.UNKNOWN)
        return self.total_spectra - total_before
