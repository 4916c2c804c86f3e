import logging

import click

from msdatastats.classifier.spectrum_type_classifier import SpectrumTypeClassifier
from msdatastats.utils.config import ClassifierOptions
from msdatastats.utils.constants import DEFAULT_PPM_DIFF_THRESHOLD

logging.basicConfig(format="%(asctime)s [%(funcName)s] - %(message)s", level=logging.INFO)
logger = logging.getLogger(__name__)


@click.command("cdtacheck")
@click.option(
    "--cdta_path",
    type=click.Path(exists=True),
    required=True,
    help="Path to the concatenated DTA file (_dta.txt)",
)
@click.option(
    "--ppm_diff_threshold",
    type=float,
    default=DEFAULT_PPM_DIFF_THRESHOLD,
    help="Spectra with a median m/z spacing at or above this value (ppm) are centroided",
)
@click.pass_context
def cdta_check(ctx, cdta_path: str, ppm_diff_threshold: float = DEFAULT_PPM_DIFF_THRESHOLD):
    """
    Report how many spectra of a concatenated DTA file are centroided.

    Example usage:
    msdatastatsc cdtacheck --cdta_path "path/to/dataset_dta.txt"
    """
    try:
        options = ClassifierOptions(ppm_diff_threshold=ppm_diff_threshold)
        classifier = SpectrumTypeClassifier(options)
        spectra_count = classifier.check_cdta_file(cdta_path)
        logger.info(
            f"{classifier.centroided_spectra} of {spectra_count} spectra are centroided "
            f"({classifier.fraction_centroided * 100:.1f}%)"
        )
    except Exception as e:
        logger.error(f"Error checking CDTA file {cdta_path}: {e}")
        raise click.Abort()
