import re
from typing import Tuple

import pyopenms as oms

from msdatastats.classifier.spectrum_type_classifier import CentroidStatus
from msdatastats.stats.models import ScanRecord
from msdatastats.utils.constants import (
    DIA_ISOLATION_WIDTH_THRESHOLD,
    SCAN_TYPE_HMS,
    SCAN_TYPE_HMSN,
    SCAN_TYPE_MS,
    SCAN_TYPE_MSN,
)

SCAN_PATTERN = r"(?:spectrum|scan)=(\d+)"
FILTER_STRING = "filter string"

# Analyzers of high resolution Thermo scans, first token of the filter string
HIGH_RES_ANALYZERS = ("FTMS", "ASTMS")
# "FTMS + p NSI Full ms" gives p (profile), "ITMS + c NSI ..." gives c (centroid)
FILTER_MODE_PATTERN = re.compile(r"^\S+\s+[+-]\s+([cp])\s")
ACTIVATION_PATTERN = re.compile(r"@([a-z]+)\d", re.IGNORECASE)


def extract_scan_id(spectrum: oms.MSSpectrum) -> str:
    """
    Extracts the scan ID from a given spectrum's native ID.

    Parameters
    ----------
    spectrum : oms.MSSpectrum
      The spectrum from which to extract the scan ID.

    Returns
    -------
    str
       The extracted scan ID if found, otherwise the original native ID.
    """
    match = re.search(SCAN_PATTERN, spectrum.getNativeID())
    if match:
        return match.group(1)
    return spectrum.getNativeID()


def get_scan_filter(spectrum: oms.MSSpectrum) -> str:
    """Thermo filter string of the spectrum (MS:1000512), or an empty string"""
    if spectrum.metaValueExists(FILTER_STRING):
        return str(spectrum.getMetaValue(FILTER_STRING))
    return ""


def get_isolation_window_width(spectrum: oms.MSSpectrum) -> float:
    """Width (m/z) of the isolation window of the first precursor; 0 for survey scans"""
    precursors = spectrum.getPrecursors()
    if not precursors:
        return 0.0
    precursor = precursors[0]
    return float(
        precursor.getIsolationWindowLowerOffset() + precursor.getIsolationWindowUpperOffset()
    )


def get_centroid_status(scan_filter: str) -> CentroidStatus:
    """Acquisition mode reported in a Thermo filter string"""
    match = FILTER_MODE_PATTERN.search(scan_filter)
    if not match:
        return CentroidStatus.UNKNOWN
    if match.group(1) == "c":
        return CentroidStatus.CENTROID
    return CentroidStatus.PROFILE


def get_scan_type_name(ms_level: int, scan_filter: str, is_dia: bool) -> str:
    """
    Scan type name of a spectrum, e.g. HMS, CID-MSn, HCD-HMSn or DIA-HCD-HMSn.

    High resolution is only known from the analyzer of a Thermo filter string; spectra without
    one are reported as MS or MSn.
    """
    high_res = scan_filter.split(" ", 1)[0] in HIGH_RES_ANALYZERS
    if ms_level <= 1:
        return SCAN_TYPE_HMS if high_res else SCAN_TYPE_MS

    scan_type_name = SCAN_TYPE_HMSN if high_res else SCAN_TYPE_MSN
    activation = ACTIVATION_PATTERN.search(scan_filter)
    if activation:
        scan_type_name = f"{activation.group(1).upper()}-{scan_type_name}"
    if is_dia:
        scan_type_name = f"DIA-{scan_type_name}"
    return scan_type_name


def spectrum_to_scan_record(
    spectrum: oms.MSSpectrum, index: int
) -> Tuple[ScanRecord, CentroidStatus]:
    """
    Convert an mzML spectrum to a scan record.

    Parameters
    ----------
    spectrum : oms.MSSpectrum
        Spectrum to convert
    index : int
        Index of the spectrum in the run, used as the scan number (1 based) when the native ID
        has no scan number

    Returns
    -------
    Tuple[ScanRecord, CentroidStatus]
        The scan record, and the acquisition mode reported for the spectrum
    """
    scan_id = extract_scan_id(spectrum)
    scan_number = int(scan_id) if scan_id.isdigit() else index + 1

    ms_level = spectrum.getMSLevel()
    mz_array, intensity_array = spectrum.get_peaks()
    scan_filter = get_scan_filter(spectrum)

    isolation_window_width = get_isolation_window_width(spectrum)
    is_dia = ms_level > 1 and isolation_window_width >= DIA_ISOLATION_WIDTH_THRESHOLD

    scan_record = ScanRecord(
        scan_number=scan_number,
        ms_level=ms_level,
        elution_time=spectrum.getRT() / 60.0,
        mz=mz_array,
        intensity=intensity_array,
        scan_type_name=get_scan_type_name(ms_level, scan_filter, is_dia),
        scan_filter_text=scan_filter,
        isolation_window_width=isolation_window_width,
        is_dia=is_dia,
    )
    return scan_record, get_centroid_status(scan_filter)
