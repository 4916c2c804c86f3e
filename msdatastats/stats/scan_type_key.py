import re
from typing import Tuple

from msdatastats.utils.constants import SCAN_TYPE_STATS_SEP_CHAR

# Precursor m/z values of a Thermo style scan filter, e.g. "ms2 1234.56@hcd30.00"
PRECURSOR_MZ_PATTERN = re.compile(r"(?<=\s)\d+(?:\.\d+)?(?=@)")


def build_scan_type_key(scan_type_name: str, scan_filter_text: str) -> str:
    """
    Build the key used to group scans by type, of the form "ScanTypeName::###::ScanFilter"

    Parameters
    ----------
    scan_type_name : str
        Scan type name, e.g. HMS or HCD-HMSn
    scan_filter_text : str
        Scan filter, usually with generic precursor m/z values

    Returns
    -------
    str
        The scan type key
    """
    return f"{scan_type_name}{SCAN_TYPE_STATS_SEP_CHAR}{scan_filter_text}"


def parse_scan_type_key(scan_type_key: str) -> Tuple[str, str]:
    """
    Split a scan type key on the first separator into the scan type name and the scan filter.
    A key without a separator is a scan type name with an empty filter.
    """
    scan_type_name, separator, scan_filter_text = scan_type_key.partition(
        SCAN_TYPE_STATS_SEP_CHAR
    )
    if not separator:
        return scan_type_key, ""
    return scan_type_name, scan_filter_text


def get_basic_scan_type(scan_type_name: str) -> str:
    """
    Simplified scan type: the text after the last dash (DIA-HCD-HMSn gives HMSn). Names without
    a dash, or with a dash only at the start or at the end, are returned as is.
    """
    dash_index = scan_type_name.rfind("-")
    if 0 < dash_index < len(scan_type_name) - 1:
        return scan_type_name[dash_index + 1 :]
    return scan_type_name


def get_scan_filter_with_generic_precursor_mz(scan_filter_text: str) -> str:
    """
    Replace the precursor m/z values of a scan filter with 0 so that all scans of the same type
    share one filter, e.g. "FTMS + p NSI d Full ms2 1234.56@hcd30.00 [110.00-2000.00]" becomes
    "FTMS + p NSI d Full ms2 0@hcd30.00 [110.00-2000.00]".
    """
    if not scan_filter_text:
        return ""
    return PRECURSOR_MZ_PATTERN.sub("0", scan_filter_text)
