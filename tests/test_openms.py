import pyopenms as oms
import pytest

from msdatastats.classifier.spectrum_type_classifier import CentroidStatus
from msdatastats.openms import get_centroid_status, get_scan_type_name, spectrum_to_scan_record

MS1_FILTER = "FTMS + p NSI Full ms [350.00-1800.00]"
HCD_FILTER = "FTMS + c NSI d Full ms2 650.33@hcd30.00 [110.00-2000.00]"
CID_FILTER = "ITMS + c NSI d Full ms2 650.33@cid35.00 [170.00-1315.00]"


class TestScanFilters:
    """Test class for the information taken from Thermo filter strings"""

    @pytest.mark.parametrize(
        "scan_filter,expected",
        [
            (MS1_FILTER, CentroidStatus.PROFILE),
            (HCD_FILTER, CentroidStatus.CENTROID),
            (CID_FILTER, CentroidStatus.CENTROID),
            ("", CentroidStatus.UNKNOWN),
        ],
    )
    def test_centroid_status(self, scan_filter, expected):
        assert get_centroid_status(scan_filter) == expected

    @pytest.mark.parametrize(
        "ms_level,scan_filter,is_dia,expected",
        [
            (1, MS1_FILTER, False, "HMS"),
            (1, "", False, "MS"),
            (2, HCD_FILTER, False, "HCD-HMSn"),
            (2, HCD_FILTER, True, "DIA-HCD-HMSn"),
            (2, CID_FILTER, False, "CID-MSn"),
            (2, "", False, "MSn"),
        ],
    )
    def test_scan_type_name(self, ms_level, scan_filter, is_dia, expected):
        assert get_scan_type_name(ms_level, scan_filter, is_dia) == expected


class TestSpectrumConversion:
    """Test class for converting pyopenms spectra to scan records"""

    def test_dia_spectrum(self):
        precursor = oms.Precursor()
        precursor.setMZ(650.0)
        precursor.setIsolationWindowLowerOffset(12.5)
        precursor.setIsolationWindowUpperOffset(12.5)

        spectrum = oms.MSSpectrum()
        spectrum.setMSLevel(2)
        spectrum.setRT(90.0)
        spectrum.setNativeID("controllerType=0 controllerNumber=1 scan=17")
        spectrum.setPrecursors([precursor])
        spectrum.setMetaValue("filter string", HCD_FILTER)
        spectrum.set_peaks(([120.5, 300.25, 450.75], [10.0, 40.0, 20.0]))

        scan_record, centroid_status = spectrum_to_scan_record(spectrum, 4)

        assert centroid_status == CentroidStatus.CENTROID
        assert scan_record.scan_number == 17
        assert scan_record.ms_level == 2
        assert scan_record.elution_time == pytest.approx(1.5)
        assert scan_record.isolation_window_width == pytest.approx(25.0)
        assert scan_record.is_dia
        assert scan_record.scan_type_name == "DIA-HCD-HMSn"
        assert scan_record.total_ion_intensity == pytest.approx(70.0)
        assert scan_record.base_peak_mz == pytest.approx(300.25)
        assert scan_record.mz_min == pytest.approx(120.5)
        assert scan_record.ion_count == 3

    def test_scan_number_falls_back_to_index(self):
        spectrum = oms.MSSpectrum()
        spectrum.setMSLevel(1)
        spectrum.setNativeID("index=3")
        spectrum.set_peaks(([400.0, 500.0], [1.0, 2.0]))

        scan_record, centroid_status = spectrum_to_scan_record(spectrum, 3)

        assert scan_record.scan_number == 4
        assert scan_record.scan_type_name == "MS"
        assert not scan_record.is_dia
        assert centroid_status == CentroidStatus.UNKNOWN
