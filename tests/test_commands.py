from pathlib import Path

import numpy as np
import pandas as pd
import pyopenms as oms
import pytest
from click.testing import CliRunner

from msdatastats.msdatastatsc import cli
from msdatastats.utils.constants import (
    INTENSITY,
    ISOLATION_WINDOW_WIDTH,
    MS_LEVEL,
    MZ,
    SCAN,
    SCAN_TYPE_COUNT,
    SCAN_TYPE_NAME,
)

SCAN_COUNT = 20


# Helper function to create a CLI runner and run a command
def run_cli_command(command, args=None):
    runner = CliRunner()
    if args:
        result = runner.invoke(cli, [command] + args)
    else:
        result = runner.invoke(cli, [command, "--help"])
    return result


def create_mzml(path: Path, msn_levels=(2,)) -> Path:
    """Small run: one profile mode MS1 spectrum followed by four centroided MSn spectra"""
    rng = np.random.default_rng(42)
    experiment = oms.MSExperiment()

    for scan in range(1, SCAN_COUNT + 1):
        spectrum = oms.MSSpectrum()
        spectrum.setNativeID(f"controllerType=0 controllerNumber=1 scan={scan}")
        spectrum.setRT(scan * 3.0)

        if scan % 5 == 1:
            spectrum.setMSLevel(1)
            mz = 400.0 + np.arange(2000) * 0.005
            intensity = rng.uniform(1e3, 1e5, size=mz.size)
        else:
            precursor = oms.Precursor()
            precursor.setMZ(500.0 + scan)
            precursor.setIsolationWindowLowerOffset(1.0)
            precursor.setIsolationWindowUpperOffset(1.0)
            spectrum.setPrecursors([precursor])
            spectrum.setMSLevel(msn_levels[scan % len(msn_levels)])
            mz = np.sort(rng.uniform(110.0, 1500.0, size=60))
            intensity = rng.uniform(1e2, 1e4, size=mz.size)

        spectrum.set_peaks((mz, intensity))
        experiment.addSpectrum(spectrum)

    oms.MzMLFile().store(str(path), experiment)
    return path


def write_cdta(path: Path) -> Path:
    separator = "=" * 35
    with open(path, "w") as cdta_file:
        for spectrum in range(1, 4):
            cdta_file.write(f'{separator} "run.{spectrum}.{spectrum}.2.dta" {separator}\n')
            cdta_file.write("1002.47 2\n")
            for mz in (150.1, 260.2, 375.3, 488.4, 590.5, 702.6):
                cdta_file.write(f"{mz + spectrum} 1500.0\n")
            cdta_file.write("\n")
    return path


class TestCLIHelpMessages:
    """Test class for CLI help messages"""

    @pytest.mark.parametrize("command", ["datasetstats", "cdtacheck"])
    def test_help_messages(self, command):
        """Test all CLI help messages with a parametrized test"""
        result = run_cli_command(command)
        assert result.exit_code == 0

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert result.output.startswith("msdatastats")


class TestDatasetStatistics:
    """Test class for the dataset statistics of an mzML file"""

    def test_dataset_statistics(self, tmp_path):
        mzml_path = create_mzml(tmp_path / "run.mzML")

        result = run_cli_command(
            "datasetstats",
            ["--ms_path", str(mzml_path), "--max_points_to_plot", "500", "--ms2_mz_min", "113"],
        )
        assert result.exit_code == 0

        scan_stats = pd.read_parquet(tmp_path / "run_scan_stats.parquet")
        assert len(scan_stats) == SCAN_COUNT
        assert scan_stats[SCAN].tolist() == list(range(1, SCAN_COUNT + 1))
        assert (scan_stats[MS_LEVEL] == 1).sum() == 4
        assert scan_stats.loc[scan_stats[MS_LEVEL] == 2, ISOLATION_WINDOW_WIDTH].eq(2.0).all()

        scan_types = pd.read_parquet(tmp_path / "run_scan_type_summary.parquet")
        assert scan_types[SCAN_TYPE_COUNT].sum() == SCAN_COUNT
        assert set(scan_types[SCAN_TYPE_NAME]) == {"MS", "MSn"}

        points = pd.read_parquet(tmp_path / "run_lcms_points.parquet")
        assert 0 < len(points) <= 500 + 2 * SCAN_COUNT
        assert (points[INTENSITY] > 0).all()
        assert points[MZ].between(110.0, 1500.0).all()

    def test_ms3_spectra_share_scan_type(self, tmp_path):
        mzml_path = create_mzml(tmp_path / "sps.mzML", msn_levels=(2, 3))

        result = run_cli_command("datasetstats", ["--ms_path", str(mzml_path)])
        assert result.exit_code == 0

        scan_stats = pd.read_parquet(tmp_path / "sps_scan_stats.parquet")
        assert set(scan_stats[MS_LEVEL]) == {1, 2, 3}

        scan_types = pd.read_parquet(tmp_path / "sps_scan_type_summary.parquet")
        assert scan_types[SCAN_TYPE_COUNT].sum() == SCAN_COUNT
        assert set(scan_types[SCAN_TYPE_NAME]) == {"MS", "MSn"}

    def test_unsupported_file_type(self, tmp_path):
        text_path = tmp_path / "run.txt"
        text_path.write_text("not a mass spectrometry file")

        result = run_cli_command("datasetstats", ["--ms_path", str(text_path)])
        assert result.exit_code != 0
        assert not (tmp_path / "run_scan_stats.parquet").exists()


class TestCdtaCheck:
    """Test class for the centroid check of concatenated DTA files"""

    def test_cdta_check(self, tmp_path):
        cdta_path = write_cdta(tmp_path / "run_dta.txt")

        result = run_cli_command("cdtacheck", ["--cdta_path", str(cdta_path)])
        assert result.exit_code == 0

    def test_missing_cdta_file(self, tmp_path):
        result = run_cli_command("cdtacheck", ["--cdta_path", str(tmp_path / "missing_dta.txt")])
        assert result.exit_code != 0
