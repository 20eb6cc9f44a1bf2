"""
Tests for the synthetic rotation averaging command line tool
"""

import json
import pytest
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rotavg.cli import build_config, main, parse_args
from rotavg.core.config import SDPSolverType


class TestCLI:
    """Test argument handling and a full synthetic run"""

    def test_flags_override_config(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"sdp": {"solver_type": "rbr_bcm"}, "log_level": "DEBUG"}))

        args = parse_args([
            "--config", str(config_path),
            "--solver", "riemannian_staircase",
            "--max-views-per-partition", "30",
            "--l1",
        ])
        config = build_config(args)

        assert config.sdp.solver_type is SDPSolverType.RIEMANNIAN_STAIRCASE
        assert config.max_views_per_partition == 30
        assert config.use_l1_refinement
        assert config.log_level == "DEBUG"

    def test_synthetic_run(self, capsys):
        exit_code = main([
            "--num-views", "12",
            "--noise-deg", "1.0",
            "--seed", "3",
            "--compute-error-bound",
            "--log-level", "WARNING",
        ])
        output = capsys.readouterr().out

        assert exit_code == 0
        assert "Mean error" in output
        assert "Max error" in output
        assert "Error bound" in output

    def test_invalid_partition_size(self):
        with pytest.raises(ValueError):
            build_config(parse_args(["--max-views-per-partition", "1"]))
