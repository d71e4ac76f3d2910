"""Tests for the quantguard CLI commands."""

import json
import shutil

from typer.testing import CliRunner

from quantguard import __version__
from quantguard.cli import app

runner = CliRunner()


class TestRules:
    """quantguard rules"""

    def test_json_catalog(self):
        result = runner.invoke(app, ["rules", "--json"])
        assert result.exit_code == 0
        rules = json.loads(result.stdout)
        assert [r["id"] for r in rules][:3] == ["CQ001", "DL001", "DL002"]
        assert len(rules) == 10

    def test_table(self):
        result = runner.invoke(app, ["rules"])
        assert result.exit_code == 0
        assert "LB001" in result.stdout


class TestScan:
    """quantguard scan"""

    def test_leaky_json(self, fixtures_dir):
        result = runner.invoke(app, ["scan", str(fixtures_dir / "leaky_strategy.py"), "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        report = data["reports"][0]
        assert sorted(f["rule_id"] for f in report["findings"]) == [
            "CQ001",
            "LB001",
            "LB002",
            "LB004",
        ]
        assert report["summary"]["stop"] == 3
        assert data["has_blocking"]
        assert data["errors"] == []

    def test_strict_exits_on_stop(self, fixtures_dir):
        result = runner.invoke(app, ["scan", str(fixtures_dir / "leaky_strategy.py"), "--strict"])
        assert result.exit_code == 1

    def test_clean_file(self, fixtures_dir):
        result = runner.invoke(app, ["scan", str(fixtures_dir / "clean_strategy.py"), "--strict"])
        assert result.exit_code == 0
        assert "No findings" in result.stdout

    def test_disable_rule(self, fixtures_dir):
        result = runner.invoke(
            app,
            ["scan", str(fixtures_dir / "leaky_strategy.py"), "--json", "--disable", "LB001"],
        )
        findings = json.loads(result.stdout)["reports"][0]["findings"]
        assert "LB001" not in [f["rule_id"] for f in findings]

    def test_parse_error_exits_2(self, fixtures_dir):
        result = runner.invoke(app, ["scan", str(fixtures_dir / "broken_strategy.py"), "--json"])
        assert result.exit_code == 2
        errors = json.loads(result.stdout)["errors"]
        assert errors[0]["error"] == "ParseError"
        assert errors[0]["details"]["line"] == "1"

    def test_directory(self, fixtures_dir):
        result = runner.invoke(app, ["scan", str(fixtures_dir), "--json", "--workers", "2"])
        data = json.loads(result.stdout)
        assert len(data["reports"]) == 2
        assert len(data["errors"]) == 1
        assert result.exit_code == 2


class TestFix:
    """quantguard fix"""

    def test_prints_fixed_text(self, fixtures_dir):
        path = fixtures_dir / "leaky_strategy.py"
        before = path.read_text(encoding="utf-8")
        result = runner.invoke(app, ["fix", str(path)])
        assert result.exit_code == 0
        assert 'df["position"] = df["signal"].shift(1)' in result.stdout
        assert 'label="right"' in result.stdout
        assert path.read_text(encoding="utf-8") == before

    def test_write(self, fixtures_dir, tmp_path):
        path = tmp_path / "strategy.py"
        shutil.copy(fixtures_dir / "leaky_strategy.py", path)
        result = runner.invoke(app, ["fix", str(path), "--write", "--strict"])
        assert result.exit_code == 0
        assert ".ffill()" in path.read_text(encoding="utf-8")

        rescan = runner.invoke(app, ["scan", str(path), "--strict"])
        assert rescan.exit_code == 0

    def test_json_lists_remaining(self, tmp_path):
        path = tmp_path / "strategy.py"
        path.write_text("position = signal\nclean = df.bfill()\n", encoding="utf-8")
        result = runner.invoke(app, ["fix", str(path), "--json"])
        data = json.loads(result.stdout)
        assert [f["rule_id"] for f in data["applied"]] == ["LB001"]
        assert [f["rule_id"] for f in data["remaining"]] == ["LB005"]
        assert data["text"] == "position = signal.shift(1)\nclean = df.bfill()\n"

    def test_strict_with_unfixable_stop(self, tmp_path):
        path = tmp_path / "strategy.py"
        path.write_text("future = close.shift(-1)\n", encoding="utf-8")
        result = runner.invoke(app, ["fix", str(path), "--strict"])
        assert result.exit_code == 1

    def test_parse_error(self, fixtures_dir):
        result = runner.invoke(app, ["fix", str(fixtures_dir / "broken_strategy.py")])
        assert result.exit_code == 2


class TestValidate:
    """quantguard validate"""

    def test_overfit_metrics(self, fixtures_dir):
        result = runner.invoke(
            app, ["validate", str(fixtures_dir / "overfit_metrics.json"), "--json"]
        )
        assert result.exit_code == 0
        verdict = json.loads(result.stdout)["verdict"]
        assert verdict["required_tstat"] == 2.5
        assert verdict["passed"] is False
        assert [f["code"] for f in verdict["red_flags"]] == ["SHARPE_TOO_HIGH"]

    def test_strict(self, fixtures_dir):
        result = runner.invoke(
            app, ["validate", str(fixtures_dir / "overfit_metrics.json"), "--strict"]
        )
        assert result.exit_code == 1
        assert "FAILED" in result.stdout

    def test_table_shows_configured_thresholds(self, tmp_path, fixtures_dir):
        config_path = tmp_path / "quantguard.toml"
        config_path.write_text(
            "[statistics]\n"
            "dsr_pass_threshold = 0.9\n"
            "dsr_sharpe_trigger = 2.0\n"
            "pbo_pass_threshold = 0.1\n",
            encoding="utf-8",
        )
        result = runner.invoke(
            app,
            ["validate", str(fixtures_dir / "overfit_metrics.json"), "-c", str(config_path)],
        )
        assert result.exit_code == 0
        assert ">= 0.90 (Sharpe > 2)" in result.stdout
        assert "< 0.10" in result.stdout

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "metrics.json"
        path.write_text("{not json", encoding="utf-8")
        result = runner.invoke(app, ["validate", str(path), "--json"])
        assert result.exit_code == 2
        assert json.loads(result.stdout)["details"]["field"] == "metrics"

    def test_invalid_field(self, tmp_path):
        path = tmp_path / "metrics.json"
        path.write_text(
            json.dumps({"returns": [0.1, 0.2, 0.3], "sharpe": 1.0, "max_drawdown": 0.1,
                        "win_rate": 2.0}),
            encoding="utf-8",
        )
        result = runner.invoke(app, ["validate", str(path), "--json"])
        assert result.exit_code == 2
        assert json.loads(result.stdout)["details"]["field"] == "win_rate"

    def test_blocks_option(self, tmp_path, dominant_matrix):
        path = tmp_path / "metrics.json"
        path.write_text(
            json.dumps(
                {
                    "returns": dominant_matrix[:, 0].tolist(),
                    "sharpe": 1.2,
                    "max_drawdown": 0.2,
                    "win_rate": 0.6,
                    "variant_count": 6,
                    "variant_returns": dominant_matrix.tolist(),
                }
            ),
            encoding="utf-8",
        )
        result = runner.invoke(app, ["validate", str(path), "--json", "--blocks", "8"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["verdict"]["pbo"] == 0.0

    def test_blocks_not_dividing(self, tmp_path, dominant_matrix):
        path = tmp_path / "metrics.json"
        path.write_text(
            json.dumps(
                {
                    "returns": dominant_matrix[:, 0].tolist(),
                    "sharpe": 1.2,
                    "max_drawdown": 0.2,
                    "win_rate": 0.6,
                    "variant_returns": dominant_matrix.tolist(),
                }
            ),
            encoding="utf-8",
        )
        result = runner.invoke(app, ["validate", str(path), "--blocks", "12"])
        assert result.exit_code == 2


class TestVersion:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout
