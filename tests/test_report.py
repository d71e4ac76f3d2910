"""Tests for quantguard.report - assembly, serialization and sessions."""

from quantguard import AuditSession, analyze_source, assemble, evaluate_metrics
from quantguard.stats import BacktestMetrics


def overfit_verdict(returns):
    return evaluate_metrics(
        BacktestMetrics(
            returns=tuple(returns),
            sharpe=2.3,
            max_drawdown=0.2,
            win_rate=0.5,
            trial_count=50,
            variant_count=20,
        )
    )


class TestAssemble:
    """Report assembly."""

    def test_findings_sorted(self):
        findings = analyze_source('clean = df.bfill()\nposition = signal\nAPI_KEY = "k"\n')
        report = assemble(reversed(findings))
        assert [f.location[0] for f in report.findings] == [1, 2, 3]

    def test_stop_findings_and_blocking(self):
        report = assemble(analyze_source("position = signal\nclean = df.bfill()\n"))
        assert [f.rule_id for f in report.stop_findings] == ["LB001"]
        assert report.has_blocking
        assert not report.passed

    def test_warnings_do_not_block(self):
        report = assemble(analyze_source("clean = df.bfill()\n"))
        assert not report.has_blocking
        assert report.passed

    def test_failed_verdict_fails_report(self, flat_returns):
        report = assemble(verdict=overfit_verdict(flat_returns))
        assert not report.has_blocking
        assert not report.passed

    def test_empty_report_passes(self):
        assert assemble().passed


class TestSerialization:
    """Stable field names."""

    def test_to_dict(self, flat_returns):
        report = assemble(analyze_source("position = signal\n"), overfit_verdict(flat_returns))
        record = report.to_dict()
        assert set(record) == {"findings", "verdict", "summary"}
        assert record["findings"][0]["rule_id"] == "LB001"
        assert record["findings"][0]["line_start"] == 1
        assert record["verdict"]["required_tstat"] == 2.5
        assert record["summary"] == {
            "total": 1,
            "stop": 1,
            "warn": 0,
            "auto_fix": 0,
            "has_blocking": True,
            "passed": False,
        }

    def test_no_verdict(self):
        assert assemble().to_dict()["verdict"] is None


class TestAuditSession:
    """Caller-owned, immutable aggregation."""

    def test_add_returns_new_session(self):
        empty = AuditSession()
        report = assemble(analyze_source("position = signal\n"))
        session = empty.add("a.py", report)
        assert len(empty) == 0
        assert len(session) == 1
        assert session.get("a.py") is report
        assert session.get("b.py") is None

    def test_latest_report_wins(self):
        first = assemble(analyze_source("position = signal\n"))
        second = assemble(analyze_source("position = signal.shift(1)\n"))
        session = AuditSession().add("a.py", first).add("a.py", second)
        assert session.get("a.py") is second

    def test_blocking_across_reports(self):
        session = (
            AuditSession()
            .add("clean.py", assemble())
            .add("leaky.py", assemble(analyze_source("position = signal\n")))
        )
        assert session.has_blocking
        record = session.to_dict()
        assert [r["name"] for r in record["reports"]] == ["clean.py", "leaky.py"]
        assert record["has_blocking"]
