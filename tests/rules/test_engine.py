"""Tests for quantguard.rules - catalog rules and engine ordering."""

import pytest

from quantguard.config import PatternConfig, QuantGuardConfig
from quantguard.flow import SourceUnit
from quantguard.rules import (
    ALL_RULES,
    Category,
    Severity,
    active_rules,
    analyze_source,
    analyze_units,
    blocking,
    get_rule,
)


def rule_ids(findings):
    return [f.rule_id for f in findings]


class TestCatalog:
    """The built-in catalog is fixed and ordered by id."""

    def test_ordered_by_id(self):
        ids = [r.id for r in ALL_RULES]
        assert ids == sorted(ids)

    def test_expected_rules(self):
        assert [r.id for r in ALL_RULES] == [
            "CQ001",
            "DL001",
            "DL002",
            "LB001",
            "LB002",
            "LB003",
            "LB004",
            "LB005",
            "SEC001",
            "SEC002",
        ]

    def test_get_rule(self):
        rule = get_rule("LB001")
        assert rule.category is Category.LOOKAHEAD_BIAS
        assert rule.severity is Severity.STOP

    def test_get_unknown_rule(self):
        with pytest.raises(KeyError):
            get_rule("XX999")

    def test_active_rules_excludes_disabled(self):
        ids = [r.id for r in active_rules(("SEC001", "SEC002"))]
        assert "SEC001" not in ids
        assert "LB001" in ids


class TestUnshiftedSignal:
    """LB001: position-like target fed by an unlagged signal."""

    def test_position_equals_signal(self):
        findings = analyze_source("position = signal\n")
        assert len(findings) == 1
        finding = findings[0]
        assert finding.rule_id == "LB001"
        assert finding.category is Category.LOOKAHEAD_BIAS
        assert finding.severity is Severity.STOP
        assert finding.location == (1, 1)
        assert finding.snippet == "position = signal"
        assert finding.fix_available

    def test_snippet_after_form_feed(self):
        (finding,) = analyze_source("x = 1  # a\x0cb\nposition = signal\n")
        assert finding.location == (2, 2)
        assert finding.snippet == "position = signal"

    def test_lagged_signal_is_clean(self):
        assert analyze_source('df["position"] = df["signal"].shift(1)\n') == []

    def test_lag_carried_from_upstream(self):
        text = "signal_lag = signal.shift(1)\nposition = signal_lag\n"
        assert analyze_source(text) == []

    def test_signal_derived_in_place(self):
        text = (
            'df["signal"] = df["close"].rolling(20).mean()\n'
            'df["position"] = df["signal"]\n'
        )
        findings = analyze_source(text)
        assert rule_ids(findings) == ["LB001"]
        assert findings[0].location == (2, 2)

    def test_last_write_decides(self):
        text = "signal = raw.shift(1)\nsignal = raw\nposition = signal\n"
        assert rule_ids(analyze_source(text)) == ["LB001"]

    def test_constant_signal_is_ignored(self):
        assert analyze_source("signal = 1\nposition = signal\n") == []

    def test_non_position_target_is_ignored(self):
        assert analyze_source("smoothed = signal\n") == []

    def test_custom_patterns(self):
        config = QuantGuardConfig(patterns=PatternConfig(position_patterns=("qty",)))
        assert rule_ids(analyze_source("qty = signal\n", config=config)) == ["LB001"]
        assert analyze_source("position = signal\n", config=config) == []

    def test_future_shift_has_no_fix(self):
        findings = analyze_source("position = signal.shift(-1)\n")
        lb001 = [f for f in findings if f.rule_id == "LB001"]
        assert len(lb001) == 1
        assert not lb001[0].fix_available


class TestResampleLabel:
    """LB002: bars stamped with their opening time."""

    def test_label_left(self):
        findings = analyze_source("bars = df.resample('1h', label='left').last()\n")
        assert rule_ids(findings) == ["LB002"]
        assert findings[0].fix_available

    def test_grouper_label_left(self):
        findings = analyze_source('g = df.groupby(pd.Grouper(freq="1D", label="left"))\n')
        assert "LB002" in rule_ids(findings)

    def test_label_right_is_clean(self):
        assert analyze_source("bars = df.resample('1h', label='right').last()\n") == []

    def test_default_label_is_not_flagged(self):
        assert analyze_source("bars = df.resample('1h').last()\n") == []


class TestForwardReference:
    """LB003: negative shifts and forward indexing."""

    def test_negative_shift(self):
        findings = analyze_source("future = close.shift(-1)\n")
        assert rule_ids(findings) == ["LB003"]

    def test_forward_index(self):
        text = "for i in range(n):\n    ret = close[i + 1] / close[i] - 1\n"
        findings = analyze_source(text)
        assert rule_ids(findings) == ["LB003"]
        assert findings[0].location == (2, 2)

    def test_backward_index_is_clean(self):
        assert analyze_source("prev = close[i - 1]\n") == []


class TestCenteredWindow:
    """LB004: centered rolling windows."""

    def test_center_true(self):
        findings = analyze_source('df["ma"] = df["close"].rolling(10, center=True).mean()\n')
        assert rule_ids(findings) == ["LB004"]
        assert findings[0].fix_available

    def test_center_false_is_clean(self):
        assert analyze_source('ma = df["close"].rolling(10, center=False).mean()\n') == []


class TestBackfill:
    """LB005: backward fill."""

    @pytest.mark.parametrize(
        "expr", ["df.bfill()", "df.backfill()", "df.fillna(method='bfill')"]
    )
    def test_backfill_variants(self, expr):
        findings = analyze_source(f"clean = {expr}\n")
        assert rule_ids(findings) == ["LB005"]
        assert findings[0].severity is Severity.WARN
        assert not findings[0].fix_available


class TestGlobalStatistic:
    """DL001: whole-sample statistics over a spanning dataset."""

    def test_zscore_over_full_frame(self):
        text = (
            "train = df.iloc[:500]\n"
            "test = df.iloc[500:]\n"
            'z = (df["ret"] - df["ret"].mean()) / df["ret"].std()\n'
        )
        findings = analyze_source(text)
        assert rule_ids(findings) == ["DL001"]
        assert findings[0].location == (3, 3)
        assert findings[0].category is Category.DATA_LEAKAGE

    def test_rolling_statistic_is_clean(self):
        text = (
            "train = df.iloc[:500]\n"
            "test = df.iloc[500:]\n"
            'm = df["ret"].rolling(20).mean()\n'
        )
        assert analyze_source(text) == []

    def test_training_slice_is_clean(self):
        text = (
            "train = df.iloc[:500]\n"
            "test = df.iloc[500:]\n"
            'mu = train["ret"].mean()\n'
        )
        assert analyze_source(text) == []

    def test_configured_full_range_alias(self):
        config = QuantGuardConfig(patterns=PatternConfig(full_range_aliases=("prices",)))
        findings = analyze_source("mu = prices.mean()\n", config=config)
        assert rule_ids(findings) == ["DL001"]

    def test_without_split_nothing_is_flagged(self):
        assert analyze_source("mu = prices.mean()\n") == []


class TestFitOnFullRange:
    """DL002: fitting on data that spans the evaluation range."""

    def test_fit_after_split(self):
        text = (
            "from sklearn.model_selection import train_test_split\n"
            "from sklearn.preprocessing import StandardScaler\n"
            "X_train, X_test = train_test_split(features)\n"
            "scaler = StandardScaler()\n"
            "scaler.fit(features)\n"
        )
        findings = analyze_source(text)
        assert rule_ids(findings) == ["DL002"]
        assert findings[0].location == (5, 5)

    def test_fit_on_training_split_is_clean(self):
        text = (
            "from sklearn.model_selection import train_test_split\n"
            "X_train, X_test = train_test_split(features)\n"
            "scaled = scaler.fit_transform(X_train)\n"
        )
        assert analyze_source(text) == []


class TestDeprecatedFill:
    """CQ001: fillna(method='ffill')."""

    def test_ffill_method(self):
        findings = analyze_source('df["close"] = df["close"].fillna(method="ffill")\n')
        assert rule_ids(findings) == ["CQ001"]
        assert findings[0].severity is Severity.AUTO_FIX
        assert findings[0].fix_available

    def test_extra_keywords_keep_the_fix(self):
        findings = analyze_source('x = df.fillna(method="pad", limit=3)\n')
        assert rule_ids(findings) == ["CQ001"]
        assert findings[0].severity is Severity.AUTO_FIX
        assert findings[0].fix_available

    def test_multiline_call_keeps_the_fix(self):
        findings = analyze_source('x = df.fillna(\n    method="ffill",\n    limit=3,\n)\n')
        assert findings[0].severity is Severity.AUTO_FIX
        assert findings[0].fix_available

    def test_value_and_method_is_advisory(self):
        """No ffill spelling preserves an explicit fill value."""
        findings = analyze_source('x = df.fillna(0, method="ffill")\n')
        assert rule_ids(findings) == ["CQ001"]
        assert findings[0].severity is Severity.WARN
        assert not findings[0].fix_available

    @pytest.mark.parametrize(
        "text",
        [
            'x = df.fillna(method="ffill")\n',
            'x = df.fillna(method="pad", limit=3)\n',
            'x = df.fillna(limit=3, method="ffill",)\n',
            'x = df.fillna(\n    method="ffill",\n)\n',
            'x = df.fillna(0, method="ffill")\n',
            'x = df.fillna(method="ffill", **opts)\n',
        ],
    )
    def test_auto_fix_findings_always_carry_a_fix(self, text):
        for finding in analyze_source(text):
            if finding.severity is Severity.AUTO_FIX:
                assert finding.fix_available and finding.edits


class TestSecurity:
    """SEC001/SEC002."""

    def test_eval(self):
        findings = analyze_source("result = eval(expression)\n")
        assert rule_ids(findings) == ["SEC001"]
        assert findings[0].category is Category.SECURITY

    def test_method_named_eval_is_clean(self):
        assert analyze_source("result = df.eval('a + b')\n") == []

    def test_hardcoded_key(self):
        findings = analyze_source('API_KEY = "abc123"\n')
        assert rule_ids(findings) == ["SEC002"]

    def test_key_from_environment_is_clean(self):
        assert analyze_source('import os\napi_key = os.environ["API_KEY"]\n') == []


class TestEngine:
    """Ordering, dedupe and isolation."""

    def test_ordered_by_line_then_rule(self):
        text = (
            'API_KEY = "abc"\n'
            "position = signal.shift(-1)\n"
            "clean = df.bfill()\n"
        )
        findings = analyze_source(text)
        assert [(f.location[0], f.rule_id) for f in findings] == [
            (1, "SEC002"),
            (2, "LB001"),
            (2, "LB003"),
            (3, "LB005"),
        ]

    def test_deterministic(self):
        text = "position = signal\nbars = df.resample('1h', label='left').sum()\n"
        assert analyze_source(text) == analyze_source(text)

    def test_disabled_rules(self):
        config = QuantGuardConfig(disabled_rules=("LB001",))
        assert analyze_source("position = signal\n", config=config) == []

    def test_blocking_filters_stop(self):
        findings = analyze_source("position = signal\nclean = df.bfill()\n")
        assert rule_ids(blocking(findings)) == ["LB001"]

    def test_finding_to_dict_fields(self):
        record = analyze_source("position = signal\n")[0].to_dict()
        assert record == {
            "rule_id": "LB001",
            "category": "lookahead_bias",
            "severity": "STOP",
            "line_start": 1,
            "line_end": 1,
            "snippet": "position = signal",
            "message": record["message"],
            "fix_available": True,
        }


class TestAnalyzeUnits:
    """Concurrent multi-unit analysis."""

    def test_results_keep_input_order(self):
        units = [("a.py", "position = signal\n"), ("b.py", "x = 1\n"), ("c.py", "eval(s)\n")]
        results = analyze_units(units, workers=3)
        assert [r.name for r in results] == ["a.py", "b.py", "c.py"]
        assert [rule_ids(r.findings) for r in results] == [["LB001"], [], ["SEC001"]]

    def test_parse_error_is_isolated(self):
        units = [("bad.py", "x = (\n"), SourceUnit.parse("position = signal\n", "good.py")]
        bad, good = analyze_units(units, workers=2)
        assert not bad.ok
        assert bad.error.location[0] == 1
        assert good.ok
        assert rule_ids(good.findings) == ["LB001"]

    def test_mixed_line_endings_and_deep_nesting(self):
        units = [
            ("good.py", "position = signal\n"),
            ("mac.py", "signal = raw\rposition = signal\r"),
            ("dos.py", "signal = raw\r\nposition = signal\r\n"),
            ("deep.py", "position = " + " + ".join(["signal"] * 5000) + "\n"),
        ]
        good, mac, dos, deep = analyze_units(units, workers=2)
        assert rule_ids(good.findings) == ["LB001"]
        for result in (mac, dos):
            assert result.ok
            assert [(f.rule_id, f.location, f.snippet) for f in result.findings] == [
                ("LB001", (2, 2), "position = signal")
            ]
        assert not deep.ok
        assert deep.error.name == "deep.py"

    def test_single_worker_matches_pool(self, config):
        units = [(f"u{i}.py", "position = signal\n" * (i + 1)) for i in range(4)]
        serial = analyze_units(units, config=config)
        pooled = analyze_units(units, workers=4)
        assert serial == pooled
