"""Tests for linear_flow.models.checks."""

import pytest

from linear_flow.enums import RiskTier, Severity
from linear_flow.models.checks import (
    CheckResult,
    ResolutionOption,
    VerificationResult,
    pick_recommended,
)


def option(option_id: str, risk: RiskTier = RiskTier.LOW, discards_work: bool = False) -> ResolutionOption:
    return ResolutionOption(
        id=option_id,
        label=option_id,
        description=f"Apply {option_id}",
        action=f"do {option_id}",
        risk=risk,
        discards_work=discards_work,
    )


class TestRecommendedOption:
    """Tests for the recommended-option rule."""

    def test_lowest_risk_wins(self):
        options = [option("carry", RiskTier.MEDIUM), option("stash", RiskTier.LOW)]

        assert pick_recommended(options).id == "stash"

    def test_ties_go_to_declaration_order(self):
        options = [option("first"), option("second")]

        assert pick_recommended(options).id == "first"

    def test_work_discarding_options_never_recommended(self):
        """A low-risk option that discards work loses to a riskier safe one."""
        options = [option("discard", RiskTier.LOW, discards_work=True), option("carry", RiskTier.MEDIUM)]

        assert pick_recommended(options).id == "carry"

    def test_none_when_every_option_discards_work(self):
        assert pick_recommended([option("discard", RiskTier.HIGH, discards_work=True)]) is None

    def test_recoverable_flags_exactly_one(self):
        result = CheckResult.recoverable(
            "working_tree_clean",
            "1 staged, 0 unstaged changes",
            [option("stash"), option("carry", RiskTier.MEDIUM), option("discard", RiskTier.HIGH, True)],
        )

        assert [o.id for o in result.options if o.recommended] == ["stash"]
        assert result.recommended_option.id == "stash"


class TestCheckResult:
    """Tests for CheckResult invariants and constructors."""

    def test_error_cannot_pass(self):
        with pytest.raises(ValueError, match="cannot pass"):
            CheckResult(name="x", passed=True, severity=Severity.ERROR)

    def test_recoverable_needs_options(self):
        with pytest.raises(ValueError, match="at least one option"):
            CheckResult(name="x", passed=False, severity=Severity.RECOVERABLE)

    def test_at_most_one_recommended(self):
        first = ResolutionOption("a", "a", "a", "a", recommended=True)
        second = ResolutionOption("b", "b", "b", "b", recommended=True)

        with pytest.raises(ValueError, match="at most one"):
            CheckResult(
                name="x",
                passed=False,
                severity=Severity.RECOVERABLE,
                options=(first, second),
            )

    def test_warning_may_fail_without_blocking(self):
        result = CheckResult.warning("branch_name_valid", "not conventional", passed=False)

        assert not result.passed
        assert not result.severity.is_blocking

    def test_display_message_falls_back_to_name(self):
        assert CheckResult(name="session_closed", passed=True).display_message == "session_closed"

    def test_to_dict_includes_suggestion_and_details(self):
        data = CheckResult.error("on_non_base_branch", "Cannot ship on main", suggestion="linear-flow swap x").to_dict()

        assert data["severity"] == "error"
        assert data["suggestion"] == "linear-flow swap x"
        assert "details" not in data


class TestVerificationResult:
    """Tests for VerificationResult aggregation."""

    @pytest.fixture
    def result(self) -> VerificationResult:
        return VerificationResult.of(
            [
                CheckResult.ok("a", "fine"),
                CheckResult.warning("b", "heads up"),
                CheckResult.error("c", "broken"),
                CheckResult.recoverable("d", "fixable", [option("stash")]),
            ]
        )

    def test_partitions(self, result):
        assert [c.name for c in result.errors] == ["c"]
        assert [c.name for c in result.recoverable] == ["d"]
        assert result.warning_messages == ["heads up"]
        assert result.failures == ["broken"]
        assert not result.all_passed

    def test_counts(self, result):
        assert result.passed_count == 2
        assert result.failed_count == 2
        assert result.count(Severity.WARNING) == 1

    def test_empty_result_passes(self):
        assert VerificationResult().all_passed

    def test_get_by_name(self, result):
        assert result.get("c").message == "broken"
        assert result.get("missing") is None
