"""
Pipeline Forge - Test Result Analyzer Tests
===========================================
"""

import pytest

from pipeline_forge.core.schemas import (
    InsightType,
    Level,
    Priority,
    RecommendationType,
    RiskLevel,
    TestPhaseType,
    TestResult,
    TestStatus,
    TrendDirection,
)
from pipeline_forge.core.testing.analyzer import (
    TestResultAnalyzer,
    analyze_failure_patterns,
    categorize_error,
    create_trend,
    detect_slow_tests,
    overall_risk_for,
)


@pytest.fixture
def analyzer(history_store, settings) -> TestResultAnalyzer:
    return TestResultAnalyzer(history_store, settings)


def _passed(n: int, duration: int = 100) -> list[TestResult]:
    return [TestResult(name=f"ok-{i}", status=TestStatus.PASSED, duration=duration) for i in range(n)]


def _failed(error: str, name: str = "bad") -> TestResult:
    return TestResult(name=name, status=TestStatus.FAILED, duration=100, error=error)


def _types(items) -> list:
    return [i.type for i in items]


# ==========================================================================
# Helper Tests
# ==========================================================================

class TestHelpers:
    def test_categorize_error(self):
        assert categorize_error("Connection reset by peer") == "Network"
        assert categorize_error("TIMEOUT after 30s") == "Timeout"
        assert categorize_error("SQL syntax error") == "Database"
        assert categorize_error("Expected 1 to equal 2") == "Assertion"
        assert categorize_error("Cannot read property of undefined") == "Null Reference"
        assert categorize_error("Segfault") == "Other"

    def test_trend_for_lower_is_better_metric(self):
        trend = create_trend("Execution Duration (ms)", 1200, 1000, higher_is_better=False)

        assert trend.change == 200
        assert trend.change_percent == 20
        assert trend.direction == TrendDirection.UP
        assert trend.is_improvement is False

    def test_trend_edge_cases(self):
        assert create_trend("x", 100.5, 100, True).direction == TrendDirection.STABLE
        zero = create_trend("x", 50, 0, True)
        assert zero.change_percent == 0
        assert zero.direction == TrendDirection.STABLE
        assert zero.is_improvement is True

    def test_overall_risk_bands(self):
        assert overall_risk_for(0) == RiskLevel.LOW
        assert overall_risk_for(30) == RiskLevel.MEDIUM
        assert overall_risk_for(60) == RiskLevel.HIGH
        assert overall_risk_for(80) == RiskLevel.CRITICAL


# ==========================================================================
# Insight Tests
# ==========================================================================

class TestInsights:
    """Tests for insight detection."""

    def test_healthy_result_has_no_insights(self, analyzer: TestResultAnalyzer, make_result):
        assert analyzer.generate_insights(make_result()) == []

    @pytest.mark.parametrize("lines,impact", [(55, Level.HIGH), (70, Level.MEDIUM)])
    def test_low_coverage(self, analyzer: TestResultAnalyzer, make_result, lines, impact):
        insights = analyzer.generate_insights(make_result(lines=lines))

        assert _types(insights) == [InsightType.COVERAGE_IMPROVEMENT]
        assert insights[0].impact == impact
        assert insights[0].data.gap == 80 - lines

    def test_flaky_tests(self, analyzer: TestResultAnalyzer, make_result):
        flaky = TestResult(name="flaky", status=TestStatus.PASSED, duration=100, retries=1)

        insights = analyzer.generate_insights(make_result(tests=_passed(9) + [flaky]))

        assert _types(insights) == [InsightType.FLAKY_TESTS]
        assert insights[0].data.count == 1

    def test_slow_tests(self, analyzer: TestResultAnalyzer, make_result):
        slow = TestResult(name="slow", status=TestStatus.PASSED, duration=5000)
        result = make_result(tests=_passed(9) + [slow])

        assert [t.name for t in detect_slow_tests(result)] == ["slow"]
        insight = analyzer.generate_insights(result)[0]
        assert insight.type == InsightType.SLOW_TESTS
        assert insight.data.total_slow_time == 5000

    def test_failure_patterns(self, make_result):
        tests = [_failed("Connection refused", f"net-{i}") for i in range(3)] + [_failed("Request timeout")]

        patterns = analyze_failure_patterns(make_result(tests=tests))

        assert patterns == ["Network: 3 occurrences (75%)", "Timeout: 1 occurrences (25%)"]

    def test_minor_failure_categories_are_ignored(self, make_result):
        tests = [_failed("Connection refused", f"net-{i}") for i in range(5)] + [_failed("sql error")]

        assert analyze_failure_patterns(make_result(tests=tests)) == ["Network: 5 occurrences (83%)"]

    def test_resource_usage(self, analyzer: TestResultAnalyzer, make_result):
        insights = analyzer.generate_insights(make_result(duration=700_000))

        assert _types(insights) == [InsightType.RESOURCE_USAGE]
        assert insights[0].data.avg_phase_duration == 700_000


# ==========================================================================
# Recommendation Tests
# ==========================================================================

class TestRecommendations:
    def test_missing_test_types(self, analyzer: TestResultAnalyzer, make_result):
        result = make_result()

        recommendations = analyzer.generate_recommendations(result, [])

        assert _types(recommendations) == [RecommendationType.ADD_TEST_TYPES]

    def test_full_set(self, analyzer: TestResultAnalyzer, make_result):
        flaky = TestResult(name="flaky", status=TestStatus.PASSED, duration=5000, retries=1)
        result = make_result(
            tests=_passed(9) + [flaky],
            lines=50,
            phase_types=[TestPhaseType.UNIT, TestPhaseType.E2E, TestPhaseType.PERFORMANCE],
        )

        recommendations = analyzer.generate_recommendations(result, analyzer.generate_insights(result))

        assert _types(recommendations) == [
            RecommendationType.INCREASE_COVERAGE,
            RecommendationType.FIX_FLAKY_TESTS,
            RecommendationType.OPTIMIZE_PERFORMANCE,
        ]
        assert recommendations[0].priority == Priority.HIGH
        assert recommendations[1].priority == Priority.CRITICAL


# ==========================================================================
# Quality & Risk Tests
# ==========================================================================

class TestQualityMetrics:
    def test_healthy_result(self, make_result):
        metrics = TestResultAnalyzer.calculate_quality_metrics(make_result())

        assert metrics.reliability == 100
        assert metrics.maintainability == 90
        assert metrics.efficiency == 50
        assert metrics.overall == 82

    def test_multi_suite_bonus(self, make_result):
        metrics = TestResultAnalyzer.calculate_quality_metrics(make_result(suites_per_phase=2))

        assert metrics.efficiency == 60

    def test_no_tests(self, make_result):
        metrics = TestResultAnalyzer.calculate_quality_metrics(make_result(tests=[]))

        assert metrics.reliability == 0
        assert metrics.efficiency == 0
        assert metrics.overall == 27

    def test_zero_duration(self, make_result):
        metrics = TestResultAnalyzer.calculate_quality_metrics(make_result(duration=0))

        assert metrics.efficiency == 100

    def test_values_are_bounded(self, make_result):
        tests = [TestResult(name=f"f-{i}", status=TestStatus.FAILED, retries=1, error="x") for i in range(10)]

        metrics = TestResultAnalyzer.calculate_quality_metrics(make_result(tests=tests, lines=10))

        for value in metrics.model_dump().values():
            assert 0 <= value <= 100


class TestRiskAssessment:
    def test_no_risk(self, make_result):
        assessment = TestResultAnalyzer.assess_risk(make_result(), [])

        assert assessment.overall_risk == RiskLevel.LOW
        assert assessment.risk_factors == []

    def test_low_coverage_is_high_risk(self, analyzer: TestResultAnalyzer, make_result):
        result = make_result(lines=55)

        assessment = analyzer.assess_risk(result, analyzer.generate_insights(result))

        assert assessment.overall_risk == RiskLevel.HIGH
        assert [f.factor for f in assessment.risk_factors] == ["Low Test Coverage"]

    def test_critical(self, analyzer: TestResultAnalyzer, make_result):
        result = make_result(tests=_passed(3) + [_failed("boom")], lines=50)

        assessment = analyzer.assess_risk(result, analyzer.generate_insights(result))

        assert assessment.overall_risk == RiskLevel.CRITICAL
        assert assessment.risk_factors[-1].severity == RiskLevel.CRITICAL
        assert len(assessment.mitigation_strategies) == 4


# ==========================================================================
# Report Tests
# ==========================================================================

class TestAnalyzeTestResults:
    """Tests for full reports and history-based trends."""

    async def test_first_report_has_no_trends(self, analyzer: TestResultAnalyzer, make_result):
        report = await analyzer.analyze_test_results(make_result())

        assert report.trends == []
        assert report.execution_id == "plan-1"
        assert report.project_id == "project-1"
        assert len(analyzer.get_history("project-1")) == 1

    async def test_second_report_compares_with_previous(self, analyzer: TestResultAnalyzer, make_result):
        await analyzer.analyze_test_results(make_result(duration=1000))

        report = await analyzer.analyze_test_results(make_result(duration=1200))

        trends = {t.metric: t for t in report.trends}
        duration = trends["Execution Duration (ms)"]
        assert duration.change == 200
        assert duration.change_percent == 20
        assert duration.direction == TrendDirection.UP
        assert duration.is_improvement is False
        assert trends["Pass Rate (%)"].direction == TrendDirection.STABLE

    async def test_project_override(self, analyzer: TestResultAnalyzer, make_result):
        report = await analyzer.analyze_test_results(make_result(), project_id="other")

        assert report.project_id == "other"
        assert analyzer.get_history("project-1") == []
        assert len(analyzer.get_history("other")) == 1
