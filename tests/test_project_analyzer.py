"""
Pipeline Forge - Project Analyzer Tests
=======================================
"""

import asyncio

import pytest

from pipeline_forge.core.exceptions import ProjectDataError
from pipeline_forge.core.pipeline.project_analyzer import (
    ProjectAnalyzer,
    aggregate_codebase_analyses,
    compare_versions,
    normalize_name,
    score_complexity,
    score_criticality,
)
from pipeline_forge.core.providers.memory import InMemoryProjectDataProvider, sample_codebase_analysis
from pipeline_forge.core.schemas import (
    CodebaseAnalysis,
    CodeQualityMetrics,
    DependencyAnalysis,
    FrameworkAnalysis,
    LanguageAnalysis,
    Level,
    ProjectMetadata,
    RepositoryRef,
)


def _project(**overrides) -> ProjectMetadata:
    data = {"id": "p", "team_id": "t", "repositories": [RepositoryRef(id="r", url="u")]}
    data.update(overrides)
    return ProjectMetadata(**data)


# ==========================================================================
# Helper Tests
# ==========================================================================

class TestHelpers:
    """Tests for name and version helpers."""

    def test_normalize_name_strips_js_suffix(self):
        assert normalize_name("Express.js") == "express"
        assert normalize_name("  React ") == "react"
        assert normalize_name(".js") == ".js"

    def test_compare_versions(self):
        assert compare_versions("4.18.0", "4.9.1") == 1
        assert compare_versions("1.0", "1.0.0") == 0
        assert compare_versions("2.0.0-beta", "2.0.1") == -1


# ==========================================================================
# Scoring Tests
# ==========================================================================

class TestComplexityScoring:
    """Tests for the weighted complexity score."""

    def test_sample_codebase_is_medium(self):
        assert score_complexity([sample_codebase_analysis()]) == Level.MEDIUM

    def test_tiny_codebase_is_low(self):
        analysis = CodebaseAnalysis(
            languages=[LanguageAnalysis(language="Python", lines_of_code=500)],
        )
        assert score_complexity([analysis]) == Level.LOW

    def test_large_tangled_codebase_is_high(self):
        analysis = CodebaseAnalysis(
            languages=[LanguageAnalysis(language="Java", lines_of_code=150_000)],
            code_quality=CodeQualityMetrics(cyclomatic_complexity=20),
        )
        # 2 (one language) + 10 (LOC) + 8 (cyclomatic)
        assert score_complexity([analysis]) == Level.HIGH

    def test_no_analyses_is_low(self):
        assert score_complexity([]) == Level.LOW


class TestCriticalityScoring:
    """Tests for the business criticality score."""

    def test_sample_project_is_high(self):
        project = _project(
            compliance_requirements=["SOC2", "GDPR"],
            production_users=5000,
            revenue_impact=Level.MEDIUM,
        )
        assert score_criticality(project, team_size=8, deployment_frequency=3.5) == Level.HIGH

    def test_internal_tool_is_low(self):
        assert score_criticality(_project(), team_size=2, deployment_frequency=0.2) == Level.LOW

    def test_medium_band(self):
        project = _project(production_users=500)
        # 5 (frequency) + 2 (team) + 3 (users)
        assert score_criticality(project, team_size=6, deployment_frequency=3) == Level.MEDIUM


# ==========================================================================
# Aggregation Tests
# ==========================================================================

class TestAggregation:
    """Tests for merging per-repository analyses."""

    def test_single_analysis_is_returned_as_is(self):
        analysis = sample_codebase_analysis()
        assert aggregate_codebase_analyses([analysis]) is analysis

    def test_empty_list_raises(self):
        with pytest.raises(ValueError):
            aggregate_codebase_analyses([])

    def test_merges_languages_frameworks_and_dependencies(self):
        first = CodebaseAnalysis(
            languages=[LanguageAnalysis(language="TypeScript", lines_of_code=3000, files=30)],
            frameworks=[FrameworkAnalysis(framework="Express", confidence=0.6)],
            dependencies=[DependencyAnalysis(name="express", version="4.9.0")],
            test_coverage=60,
        )
        second = CodebaseAnalysis(
            languages=[
                LanguageAnalysis(language="typescript", lines_of_code=1000, files=10),
                LanguageAnalysis(language="Python", lines_of_code=4000, files=40),
            ],
            frameworks=[FrameworkAnalysis(framework="express.js", confidence=0.9)],
            dependencies=[DependencyAnalysis(name="express", version="4.18.2")],
            test_coverage=80,
        )

        merged = aggregate_codebase_analyses([first, second])

        languages = {normalize_name(lang.language): lang for lang in merged.languages}
        assert languages["typescript"].lines_of_code == 4000
        assert languages["typescript"].files == 40
        assert languages["typescript"].percentage == 50.0
        assert languages["python"].percentage == 50.0
        assert len(merged.frameworks) == 1
        assert merged.frameworks[0].confidence == 0.9
        assert merged.dependencies[0].version == "4.18.2"
        assert merged.test_coverage == 70


# ==========================================================================
# Analyzer Tests
# ==========================================================================

class TestProjectAnalyzer:
    """Tests for the full characteristics profile."""

    async def test_analyze_sample_project(self, analyzer: ProjectAnalyzer):
        characteristics = await analyzer.analyze_project("sample-project")

        assert characteristics.project_id == "sample-project"
        assert characteristics.languages == ["typescript", "javascript", "json"]
        assert characteristics.frameworks == ["express", "react"]
        assert characteristics.dependencies == ["express", "react", "jest"]
        assert characteristics.repository_size == 21_000
        assert characteristics.team_size == 8
        assert characteristics.deployment_frequency == 3.5
        assert characteristics.test_coverage == 85
        assert characteristics.complexity == Level.MEDIUM
        assert characteristics.criticality == Level.HIGH
        assert characteristics.compliance_requirements == ["SOC2", "GDPR"]

    async def test_characteristics_are_immutable(self, analyzer: ProjectAnalyzer):
        characteristics = await analyzer.analyze_project("sample-project")

        with pytest.raises(Exception):
            characteristics.team_size = 99

    async def test_multiple_repositories_are_combined(self):
        provider = InMemoryProjectDataProvider()
        provider.register_project(_project(
            id="multi",
            repositories=[RepositoryRef(id="a", url="repo-a"), RepositoryRef(id="b", url="repo-b")],
        ))
        provider.register_codebase("repo-a", CodebaseAnalysis(
            languages=[LanguageAnalysis(language="Go", lines_of_code=2000)],
            test_coverage=50,
        ))
        provider.register_codebase("repo-b", CodebaseAnalysis(
            languages=[LanguageAnalysis(language="Python", lines_of_code=6000)],
            test_coverage=90,
        ))
        provider.set_team_size("t", 3)

        characteristics = await ProjectAnalyzer(provider).analyze_project("multi")

        assert characteristics.languages == ["python", "go"]
        assert characteristics.repository_size == 8000
        assert characteristics.test_coverage == 70
        assert characteristics.deployment_frequency == 0.0

    async def test_project_without_repositories_raises(self):
        provider = InMemoryProjectDataProvider()
        provider.register_project(_project(id="empty", repositories=[]))
        provider.set_team_size("t", 1)

        with pytest.raises(ValueError, match="no repositories"):
            await ProjectAnalyzer(provider).analyze_project("empty")

    async def test_individual_scores(self, analyzer: ProjectAnalyzer):
        assert await analyzer.get_project_complexity("sample-project") == Level.MEDIUM
        assert await analyzer.get_project_criticality("sample-project") == Level.HIGH

    async def test_failed_fetch_cancels_sibling_fetches(self, provider: InMemoryProjectDataProvider, monkeypatch):
        frequency_started = asyncio.Event()
        frequency_cancelled = asyncio.Event()

        async def slow_frequency(project_id: str) -> float:
            frequency_started.set()
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                frequency_cancelled.set()
                raise
            return 1.0

        async def broken_team_size(team_id: str) -> int:
            await frequency_started.wait()
            raise ProjectDataError("get_team_size", "directory unavailable")

        monkeypatch.setattr(provider, "get_deployment_frequency", slow_frequency)
        monkeypatch.setattr(provider, "get_team_size", broken_team_size)

        with pytest.raises(ProjectDataError, match="directory unavailable"):
            await ProjectAnalyzer(provider).analyze_project("sample-project")

        assert frequency_cancelled.is_set()
