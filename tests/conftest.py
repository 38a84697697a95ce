"""
Pipeline Forge - Test Fixtures
==============================

Shared pytest fixtures for all tests.
"""

from typing import Callable, Optional

import pytest

from pipeline_forge.core.config import Settings
from pipeline_forge.core.pipeline.generator import PipelineGenerator
from pipeline_forge.core.pipeline.optimizer import PipelineOptimizer
from pipeline_forge.core.pipeline.project_analyzer import ProjectAnalyzer
from pipeline_forge.core.pipeline.strategy_selector import TestingStrategySelector
from pipeline_forge.core.pipeline.template_catalog import TemplateCatalog
from pipeline_forge.core.providers.memory import InMemoryProjectDataProvider
from pipeline_forge.core.schemas import (
    GeneratedPipeline,
    Level,
    PipelineStageConfig,
    ProjectCharacteristics,
    StageKind,
    TestCoverage,
    TestExecutionResult,
    TestExecutionStatus,
    TestExecutionSummary,
    TestingStrategy,
    TestPhaseResult,
    TestPhaseType,
    TestResult,
    TestStatus,
    TestSuiteResult,
)
from pipeline_forge.core.testing.coordinator import TestExecutionCoordinator
from pipeline_forge.core.testing.history import MetricsHistoryStore
from pipeline_forge.core.testing.runner import SyntheticTestRunner


# ==========================================================================
# Settings
# ==========================================================================

@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment."""
    return Settings(ENVIRONMENT="test")


# ==========================================================================
# Characteristics & Pipelines
# ==========================================================================

@pytest.fixture
def make_characteristics() -> Callable[..., ProjectCharacteristics]:
    """Factory for characteristics with neutral defaults."""

    def _make(**overrides) -> ProjectCharacteristics:
        data = {
            "project_id": "project-1",
            "languages": ["typescript"],
            "frameworks": [],
            "dependencies": [],
            "repository_size": 20_000,
            "team_size": 4,
            "deployment_frequency": 2.0,
            "test_coverage": 70.0,
            "complexity": Level.MEDIUM,
            "criticality": Level.MEDIUM,
            "compliance_requirements": [],
        }
        data.update(overrides)
        return ProjectCharacteristics(**data)

    return _make


@pytest.fixture
def make_stage() -> Callable[..., PipelineStageConfig]:
    def _make(stage: StageKind, timeout: int = 300, **overrides) -> PipelineStageConfig:
        return PipelineStageConfig(
            stage=stage,
            name=overrides.pop("name", stage.value.replace("_", " ").title()),
            commands=overrides.pop("commands", [f"run {stage.value}"]),
            timeout=timeout,
            **overrides,
        )

    return _make


@pytest.fixture
def make_pipeline() -> Callable[..., GeneratedPipeline]:
    def _make(stages: list[PipelineStageConfig], **overrides) -> GeneratedPipeline:
        return GeneratedPipeline(
            project_id=overrides.pop("project_id", "project-1"),
            name=overrides.pop("name", "Test Pipeline"),
            type=overrides.pop("type", "full_cicd"),
            stages=stages,
            testing_strategy=overrides.pop("testing_strategy", TestingStrategy.BALANCED),
            **overrides,
        )

    return _make


# ==========================================================================
# Pipeline Components
# ==========================================================================

@pytest.fixture
def provider() -> InMemoryProjectDataProvider:
    return InMemoryProjectDataProvider.with_sample_project()


@pytest.fixture
def analyzer(provider: InMemoryProjectDataProvider) -> ProjectAnalyzer:
    return ProjectAnalyzer(provider)


@pytest.fixture
def catalog() -> TemplateCatalog:
    return TemplateCatalog()


@pytest.fixture
def optimizer(settings: Settings) -> PipelineOptimizer:
    return PipelineOptimizer(settings)


@pytest.fixture
def generator(
    analyzer: ProjectAnalyzer,
    catalog: TemplateCatalog,
    optimizer: PipelineOptimizer,
    settings: Settings,
) -> PipelineGenerator:
    return PipelineGenerator(analyzer, catalog, TestingStrategySelector(), optimizer, settings)


# ==========================================================================
# Test Execution
# ==========================================================================

@pytest.fixture
def runner(settings: Settings) -> SyntheticTestRunner:
    """Deterministic runner that never sleeps."""
    return SyntheticTestRunner(seed=42, time_scale=0, settings=settings)


@pytest.fixture
def coordinator(runner: SyntheticTestRunner, settings: Settings) -> TestExecutionCoordinator:
    return TestExecutionCoordinator(runner, settings)


@pytest.fixture
def history_store(settings: Settings) -> MetricsHistoryStore:
    return MetricsHistoryStore(settings=settings)


@pytest.fixture
def make_result() -> Callable[..., TestExecutionResult]:
    """
    Factory for execution results.

    ``tests`` go into a single suite of the first phase; extra phases are
    empty. Summary counts are derived from the tests.
    """

    def _make(
        tests: Optional[list[TestResult]] = None,
        lines: float = 85.0,
        branches: float = 75.0,
        duration: int = 10_000,
        phase_types: Optional[list[TestPhaseType]] = None,
        project_id: str = "project-1",
        suites_per_phase: int = 1,
    ) -> TestExecutionResult:
        tests = tests if tests is not None else [
            TestResult(name=f"test-{i}", status=TestStatus.PASSED, duration=100) for i in range(10)
        ]
        coverage = TestCoverage(lines=lines, functions=80, branches=branches, statements=lines)
        phase_types = phase_types or [TestPhaseType.UNIT]

        phases = []
        for index, phase_type in enumerate(phase_types):
            suites = [
                TestSuiteResult(
                    suite_id=f"{phase_type.value}-{n}",
                    status=TestExecutionStatus.COMPLETED,
                    tests=tests if index == 0 and n == 0 else [],
                    coverage=coverage,
                )
                for n in range(suites_per_phase)
            ]
            phases.append(TestPhaseResult(
                phase_id=f"phase-{index}",
                type=phase_type,
                status=TestExecutionStatus.COMPLETED,
                suites=suites,
                duration=duration // len(phase_types),
                coverage=coverage,
            ))

        summary = TestExecutionSummary(
            total=len(tests),
            passed=sum(1 for t in tests if t.status == TestStatus.PASSED),
            failed=sum(1 for t in tests if t.status == TestStatus.FAILED),
            skipped=sum(1 for t in tests if t.status == TestStatus.SKIPPED),
            duration=duration,
            coverage=coverage,
        )
        return TestExecutionResult(
            plan_id="plan-1",
            project_id=project_id,
            status=TestExecutionStatus.COMPLETED,
            phases=phases,
            total_duration=duration,
            coverage=coverage,
            summary=summary,
        )

    return _make
