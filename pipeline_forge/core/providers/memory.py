"""
In-Memory Project Data Provider
===============================

Dictionary-backed provider used for local runs and tests. Seeded through
``register_*`` helpers; unknown keys raise ``ProjectDataError``.
"""

from typing import Optional

import structlog

from pipeline_forge.core.exceptions import ProjectDataError
from pipeline_forge.core.schemas import (
    CodebaseAnalysis,
    CodeQualityMetrics,
    ComplexityMetrics,
    DependencyAnalysis,
    FrameworkAnalysis,
    LanguageAnalysis,
    Level,
    ProjectMetadata,
    RepositoryRef,
    RiskLevel,
    SecurityIssue,
)

logger = structlog.get_logger(__name__)


def sample_codebase_analysis() -> CodebaseAnalysis:
    """A typical TypeScript web service: Express backend, React frontend."""
    return CodebaseAnalysis(
        languages=[
            LanguageAnalysis(language="TypeScript", percentage=70, lines_of_code=15000, files=150),
            LanguageAnalysis(language="JavaScript", percentage=25, lines_of_code=5000, files=50),
            LanguageAnalysis(language="JSON", percentage=5, lines_of_code=1000, files=20),
        ],
        frameworks=[
            FrameworkAnalysis(framework="Express", version="4.18.0", confidence=0.95),
            FrameworkAnalysis(framework="React", version="18.2.0", confidence=0.90),
        ],
        dependencies=[
            DependencyAnalysis(name="express", version="4.18.0"),
            DependencyAnalysis(name="react", version="18.2.0"),
            DependencyAnalysis(name="jest", version="29.0.0", type="development", outdated=True),
        ],
        test_coverage=85,
        code_quality=CodeQualityMetrics(
            maintainability_index=75,
            cyclomatic_complexity=8,
            technical_debt=2.5,
            duplicated_lines=150,
        ),
        security_issues=[
            SecurityIssue(
                type="dependency_vulnerability",
                severity=RiskLevel.MEDIUM,
                file="package.json",
                line=1,
                description="Outdated dependency with known vulnerabilities",
            )
        ],
        complexity=ComplexityMetrics(overall=Level.MEDIUM, cognitive=12, cyclomatic=8, halstead=1200),
    )


class InMemoryProjectDataProvider:
    """Project data held in plain dictionaries."""

    def __init__(self):
        self._projects: dict[str, ProjectMetadata] = {}
        self._codebases: dict[str, CodebaseAnalysis] = {}
        self._team_sizes: dict[str, int] = {}
        self._deployment_frequencies: dict[str, float] = {}

    @classmethod
    def with_sample_project(cls, project_id: str = "sample-project") -> "InMemoryProjectDataProvider":
        """Provider preloaded with one single-repository web project."""
        provider = cls()
        repo_url = "https://github.com/example/repo"
        provider.register_project(
            ProjectMetadata(
                id=project_id,
                name="Sample Project",
                team_id="team-123",
                repositories=[RepositoryRef(id="repo-1", url=repo_url)],
                compliance_requirements=["SOC2", "GDPR"],
                production_users=5000,
                revenue_impact=Level.MEDIUM,
            )
        )
        provider.register_codebase(repo_url, sample_codebase_analysis())
        provider.set_team_size("team-123", 8)
        provider.set_deployment_frequency(project_id, 3.5)
        return provider

    # ==========================================================================
    # Seeding
    # ==========================================================================

    def register_project(self, project: ProjectMetadata) -> None:
        self._projects[project.id] = project

    def register_codebase(self, repository_url: str, analysis: CodebaseAnalysis) -> None:
        self._codebases[repository_url] = analysis

    def set_team_size(self, team_id: str, size: int) -> None:
        self._team_sizes[team_id] = size

    def set_deployment_frequency(self, project_id: str, frequency: float) -> None:
        self._deployment_frequencies[project_id] = frequency

    # ==========================================================================
    # ProjectDataProvider
    # ==========================================================================

    async def get_project(self, project_id: str) -> ProjectMetadata:
        return self._lookup(self._projects, project_id, "get_project")

    async def analyze_codebase(self, repository_url: str) -> CodebaseAnalysis:
        return self._lookup(self._codebases, repository_url, "analyze_codebase")

    async def get_team_size(self, team_id: str) -> int:
        return self._lookup(self._team_sizes, team_id, "get_team_size")

    async def get_deployment_frequency(self, project_id: str) -> float:
        frequency: Optional[float] = self._deployment_frequencies.get(project_id)
        return frequency if frequency is not None else 0.0

    @staticmethod
    def _lookup(store: dict, key: str, operation: str):
        try:
            return store[key]
        except KeyError:
            logger.warning("project_data_missing", operation=operation, key=key)
            raise ProjectDataError(operation, f"no data registered for {key!r}") from None
