"""
Project data provider interface.
"""

from typing import Protocol, runtime_checkable

from pipeline_forge.core.schemas import CodebaseAnalysis, ProjectMetadata


@runtime_checkable
class ProjectDataProvider(Protocol):
    """Source of the raw signals a project profile is derived from."""

    async def get_project(self, project_id: str) -> ProjectMetadata:
        ...

    async def analyze_codebase(self, repository_url: str) -> CodebaseAnalysis:
        ...

    async def get_team_size(self, team_id: str) -> int:
        ...

    async def get_deployment_frequency(self, project_id: str) -> float:
        """Deployments per week."""
        ...
