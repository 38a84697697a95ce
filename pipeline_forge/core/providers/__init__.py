"""
Project data collaborators.

Adapters that deliver project records, codebase analyses, team size and
deployment frequency to the Project Analyzer.
"""

from pipeline_forge.core.providers.base import ProjectDataProvider
from pipeline_forge.core.providers.http_client import HttpProjectDataProvider
from pipeline_forge.core.providers.memory import InMemoryProjectDataProvider, sample_codebase_analysis

__all__ = [
    "HttpProjectDataProvider",
    "InMemoryProjectDataProvider",
    "ProjectDataProvider",
    "sample_codebase_analysis",
]
