"""
Project Analyzer - Turns raw project signals into a characteristics profile.

Fetches the project record, one codebase analysis per repository, team size
and deployment frequency from a ``ProjectDataProvider``, then aggregates
them into an immutable ``ProjectCharacteristics``.
"""

import asyncio
import re
from statistics import mean
from typing import Awaitable

import structlog

from pipeline_forge.core.providers.base import ProjectDataProvider
from pipeline_forge.core.schemas import (
    CodebaseAnalysis,
    CodeQualityMetrics,
    ComplexityMetrics,
    DependencyAnalysis,
    FrameworkAnalysis,
    LanguageAnalysis,
    Level,
    ProjectCharacteristics,
    ProjectMetadata,
)

logger = structlog.get_logger(__name__)


# ==========================================================================
# Pure helpers
# ==========================================================================

async def gather_or_cancel(*aws: Awaitable) -> list:
    """
    Run awaitables concurrently and return their results in order.

    The first failure propagates unchanged and the still-running siblings
    are cancelled.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def normalize_name(name: str) -> str:
    """Canonical lower-case name: ``"Express.js"`` becomes ``"express"``."""
    name = name.strip().lower()
    if name.endswith(".js") and len(name) > 3:
        name = name[:-3]
    return name


def _bucket(score: float) -> Level:
    if score >= 20:
        return Level.HIGH
    if score >= 10:
        return Level.MEDIUM
    return Level.LOW


def _version_key(version: str) -> tuple[int, ...]:
    parts = []
    for part in version.split("."):
        match = re.match(r"\d+", part.strip())
        parts.append(int(match.group()) if match else 0)
    return tuple(parts)


def compare_versions(a: str, b: str) -> int:
    """Numeric dotted comparison; returns -1, 0 or 1."""
    key_a, key_b = _version_key(a), _version_key(b)
    width = max(len(key_a), len(key_b))
    key_a += (0,) * (width - len(key_a))
    key_b += (0,) * (width - len(key_b))
    return (key_a > key_b) - (key_a < key_b)


def score_complexity(analyses: list[CodebaseAnalysis]) -> Level:
    """Weighted complexity over every repository of a project."""
    if not analyses:
        return Level.LOW

    score = 0.0

    languages = {normalize_name(lang.language) for a in analyses for lang in a.languages}
    frameworks = {normalize_name(fw.framework) for a in analyses for fw in a.frameworks}
    score += len(languages) * 2
    score += len(frameworks) * 1.5

    total_loc = sum(a.lines_of_code for a in analyses)
    if total_loc > 100_000:
        score += 10
    elif total_loc > 50_000:
        score += 5
    elif total_loc > 10_000:
        score += 2

    avg_cyclomatic = mean(a.code_quality.cyclomatic_complexity for a in analyses)
    if avg_cyclomatic > 15:
        score += 8
    elif avg_cyclomatic > 10:
        score += 4
    elif avg_cyclomatic > 5:
        score += 2

    total_dependencies = sum(len(a.dependencies) for a in analyses)
    if total_dependencies > 200:
        score += 6
    elif total_dependencies > 100:
        score += 3
    elif total_dependencies > 50:
        score += 1

    return _bucket(score)


def score_criticality(project: ProjectMetadata, team_size: int, deployment_frequency: float) -> Level:
    """Weighted business criticality of a project."""
    score = 0

    if deployment_frequency > 10:
        score += 8
    elif deployment_frequency > 2:
        score += 5
    elif deployment_frequency > 0.5:
        score += 2

    if team_size > 20:
        score += 6
    elif team_size > 10:
        score += 4
    elif team_size > 5:
        score += 2

    score += 3 * len(project.compliance_requirements)

    if project.production_users > 10_000:
        score += 10
    elif project.production_users > 1_000:
        score += 6
    elif project.production_users > 100:
        score += 3

    if project.revenue_impact == Level.HIGH:
        score += 8
    elif project.revenue_impact == Level.MEDIUM:
        score += 4

    return _bucket(score)


def aggregate_codebase_analyses(analyses: list[CodebaseAnalysis]) -> CodebaseAnalysis:
    """
    Merge per-repository analyses into one.

    Languages are summed per name, frameworks keep their highest-confidence
    sighting, dependencies keep their highest version, quality metrics are
    averaged (duplicated lines summed) and security issues concatenated.
    """
    if not analyses:
        raise ValueError("At least one codebase analysis is required")
    if len(analyses) == 1:
        return analyses[0]

    languages: dict[str, LanguageAnalysis] = {}
    for analysis in analyses:
        for lang in analysis.languages:
            key = normalize_name(lang.language)
            current = languages.get(key)
            if current is None:
                languages[key] = lang.model_copy()
            else:
                languages[key] = current.model_copy(update={
                    "lines_of_code": current.lines_of_code + lang.lines_of_code,
                    "files": current.files + lang.files,
                })
    total_loc = sum(lang.lines_of_code for lang in languages.values())
    merged_languages = [
        lang.model_copy(update={
            "percentage": round(lang.lines_of_code / total_loc * 100, 2) if total_loc else 0.0
        })
        for lang in languages.values()
    ]

    frameworks: dict[str, FrameworkAnalysis] = {}
    for analysis in analyses:
        for fw in analysis.frameworks:
            key = normalize_name(fw.framework)
            if key not in frameworks or fw.confidence > frameworks[key].confidence:
                frameworks[key] = fw

    dependencies: dict[str, DependencyAnalysis] = {}
    for analysis in analyses:
        for dep in analysis.dependencies:
            key = normalize_name(dep.name)
            if key not in dependencies or compare_versions(dep.version, dependencies[key].version) > 0:
                dependencies[key] = dep

    overall_rank = mean(a.complexity.overall.rank for a in analyses)
    if overall_rank >= 2.5:
        overall = Level.HIGH
    elif overall_rank >= 1.5:
        overall = Level.MEDIUM
    else:
        overall = Level.LOW

    return CodebaseAnalysis(
        languages=merged_languages,
        frameworks=list(frameworks.values()),
        dependencies=list(dependencies.values()),
        test_coverage=mean(a.test_coverage for a in analyses),
        code_quality=CodeQualityMetrics(
            maintainability_index=mean(a.code_quality.maintainability_index for a in analyses),
            cyclomatic_complexity=mean(a.code_quality.cyclomatic_complexity for a in analyses),
            technical_debt=mean(a.code_quality.technical_debt for a in analyses),
            duplicated_lines=sum(a.code_quality.duplicated_lines for a in analyses),
        ),
        security_issues=[issue for a in analyses for issue in a.security_issues],
        complexity=ComplexityMetrics(
            overall=overall,
            cognitive=mean(a.complexity.cognitive for a in analyses),
            cyclomatic=mean(a.complexity.cyclomatic for a in analyses),
            halstead=mean(a.complexity.halstead for a in analyses),
        ),
    )


# ==========================================================================
# Analyzer
# ==========================================================================

class ProjectAnalyzer:
    """
    Builds ``ProjectCharacteristics`` for a project id.

    Suspends only on provider calls; everything after the fetch is pure.
    """

    def __init__(self, provider: ProjectDataProvider):
        self.provider = provider

    async def analyze_project(self, project_id: str) -> ProjectCharacteristics:
        """Fetch everything once and derive the full profile."""
        project = await self.provider.get_project(project_id)
        analyses, team_size, deployment_frequency = await gather_or_cancel(
            self._fetch_codebases(project),
            self.provider.get_team_size(project.team_id),
            self.provider.get_deployment_frequency(project_id),
        )

        aggregated = aggregate_codebase_analyses(analyses)
        languages = sorted(aggregated.languages, key=lambda lang: lang.lines_of_code, reverse=True)

        characteristics = ProjectCharacteristics(
            project_id=project_id,
            languages=_unique(normalize_name(lang.language) for lang in languages),
            frameworks=_unique(normalize_name(fw.framework) for fw in aggregated.frameworks),
            dependencies=_unique(normalize_name(dep.name) for dep in aggregated.dependencies),
            repository_size=sum(a.lines_of_code for a in analyses),
            team_size=team_size,
            deployment_frequency=deployment_frequency,
            test_coverage=min(100.0, max(0.0, aggregated.test_coverage)),
            complexity=score_complexity(analyses),
            criticality=score_criticality(project, team_size, deployment_frequency),
            compliance_requirements=list(project.compliance_requirements),
        )

        logger.info(
            "project_analyzed",
            project_id=project_id,
            repositories=len(analyses),
            complexity=characteristics.complexity.value,
            criticality=characteristics.criticality.value,
        )
        return characteristics

    async def get_project_complexity(self, project_id: str) -> Level:
        project = await self.provider.get_project(project_id)
        return score_complexity(await self._fetch_codebases(project))

    async def get_project_criticality(self, project_id: str) -> Level:
        project = await self.provider.get_project(project_id)
        team_size, deployment_frequency = await gather_or_cancel(
            self.provider.get_team_size(project.team_id),
            self.provider.get_deployment_frequency(project_id),
        )
        return score_criticality(project, team_size, deployment_frequency)

    async def _fetch_codebases(self, project: ProjectMetadata) -> list[CodebaseAnalysis]:
        if not project.repositories:
            raise ValueError(f"Project {project.id} has no repositories to analyze")
        return list(await gather_or_cancel(
            *(self.provider.analyze_codebase(repo.url) for repo in project.repositories)
        ))


def _unique(names) -> list[str]:
    return list(dict.fromkeys(names))
