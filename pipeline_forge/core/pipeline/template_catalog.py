"""
Template Catalog - Pipeline templates and their matching rules.

Templates live in a ``TemplateStore`` injected into the catalog. The
default store is in-memory and serialises writes behind an asyncio lock;
reads return copies so callers never alias stored state.
"""

import asyncio
from typing import Iterable, Optional, Protocol, runtime_checkable

import structlog

from pipeline_forge.core.exceptions import TemplateNotFoundError
from pipeline_forge.core.pipeline.project_analyzer import normalize_name
from pipeline_forge.core.schemas import (
    BackoffStrategy,
    ConditionType,
    Level,
    PipelineCondition,
    PipelineStageConfig,
    PipelineTemplate,
    PipelineTemplateCreate,
    PipelineTemplateUpdate,
    PipelineType,
    ProjectCharacteristics,
    RetryConfig,
    StageKind,
    TemplateCharacteristics,
    TemplateMetadata,
)

logger = structlog.get_logger(__name__)


# ==========================================================================
# Store
# ==========================================================================

@runtime_checkable
class TemplateStore(Protocol):
    """Persistence seam for templates; reads hand out copies."""

    async def list_all(self) -> list[PipelineTemplate]:
        ...

    async def get(self, template_id: str) -> Optional[PipelineTemplate]:
        ...

    async def add(self, template: PipelineTemplate) -> PipelineTemplate:
        ...

    async def update(self, template_id: str, changes: dict) -> PipelineTemplate:
        """Raises ``TemplateNotFoundError`` for an unknown id."""
        ...

    async def delete(self, template_id: str) -> None:
        """Raises ``TemplateNotFoundError`` for an unknown id."""
        ...


class InMemoryTemplateStore:
    """Process-wide template store with single-writer discipline."""

    def __init__(self, templates: Optional[Iterable[PipelineTemplate]] = None):
        self._templates: dict[str, PipelineTemplate] = {}
        self._lock = asyncio.Lock()
        for template in templates or []:
            self._templates[template.id] = template

    async def list_all(self) -> list[PipelineTemplate]:
        return [t.model_copy(deep=True) for t in self._templates.values()]

    async def get(self, template_id: str) -> Optional[PipelineTemplate]:
        template = self._templates.get(template_id)
        return template.model_copy(deep=True) if template else None

    async def add(self, template: PipelineTemplate) -> PipelineTemplate:
        async with self._lock:
            self._templates[template.id] = template.model_copy(deep=True)
        return template

    async def update(self, template_id: str, changes: dict) -> PipelineTemplate:
        async with self._lock:
            existing = self._templates.get(template_id)
            if existing is None:
                raise TemplateNotFoundError(template_id)
            merged = existing.model_dump()
            merged.update(changes)
            updated = PipelineTemplate.model_validate(merged)
            self._templates[template_id] = updated
        return updated.model_copy(deep=True)

    async def delete(self, template_id: str) -> None:
        async with self._lock:
            if template_id not in self._templates:
                raise TemplateNotFoundError(template_id)
            del self._templates[template_id]


# ==========================================================================
# Matching
# ==========================================================================

def _names(values: Iterable[str]) -> set[str]:
    return {normalize_name(v) for v in values}


def is_template_compatible(template: PipelineTemplate, characteristics: ProjectCharacteristics) -> bool:
    """
    A template serves a project when it shares a language, shares a
    framework (if it declares any) and was built for equal or higher
    complexity.
    """
    applicable = template.applicable_characteristics
    project_languages = _names(characteristics.languages)
    if not _names(applicable.languages) & project_languages:
        return False

    if applicable.frameworks and not _names(applicable.frameworks) & _names(characteristics.frameworks):
        return False

    return applicable.complexity.rank >= characteristics.complexity.rank


def calculate_compatibility_score(template: PipelineTemplate, characteristics: ProjectCharacteristics) -> float:
    applicable = template.applicable_characteristics
    score = 0.0

    score += len(_names(applicable.languages) & _names(characteristics.languages)) * 10
    score += len(_names(applicable.frameworks) & _names(characteristics.frameworks)) * 5

    if applicable.complexity == characteristics.complexity:
        score += 15
    if applicable.criticality is not None and applicable.criticality == characteristics.criticality:
        score += 10

    score += template.metadata.popularity * 0.1
    return score


# ==========================================================================
# Catalog
# ==========================================================================

class TemplateCatalog:
    """CRUD and matching over pipeline templates."""

    def __init__(self, store: Optional[TemplateStore] = None):
        self.store = store if store is not None else InMemoryTemplateStore(default_templates())

    async def get_templates(self) -> list[PipelineTemplate]:
        return await self.store.list_all()

    async def get_template(self, template_id: str) -> Optional[PipelineTemplate]:
        return await self.store.get(template_id)

    async def create_template(self, data: PipelineTemplateCreate) -> PipelineTemplate:
        template = PipelineTemplate(**data.model_dump())
        await self.store.add(template)
        logger.info("template_created", template_id=template.id, name=template.name)
        return template

    async def update_template(self, template_id: str, data: PipelineTemplateUpdate) -> PipelineTemplate:
        changes = data.model_dump(exclude_unset=True)
        template = await self.store.update(template_id, changes)
        logger.info("template_updated", template_id=template_id, fields=sorted(changes))
        return template

    async def delete_template(self, template_id: str) -> None:
        await self.store.delete(template_id)
        logger.info("template_deleted", template_id=template_id)

    async def find_matching_templates(self, characteristics: ProjectCharacteristics) -> list[PipelineTemplate]:
        """
        Compatible templates, best first.

        Equal scores fall back to popularity (desc), then name, then id, so
        the order never depends on insertion order.
        """
        compatible = [
            t for t in await self.store.list_all()
            if is_template_compatible(t, characteristics)
        ]
        return sorted(
            compatible,
            key=lambda t: (
                -calculate_compatibility_score(t, characteristics),
                -t.metadata.popularity,
                t.name,
                t.id,
            ),
        )


# ==========================================================================
# Seed Templates
# ==========================================================================

def _stage(
    stage: StageKind,
    name: str,
    commands: list[str],
    timeout: int,
    *,
    environment: Optional[dict[str, str]] = None,
    attempts: int = 1,
    backoff: BackoffStrategy = BackoffStrategy.LINEAR,
    parallelizable: bool = False,
    required: bool = True,
    branch: Optional[str] = None,
) -> PipelineStageConfig:
    conditions = []
    if branch:
        conditions.append(PipelineCondition(type=ConditionType.BRANCH, condition="equals", value=branch))
    return PipelineStageConfig(
        stage=stage,
        name=name,
        commands=commands,
        environment=environment or {},
        timeout=timeout,
        retry_config=RetryConfig(max_attempts=attempts, backoff_strategy=backoff),
        conditions=conditions,
        parallelizable=parallelizable,
        required=required,
    )


def default_templates() -> list[PipelineTemplate]:
    """Seed catalog: one template each for web, Python and container services."""
    node = PipelineTemplate(
        name="Node.js CI/CD Pipeline",
        description="Standard CI/CD pipeline for Node.js/TypeScript projects",
        type=PipelineType.FULL_CICD,
        stages=[
            _stage(StageKind.BUILD, "Build Application", ["npm ci", "npm run build"], 600,
                   environment={"NODE_ENV": "production"}, attempts=2),
            _stage(StageKind.UNIT_TEST, "Unit Tests", ["npm run test:unit"], 300,
                   environment={"NODE_ENV": "test"}, attempts=2, parallelizable=True),
            _stage(StageKind.INTEGRATION_TEST, "Integration Tests", ["npm run test:integration"], 600,
                   environment={"NODE_ENV": "test"}, attempts=2, backoff=BackoffStrategy.EXPONENTIAL),
            _stage(StageKind.SECURITY_SCAN, "Security Audit",
                   ["npm audit --audit-level=moderate", "npx snyk test"], 180, parallelizable=True),
            _stage(StageKind.QUALITY_GATE, "Quality Gate", ["npm run lint", "npm run test:coverage"], 300,
                   parallelizable=True),
            _stage(StageKind.DEPLOY_STAGING, "Deploy to Staging", ["npm run deploy:staging"], 900,
                   environment={"ENVIRONMENT": "staging"}, attempts=2,
                   backoff=BackoffStrategy.EXPONENTIAL, branch="develop"),
            _stage(StageKind.E2E_TEST, "End-to-End Tests", ["npm run test:e2e"], 1200,
                   environment={"TEST_ENV": "staging"}, required=False),
            _stage(StageKind.DEPLOY_PRODUCTION, "Deploy to Production", ["npm run deploy:production"], 1200,
                   environment={"ENVIRONMENT": "production"}, attempts=3,
                   backoff=BackoffStrategy.EXPONENTIAL, branch="main"),
        ],
        applicable_characteristics=TemplateCharacteristics(
            languages=["javascript", "typescript"],
            frameworks=["express", "nestjs", "react", "vue", "angular"],
            dependencies=["package.json"],
            complexity=Level.MEDIUM,
            criticality=Level.MEDIUM,
        ),
        metadata=TemplateMetadata(category="web-application", popularity=95, maintainer="pipeline-forge"),
    )

    python = PipelineTemplate(
        name="Python CI/CD Pipeline",
        description="Standard CI/CD pipeline for Python projects",
        type=PipelineType.FULL_CICD,
        stages=[
            _stage(StageKind.BUILD, "Setup Environment",
                   ["python -m pip install --upgrade pip", "pip install -r requirements.txt"], 600,
                   environment={"PYTHON_VERSION": "3.12"}, attempts=2),
            _stage(StageKind.UNIT_TEST, "Unit Tests", ["pytest tests/unit/ -v --cov=src"], 300,
                   environment={"PYTHONPATH": "src"}, attempts=2, parallelizable=True),
            _stage(StageKind.SECURITY_SCAN, "Security Scan", ["safety check", "bandit -r src/"], 180,
                   parallelizable=True),
            _stage(StageKind.QUALITY_GATE, "Code Quality", ["flake8 src/", "pylint src/", "mypy src/"], 300,
                   parallelizable=True),
        ],
        applicable_characteristics=TemplateCharacteristics(
            languages=["python"],
            frameworks=["django", "flask", "fastapi"],
            dependencies=["requirements.txt", "pyproject.toml"],
            complexity=Level.MEDIUM,
            criticality=Level.MEDIUM,
        ),
        metadata=TemplateMetadata(category="python-application", popularity=85, maintainer="pipeline-forge"),
    )

    microservice = PipelineTemplate(
        name="Microservice Pipeline",
        description="Optimized pipeline for microservice architectures",
        type=PipelineType.FULL_CICD,
        stages=[
            _stage(StageKind.BUILD, "Build Service", ["docker build -t service:latest ."], 900, attempts=2),
            _stage(StageKind.UNIT_TEST, "Unit Tests", ["docker run --rm service:latest npm test"], 300,
                   attempts=2, parallelizable=True),
            _stage(StageKind.SECURITY_SCAN, "Container Security Scan",
                   ["trivy image service:latest", "docker scout cves service:latest"], 300,
                   parallelizable=True),
            _stage(StageKind.DEPLOY_STAGING, "Deploy to Staging",
                   ["kubectl apply -f k8s/staging/", "kubectl rollout status deployment/service-staging"], 600,
                   environment={"KUBECONFIG": "/staging/kubeconfig"}, attempts=2,
                   backoff=BackoffStrategy.EXPONENTIAL),
        ],
        applicable_characteristics=TemplateCharacteristics(
            languages=["javascript", "typescript", "python", "java"],
            frameworks=["express", "spring-boot", "fastapi"],
            dependencies=["Dockerfile", "docker-compose.yml"],
            complexity=Level.HIGH,
            criticality=Level.HIGH,
        ),
        metadata=TemplateMetadata(category="microservice", popularity=75, maintainer="pipeline-forge"),
    )

    return [node, python, microservice]
