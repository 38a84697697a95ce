"""
Pipeline Service - Outer entry point for pipeline generation.

Wires the analyzer, catalog, strategy selector, optimizer, generator and
renderer together. Unexpected failures surface as a single
``PipelineServiceError`` naming the operation; unknown template and plan ids
propagate as their own not-found errors.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

import structlog

from pipeline_forge.core.config import Settings, get_settings
from pipeline_forge.core.exceptions import (
    ExecutionPlanNotFoundError,
    PipelineServiceError,
    TemplateNotFoundError,
)
from pipeline_forge.core.pipeline.generator import PipelineGenerator
from pipeline_forge.core.pipeline.optimizer import PipelineOptimizer
from pipeline_forge.core.pipeline.project_analyzer import ProjectAnalyzer
from pipeline_forge.core.pipeline.renderer import PipelineRenderer
from pipeline_forge.core.pipeline.strategy_selector import TestingStrategySelector
from pipeline_forge.core.pipeline.template_catalog import TemplateCatalog
from pipeline_forge.core.providers.base import ProjectDataProvider
from pipeline_forge.core.schemas import (
    GeneratedPipeline,
    OptimizationSuggestions,
    PipelineGenerationOutcome,
    PipelineGenerationRequest,
    PipelineTemplate,
    PipelineTemplateCreate,
    PipelineTemplateUpdate,
    PipelineValidationResult,
    ProjectCharacteristics,
    TestingStrategyRecommendation,
)

logger = structlog.get_logger(__name__)


@contextmanager
def _operation(name: str) -> Iterator[None]:
    try:
        yield
    except (TemplateNotFoundError, ExecutionPlanNotFoundError, PipelineServiceError):
        raise
    except Exception as exc:
        logger.error("pipeline_operation_failed", operation=name, error=str(exc))
        raise PipelineServiceError(name, exc) from exc


class PipelineService:
    """Facade over pipeline generation, optimization and templates."""

    def __init__(
        self,
        provider: ProjectDataProvider,
        catalog: Optional[TemplateCatalog] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.analyzer = ProjectAnalyzer(provider)
        self.catalog = catalog or TemplateCatalog()
        self.selector = TestingStrategySelector()
        self.optimizer = PipelineOptimizer(self.settings)
        self.generator = PipelineGenerator(
            self.analyzer, self.catalog, self.selector, self.optimizer, self.settings
        )
        self.renderer = PipelineRenderer()

    # ==========================================================================
    # Pipelines
    # ==========================================================================

    async def generate_pipeline(self, request: PipelineGenerationRequest) -> PipelineGenerationOutcome:
        """
        Generate, optimize and validate a pipeline.

        Blocking validation errors are returned in the outcome, not raised.
        """
        with _operation("generate pipeline"):
            pipeline = await self.generator.generate_pipeline(request)
            validation = self.generator.validate_pipeline(pipeline)
            if not validation.is_valid:
                logger.warning(
                    "pipeline_validation_failed",
                    pipeline_id=pipeline.id,
                    errors=[e.code for e in validation.errors],
                )
            return PipelineGenerationOutcome(pipeline=pipeline, validation=validation)

    def optimize_pipeline(
        self,
        pipeline: GeneratedPipeline,
        request: Optional[PipelineGenerationRequest] = None,
    ) -> GeneratedPipeline:
        with _operation("optimize pipeline"):
            return self.generator.optimize_pipeline(pipeline, request)

    def validate_pipeline(self, pipeline: GeneratedPipeline) -> PipelineValidationResult:
        with _operation("validate pipeline"):
            return self.generator.validate_pipeline(pipeline)

    def estimate_pipeline_duration(self, pipeline: GeneratedPipeline) -> int:
        with _operation("estimate pipeline duration"):
            return self.generator.estimate_duration(pipeline)

    def render_platform_config(self, pipeline: GeneratedPipeline, platform: str) -> str:
        with _operation("generate platform config"):
            return self.renderer.render(pipeline, platform)

    # ==========================================================================
    # Analysis
    # ==========================================================================

    async def analyze_project(self, project_id: str) -> ProjectCharacteristics:
        with _operation("analyze project"):
            return await self.analyzer.analyze_project(project_id)

    async def get_recommended_testing_strategy(self, project_id: str) -> TestingStrategyRecommendation:
        with _operation("get testing strategy recommendation"):
            characteristics = await self.analyzer.analyze_project(project_id)
            strategy = self.selector.select_strategy(characteristics)
            return TestingStrategyRecommendation(
                strategy=strategy,
                test_types=self.selector.get_recommended_test_types(characteristics),
                estimated_duration=self.selector.estimate_test_duration(strategy, characteristics),
                characteristics=characteristics,
            )

    def get_optimization_suggestions(self, pipeline: GeneratedPipeline) -> OptimizationSuggestions:
        with _operation("get optimization suggestions"):
            return OptimizationSuggestions(
                speed=self.optimizer.optimize_for_speed(pipeline),
                resources=self.optimizer.optimize_for_resources(pipeline),
                reliability=self.optimizer.optimize_for_reliability(pipeline),
            )

    # ==========================================================================
    # Templates
    # ==========================================================================

    async def get_templates(self) -> list[PipelineTemplate]:
        with _operation("get templates"):
            return await self.catalog.get_templates()

    async def find_matching_templates(self, characteristics: ProjectCharacteristics) -> list[PipelineTemplate]:
        with _operation("find matching templates"):
            return await self.catalog.find_matching_templates(characteristics)

    async def create_template(self, data: PipelineTemplateCreate) -> PipelineTemplate:
        with _operation("create template"):
            return await self.catalog.create_template(data)

    async def update_template(self, template_id: str, data: PipelineTemplateUpdate) -> PipelineTemplate:
        with _operation("update template"):
            return await self.catalog.update_template(template_id, data)

    async def delete_template(self, template_id: str) -> None:
        with _operation("delete template"):
            await self.catalog.delete_template(template_id)
