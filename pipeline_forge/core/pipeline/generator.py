"""
Pipeline Generator - Builds an ordered, executable stage list.

characteristics -> matching templates -> testing strategy -> test stages
inserted at their anchors -> requirement stages -> canonical order ->
optimizer.
"""

from typing import Optional

import structlog

from pipeline_forge.core.config import Settings, get_settings
from pipeline_forge.core.pipeline.optimizer import WORKERS_BY_PARALLELIZATION_LEVEL, PipelineOptimizer
from pipeline_forge.core.pipeline.project_analyzer import ProjectAnalyzer
from pipeline_forge.core.pipeline.strategy_selector import TestingStrategySelector
from pipeline_forge.core.pipeline.template_catalog import TemplateCatalog
from pipeline_forge.core.schemas import (
    BackoffStrategy,
    DeploymentStrategy,
    GeneratedPipeline,
    Level,
    OptimizationType,
    PipelineGenerationRequest,
    PipelineOptimization,
    PipelineRequirements,
    PipelineStageConfig,
    PipelineTemplate,
    PipelineType,
    PipelineValidationResult,
    ProjectCharacteristics,
    RetryConfig,
    StageKind,
    TestingStrategy,
    ValidationIssue,
    ValidationSuggestion,
    sort_stages,
    stage_rank,
)

logger = structlog.get_logger(__name__)


# ==========================================================================
# Command Tables
# ==========================================================================

BUILD_COMMANDS = {
    "javascript": "npm run build",
    "typescript": "npm run build",
    "python": "python -m build",
    "java": "mvn compile",
    "csharp": "dotnet build",
}

TEST_COMMANDS = {
    "javascript": "npm test",
    "typescript": "npm test",
    "python": "pytest",
    "java": "mvn test",
    "csharp": "dotnet test",
}

STAGE_TEST_COMMANDS: dict[StageKind, dict[str, str]] = {
    StageKind.UNIT_TEST: {
        "javascript": "npm run test:unit",
        "typescript": "npm run test:unit",
        "python": "pytest tests/unit/",
        "java": "mvn test",
        "csharp": "dotnet test",
    },
    StageKind.INTEGRATION_TEST: {
        "javascript": "npm run test:integration",
        "typescript": "npm run test:integration",
        "python": "pytest tests/integration/",
        "java": "mvn integration-test",
        "csharp": "dotnet test --filter Category=Integration",
    },
    StageKind.E2E_TEST: {
        "javascript": "npm run test:e2e",
        "typescript": "npm run test:e2e",
        "python": "pytest tests/e2e/",
        "java": "mvn verify",
        "csharp": "dotnet test --filter Category=E2E",
    },
}

SECURITY_COMMANDS = {
    "javascript": ["npm audit --audit-level=moderate"],
    "typescript": ["npm audit --audit-level=moderate"],
    "python": ["pip-audit", "bandit -r ."],
    "java": ["mvn org.owasp:dependency-check-maven:check"],
    "csharp": ["dotnet list package --vulnerable"],
}

LINT_COMMANDS = {
    "javascript": "npm run lint",
    "typescript": "npm run lint",
    "python": "flake8 .",
    "java": "mvn checkstyle:check",
    "csharp": "dotnet format --verify-no-changes",
}

LOCK_FILE_PACKAGE_MANAGERS = [
    ("package-lock.json", "npm"),
    ("yarn.lock", "yarn"),
    ("pnpm-lock.yaml", "pnpm"),
]

STRATEGY_TEST_STAGES: dict[TestingStrategy, list[StageKind]] = {
    TestingStrategy.UNIT_ONLY: [StageKind.UNIT_TEST],
    TestingStrategy.INTEGRATION_FOCUSED: [StageKind.UNIT_TEST, StageKind.INTEGRATION_TEST],
    TestingStrategy.BALANCED: [StageKind.UNIT_TEST, StageKind.INTEGRATION_TEST],
    TestingStrategy.E2E_HEAVY: [StageKind.UNIT_TEST, StageKind.INTEGRATION_TEST, StageKind.E2E_TEST],
    TestingStrategy.PERFORMANCE_FOCUSED: [StageKind.UNIT_TEST, StageKind.INTEGRATION_TEST],
}


def primary_language(characteristics: ProjectCharacteristics) -> str:
    return characteristics.languages[0].lower() if characteristics.languages else "javascript"


def package_manager(characteristics: ProjectCharacteristics) -> str:
    dependencies = {d.lower() for d in characteristics.dependencies}
    for lock_file, manager in LOCK_FILE_PACKAGE_MANAGERS:
        if lock_file in dependencies:
            return manager
    return "npm"


def group_parallel_stages(stages: list[PipelineStageConfig]) -> list[list[PipelineStageConfig]]:
    """Maximal contiguous runs of parallelizable stages; others stand alone."""
    groups: list[list[PipelineStageConfig]] = []
    current: list[PipelineStageConfig] = []
    for stage in stages:
        if stage.parallelizable:
            current.append(stage)
            continue
        if current:
            groups.append(current)
            current = []
        groups.append([stage])
    if current:
        groups.append(current)
    return groups


class PipelineGenerator:
    """
    Produces optimized ``GeneratedPipeline`` values.

    Blocking validation problems never raise here; they are reported by
    ``validate_pipeline``.
    """

    def __init__(
        self,
        analyzer: ProjectAnalyzer,
        catalog: TemplateCatalog,
        selector: Optional[TestingStrategySelector] = None,
        optimizer: Optional[PipelineOptimizer] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.analyzer = analyzer
        self.catalog = catalog
        self.selector = selector or TestingStrategySelector()
        self.optimizer = optimizer or PipelineOptimizer(self.settings)

    # ==========================================================================
    # Generation
    # ==========================================================================

    async def generate_pipeline(self, request: PipelineGenerationRequest) -> GeneratedPipeline:
        characteristics = await self.analyzer.analyze_project(request.project_id)
        return await self.generate_for_characteristics(request, characteristics)

    async def generate_for_characteristics(
        self,
        request: PipelineGenerationRequest,
        characteristics: ProjectCharacteristics,
    ) -> GeneratedPipeline:
        matches = await self.catalog.find_matching_templates(characteristics)
        if matches:
            template = self.select_best_template(matches, request)
        else:
            template = self.default_template(request.type)
            logger.info("template_fallback", project_id=request.project_id, pipeline_type=request.type.value)

        stages = self.customize_stages(template.stages, characteristics)

        strategy = request.preferences.testing_strategy or self.selector.select_strategy(characteristics)
        stages = self.insert_test_stages(stages, self.build_test_stages(strategy, characteristics))
        stages = self.apply_requirements(stages, request.requirements, characteristics)
        stages = sort_stages(stages)

        pipeline = GeneratedPipeline(
            project_id=request.project_id,
            name=f"Generated {template.name}",
            type=request.type,
            stages=stages,
            testing_strategy=strategy,
            deployment_strategy=request.preferences.deployment_strategy or DeploymentStrategy.ROLLING,
        )
        pipeline.estimated_duration = self.estimate_duration(pipeline)

        optimized = self.optimize_pipeline(pipeline, request)
        logger.info(
            "pipeline_generated",
            pipeline_id=optimized.id,
            project_id=request.project_id,
            template=template.name,
            strategy=strategy.value,
            stages=[s.stage.value for s in optimized.stages],
            estimated_duration=optimized.estimated_duration,
        )
        return optimized

    def optimize_pipeline(
        self,
        pipeline: GeneratedPipeline,
        request: Optional[PipelineGenerationRequest] = None,
    ) -> GeneratedPipeline:
        """Collect speed, resource and reliability proposals and apply them."""
        preferences = request.preferences if request else None
        max_workers = WORKERS_BY_PARALLELIZATION_LEVEL[preferences.parallelization_level] if preferences else None

        optimizations: list[PipelineOptimization] = self.optimizer.optimize_for_speed(pipeline, max_workers)
        if preferences is None or preferences.resource_optimization:
            optimizations += self.optimizer.optimize_for_resources(pipeline)
        optimizations += self.optimizer.optimize_for_reliability(pipeline)

        if preferences is not None and not preferences.caching_enabled:
            optimizations = [o for o in optimizations if o.type != OptimizationType.CACHING]

        return self.optimizer.apply_optimizations(pipeline, optimizations)

    # ==========================================================================
    # Templates
    # ==========================================================================

    def select_best_template(
        self,
        templates: list[PipelineTemplate],
        request: PipelineGenerationRequest,
    ) -> PipelineTemplate:
        """Re-score catalog matches against the request; ties keep catalog order."""
        if not templates:
            return self.default_template(request.type)
        best = templates[0]
        best_score = self.score_template(best, request)
        for template in templates[1:]:
            score = self.score_template(template, request)
            if score > best_score:
                best, best_score = template, score
        return best

    @staticmethod
    def score_template(template: PipelineTemplate, request: PipelineGenerationRequest) -> int:
        score = 0
        if template.type == request.type:
            score += 10
        if request.requirements.security_scan_required and any(
            s.stage == StageKind.SECURITY_SCAN for s in template.stages
        ):
            score += 5
        if sum(s.timeout for s in template.stages) <= request.requirements.max_duration:
            score += 3
        return score

    def default_template(self, pipeline_type: PipelineType) -> PipelineTemplate:
        stages = [
            PipelineStageConfig(
                stage=StageKind.BUILD,
                name="Build",
                commands=["{{PACKAGE_MANAGER}} install", "{{BUILD_COMMAND}}"],
                timeout=600,
                retry_config=RetryConfig(max_attempts=2),
            )
        ]
        if pipeline_type == PipelineType.FULL_CICD:
            stages += [
                self._security_stage(None),
                PipelineStageConfig(
                    stage=StageKind.DEPLOY_STAGING,
                    name="Deploy to Staging",
                    commands=["./deploy.sh staging"],
                    environment={"ENVIRONMENT": "staging"},
                    timeout=900,
                    retry_config=RetryConfig(max_attempts=2, backoff_strategy=BackoffStrategy.EXPONENTIAL),
                ),
            ]
        return PipelineTemplate(name=f"Default {pipeline_type.value} Pipeline", type=pipeline_type, stages=stages)

    def customize_stages(
        self,
        stages: list[PipelineStageConfig],
        characteristics: ProjectCharacteristics,
    ) -> list[PipelineStageConfig]:
        """Fill command placeholders and add CI environment to every stage."""
        language = primary_language(characteristics)
        replacements = {
            "{{BUILD_COMMAND}}": BUILD_COMMANDS.get(language, "make build"),
            "{{TEST_COMMAND}}": TEST_COMMANDS.get(language, "make test"),
            "{{PACKAGE_MANAGER}}": package_manager(characteristics),
        }

        customized = []
        for stage in stages:
            commands = []
            for command in stage.commands:
                for placeholder, value in replacements.items():
                    command = command.replace(placeholder, value)
                commands.append(command)
            customized.append(stage.model_copy(update={
                "commands": commands,
                "environment": {
                    **stage.environment,
                    "CI": "true",
                    "PROJECT_COMPLEXITY": characteristics.complexity.value,
                },
            }, deep=True))
        return customized

    # ==========================================================================
    # Test Stages
    # ==========================================================================

    def build_test_stages(
        self,
        strategy: TestingStrategy,
        characteristics: ProjectCharacteristics,
    ) -> list[PipelineStageConfig]:
        language = primary_language(characteristics)
        stages = []
        for kind in STRATEGY_TEST_STAGES[strategy]:
            commands = STAGE_TEST_COMMANDS[kind]
            command = commands.get(language, commands["javascript"])
            if kind == StageKind.UNIT_TEST:
                stages.append(PipelineStageConfig(
                    stage=kind, name="Unit Tests", commands=[command], timeout=300,
                    retry_config=RetryConfig(max_attempts=2), parallelizable=True,
                ))
            elif kind == StageKind.INTEGRATION_TEST:
                stages.append(PipelineStageConfig(
                    stage=kind, name="Integration Tests", commands=[command], timeout=600,
                    retry_config=RetryConfig(max_attempts=2, backoff_strategy=BackoffStrategy.EXPONENTIAL),
                ))
            else:
                stages.append(PipelineStageConfig(
                    stage=kind, name="End-to-End Tests", commands=[command], timeout=1200,
                    retry_config=RetryConfig(max_attempts=1), required=False,
                ))
        return stages

    def insert_test_stages(
        self,
        stages: list[PipelineStageConfig],
        test_stages: list[PipelineStageConfig],
    ) -> list[PipelineStageConfig]:
        """
        Insert unit after build, integration after unit and e2e after
        integration (or unit). A kind the template already has is kept as is.
        """
        anchors = {
            StageKind.UNIT_TEST: [StageKind.BUILD],
            StageKind.INTEGRATION_TEST: [StageKind.UNIT_TEST],
            StageKind.E2E_TEST: [StageKind.INTEGRATION_TEST, StageKind.UNIT_TEST],
        }
        result = list(stages)
        for test_stage in test_stages:
            if any(s.stage == test_stage.stage for s in result):
                continue
            position = len(result)
            for anchor in anchors[test_stage.stage]:
                index = next((i for i, s in enumerate(result) if s.stage == anchor), None)
                if index is not None:
                    position = index + 1
                    break
            result.insert(position, test_stage)
        return result

    # ==========================================================================
    # Requirements
    # ==========================================================================

    def apply_requirements(
        self,
        stages: list[PipelineStageConfig],
        requirements: PipelineRequirements,
        characteristics: Optional[ProjectCharacteristics] = None,
    ) -> list[PipelineStageConfig]:
        result = list(stages)
        kinds = {s.stage for s in result}

        needs_security = requirements.security_scan_required or bool(requirements.compliance_checks)
        if needs_security and StageKind.SECURITY_SCAN not in kinds:
            result.append(self._security_stage(characteristics))

        if requirements.compliance_checks:
            checks = ",".join(requirements.compliance_checks)
            result = [
                s.model_copy(update={"environment": {**s.environment, "COMPLIANCE_CHECKS": checks}})
                if s.stage == StageKind.SECURITY_SCAN else s
                for s in result
            ]

        if requirements.quality_gates:
            if StageKind.QUALITY_GATE not in kinds:
                language = primary_language(characteristics) if characteristics else "javascript"
                result.append(PipelineStageConfig(
                    stage=StageKind.QUALITY_GATE,
                    name="Quality Gate",
                    commands=[LINT_COMMANDS.get(language, "make lint")],
                    timeout=300,
                    parallelizable=True,
                    required=any(g.blocking for g in requirements.quality_gates),
                ))
            gate_env = {
                f"QUALITY_GATE_{gate.metric.upper()}": f"{gate.operator}:{gate.threshold:g}"
                for gate in requirements.quality_gates
            }
            result = [
                s.model_copy(update={"environment": {**s.environment, **gate_env}})
                if s.stage == StageKind.QUALITY_GATE else s
                for s in result
            ]

        if requirements.environment_targets:
            targets = ",".join(requirements.environment_targets)
            result = [
                s.model_copy(update={"environment": {**s.environment, "DEPLOY_TARGETS": targets}})
                if s.stage in (StageKind.DEPLOY_STAGING, StageKind.DEPLOY_PRODUCTION) else s
                for s in result
            ]

        return result

    def _security_stage(self, characteristics: Optional[ProjectCharacteristics]) -> PipelineStageConfig:
        language = primary_language(characteristics) if characteristics else "javascript"
        return PipelineStageConfig(
            stage=StageKind.SECURITY_SCAN,
            name="Security Scan",
            commands=list(SECURITY_COMMANDS.get(language, ["trivy fs ."])),
            timeout=300,
            parallelizable=True,
        )

    # ==========================================================================
    # Validation & Estimation
    # ==========================================================================

    def validate_pipeline(self, pipeline: GeneratedPipeline) -> PipelineValidationResult:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []
        suggestions: list[ValidationSuggestion] = []

        kinds = [s.stage for s in pipeline.stages]
        for current, following in zip(kinds, kinds[1:]):
            if stage_rank(current) > stage_rank(following):
                errors.append(ValidationIssue(
                    stage=following.value,
                    field="order",
                    message=f"Stage {following.value} should come before {current.value}",
                    code="INVALID_STAGE_ORDER",
                ))

        total_timeout = sum(s.timeout for s in pipeline.stages)
        if total_timeout > self.settings.PIPELINE_DURATION_WARNING_SECONDS:
            warnings.append(ValidationIssue(
                stage="pipeline",
                field="duration",
                message=(
                    f"Pipeline duration of {total_timeout}s exceeds "
                    f"{self.settings.PIPELINE_DURATION_WARNING_SECONDS}s, consider optimization"
                ),
                code="LONG_PIPELINE_DURATION",
            ))

        if StageKind.SECURITY_SCAN not in kinds:
            warnings.append(ValidationIssue(
                stage="pipeline",
                field="security",
                message="No security scan stage found, consider adding vulnerability scanning",
                code="MISSING_SECURITY_SCAN",
            ))

        parallelizable = [s for s in pipeline.stages if s.parallelizable]
        if len(parallelizable) > 1:
            suggestions.append(ValidationSuggestion(
                stage="pipeline",
                type="optimization",
                message=f"{len(parallelizable)} stages can be run in parallel to reduce duration",
                impact=Level.HIGH,
            ))

        return PipelineValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            suggestions=suggestions,
        )

    def estimate_duration(self, pipeline: GeneratedPipeline) -> int:
        """Parallel groups count once at their longest stage, plus a buffer."""
        total = sum(max(s.timeout for s in group) for group in group_parallel_stages(pipeline.stages))
        estimate = round(total * self.settings.PIPELINE_DURATION_BUFFER)
        return max(self.settings.PIPELINE_MIN_DURATION_SECONDS, estimate)


__all__ = [
    "PipelineGenerator",
    "group_parallel_stages",
    "package_manager",
    "primary_language",
]
