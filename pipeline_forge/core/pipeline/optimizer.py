"""
Pipeline Optimizer - Speed, resource and reliability rewrites.

Proposal generators inspect a pipeline and return ``PipelineOptimization``
values; ``apply_optimizations`` folds them into a new pipeline. Neither
step mutates the pipeline it is given.
"""

import re
from typing import Callable, Optional

import structlog

from pipeline_forge.core.config import Settings, get_settings
from pipeline_forge.core.schemas import (
    DEPLOY_STAGES,
    TEST_STAGES,
    ArtifactCachePayload,
    BackoffStrategy,
    ConditionType,
    ContainerBuildPayload,
    DependencyCachePayload,
    DeploymentSafetyPayload,
    DeploymentStrategy,
    GeneratedPipeline,
    HealthMonitoringPayload,
    Level,
    OptimizationType,
    ParallelizeStagesPayload,
    PipelineCondition,
    PipelineOptimization,
    PipelineStageConfig,
    RetryConfig,
    RetryPolicyPayload,
    RetryStrategy,
    SkipCondition,
    StageKind,
    StageResources,
    StageResourcesPayload,
    StageSkipPayload,
    TestParallelismPayload,
    TestReliabilityPayload,
    sort_stages,
)

logger = structlog.get_logger(__name__)


STAGE_RESOURCES: dict[StageKind, StageResources] = {
    StageKind.BUILD: StageResources(cpu="2", memory="4Gi"),
    StageKind.UNIT_TEST: StageResources(cpu="1", memory="2Gi"),
    StageKind.INTEGRATION_TEST: StageResources(cpu="2", memory="4Gi"),
    StageKind.E2E_TEST: StageResources(cpu="4", memory="8Gi"),
    StageKind.SECURITY_SCAN: StageResources(cpu="1", memory="2Gi"),
    StageKind.DEPLOY_STAGING: StageResources(cpu="1", memory="1Gi"),
    StageKind.DEPLOY_PRODUCTION: StageResources(cpu="1", memory="1Gi"),
}
DEFAULT_STAGE_RESOURCES = StageResources(cpu="1", memory="2Gi")

SKIP_CONDITIONS: dict[StageKind, str] = {
    StageKind.UNIT_TEST: "no_test_changes",
    StageKind.SECURITY_SCAN: "no_dependency_changes",
    StageKind.BUILD: "no_source_changes",
}

WORKERS_BY_PARALLELIZATION_LEVEL = {Level.LOW: 2, Level.MEDIUM: 4, Level.HIGH: 8}

CACHE_RESTORE_COMMAND = 'echo "Restoring cache..."'
CACHE_SAVE_COMMAND = 'echo "Saving cache..."'


def _mentions_install_or_build(stage: PipelineStageConfig) -> bool:
    return any("install" in cmd or "build" in cmd for cmd in stage.commands)


def _with_env(stage: PipelineStageConfig, **env: str) -> PipelineStageConfig:
    return stage.model_copy(update={"environment": {**stage.environment, **env}})


class PipelineOptimizer:
    """
    Rule-based pipeline rewriter.

    Every payload kind has exactly one rewrite; an unknown kind is a
    programming error and raises ``KeyError``.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._rewriters: dict[str, Callable[[list[PipelineStageConfig], object], list[PipelineStageConfig]]] = {
            "parallelize_stages": self._apply_parallelize_stages,
            "artifact_cache": self._apply_artifact_cache,
            "stage_skip": self._apply_stage_skip,
            "test_parallelism": self._apply_test_parallelism,
            "stage_resources": self._apply_stage_resources,
            "container_build": self._apply_container_build,
            "dependency_cache": self._apply_dependency_cache,
            "retry_policy": self._apply_retry_policy,
            "health_monitoring": self._apply_health_monitoring,
            "deployment_safety": self._apply_deployment_safety,
            "test_reliability": self._apply_test_reliability,
        }

    # ==========================================================================
    # Proposals
    # ==========================================================================

    def optimize_for_speed(
        self,
        pipeline: GeneratedPipeline,
        max_workers: Optional[int] = None,
    ) -> list[PipelineOptimization]:
        optimizations = []
        stages = pipeline.stages

        parallel = [s for s in stages if s.parallelizable]
        if len(parallel) > 1:
            optimizations.append(PipelineOptimization(
                type=OptimizationType.PARALLELIZATION,
                description=f"Run {len(parallel)} stages in parallel to reduce execution time",
                impact=Level.HIGH,
                implementation=ParallelizeStagesPayload(
                    parallel_stages=[s.stage for s in parallel],
                    estimated_time_saving=self.calculate_parallel_time_saving(parallel),
                ),
            ))

        cacheable = [s for s in stages if s.stage == StageKind.BUILD or _mentions_install_or_build(s)]
        if cacheable:
            optimizations.append(PipelineOptimization(
                type=OptimizationType.CACHING,
                description="Enable dependency and build artifact caching to speed up subsequent runs",
                impact=Level.HIGH,
                implementation=ArtifactCachePayload(stages=[s.stage for s in cacheable]),
            ))

        present = {s.stage for s in stages}
        skip_conditions = [
            SkipCondition(stage=kind, condition=condition)
            for kind, condition in SKIP_CONDITIONS.items()
            if kind in present
        ]
        if skip_conditions:
            optimizations.append(PipelineOptimization(
                type=OptimizationType.STAGE_SKIPPING,
                description="Skip stages when related code has not changed",
                impact=Level.MEDIUM,
                implementation=StageSkipPayload(skip_conditions=skip_conditions),
            ))

        if present & set(TEST_STAGES):
            optimizations.append(PipelineOptimization(
                type=OptimizationType.PARALLELIZATION,
                description="Run tests in parallel and only test changed code",
                impact=Level.MEDIUM,
                implementation=TestParallelismPayload(
                    max_workers=max_workers or self.settings.DEFAULT_TEST_MAX_WORKERS,
                ),
            ))

        return optimizations

    def optimize_for_resources(self, pipeline: GeneratedPipeline) -> list[PipelineOptimization]:
        optimizations = [
            PipelineOptimization(
                type=OptimizationType.RESOURCE_ALLOCATION,
                description="Optimize CPU and memory allocation based on stage requirements",
                impact=Level.MEDIUM,
                implementation=StageResourcesPayload(
                    stage_resources={
                        s.stage: STAGE_RESOURCES.get(s.stage, DEFAULT_STAGE_RESOURCES)
                        for s in pipeline.stages
                    },
                ),
            )
        ]

        container_stages = [s for s in pipeline.stages if any("docker" in cmd for cmd in s.commands)]
        if container_stages:
            optimizations.append(PipelineOptimization(
                type=OptimizationType.CACHING,
                description="Use multi-stage Docker builds and layer caching",
                impact=Level.HIGH,
                implementation=ContainerBuildPayload(stages=[s.stage for s in container_stages]),
            ))

        optimizations.append(PipelineOptimization(
            type=OptimizationType.CACHING,
            description="Cache dependencies across pipeline runs",
            impact=Level.MEDIUM,
            implementation=DependencyCachePayload(),
        ))
        return optimizations

    def optimize_for_reliability(self, pipeline: GeneratedPipeline) -> list[PipelineOptimization]:
        optimizations = []
        stages = pipeline.stages

        critical = [s for s in stages if s.required or s.stage in DEPLOY_STAGES]
        if critical:
            optimizations.append(PipelineOptimization(
                type=OptimizationType.RESOURCE_ALLOCATION,
                description="Optimize retry strategies for critical stages",
                impact=Level.HIGH,
                implementation=RetryPolicyPayload(retry_strategies=[
                    RetryStrategy(
                        stage=s.stage,
                        max_attempts=3 if s.stage in DEPLOY_STAGES else 2,
                        backoff_strategy=BackoffStrategy.EXPONENTIAL,
                        timeout=round(s.timeout * 1.5),
                    )
                    for s in critical
                ]),
            ))

        optimizations.append(PipelineOptimization(
            type=OptimizationType.RESOURCE_ALLOCATION,
            description="Add health checks and monitoring to detect failures early",
            impact=Level.MEDIUM,
            implementation=HealthMonitoringPayload(),
        ))

        if any(s.stage in DEPLOY_STAGES for s in stages):
            optimizations.append(PipelineOptimization(
                type=OptimizationType.RESOURCE_ALLOCATION,
                description="Implement blue-green deployment and automatic rollback",
                impact=Level.HIGH,
                implementation=DeploymentSafetyPayload(),
            ))

        if any(s.stage in TEST_STAGES for s in stages):
            optimizations.append(PipelineOptimization(
                type=OptimizationType.RESOURCE_ALLOCATION,
                description="Improve test reliability with better isolation and retry logic",
                impact=Level.MEDIUM,
                implementation=TestReliabilityPayload(),
            ))

        return optimizations

    # ==========================================================================
    # Application
    # ==========================================================================

    def apply_optimizations(
        self,
        pipeline: GeneratedPipeline,
        optimizations: list[PipelineOptimization],
    ) -> GeneratedPipeline:
        """Return a new pipeline with every optimization folded in."""
        stages = [s.model_copy(deep=True) for s in pipeline.stages]
        deployment_strategy = pipeline.deployment_strategy

        for optimization in optimizations:
            payload = optimization.implementation
            if isinstance(payload, DeploymentSafetyPayload):
                # An explicitly chosen non-default strategy survives
                if deployment_strategy == DeploymentStrategy.ROLLING:
                    deployment_strategy = payload.deployment_strategy
                else:
                    payload = payload.model_copy(update={"deployment_strategy": deployment_strategy})
            stages = self._rewriters[payload.kind](stages, payload)

        stages = sort_stages(stages)
        optimized = pipeline.model_copy(update={
            "stages": stages,
            "deployment_strategy": deployment_strategy,
            "optimizations": [*pipeline.optimizations, *optimizations],
            "estimated_duration": self.calculate_optimized_duration(stages, optimizations),
        })

        logger.info(
            "optimizations_applied",
            pipeline_id=pipeline.id,
            count=len(optimizations),
            estimated_duration=optimized.estimated_duration,
        )
        return optimized

    @staticmethod
    def calculate_parallel_time_saving(stages: list[PipelineStageConfig]) -> int:
        if not stages:
            return 0
        timeouts = [s.timeout for s in stages]
        return sum(timeouts) - max(timeouts)

    def calculate_optimized_duration(
        self,
        stages: list[PipelineStageConfig],
        optimizations: list[PipelineOptimization],
    ) -> int:
        """
        Sum of stage timeouts minus declared savings, floored.

        A stage-parallelization saving is realised by collapsing its group to
        the longest member instead of subtracting the declared value.
        """
        duration = sum(s.timeout for s in stages)

        for optimization in optimizations:
            payload = optimization.implementation
            if isinstance(payload, ParallelizeStagesPayload):
                group = [s for s in stages if s.stage in payload.parallel_stages]
                if len(group) > 1:
                    duration -= self.calculate_parallel_time_saving(group)
            else:
                duration -= optimization.estimated_time_saving

        return max(self.settings.PIPELINE_MIN_DURATION_SECONDS, round(duration))

    # ==========================================================================
    # Rewrites
    # ==========================================================================

    def _apply_parallelize_stages(self, stages, payload: ParallelizeStagesPayload):
        return [
            _with_env(s.model_copy(update={"parallelizable": True}), PARALLEL_EXECUTION="true")
            if s.stage in payload.parallel_stages else s
            for s in stages
        ]

    def _apply_artifact_cache(self, stages, payload: ArtifactCachePayload):
        result = []
        for s in stages:
            cacheable = s.stage in payload.stages or _mentions_install_or_build(s)
            if cacheable and "CACHE_ENABLED" not in s.environment:
                s = _with_env(s, CACHE_ENABLED="true", CACHE_KEY=",".join(payload.cache_keys) or "default")
                s = s.model_copy(update={"commands": [CACHE_RESTORE_COMMAND, *s.commands, CACHE_SAVE_COMMAND]})
            result.append(s)
        return result

    def _apply_stage_skip(self, stages, payload: StageSkipPayload):
        conditions = {c.stage: c.condition for c in payload.skip_conditions}
        result = []
        for s in stages:
            if s.stage in conditions:
                skip = PipelineCondition(
                    type=ConditionType.FILE_CHANGED,
                    condition="not_equals",
                    value=conditions[s.stage],
                )
                s = s.model_copy(update={"conditions": [*s.conditions, skip]})
            result.append(s)
        return result

    def _apply_test_parallelism(self, stages, payload: TestParallelismPayload):
        flag = f"--parallel --max-workers={payload.max_workers}"
        result = []
        for s in stages:
            if s.stage in (StageKind.UNIT_TEST, StageKind.INTEGRATION_TEST):
                commands = [f"{cmd} {flag}" if "test" in cmd and flag not in cmd else cmd for cmd in s.commands]
                s = _with_env(
                    s.model_copy(update={"commands": commands}),
                    TEST_PARALLEL="true",
                    MAX_WORKERS=str(payload.max_workers),
                )
            result.append(s)
        return result

    def _apply_stage_resources(self, stages, payload: StageResourcesPayload):
        result = []
        for s in stages:
            resources = payload.stage_resources.get(s.stage)
            if resources:
                s = _with_env(
                    s.model_copy(update={"resources": resources}),
                    CPU_LIMIT=resources.cpu,
                    MEMORY_LIMIT=resources.memory,
                )
            result.append(s)
        return result

    def _apply_container_build(self, stages, payload: ContainerBuildPayload):
        result = []
        for s in stages:
            if s.stage in payload.stages:
                commands = [self._with_layer_cache(cmd) if payload.layer_caching else cmd for cmd in s.commands]
                s = _with_env(s.model_copy(update={"commands": commands}), DOCKER_BUILDKIT="1")
            result.append(s)
        return result

    @staticmethod
    def _with_layer_cache(command: str) -> str:
        if not command.startswith("docker build") or "--cache-from" in command:
            return command
        tag = re.search(r"(?:-t|--tag)\s+(\S+)", command)
        if not tag:
            return command
        return command.replace("docker build", f"docker build --cache-from {tag.group(1)}", 1)

    def _apply_dependency_cache(self, stages, payload: DependencyCachePayload):
        return [
            _with_env(
                s,
                DEPENDENCY_CACHE=payload.cache_scope,
                CACHE_INVALIDATION=payload.invalidation_strategy,
            )
            if s.stage == StageKind.BUILD else s
            for s in stages
        ]

    def _apply_retry_policy(self, stages, payload: RetryPolicyPayload):
        strategies = {r.stage: r for r in payload.retry_strategies}
        result = []
        for s in stages:
            strategy = strategies.get(s.stage)
            if strategy:
                s = s.model_copy(update={
                    "retry_config": RetryConfig(
                        max_attempts=strategy.max_attempts,
                        backoff_strategy=strategy.backoff_strategy,
                    ),
                    "timeout": strategy.timeout,
                })
            result.append(s)
        return result

    def _apply_health_monitoring(self, stages, payload: HealthMonitoringPayload):
        result = [
            _with_env(
                s,
                HEALTH_CHECKS=str(payload.health_checks).lower(),
                ALERTING=str(payload.alerting).lower(),
                ROLLBACK_TRIGGERS=",".join(payload.rollback_triggers),
            )
            if s.stage in DEPLOY_STAGES else s
            for s in stages
        ]
        deploys = any(s.stage in DEPLOY_STAGES for s in result)
        monitored = any(s.stage == StageKind.MONITORING for s in result)
        if deploys and not monitored:
            result.append(PipelineStageConfig(
                stage=StageKind.MONITORING,
                name="Post-Deployment Monitoring",
                commands=["curl --fail --retry 5 --retry-delay 10 $HEALTH_CHECK_URL"],
                environment={"ALERTING": str(payload.alerting).lower()},
                timeout=300,
                retry_config=RetryConfig(max_attempts=1),
                required=False,
            ))
        return result

    def _apply_deployment_safety(self, stages, payload: DeploymentSafetyPayload):
        return [
            _with_env(
                s,
                DEPLOYMENT_STRATEGY=payload.deployment_strategy.value,
                AUTO_ROLLBACK=str(payload.automatic_rollback).lower(),
                ROLLBACK_TIMEOUT=str(payload.rollback_timeout),
            )
            if s.stage in DEPLOY_STAGES else s
            for s in stages
        ]

    def _apply_test_reliability(self, stages, payload: TestReliabilityPayload):
        return [
            _with_env(
                s,
                TEST_ISOLATION=str(payload.test_isolation).lower(),
                FLAKY_TEST_DETECTION=str(payload.flaky_test_detection).lower(),
                TEST_PARALLEL=str(payload.parallel_test_execution).lower(),
            )
            if s.stage in TEST_STAGES else s
            for s in stages
        ]
