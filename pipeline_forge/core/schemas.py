"""
Pipeline Forge - Pydantic Schemas
=================================

Data model shared by the pipeline generation side (characteristics,
templates, stages, optimizations) and the test execution side (plans,
results, analysis reports), plus the contracts of the external project
data collaborators.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ==========================================================================
# Base Schemas
# ==========================================================================

class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    # Several models are named Test*; keep pytest from collecting them.
    __test__ = False

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# ==========================================================================
# Enums
# ==========================================================================

class Level(str, Enum):
    """Three-step scale used for complexity, criticality and impact."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 1, "medium": 2, "high": 3}[self.value]


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PipelineType(str, Enum):
    BUILD = "build"
    TEST = "test"
    DEPLOY = "deploy"
    FULL_CICD = "full_cicd"


class StageKind(str, Enum):
    BUILD = "build"
    UNIT_TEST = "unit_test"
    INTEGRATION_TEST = "integration_test"
    SECURITY_SCAN = "security_scan"
    QUALITY_GATE = "quality_gate"
    DEPLOY_STAGING = "deploy_staging"
    E2E_TEST = "e2e_test"
    DEPLOY_PRODUCTION = "deploy_production"
    MONITORING = "monitoring"


# Stage kinds in the only order a generated pipeline may list them
CANONICAL_STAGE_ORDER: list[StageKind] = [
    StageKind.BUILD,
    StageKind.UNIT_TEST,
    StageKind.INTEGRATION_TEST,
    StageKind.SECURITY_SCAN,
    StageKind.QUALITY_GATE,
    StageKind.DEPLOY_STAGING,
    StageKind.E2E_TEST,
    StageKind.DEPLOY_PRODUCTION,
    StageKind.MONITORING,
]

DEPLOY_STAGES = (StageKind.DEPLOY_STAGING, StageKind.DEPLOY_PRODUCTION)
TEST_STAGES = (StageKind.UNIT_TEST, StageKind.INTEGRATION_TEST, StageKind.E2E_TEST)


def stage_rank(kind: StageKind) -> int:
    """Position of a stage kind in the canonical order."""
    return CANONICAL_STAGE_ORDER.index(kind)


def sort_stages(stages: list["PipelineStageConfig"]) -> list["PipelineStageConfig"]:
    """Stable sort into canonical order; stages of the same kind keep their order."""
    return sorted(stages, key=lambda s: stage_rank(s.stage))


class TestingStrategy(str, Enum):
    __test__ = False

    UNIT_ONLY = "unit_only"
    INTEGRATION_FOCUSED = "integration_focused"
    E2E_HEAVY = "e2e_heavy"
    BALANCED = "balanced"
    PERFORMANCE_FOCUSED = "performance_focused"


class DeploymentStrategy(str, Enum):
    BLUE_GREEN = "blue_green"
    ROLLING = "rolling"
    CANARY = "canary"
    RECREATE = "recreate"


class BackoffStrategy(str, Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class ConditionType(str, Enum):
    BRANCH = "branch"
    FILE_CHANGED = "file_changed"
    ENVIRONMENT = "environment"
    TIME = "time"


class OptimizationType(str, Enum):
    CACHING = "caching"
    PARALLELIZATION = "parallelization"
    RESOURCE_ALLOCATION = "resource_allocation"
    STAGE_SKIPPING = "stage_skipping"


class TestPhaseType(str, Enum):
    __test__ = False

    UNIT = "unit"
    INTEGRATION = "integration"
    E2E = "e2e"
    PERFORMANCE = "performance"
    SECURITY = "security"
    CONTRACT = "contract"
    SMOKE = "smoke"
    REGRESSION = "regression"
    CRITICAL = "critical"
    COMPLIANCE = "compliance"


# Phase kinds in execution order
CANONICAL_PHASE_ORDER: list[TestPhaseType] = [
    TestPhaseType.UNIT,
    TestPhaseType.INTEGRATION,
    TestPhaseType.CONTRACT,
    TestPhaseType.SECURITY,
    TestPhaseType.E2E,
    TestPhaseType.SMOKE,
    TestPhaseType.PERFORMANCE,
    TestPhaseType.REGRESSION,
]


class TestExecutionStatus(str, Enum):
    __test__ = False

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TestStatus(str, Enum):
    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class InsightType(str, Enum):
    COVERAGE_IMPROVEMENT = "coverage_improvement"
    FLAKY_TESTS = "flaky_tests"
    SLOW_TESTS = "slow_tests"
    FAILING_PATTERNS = "failing_patterns"
    RESOURCE_USAGE = "resource_usage"


class RecommendationType(str, Enum):
    INCREASE_COVERAGE = "increase_coverage"
    FIX_FLAKY_TESTS = "fix_flaky_tests"
    OPTIMIZE_PERFORMANCE = "optimize_performance"
    ADD_TEST_TYPES = "add_test_types"


class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


# ==========================================================================
# Collaborator Contracts
# ==========================================================================

class LanguageAnalysis(BaseSchema):
    language: str
    percentage: float = 0.0
    lines_of_code: int = Field(default=0, ge=0)
    files: int = Field(default=0, ge=0)


class FrameworkAnalysis(BaseSchema):
    framework: str
    version: str = ""
    confidence: float = Field(default=1.0, ge=0, le=1)


class DependencyAnalysis(BaseSchema):
    name: str
    version: str = ""
    type: Literal["production", "development"] = "production"
    vulnerabilities: int = 0
    outdated: bool = False


class CodeQualityMetrics(BaseSchema):
    maintainability_index: float = 0.0
    cyclomatic_complexity: float = 0.0
    technical_debt: float = 0.0
    duplicated_lines: int = 0


class SecurityIssue(BaseSchema):
    type: str
    severity: RiskLevel
    file: str
    line: int = 0
    description: str = ""


class ComplexityMetrics(BaseSchema):
    overall: Level = Level.LOW
    cognitive: float = 0.0
    cyclomatic: float = 0.0
    halstead: float = 0.0


class CodebaseAnalysis(BaseSchema):
    """What a code analysis collaborator reports for one repository."""

    languages: list[LanguageAnalysis] = []
    frameworks: list[FrameworkAnalysis] = []
    dependencies: list[DependencyAnalysis] = []
    test_coverage: float = 0.0
    code_quality: CodeQualityMetrics = Field(default_factory=CodeQualityMetrics)
    security_issues: list[SecurityIssue] = []
    complexity: ComplexityMetrics = Field(default_factory=ComplexityMetrics)

    @property
    def lines_of_code(self) -> int:
        return sum(lang.lines_of_code for lang in self.languages)


class RepositoryRef(BaseSchema):
    id: str
    url: str
    provider: str = "github"


class ProjectMetadata(BaseSchema):
    """Project record: owning team, repositories and business signals."""

    id: str
    name: str = ""
    team_id: str
    repositories: list[RepositoryRef] = []
    compliance_requirements: list[str] = []
    production_users: int = 0
    revenue_impact: Optional[Level] = None


# ==========================================================================
# Project Characteristics
# ==========================================================================

class ProjectCharacteristics(BaseSchema):
    """Derived profile driving template matching, strategy and test planning."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    languages: list[str] = []
    frameworks: list[str] = []
    dependencies: list[str] = []
    repository_size: int = Field(default=0, ge=0)
    team_size: int = Field(default=1, ge=0)
    deployment_frequency: float = Field(default=0.0, ge=0)
    test_coverage: float = Field(default=0.0, ge=0, le=100)
    complexity: Level = Level.LOW
    criticality: Level = Level.LOW
    compliance_requirements: list[str] = []


# ==========================================================================
# Pipeline Stages & Templates
# ==========================================================================

class RetryConfig(BaseSchema):
    max_attempts: int = Field(default=1, ge=1)
    backoff_strategy: BackoffStrategy = BackoffStrategy.LINEAR


class PipelineCondition(BaseSchema):
    type: ConditionType
    condition: str
    value: str


class StageResources(BaseSchema):
    cpu: str
    memory: str


class PipelineStageConfig(BaseSchema):
    """One canonical unit of work in a pipeline."""

    stage: StageKind
    name: str
    commands: list[str] = []
    environment: dict[str, str] = {}
    timeout: int = Field(default=600, ge=0)
    retry_config: RetryConfig = Field(default_factory=RetryConfig)
    conditions: list[PipelineCondition] = []
    parallelizable: bool = False
    required: bool = True
    resources: Optional[StageResources] = None


class TemplateCharacteristics(BaseSchema):
    """Profile a template declares it serves; used only for matching."""

    languages: list[str] = []
    frameworks: list[str] = []
    dependencies: list[str] = []
    complexity: Level = Level.MEDIUM
    criticality: Optional[Level] = None


class TemplateMetadata(BaseSchema):
    category: str = "general"
    popularity: float = Field(default=0.0, ge=0)
    maintainer: Optional[str] = None


class PipelineTemplateCreate(BaseSchema):
    """Schema for creating a template."""

    name: str = Field(min_length=1, max_length=255)
    description: str = ""
    type: PipelineType = PipelineType.FULL_CICD
    stages: list[PipelineStageConfig] = []
    applicable_characteristics: TemplateCharacteristics = Field(default_factory=TemplateCharacteristics)
    metadata: TemplateMetadata = Field(default_factory=TemplateMetadata)


class PipelineTemplateUpdate(BaseSchema):
    """Schema for a partial template update; unset fields are kept."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    type: Optional[PipelineType] = None
    stages: Optional[list[PipelineStageConfig]] = None
    applicable_characteristics: Optional[TemplateCharacteristics] = None
    metadata: Optional[TemplateMetadata] = None


class PipelineTemplate(PipelineTemplateCreate):
    id: str = Field(default_factory=new_id)


# ==========================================================================
# Optimization Payloads
# ==========================================================================

class TimeSavingPayload(BaseSchema):
    """Payload kinds that declare a fixed or computed time saving (seconds)."""

    estimated_time_saving: int = 0


class ParallelizeStagesPayload(TimeSavingPayload):
    kind: Literal["parallelize_stages"] = "parallelize_stages"
    parallel_stages: list[StageKind]


class ArtifactCachePayload(TimeSavingPayload):
    kind: Literal["artifact_cache"] = "artifact_cache"
    cache_keys: list[str] = ["node_modules", "target", "dist", ".gradle"]
    stages: list[StageKind] = []
    estimated_time_saving: int = 300


class SkipCondition(BaseSchema):
    stage: StageKind
    condition: str


class StageSkipPayload(TimeSavingPayload):
    kind: Literal["stage_skip"] = "stage_skip"
    skip_conditions: list[SkipCondition]
    estimated_time_saving: int = 180


class TestParallelismPayload(TimeSavingPayload):
    kind: Literal["test_parallelism"] = "test_parallelism"
    max_workers: int = Field(default=4, ge=1)
    changed_files_only: bool = True
    estimated_time_saving: int = 120


class StageResourcesPayload(BaseSchema):
    kind: Literal["stage_resources"] = "stage_resources"
    stage_resources: dict[StageKind, StageResources]
    cost_saving: str = "up to 30%"


class ContainerBuildPayload(BaseSchema):
    kind: Literal["container_build"] = "container_build"
    stages: list[StageKind] = []
    multi_stage_builds: bool = True
    layer_caching: bool = True
    estimated_size_reduction: str = "60%"


class DependencyCachePayload(BaseSchema):
    kind: Literal["dependency_cache"] = "dependency_cache"
    cache_scope: str = "project"
    invalidation_strategy: str = "checksum"
    estimated_bandwidth_saving: str = "80%"


class RetryStrategy(BaseSchema):
    stage: StageKind
    max_attempts: int
    backoff_strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    timeout: int


class RetryPolicyPayload(BaseSchema):
    kind: Literal["retry_policy"] = "retry_policy"
    retry_strategies: list[RetryStrategy]


class HealthMonitoringPayload(BaseSchema):
    kind: Literal["health_monitoring"] = "health_monitoring"
    health_checks: bool = True
    alerting: bool = True
    rollback_triggers: list[str] = ["health_check_failure", "error_rate_spike"]


class DeploymentSafetyPayload(BaseSchema):
    kind: Literal["deployment_safety"] = "deployment_safety"
    deployment_strategy: DeploymentStrategy = DeploymentStrategy.BLUE_GREEN
    automatic_rollback: bool = True
    rollback_triggers: list[str] = ["health_check_failure", "error_rate_threshold"]
    rollback_timeout: int = 600


class TestReliabilityPayload(BaseSchema):
    kind: Literal["test_reliability"] = "test_reliability"
    test_isolation: bool = True
    flaky_test_detection: bool = True
    parallel_test_execution: bool = False


OptimizationPayload = Annotated[
    Union[
        ParallelizeStagesPayload,
        ArtifactCachePayload,
        StageSkipPayload,
        TestParallelismPayload,
        StageResourcesPayload,
        ContainerBuildPayload,
        DependencyCachePayload,
        RetryPolicyPayload,
        HealthMonitoringPayload,
        DeploymentSafetyPayload,
        TestReliabilityPayload,
    ],
    Field(discriminator="kind"),
]


class PipelineOptimization(BaseSchema):
    """Advisory rewrite proposal; inert until applied."""

    type: OptimizationType
    description: str
    impact: Level
    implementation: OptimizationPayload

    @property
    def estimated_time_saving(self) -> int:
        if isinstance(self.implementation, TimeSavingPayload):
            return self.implementation.estimated_time_saving
        return 0


# ==========================================================================
# Generated Pipelines
# ==========================================================================

class GeneratedPipeline(BaseSchema):
    id: str = Field(default_factory=new_id)
    project_id: str
    name: str
    type: PipelineType
    stages: list[PipelineStageConfig]
    testing_strategy: TestingStrategy
    deployment_strategy: DeploymentStrategy = DeploymentStrategy.ROLLING
    optimizations: list[PipelineOptimization] = []
    estimated_duration: int = 0
    created_at: datetime = Field(default_factory=utcnow)


class QualityGate(BaseSchema):
    metric: str
    threshold: float
    operator: Literal["gt", "lt", "eq", "gte", "lte"] = "gte"
    blocking: bool = True


class PipelineRequirements(BaseSchema):
    max_duration: int = 3600
    security_scan_required: bool = False
    compliance_checks: list[str] = []
    environment_targets: list[str] = []
    quality_gates: list[QualityGate] = []


class PipelinePreferences(BaseSchema):
    testing_strategy: Optional[TestingStrategy] = None
    deployment_strategy: Optional[DeploymentStrategy] = None
    parallelization_level: Level = Level.MEDIUM
    resource_optimization: bool = True
    caching_enabled: bool = True


class PipelineGenerationRequest(BaseSchema):
    project_id: str
    type: PipelineType = PipelineType.FULL_CICD
    requirements: PipelineRequirements = Field(default_factory=PipelineRequirements)
    preferences: PipelinePreferences = Field(default_factory=PipelinePreferences)


class ValidationIssue(BaseSchema):
    stage: str
    field: str
    message: str
    code: str


class ValidationSuggestion(BaseSchema):
    stage: str
    type: Literal["optimization", "best_practice", "security"]
    message: str
    impact: Level


class PipelineValidationResult(BaseSchema):
    is_valid: bool
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    suggestions: list[ValidationSuggestion] = []


# ==========================================================================
# Test Execution Plans
# ==========================================================================

class TestRetryConfig(BaseSchema):
    max_attempts: int = 1
    backoff_strategy: BackoffStrategy = BackoffStrategy.LINEAR
    retryable_failures: list[str] = []


class TestSuite(BaseSchema):
    id: str = Field(default_factory=new_id)
    name: str
    path: str
    framework: str
    estimated_duration: int  # seconds
    priority: Priority
    tags: list[str] = []
    dependencies: list[str] = []


class TestPhase(BaseSchema):
    id: str = Field(default_factory=new_id)
    name: str
    type: TestPhaseType
    suites: list[TestSuite] = []
    dependencies: list[str] = []
    timeout: int
    retry_config: TestRetryConfig = Field(default_factory=TestRetryConfig)
    parallelizable: bool = False
    required: bool = True


class TestResourceAllocation(BaseSchema):
    cpu: str
    memory: str
    storage: str


class TestParallelizationConfig(BaseSchema):
    enabled: bool
    max_workers: int = Field(ge=1)
    strategy: Literal["file", "suite", "test"] = "suite"
    resource_allocation: TestResourceAllocation


class TestExecutionPlan(BaseSchema):
    id: str = Field(default_factory=new_id)
    project_id: str
    strategy: TestingStrategy
    phases: list[TestPhase]
    estimated_duration: int
    parallelization: TestParallelizationConfig
    created_at: datetime = Field(default_factory=utcnow)


# ==========================================================================
# Test Execution Results
# ==========================================================================

class TestCoverage(BaseSchema):
    lines: float = 0.0
    functions: float = 0.0
    branches: float = 0.0
    statements: float = 0.0


class TestResult(BaseSchema):
    name: str
    status: TestStatus
    duration: int = 0  # milliseconds
    error: Optional[str] = None
    retries: int = 0


class TestSuiteResult(BaseSchema):
    suite_id: str
    status: TestExecutionStatus
    tests: list[TestResult] = []
    duration: int = 0
    coverage: TestCoverage = Field(default_factory=TestCoverage)


class TestPhaseResult(BaseSchema):
    phase_id: str
    type: TestPhaseType
    status: TestExecutionStatus
    suites: list[TestSuiteResult] = []
    duration: int = 0
    coverage: TestCoverage = Field(default_factory=TestCoverage)


class TestExecutionSummary(BaseSchema):
    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    duration: int = 0
    coverage: TestCoverage = Field(default_factory=TestCoverage)


class TestExecutionResult(BaseSchema):
    plan_id: str
    project_id: str
    status: TestExecutionStatus = TestExecutionStatus.PENDING
    phases: list[TestPhaseResult] = []
    total_duration: int = 0
    coverage: TestCoverage = Field(default_factory=TestCoverage)
    summary: TestExecutionSummary = Field(default_factory=TestExecutionSummary)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def all_tests(self) -> list[TestResult]:
        return [test for phase in self.phases for suite in phase.suites for test in suite.tests]


# ==========================================================================
# Analysis Reports
# ==========================================================================

class CoverageInsightData(BaseSchema):
    kind: Literal["coverage"] = "coverage"
    current_coverage: TestCoverage
    target_coverage: float
    gap: float


class FlakyTestsInsightData(BaseSchema):
    kind: Literal["flaky_tests"] = "flaky_tests"
    flaky_tests: list[TestResult]
    count: int


class SlowTestsInsightData(BaseSchema):
    kind: Literal["slow_tests"] = "slow_tests"
    slow_tests: list[TestResult]
    count: int
    total_slow_time: int


class FailurePatternsInsightData(BaseSchema):
    kind: Literal["failure_patterns"] = "failure_patterns"
    patterns: list[str]


class ResourceUsageInsightData(BaseSchema):
    kind: Literal["resource_usage"] = "resource_usage"
    avg_phase_duration: float
    recommendation: str


InsightData = Annotated[
    Union[
        CoverageInsightData,
        FlakyTestsInsightData,
        SlowTestsInsightData,
        FailurePatternsInsightData,
        ResourceUsageInsightData,
    ],
    Field(discriminator="kind"),
]


class TestInsight(BaseSchema):
    type: InsightType
    title: str
    description: str
    impact: Level
    data: InsightData


class TestRecommendation(BaseSchema):
    type: RecommendationType
    priority: Priority
    title: str
    description: str
    action_items: list[str]
    estimated_impact: str
    estimated_effort: str


class TestTrend(BaseSchema):
    metric: str
    current: float
    previous: float
    change: float
    change_percent: float
    direction: TrendDirection
    is_improvement: bool


class QualityMetrics(BaseSchema):
    reliability: float = Field(ge=0, le=100)
    maintainability: float = Field(ge=0, le=100)
    efficiency: float = Field(ge=0, le=100)
    overall: float = Field(ge=0, le=100)


class RiskFactor(BaseSchema):
    factor: str
    severity: RiskLevel
    description: str
    likelihood: int = Field(ge=0, le=100)
    impact: int = Field(ge=0, le=100)


class RiskAssessment(BaseSchema):
    overall_risk: RiskLevel
    risk_factors: list[RiskFactor] = []
    mitigation_strategies: list[str] = []


class TestMetricsHistory(BaseSchema):
    """One history entry; appended per analysis call."""

    project_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    metrics: TestExecutionSummary
    coverage: TestCoverage
    duration: int
    reliability: float


class TestAnalysisReport(BaseSchema):
    id: str = Field(default_factory=new_id)
    execution_id: str
    project_id: str
    generated_at: datetime = Field(default_factory=utcnow)
    summary: TestExecutionSummary
    insights: list[TestInsight] = []
    recommendations: list[TestRecommendation] = []
    trends: list[TestTrend] = []
    quality_metrics: QualityMetrics
    risk_assessment: RiskAssessment


# ==========================================================================
# Service Responses
# ==========================================================================

class PipelineGenerationOutcome(BaseSchema):
    pipeline: GeneratedPipeline
    validation: PipelineValidationResult


class TestingStrategyRecommendation(BaseSchema):
    strategy: TestingStrategy
    test_types: list[TestPhaseType]
    estimated_duration: int
    characteristics: ProjectCharacteristics


class OptimizationSuggestions(BaseSchema):
    speed: list[PipelineOptimization] = []
    resources: list[PipelineOptimization] = []
    reliability: list[PipelineOptimization] = []

    @computed_field  # type: ignore[misc]
    @property
    def all(self) -> list[PipelineOptimization]:
        return [*self.speed, *self.resources, *self.reliability]
