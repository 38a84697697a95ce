"""
Testing Strategy Selector - Scores the five testing strategies.

Every rule adds fixed weights to one or more strategies; the highest total
wins. All functions here are pure.
"""

from collections import Counter

from pipeline_forge.core.schemas import (
    Level,
    ProjectCharacteristics,
    TestingStrategy,
    TestPhaseType,
)

WEB_FRAMEWORKS = {"react", "vue", "angular", "express", "nestjs", "django", "flask"}
MICROSERVICE_FRAMEWORKS = {"express", "nestjs", "spring-boot", "fastapi"}
PERFORMANCE_LANGUAGES = {"java", "c++"}

BASE_DURATIONS = {
    TestingStrategy.UNIT_ONLY: 300,
    TestingStrategy.BALANCED: 900,
    TestingStrategy.INTEGRATION_FOCUSED: 1200,
    TestingStrategy.E2E_HEAVY: 1800,
    TestingStrategy.PERFORMANCE_FOCUSED: 2400,
}

COMPLEXITY_DURATION_MULTIPLIERS = {
    Level.LOW: 0.8,
    Level.MEDIUM: 1.0,
    Level.HIGH: 1.4,
}


def has_web_framework(characteristics: ProjectCharacteristics) -> bool:
    return any(fw.lower() in WEB_FRAMEWORKS for fw in characteristics.frameworks)


def has_microservice_indicators(characteristics: ProjectCharacteristics) -> bool:
    return (
        any(fw.lower() in MICROSERVICE_FRAMEWORKS for fw in characteristics.frameworks)
        or "docker" in (dep.lower() for dep in characteristics.dependencies)
    )


def has_performance_indicators(characteristics: ProjectCharacteristics) -> bool:
    return (
        any(lang.lower() in PERFORMANCE_LANGUAGES for lang in characteristics.languages)
        or any("performance" in fw.lower() for fw in characteristics.frameworks)
    )


class TestingStrategySelector:
    """Chooses a testing strategy and the test types it implies."""

    __test__ = False

    def score_strategies(self, characteristics: ProjectCharacteristics) -> dict[TestingStrategy, float]:
        """Accumulated score per strategy, in declaration order."""
        scores: Counter = Counter({strategy: 0 for strategy in TestingStrategy})
        c = characteristics

        # Complexity
        if c.complexity == Level.LOW:
            scores.update({TestingStrategy.UNIT_ONLY: 15, TestingStrategy.BALANCED: 10})
        elif c.complexity == Level.MEDIUM:
            scores.update({TestingStrategy.BALANCED: 20, TestingStrategy.INTEGRATION_FOCUSED: 15})
        else:
            scores.update({TestingStrategy.INTEGRATION_FOCUSED: 20, TestingStrategy.E2E_HEAVY: 15})

        # Criticality
        if c.criticality == Level.LOW:
            scores.update({TestingStrategy.UNIT_ONLY: 10, TestingStrategy.BALANCED: 5})
        elif c.criticality == Level.MEDIUM:
            scores.update({TestingStrategy.BALANCED: 15, TestingStrategy.INTEGRATION_FOCUSED: 10})
        else:
            scores.update({TestingStrategy.E2E_HEAVY: 20, TestingStrategy.INTEGRATION_FOCUSED: 15})

        # Team size
        if c.team_size > 15:
            scores.update({TestingStrategy.E2E_HEAVY: 10, TestingStrategy.INTEGRATION_FOCUSED: 8})
        elif c.team_size > 8:
            scores.update({TestingStrategy.BALANCED: 12, TestingStrategy.INTEGRATION_FOCUSED: 8})
        else:
            scores.update({TestingStrategy.UNIT_ONLY: 8, TestingStrategy.BALANCED: 6})

        # Deployment frequency (per week)
        if c.deployment_frequency > 5:
            scores.update({TestingStrategy.UNIT_ONLY: 12, TestingStrategy.BALANCED: 8})
        elif c.deployment_frequency > 1:
            scores.update({TestingStrategy.BALANCED: 15, TestingStrategy.INTEGRATION_FOCUSED: 10})
        else:
            scores.update({TestingStrategy.E2E_HEAVY: 12, TestingStrategy.INTEGRATION_FOCUSED: 10})

        # Existing coverage
        if c.test_coverage > 80:
            scores.update({TestingStrategy.BALANCED: 10, TestingStrategy.INTEGRATION_FOCUSED: 8})
        elif c.test_coverage > 60:
            scores.update({TestingStrategy.BALANCED: 12, TestingStrategy.UNIT_ONLY: 8})
        else:
            scores.update({TestingStrategy.UNIT_ONLY: 15, TestingStrategy.BALANCED: 5})

        if has_web_framework(c):
            scores.update({TestingStrategy.E2E_HEAVY: 8, TestingStrategy.BALANCED: 6})

        if has_microservice_indicators(c):
            scores.update({TestingStrategy.INTEGRATION_FOCUSED: 12, TestingStrategy.BALANCED: 8})

        if c.compliance_requirements:
            scores.update({TestingStrategy.E2E_HEAVY: 10, TestingStrategy.INTEGRATION_FOCUSED: 8})

        if has_performance_indicators(c) and c.criticality == Level.HIGH:
            scores.update({TestingStrategy.PERFORMANCE_FOCUSED: 15})

        # Repository size
        if c.repository_size > 100_000:
            scores.update({TestingStrategy.INTEGRATION_FOCUSED: 8, TestingStrategy.E2E_HEAVY: 6})
        elif c.repository_size < 10_000:
            scores.update({TestingStrategy.UNIT_ONLY: 8, TestingStrategy.BALANCED: 6})

        return {strategy: scores[strategy] for strategy in TestingStrategy}

    def select_strategy(self, characteristics: ProjectCharacteristics) -> TestingStrategy:
        """
        Highest-scoring strategy.

        Ties go to the strategy declared first in ``TestingStrategy``; a board
        with no positive score yields ``balanced``.
        """
        best, best_score = TestingStrategy.BALANCED, 0
        for strategy, score in self.score_strategies(characteristics).items():
            if score > best_score:
                best, best_score = strategy, score
        return best

    def get_recommended_test_types(self, characteristics: ProjectCharacteristics) -> list[TestPhaseType]:
        c = characteristics
        test_types = [TestPhaseType.UNIT]

        if c.complexity != Level.LOW or c.criticality != Level.LOW:
            test_types.append(TestPhaseType.INTEGRATION)
        if has_web_framework(c) or c.criticality == Level.HIGH:
            test_types.append(TestPhaseType.E2E)
        if any(lang.lower() in PERFORMANCE_LANGUAGES for lang in c.languages) or c.criticality == Level.HIGH:
            test_types.append(TestPhaseType.PERFORMANCE)
        if c.compliance_requirements:
            test_types.append(TestPhaseType.SECURITY)
        if any(fw.lower() in MICROSERVICE_FRAMEWORKS for fw in c.frameworks):
            test_types.append(TestPhaseType.CONTRACT)

        return test_types

    def estimate_test_duration(self, strategy: TestingStrategy, characteristics: ProjectCharacteristics) -> int:
        """Estimated test time in whole seconds."""
        c = characteristics
        duration = float(BASE_DURATIONS[strategy])

        if c.repository_size > 500_000:
            duration *= 2.0
        elif c.repository_size > 100_000:
            duration *= 1.5
        elif c.repository_size > 50_000:
            duration *= 1.3
        elif c.repository_size > 10_000:
            duration *= 1.1

        duration *= COMPLEXITY_DURATION_MULTIPLIERS[c.complexity]
        duration *= 1 + (c.test_coverage / 100) * 0.5
        duration *= min(1 + c.team_size / 20, 1.5)

        return round(duration)
