"""
Pipeline Forge - Test Execution
===============================

Test plan creation, phase scheduling and result analysis.

Components:
- TestExecutionCoordinator: Plans phases and runs suites concurrently
- SyntheticTestRunner: Default suite runner producing randomised results
- TestResultAnalyzer: Insights, trends, quality metrics and risk
- MetricsHistoryStore: Bounded per-project execution history
"""

from pipeline_forge.core.testing.analyzer import TestResultAnalyzer
from pipeline_forge.core.testing.coordinator import TestExecutionCoordinator
from pipeline_forge.core.testing.history import MetricsHistoryStore
from pipeline_forge.core.testing.runner import CancellationToken, SyntheticTestRunner, TestRunner

__all__ = [
    "CancellationToken",
    "MetricsHistoryStore",
    "SyntheticTestRunner",
    "TestExecutionCoordinator",
    "TestResultAnalyzer",
    "TestRunner",
]
