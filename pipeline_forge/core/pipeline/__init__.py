"""
Pipeline Forge - Pipeline Generation
====================================

Characteristics-driven CI/CD pipeline generation.

Components:
- ProjectAnalyzer: Raw project signals to a characteristics profile
- TemplateCatalog: Template store, matching and scoring
- TestingStrategySelector: Strategy scoring and test-type recommendation
- PipelineGenerator: Template customization, test stages, validation
- PipelineOptimizer: Speed, resource and reliability rewrites
- PipelineRenderer: CI platform configuration text
- PipelineService: Outer facade with error wrapping
"""

from pipeline_forge.core.pipeline.generator import PipelineGenerator
from pipeline_forge.core.pipeline.optimizer import PipelineOptimizer
from pipeline_forge.core.pipeline.project_analyzer import ProjectAnalyzer
from pipeline_forge.core.pipeline.renderer import PipelineRenderer
from pipeline_forge.core.pipeline.service import PipelineService
from pipeline_forge.core.pipeline.strategy_selector import TestingStrategySelector
from pipeline_forge.core.pipeline.template_catalog import InMemoryTemplateStore, TemplateCatalog, TemplateStore

__all__ = [
    "InMemoryTemplateStore",
    "PipelineGenerator",
    "PipelineOptimizer",
    "PipelineRenderer",
    "PipelineService",
    "ProjectAnalyzer",
    "TemplateCatalog",
    "TemplateStore",
    "TestingStrategySelector",
]
