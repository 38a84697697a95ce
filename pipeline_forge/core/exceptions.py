"""
Pipeline Forge - Exceptions
===========================

Lookup failures and collaborator failures raise; everything else that can
go wrong during generation or execution is reported as data.
"""

from typing import Optional


class PipelineForgeError(Exception):
    """Base class for all package errors."""


class TemplateNotFoundError(PipelineForgeError, LookupError):
    """Raised when a template id is not in the catalog."""

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Template {template_id} not found")


class ExecutionPlanNotFoundError(PipelineForgeError, LookupError):
    """Raised when a test execution plan id is unknown."""

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Test execution plan {plan_id} not found")


class ProjectDataError(PipelineForgeError):
    """A project data collaborator could not deliver what was asked for."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation}: {message}")


class PipelineServiceError(PipelineForgeError):
    """
    Single descriptive error raised by the service facade.

    The message names the failed operation and carries the cause text;
    the original exception is chained as ``__cause__``.
    """

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        detail = str(cause) if cause is not None else "unknown error"
        super().__init__(f"Failed to {operation}: {detail}")
