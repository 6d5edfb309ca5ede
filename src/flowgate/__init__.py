from .compiler import CompiledWorkflow, Compiler, compile_many
from .dag import JobGraph
from .dsl import JobBuilder, build, sh
from .errors import (
    ConfigurationError,
    CycleError,
    DeveloperError,
    ExpressionSyntaxError,
    MissingJobError,
    StageError,
    UnauthorizedExpressionError,
)
from .model import Job, Step
from .permissions import PermissionLevel, PermissionScope, PermissionSet
from .spec import WorkflowSpec

__all__ = [
    "CompiledWorkflow",
    "Compiler",
    "ConfigurationError",
    "CycleError",
    "DeveloperError",
    "ExpressionSyntaxError",
    "Job",
    "JobBuilder",
    "JobGraph",
    "MissingJobError",
    "PermissionLevel",
    "PermissionScope",
    "PermissionSet",
    "StageError",
    "Step",
    "UnauthorizedExpressionError",
    "WorkflowSpec",
    "build",
    "compile_many",
    "sh",
]
