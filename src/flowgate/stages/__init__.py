from .activation import build_activation
from .agent import build_agent
from .conclusion import build_conclusion
from .context import BuildContext
from .custom_jobs import build_custom_job, classify_custom_jobs
from .detection import build_detection
from .pre_activation import build_pre_activation, configured_checks
from .safe_outputs import build_safe_outputs

__all__ = [
    "BuildContext",
    "build_activation",
    "build_agent",
    "build_conclusion",
    "build_custom_job",
    "build_detection",
    "build_pre_activation",
    "build_safe_outputs",
    "classify_custom_jobs",
    "configured_checks",
]
