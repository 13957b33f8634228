"""alpack package."""

from .api import prepare, run_sandbox, setup_rootfs
from .core.launcher import ExecutionResult
from .core.plan import IsolationPlan, SandboxRequest
from .core.version import __version__

__all__ = ["ExecutionResult", "IsolationPlan", "SandboxRequest", "prepare", "run_sandbox", "setup_rootfs", "__version__"]
