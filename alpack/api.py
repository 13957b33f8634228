from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import httpx

from .core.backend import BackendKind, resolve_backend_path
from .core.config import Settings
from .core.context import HostContext
from .core.host_resources import EMPTY_PROBE, probe_host_resources
from .core.identity import emulate_identity
from .core.installer import SetupOptions, install_rootfs, provision_command
from .core.launcher import ExecutionResult, launch
from .core.logging import NullEventLogger, get_event_logger, get_logger
from .core.plan import IsolationPlan, SandboxRequest, build_isolation_args, check_rootfs

logger = logging.getLogger(__name__)


def prepare(request: SandboxRequest, settings: Settings, ctx: HostContext) -> IsolationPlan:
    """Build the plan for ``request`` without resolving or launching a backend."""
    check_rootfs(request.rootfs, ctx.app_name)
    kind = BackendKind.parse(settings.cmd_rootfs)
    probe = EMPTY_PROBE if request.ignore_extra_binds else probe_host_resources()
    identity = emulate_identity(kind, request.use_root, ctx)
    return build_isolation_args(kind, request, probe, identity, home=ctx.home, app_name=ctx.app_name)


def run_sandbox(
    request: SandboxRequest,
    settings: Settings,
    ctx: HostContext,
    *,
    logs_dir: Optional[Path] = None,
) -> ExecutionResult:
    plan = prepare(request, settings, ctx)
    backend = resolve_backend_path(plan.kind, ctx)

    try:
        event_logger = get_event_logger(logs_dir)
        if logs_dir is not None:
            run_logger = get_logger("alpack.sandbox", logs_dir)
            run_logger.info("Backend: %s (%s)", plan.kind.value, backend.executable)
            run_logger.info("Rootfs: %s", request.rootfs)
    except OSError as exc:
        logger.warning("Cannot write logs to %s (%s); continuing without them", logs_dir, exc)
        event_logger = NullEventLogger()

    for diagnostic in plan.diagnostics:
        event_logger.record({"event": "sandbox.diagnostic", **diagnostic.to_dict()})

    event_logger.record(
        {
            "event": "sandbox.start",
            "backend": plan.kind.value,
            "executable": str(backend.executable),
            "rootfs": str(request.rootfs),
            "use_root": request.use_root,
        }
    )
    result = launch(backend, plan)
    event_logger.record(
        {
            "event": "sandbox.exit",
            "exit_code": result.exit_code,
            "signal": result.signal,
            "elapsed_s": result.elapsed_s,
        }
    )
    return result


def setup_rootfs(
    options: SetupOptions,
    settings: Settings,
    ctx: HostContext,
    *,
    client: Optional[httpx.Client] = None,
    logs_dir: Optional[Path] = None,
) -> ExecutionResult:
    """Install a fresh minirootfs, then refresh its package index as guest root."""
    rootfs = install_rootfs(options, settings, ctx.machine, client=client)
    request = SandboxRequest(
        rootfs=rootfs,
        command=provision_command(options.minimal),
        use_root=True,
        ignore_extra_binds=True,
    )
    return run_sandbox(request, settings, ctx, logs_dir=logs_dir)
