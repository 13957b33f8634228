from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from .backend import BackendKind
from .diagnostics import ConfigurationError, Diagnostic, RootfsMissingError
from .host_resources import HostProbe
from .identity import IdentityToken
from .mtab import repair_mtab

GUEST_PATH = "/bin:/sbin:/usr/bin:/usr/sbin:/usr/libexec"
GUEST_SHELL = "/bin/sh"
MEDIA_MOUNTS = ("/media", "/mnt")

NAMESPACE_HOST_FILES = (
    "/etc/host.conf",
    "/etc/hosts",
    "/etc/hosts.equiv",
    "/etc/netgroup",
    "/etc/networks",
    "/etc/nsswitch.conf",
    "/etc/resolv.conf",
    "/etc/localtime",
)
NAMESPACE_BEST_EFFORT = ("/proc", "/tmp", "/run")
SYSTEM_BUS_SOCKET = "/var/run/dbus/system_bus_socket"
IDENTITY_FILES = ("/etc/passwd", "/etc/group")
# proot binds the guest copies with group first.
PTRACE_IDENTITY_FILES = ("/etc/group", "/etc/passwd")


@dataclass(frozen=True)
class SandboxRequest:
    rootfs: Path
    extra_binds: str = ""
    command: Optional[str] = None
    use_root: bool = False
    ignore_extra_binds: bool = False
    no_group_mapping: bool = False


@dataclass
class IsolationPlan:
    kind: BackendKind
    args: List[str]
    env: List[str]
    shell: List[str]
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def argv(self, executable: Path | str) -> List[str]:
        return [str(executable), *self.args, "env", *self.env, *self.shell]


def check_rootfs(rootfs: Path, app_name: str = "alpack") -> None:
    if not rootfs.is_dir():
        raise RootfsMissingError(
            f"rootfs directory not found (expected location: {rootfs}); "
            f"run '{app_name} setup' to install it or point '{app_name} config --rootfs-dir' at an existing rootfs",
            location=str(rootfs),
        )


def build_isolation_args(
    kind: BackendKind,
    request: SandboxRequest,
    probe: HostProbe,
    identity: IdentityToken,
    *,
    home: Path,
    app_name: str = "alpack",
) -> IsolationPlan:
    check_rootfs(request.rootfs, app_name)
    extra = _split_extra_binds(request.extra_binds)
    diagnostics: List[Diagnostic] = []

    if kind is BackendKind.PTRACE:
        args = _ptrace_args(request, extra, probe)
    elif kind is BackendKind.NAMESPACE:
        warning = repair_mtab(request.rootfs)
        if warning is not None:
            diagnostics.append(warning)
        args = _namespace_args(request, extra, probe, home)
    else:  # pragma: no cover - enum is closed
        raise ConfigurationError(f"Unsupported rootfs command: {kind}")

    args.extend(identity.args)
    env = [*identity.env, f"SHELL={GUEST_SHELL}", f"PATH={GUEST_PATH}"]
    return IsolationPlan(
        kind=kind,
        args=args,
        env=env,
        shell=_shell_invocation(request.command),
        diagnostics=diagnostics,
    )


def _ptrace_args(request: SandboxRequest, extra: Sequence[str], probe: HostProbe) -> List[str]:
    rootfs = str(request.rootfs)
    args = ["-R", rootfs]
    args.extend(f"--bind={path}" for path in MEDIA_MOUNTS)
    args.extend(extra)

    if not request.no_group_mapping:
        # The guest's own copies, not the live host files.
        for path in PTRACE_IDENTITY_FILES:
            args.append(f"--bind={rootfs}{path}:{path}")

    if not request.ignore_extra_binds:
        args.extend(f"--bind={path}" for path in probe.optional_binds())
    return args


def _namespace_args(
    request: SandboxRequest,
    extra: Sequence[str],
    probe: HostProbe,
    home: Path,
) -> List[str]:
    args = [
        "--unshare-user",
        "--share-net",
        "--bind", str(request.rootfs), "/",
        "--die-with-parent",
    ]
    for path in NAMESPACE_HOST_FILES:
        args.extend(["--ro-bind-try", path, path])
    args.extend(["--dev-bind", "/dev", "/dev"])
    args.extend(["--ro-bind", "/sys", "/sys"])
    for path in NAMESPACE_BEST_EFFORT:
        args.extend(["--bind-try", path, path])
    args.extend(["--ro-bind-try", SYSTEM_BUS_SOCKET, SYSTEM_BUS_SOCKET])
    args.extend(["--bind", str(home), str(home)])
    for path in MEDIA_MOUNTS:
        args.extend(["--bind", path, path])
    args.extend(extra)
    args.extend(["--setenv", "PATH", GUEST_PATH])

    if not request.no_group_mapping:
        for path in IDENTITY_FILES:
            args.extend(["--ro-bind-try", path, path])

    if not request.ignore_extra_binds:
        for path in probe.optional_binds():
            args.extend(["--ro-bind", path, path])
    return args


def _split_extra_binds(raw: str) -> List[str]:
    if not raw or not raw.strip():
        return []
    try:
        return shlex.split(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid bind arguments {raw!r}: {exc}") from exc


def _shell_invocation(command: Optional[str]) -> List[str]:
    shell = [GUEST_SHELL, "-l"]
    if command:
        shell.extend(["-c", command])
    return shell

