from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional

import httpx

from .context import HostContext
from .diagnostics import BackendUnavailableError, ConfigurationError
from .fetch import stream_to_file

logger = logging.getLogger(__name__)

LOCAL_BIN = ".local/bin"
# Static builds are only published for this architecture.
PREBUILT_MACHINE = "x86_64"


class BackendKind(Enum):
    PTRACE = "proot"
    NAMESPACE = "bwrap"

    @classmethod
    def parse(cls, identifier: str) -> "BackendKind":
        for kind in cls:
            if kind.value == identifier:
                return kind
        raise ConfigurationError(f"Unsupported rootfs command: {identifier}")


BINARY_URLS: Dict[BackendKind, str] = {
    BackendKind.PTRACE: "https://github.com/LinuxDicasPro/StaticHub/releases/download/proot/proot",
    BackendKind.NAMESPACE: "https://github.com/LinuxDicasPro/StaticHub/releases/download/bwrap/bwrap",
}


@dataclass(frozen=True)
class Backend:
    kind: BackendKind
    executable: Path


def download_binary(url: str, dest: Path, client: Optional[httpx.Client] = None) -> Path:
    """Stream ``url`` into ``dest`` atomically and mark it executable."""
    return stream_to_file(url, dest, client=client, mode=0o755)


def resolve_backend_path(
    kind: BackendKind,
    ctx: HostContext,
    *,
    fetch: Callable[[str, Path], Path] = download_binary,
) -> Backend:
    found = shutil.which(kind.value)
    if found:
        return Backend(kind, Path(found))

    local_path = ctx.home / LOCAL_BIN / kind.value
    if local_path.exists():
        return Backend(kind, local_path)

    if ctx.machine != PREBUILT_MACHINE:
        raise BackendUnavailableError(
            f"{kind.value} not found in the system and no binary is available for this architecture",
            hints=[f"install {kind.value} with your distribution's package manager"],
        )

    try:
        path = fetch(BINARY_URLS[kind], local_path)
    except (httpx.HTTPError, OSError) as exc:
        raise BackendUnavailableError(f"failed to download {kind.value}: {exc}") from exc
    return Backend(kind, path)
