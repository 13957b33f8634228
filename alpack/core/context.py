from __future__ import annotations

import os
import platform
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence, Tuple


DEFAULT_APP_NAME = "alpack"


def current_real_identity() -> Tuple[int, int]:
    return os.getuid(), os.getgid()


@dataclass(frozen=True)
class HostContext:
    """Process-wide facts, captured once at start and passed down explicitly."""

    uid: int
    gid: int
    euid: int
    home: Path
    app_name: str
    machine: str

    @classmethod
    def capture(
        cls,
        argv: Optional[Sequence[str]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "HostContext":
        env = os.environ if environ is None else environ
        args = sys.argv if argv is None else argv
        app_name = Path(args[0]).name if args and args[0] else DEFAULT_APP_NAME
        if app_name in {"__main__.py", "-c", "-m"}:
            app_name = DEFAULT_APP_NAME
        uid, gid = current_real_identity()
        return cls(
            uid=uid,
            gid=gid,
            euid=os.geteuid(),
            home=Path(env.get("HOME") or "."),
            app_name=app_name,
            machine=platform.machine(),
        )
