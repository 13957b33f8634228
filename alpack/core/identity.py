from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from .backend import BackendKind
from .context import HostContext, current_real_identity

__all__ = ["IdentityToken", "current_real_identity", "emulate_identity"]

ROOT_PROMPT = "PS1=# "
USER_PROMPT = "PS1=$ "


@dataclass(frozen=True)
class IdentityToken:
    args: Tuple[str, ...] = ()
    env: Tuple[str, ...] = ()


def emulate_identity(kind: BackendKind, use_root: bool, ctx: HostContext) -> IdentityToken:
    """Presentational only: nothing here grants privilege on the host."""
    if not use_root:
        # bwrap already maps guest uid 0 to the real uid, so no remap flags.
        return IdentityToken(env=(USER_PROMPT, f"UID={ctx.uid}", f"EUID={ctx.euid}"))

    if kind is BackendKind.PTRACE:
        return IdentityToken(
            args=("-0",),
            env=(ROOT_PROMPT, "USER=root", "LOGNAME=root", "UID=0", "EUID=0"),
        )
    return IdentityToken(
        args=(
            "--uid", "0",
            "--gid", "0",
            "--setenv", "USER", "root",
            "--setenv", "LOGNAME", "root",
        ),
        env=(ROOT_PROMPT,),
    )
