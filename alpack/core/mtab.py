from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from .diagnostics import MountRepairWarning

logger = logging.getLogger(__name__)

MOUNTS_TARGET = "/proc/self/mounts"


def repair_mtab(rootfs: Path) -> Optional[MountRepairWarning]:
    """Point ``<rootfs>/etc/mtab`` at the kernel mount table.

    Failures are logged and returned as a warning; the caller decides
    whether to carry on (the engine always does).
    """
    etc_dir = rootfs / "etc"
    mtab = etc_dir / "mtab"
    if mtab.is_symlink() and os.readlink(mtab) == MOUNTS_TARGET:
        return None

    try:
        etc_dir.mkdir(parents=True, exist_ok=True)
        if mtab.is_symlink() or mtab.exists():
            mtab.unlink()
        mtab.symlink_to(MOUNTS_TARGET)
    except OSError as exc:
        logger.warning("Failed to fix mtab symlink: %s", exc)
        return MountRepairWarning(f"Failed to fix mtab symlink: {exc}", location=str(mtab))
    logger.debug("Linked %s -> %s", mtab, MOUNTS_TARGET)
    return None
