from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass
from typing import List, Optional

from .backend import Backend
from .diagnostics import SpawnError
from .plan import IsolationPlan

logger = logging.getLogger(__name__)

ABNORMAL_EXIT = -1


@dataclass(frozen=True)
class ExecutionResult:
    exit_code: int
    argv: List[str]
    elapsed_s: float = 0.0
    signal: Optional[int] = None

    @property
    def process_status(self) -> int:
        """Exit status to hand back to the invoking shell."""
        if self.signal is not None:
            return 128 + self.signal
        if self.exit_code == ABNORMAL_EXIT:
            return 1
        return self.exit_code


def launch(backend: Backend, plan: IsolationPlan) -> ExecutionResult:
    argv = plan.argv(backend.executable)
    logger.debug("Launching %s", " ".join(argv))
    start = time.time()
    try:
        # stdin/stdout/stderr are inherited: interactive shells need the tty.
        proc = subprocess.run(argv, check=False)
    except OSError as exc:
        raise SpawnError(f"failed to launch {backend.executable}: {exc}") from exc
    elapsed = time.time() - start

    if proc.returncode < 0:
        return ExecutionResult(ABNORMAL_EXIT, argv, elapsed, signal=-proc.returncode)
    return ExecutionResult(proc.returncode, argv, elapsed)
