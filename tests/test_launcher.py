from __future__ import annotations

import signal
from pathlib import Path

import pytest

from alpack.core.backend import Backend, BackendKind
from alpack.core.diagnostics import SpawnError
from alpack.core.launcher import ABNORMAL_EXIT, launch
from alpack.core.plan import IsolationPlan


def _shell_plan(script: str) -> IsolationPlan:
    # Renders as: /bin/sh -c SCRIPT env ...; "env" becomes $0 of the script.
    return IsolationPlan(kind=BackendKind.PTRACE, args=["-c", script], env=[], shell=[])


def test_exit_code_is_returned():
    result = launch(Backend(BackendKind.PTRACE, Path("/bin/sh")), _shell_plan("exit 7"))
    assert result.exit_code == 7
    assert result.signal is None
    assert result.process_status == 7
    assert result.argv[:3] == ["/bin/sh", "-c", "exit 7"]


def test_signal_maps_to_sentinel():
    result = launch(Backend(BackendKind.PTRACE, Path("/bin/sh")), _shell_plan("kill -TERM $$"))
    assert result.exit_code == ABNORMAL_EXIT
    assert result.signal == signal.SIGTERM
    assert result.process_status == 128 + signal.SIGTERM


def test_spawn_failure_raises(tmp_path):
    missing = tmp_path / "no-such-backend"
    with pytest.raises(SpawnError) as excinfo:
        launch(Backend(BackendKind.NAMESPACE, missing), _shell_plan("true"))
    assert isinstance(excinfo.value.__cause__, OSError)
    assert str(missing) in str(excinfo.value)
