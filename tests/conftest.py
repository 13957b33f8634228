from __future__ import annotations

from pathlib import Path

import pytest

from alpack.core.context import HostContext


@pytest.fixture
def host_ctx(tmp_path: Path) -> HostContext:
    home = tmp_path / "home"
    home.mkdir()
    return HostContext(uid=1000, gid=1001, euid=1002, home=home, app_name="alpack", machine="x86_64")


@pytest.fixture
def rootfs(tmp_path: Path) -> Path:
    path = tmp_path / "alpine"
    (path / "etc").mkdir(parents=True)
    return path
