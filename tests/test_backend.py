from __future__ import annotations

import dataclasses
from pathlib import Path

import httpx
import pytest

from alpack.core import backend as backend_mod
from alpack.core.backend import BINARY_URLS, BackendKind, resolve_backend_path
from alpack.core.diagnostics import BackendUnavailableError, ConfigurationError


@pytest.fixture
def no_system_binaries(monkeypatch):
    monkeypatch.setattr(backend_mod.shutil, "which", lambda name: None)


def test_parse_known_and_unknown():
    assert BackendKind.parse("proot") is BackendKind.PTRACE
    assert BackendKind.parse("bwrap") is BackendKind.NAMESPACE
    with pytest.raises(ConfigurationError) as excinfo:
        BackendKind.parse("chroot")
    assert str(excinfo.value) == "Unsupported rootfs command: chroot"
    assert excinfo.value.diagnostic.code == "E-CONFIG"


def test_search_path_wins(monkeypatch, host_ctx):
    monkeypatch.setattr(backend_mod.shutil, "which", lambda name: f"/usr/bin/{name}")
    first = resolve_backend_path(BackendKind.NAMESPACE, host_ctx)
    assert first.executable == Path("/usr/bin/bwrap")
    assert resolve_backend_path(BackendKind.NAMESPACE, host_ctx) == first


def test_local_cache_used(no_system_binaries, host_ctx):
    cached = host_ctx.home / ".local" / "bin" / "proot"
    cached.parent.mkdir(parents=True)
    cached.write_text("#!/bin/sh\n", encoding="utf-8")

    def fetch(url, dest):
        raise AssertionError("should not download")

    resolved = resolve_backend_path(BackendKind.PTRACE, host_ctx, fetch=fetch)
    assert resolved.executable == cached


def test_download_on_prebuilt_arch(no_system_binaries, host_ctx):
    calls = []

    def fetch(url, dest):
        calls.append((url, dest))
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(b"\x7fELF")
        dest.chmod(0o755)
        return dest

    first = resolve_backend_path(BackendKind.PTRACE, host_ctx, fetch=fetch)
    second = resolve_backend_path(BackendKind.PTRACE, host_ctx, fetch=fetch)
    assert calls == [(BINARY_URLS[BackendKind.PTRACE], host_ctx.home / ".local/bin/proot")]
    assert first == second


def test_other_arch_is_unavailable(no_system_binaries, host_ctx):
    ctx = dataclasses.replace(host_ctx, machine="aarch64")
    with pytest.raises(BackendUnavailableError):
        resolve_backend_path(BackendKind.NAMESPACE, ctx, fetch=lambda url, dest: dest)


def test_download_failure_is_unavailable(no_system_binaries, host_ctx):
    def fetch(url, dest):
        raise httpx.ConnectError("offline")

    with pytest.raises(BackendUnavailableError) as excinfo:
        resolve_backend_path(BackendKind.NAMESPACE, host_ctx, fetch=fetch)
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


def test_download_binary_writes_executable(tmp_path):
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"binary")))
    dest = tmp_path / "bin" / "bwrap"
    assert backend_mod.download_binary("https://example.invalid/bwrap", dest, client=client) == dest
    assert dest.read_bytes() == b"binary"
    assert dest.stat().st_mode & 0o777 == 0o755
    assert [p.name for p in dest.parent.iterdir()] == ["bwrap"]


def test_download_is_announced_on_console(tmp_path, caplog):
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"binary")))
    with caplog.at_level("WARNING", logger="alpack"):
        backend_mod.download_binary("https://example.invalid/proot", tmp_path / "proot", client=client)
    announced = [r for r in caplog.records if r.levelname == "WARNING"]
    assert [r.getMessage() for r in announced] == ["Downloading https://example.invalid/proot ..."]


def test_failed_download_leaves_nothing_behind(tmp_path):
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    with pytest.raises(httpx.HTTPStatusError):
        backend_mod.download_binary("https://example.invalid/proot", tmp_path / "proot", client=client)
    assert list(tmp_path.iterdir()) == []
