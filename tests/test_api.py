from __future__ import annotations

from pathlib import Path

import pytest

from alpack import SandboxRequest, prepare, run_sandbox, setup_rootfs
from alpack.core.config import Settings
from alpack.core.installer import DEFAULT_PACKAGES, SetupOptions
from alpack.core.diagnostics import RootfsMissingError
from alpack.core.launcher import ExecutionResult


def test_prepare_namespace_root(rootfs, host_ctx):
    settings = Settings.defaults(host_ctx.home).model_copy(update={"cmd_rootfs": "bwrap"})
    request = SandboxRequest(rootfs=rootfs, command="id -u", use_root=True, ignore_extra_binds=True)
    plan = prepare(request, settings, host_ctx)
    argv = plan.argv("/usr/bin/bwrap")
    assert argv[argv.index("--uid") + 1] == "0"
    assert argv[argv.index("--gid") + 1] == "0"
    assert argv[-4:] == ["/bin/sh", "-l", "-c", "id -u"]
    assert (rootfs / "etc" / "mtab").is_symlink()


def test_missing_rootfs_checked_before_backend(tmp_path, host_ctx, monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("backend must not be resolved")

    monkeypatch.setattr("alpack.api.resolve_backend_path", fail)
    with pytest.raises(RootfsMissingError):
        run_sandbox(SandboxRequest(rootfs=tmp_path / "gone"), Settings.defaults(host_ctx.home), host_ctx)


def test_run_sandbox_executes_plan(rootfs, host_ctx, monkeypatch, tmp_path):
    launched = []

    def fake_launch(backend, plan):
        launched.append(plan.argv(backend.executable))
        return ExecutionResult(0, launched[-1])

    monkeypatch.setattr("alpack.api.launch", fake_launch)
    monkeypatch.setattr("alpack.core.backend.shutil.which", lambda name: f"/opt/bin/{name}")
    result = run_sandbox(
        SandboxRequest(rootfs=rootfs, ignore_extra_binds=True),
        Settings.defaults(host_ctx.home),
        host_ctx,
        logs_dir=tmp_path / "logs",
    )
    assert result.exit_code == 0
    assert launched[0][:3] == ["/opt/bin/proot", "-R", str(rootfs)]
    assert (tmp_path / "logs" / "events.jsonl").exists()
    assert Path(launched[0][0]).name == "proot"


def test_unwritable_logs_dir_does_not_stop_the_run(rootfs, host_ctx, monkeypatch, tmp_path, caplog):
    blocker = tmp_path / "cache"
    blocker.write_text("not a directory", encoding="utf-8")
    monkeypatch.setattr("alpack.api.launch", lambda backend, plan: ExecutionResult(7, []))
    monkeypatch.setattr("alpack.core.backend.shutil.which", lambda name: f"/opt/bin/{name}")
    with caplog.at_level("WARNING", logger="alpack"):
        result = run_sandbox(
            SandboxRequest(rootfs=rootfs, ignore_extra_binds=True),
            Settings.defaults(host_ctx.home),
            host_ctx,
            logs_dir=blocker / "logs",
        )
    assert result.exit_code == 7
    assert any("Cannot write logs" in record.getMessage() for record in caplog.records)


def test_setup_rootfs_provisions_as_guest_root(host_ctx, monkeypatch, tmp_path):
    installed = tmp_path / "fresh"
    requests = []

    def fake_install(options, settings, machine, *, client=None):
        return options.rootfs

    def fake_run(request, settings, ctx, *, logs_dir=None):
        requests.append(request)
        return ExecutionResult(0, [])

    monkeypatch.setattr("alpack.api.install_rootfs", fake_install)
    monkeypatch.setattr("alpack.api.run_sandbox", fake_run)
    options = SetupOptions(rootfs=installed, cache_dir=tmp_path / "cache")
    assert setup_rootfs(options, Settings.defaults(host_ctx.home), host_ctx).exit_code == 0
    request = requests[0]
    assert request.rootfs == installed
    assert request.use_root and request.ignore_extra_binds and not request.no_group_mapping
    assert request.command == f"apk update && apk add {DEFAULT_PACKAGES}"

    requests.clear()
    minimal = SetupOptions(rootfs=tmp_path / "other", cache_dir=tmp_path / "cache", minimal=True)
    setup_rootfs(minimal, Settings.defaults(host_ctx.home), host_ctx)
    assert requests[0].command == "apk update"
