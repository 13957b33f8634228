from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .api import run_sandbox, setup_rootfs
from .core.config import config_path, diff_settings, load_settings, read_saved_settings, save_settings
from .core.context import HostContext
from .core.diagnostics import AlpackError
from .core.installer import SetupOptions
from .core.logging import configure_console
from .core.plan import SandboxRequest
from .core.version import __version__

SUBCOMMANDS = {"run", "setup", "config"}
GLOBAL_FLAGS = {"-v", "--verbose"}
BIND_ARGS_FLAGS = {"-b", "--bind-args"}
# run options that consume the following token.
RUN_VALUE_FLAGS = {"-c", "--command", "-R", "--rootfs"}


def build_parser(prog: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Run commands inside an Alpine Linux rootfs with proot or bubblewrap.",
    )
    parser.add_argument("-V", "--version", action="version", version=__version__)
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Execute a command inside the rootfs")
    run.add_argument("-0", "--root", action="store_true", help="Emulate root inside the rootfs")
    run.add_argument("-i", "--ignore-extra-binds", action="store_true")
    run.add_argument("-n", "--no-groups", action="store_true", help="Do not bind passwd and group files")
    run.add_argument(
        "-b",
        "--bind-args",
        default="",
        help="Extra backend bind arguments, e.g. -b '--bind=/opt:/opt'",
    )
    run.add_argument("-c", "--command", dest="commands", action="append", default=[])
    run.add_argument("-R", "--rootfs")
    run.add_argument("args", nargs=argparse.REMAINDER)

    setup = sub.add_parser("setup", help="Install an Alpine minirootfs")
    setup.add_argument("--edge", action="store_true", help="Install the edge release")
    setup.add_argument("--no-cache", action="store_true", help="Do not keep the downloaded tarball")
    setup.add_argument("--minimal", action="store_true", help="Only refresh the package index")
    setup.add_argument("-r", "--reinstall", action="store_true")
    setup.add_argument("--mirror")
    setup.add_argument("--cache")
    setup.add_argument("-R", "--rootfs")

    config = sub.add_parser("config", help="Display or modify global configuration")
    handler = config.add_mutually_exclusive_group()
    handler.add_argument("--use-proot", dest="cmd_rootfs", action="store_const", const="proot")
    handler.add_argument("--use-bwrap", dest="cmd_rootfs", action="store_const", const="bwrap")
    release = config.add_mutually_exclusive_group()
    release.add_argument("--use-latest-stable", dest="release", action="store_const", const="latest-stable")
    release.add_argument("--use-edge", dest="release", action="store_const", const="edge")
    config.add_argument("--cache-dir")
    config.add_argument("--rootfs-dir")
    config.add_argument("--default-mirror")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    ctx = HostContext.capture()
    args_in = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser(ctx.app_name)
    args = parser.parse_args(_inline_bind_args(_default_to_run(args_in)))
    configure_console(args.verbose)

    try:
        if args.command == "config":
            return _config(args, ctx)
        if args.command == "setup":
            return _setup(args, ctx)
        return _run(args, ctx)
    except AlpackError as exc:
        print(f"{ctx.app_name}: {exc}", file=sys.stderr)
        return 1


def _run(args: argparse.Namespace, ctx: HostContext) -> int:
    settings = load_settings(config_path(ctx.home), ctx.home)
    rootfs = Path(args.rootfs) if args.rootfs else settings.rootfs()
    command = _join_command(args.commands, args.args)
    request = SandboxRequest(
        rootfs=rootfs,
        extra_binds=args.bind_args,
        command=command,
        use_root=args.root,
        ignore_extra_binds=args.ignore_extra_binds,
        no_group_mapping=args.no_groups,
    )
    result = run_sandbox(request, settings, ctx, logs_dir=settings.logs_dir())
    return result.process_status


def _setup(args: argparse.Namespace, ctx: HostContext) -> int:
    settings = load_settings(config_path(ctx.home), ctx.home)
    options = SetupOptions(
        rootfs=Path(args.rootfs) if args.rootfs else settings.rootfs(),
        cache_dir=Path(args.cache) if args.cache else settings.cache(),
        mirror=args.mirror,
        edge=args.edge,
        no_cache=args.no_cache,
        minimal=args.minimal,
        reinstall=args.reinstall,
    )
    result = setup_rootfs(options, settings, ctx, logs_dir=settings.logs_dir())
    if result.process_status == 0:
        print(f"Installation completed. Start the environment with: {ctx.app_name} run")
    return result.process_status


def _config(args: argparse.Namespace, ctx: HostContext) -> int:
    path = config_path(ctx.home)
    settings = load_settings(path, ctx.home)
    saved = read_saved_settings(path, ctx.home)
    updates = {
        name: value
        for name, value in (
            ("cmd_rootfs", args.cmd_rootfs),
            ("release", args.release),
            ("cache_dir", args.cache_dir),
            ("rootfs_dir", args.rootfs_dir),
            ("default_mirror", args.default_mirror),
        )
        if value is not None
    }
    for name, value in updates.items():
        setattr(settings, name, value)

    rows = diff_settings(saved, settings)
    width = max(len(name) for name, _, _ in rows)
    for name, value, old in rows:
        shown = f"{old} -> {value}" if old is not None else value
        print(f"{name:<{width}}  {shown}")

    if updates:
        save_settings(settings, path)
    return 0


def _default_to_run(argv: List[str]) -> List[str]:
    """``alpack [-v] ARGS`` means ``alpack [-v] run ARGS``."""
    index = 0
    while index < len(argv) and argv[index] in GLOBAL_FLAGS:
        index += 1
    if index < len(argv) and (
        argv[index] in SUBCOMMANDS or argv[index] in {"-h", "--help", "-V", "--version"}
    ):
        return argv
    return argv[:index] + ["run"] + argv[index:]


def _inline_bind_args(argv: List[str]) -> List[str]:
    """Rewrite ``run -b VALUE`` as ``--bind-args=VALUE``; VALUE usually starts with '-'."""
    start = 0
    while start < len(argv) and argv[start] in GLOBAL_FLAGS:
        start += 1
    if start >= len(argv) or argv[start] != "run":
        return argv
    out = argv[: start + 1]
    index = start + 1
    while index < len(argv):
        token = argv[index]
        if token == "--" or not token.startswith("-"):
            break
        if token in BIND_ARGS_FLAGS and index + 1 < len(argv):
            out.append(f"--bind-args={argv[index + 1]}")
            index += 2
            continue
        out.append(token)
        if token in RUN_VALUE_FLAGS and index + 1 < len(argv):
            out.append(argv[index + 1])
            index += 2
            continue
        index += 1
    return out + argv[index:]


def _join_command(commands: Sequence[str], rest: Sequence[str]) -> Optional[str]:
    parts = list(commands)
    rest = list(rest)
    if rest and rest[0] == "--":
        rest = rest[1:]
    parts.extend(rest)
    return " ".join(parts) if parts else None


if __name__ == "__main__":
    raise SystemExit(main())
