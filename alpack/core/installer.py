from __future__ import annotations

import logging
import os
import shutil
import tarfile
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

import httpx
import yaml

from .config import Settings
from .diagnostics import SetupError
from .fetch import DOWNLOAD_TIMEOUT_S, stream_to_file

logger = logging.getLogger(__name__)

MINIROOTFS_FLAVOR = "alpine-minirootfs"
RELEASE_INDEX = "latest-releases.yaml"
EDGE_RELEASE = "edge"
DEFAULT_PACKAGES = "alpine-sdk autoconf automake cmake glib-dev glib-static libtool go xz"


def target_arch(machine: str, environ: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if environ is None else environ
    return env.get("ALPACK_ARCH") or env.get("ARCH") or machine


@dataclass(frozen=True)
class Mirror:
    url: str
    release: str
    arch: str

    @property
    def base(self) -> str:
        return self.url if self.url.endswith("/") else f"{self.url}/"

    def releases_url(self) -> str:
        return f"{self.base}{self.release}/releases/{self.arch}/"

    def repositories(self) -> str:
        lines = [f"{self.base}{self.release}/main", f"{self.base}{self.release}/community"]
        if self.release == EDGE_RELEASE:
            lines.append(f"{self.base}{self.release}/testing")
        return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class MinirootfsRelease:
    version: str
    file: str
    sha256: Optional[str] = None


@dataclass(frozen=True)
class SetupOptions:
    rootfs: Path
    cache_dir: Path
    mirror: Optional[str] = None
    edge: bool = False
    no_cache: bool = False
    minimal: bool = False
    reinstall: bool = False


def find_minirootfs(mirror: Mirror, client: httpx.Client) -> MinirootfsRelease:
    """Pick the minirootfs tarball listed in the mirror's release index."""
    url = mirror.releases_url() + RELEASE_INDEX
    response = client.get(url, follow_redirects=True)
    response.raise_for_status()
    entries = yaml.safe_load(response.text) or []
    if isinstance(entries, list):
        for entry in entries:
            if isinstance(entry, dict) and entry.get("flavor") == MINIROOTFS_FLAVOR and entry.get("file"):
                return MinirootfsRelease(
                    version=str(entry.get("version", "")),
                    file=str(entry["file"]),
                    sha256=entry.get("sha256"),
                )
    raise SetupError(f"No {MINIROOTFS_FLAVOR} files found at {mirror.releases_url()}", location=url)


def extract_rootfs(tarball: Path, rootfs: Path) -> None:
    rootfs.mkdir(parents=True, exist_ok=True)
    with tarfile.open(tarball, "r:gz") as archive:
        # Absolute busybox symlinks must survive; the "data" filter rejects them.
        archive.extractall(rootfs, filter="tar")


def write_repositories(rootfs: Path, mirror: Mirror) -> Path:
    path = rootfs / "etc" / "apk" / "repositories"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(mirror.repositories(), encoding="utf-8")
    return path


def install_rootfs(
    options: SetupOptions,
    settings: Settings,
    machine: str,
    *,
    client: Optional[httpx.Client] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Path:
    """Download the newest minirootfs for the configured release and unpack it."""
    if options.rootfs.is_dir() and not options.reinstall:
        raise SetupError(
            f"Rootfs directory {options.rootfs} is already available",
            location=str(options.rootfs),
            hints=["use -r/--reinstall to replace it"],
        )
    mirror = Mirror(
        url=options.mirror or settings.default_mirror,
        release=EDGE_RELEASE if options.edge else settings.release,
        arch=target_arch(machine, environ),
    )
    cache_dir = Path(tempfile.mkdtemp(prefix="alpack-")) if options.no_cache else options.cache_dir
    owns_client = client is None
    http = client or httpx.Client(timeout=DOWNLOAD_TIMEOUT_S)
    try:
        release = find_minirootfs(mirror, http)
        tarball = cache_dir / release.file
        if tarball.exists():
            logger.info("Using cached %s", tarball)
        else:
            stream_to_file(mirror.releases_url() + release.file, tarball, client=http, sha256=release.sha256)
        if options.reinstall and options.rootfs.exists():
            shutil.rmtree(options.rootfs)
        extract_rootfs(tarball, options.rootfs)
        write_repositories(options.rootfs, mirror)
    except (httpx.HTTPError, OSError, ValueError, tarfile.TarError, yaml.YAMLError) as exc:
        raise SetupError(f"Failed to install rootfs into {options.rootfs}: {exc}") from exc
    finally:
        if owns_client:
            http.close()
        if options.no_cache:
            shutil.rmtree(cache_dir, ignore_errors=True)
    logger.info("Installed Alpine %s (%s) into %s", release.version, mirror.arch, options.rootfs)
    return options.rootfs


def provision_command(minimal: bool) -> str:
    if minimal:
        return "apk update"
    return f"apk update && apk add {DEFAULT_PACKAGES}"
