from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterable, Tuple, Union


OPTIONAL_HOST_PATHS: Tuple[str, ...] = (
    "/etc/asound.conf",
    "/etc/fonts",
    "/usr/share/font-config",
    "/usr/share/fontconfig",
    "/usr/share/fonts",
    "/usr/share/themes",
)
ICONS_DIR = "/usr/share/icons"


@dataclass(frozen=True)
class HostProbe:
    # Existing fixed candidates, in candidate order.
    fixed: Tuple[str, ...] = ()
    # Unordered: directory enumeration order is filesystem dependent.
    icon_cursor_dirs: FrozenSet[str] = field(default_factory=frozenset)

    def optional_binds(self) -> Tuple[str, ...]:
        return self.fixed + tuple(self.icon_cursor_dirs)


EMPTY_PROBE = HostProbe()


def probe_host_path(path: Union[str, Path]) -> bool:
    return os.path.exists(path)


def enumerate_icon_cursor_dirs(base_dir: Union[str, Path] = ICONS_DIR) -> FrozenSet[str]:
    try:
        entries = os.listdir(base_dir)
    except OSError:
        return frozenset()
    found = set()
    for name in entries:
        cursors = os.path.join(str(base_dir), name, "cursors")
        if os.path.isdir(cursors):
            found.add(cursors)
    return frozenset(found)


def probe_host_resources(
    candidates: Iterable[str] = OPTIONAL_HOST_PATHS,
    icons_dir: Union[str, Path] = ICONS_DIR,
) -> HostProbe:
    return HostProbe(
        fixed=tuple(path for path in candidates if probe_host_path(path)),
        icon_cursor_dirs=enumerate_icon_cursor_dirs(icons_dir),
    )
