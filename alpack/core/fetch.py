from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT_S = 60.0


def stream_to_file(
    url: str,
    dest: Path,
    *,
    client: Optional[httpx.Client] = None,
    mode: Optional[int] = None,
    sha256: Optional[str] = None,
) -> Path:
    """Stream ``url`` into ``dest`` via a temporary file renamed into place."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    # Shown on the console: large downloads otherwise look like a hang.
    logger.warning("Downloading %s ...", url)
    owns_client = client is None
    http = client or httpx.Client(timeout=DOWNLOAD_TIMEOUT_S)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", dir=dest.parent)
    tmp_path = Path(tmp_name)
    digest = hashlib.sha256()
    size = 0
    try:
        with os.fdopen(fd, "wb") as handle:
            with http.stream("GET", url, follow_redirects=True) as response:
                response.raise_for_status()
                for chunk in response.iter_bytes():
                    handle.write(chunk)
                    digest.update(chunk)
                    size += len(chunk)
        if sha256 and digest.hexdigest() != sha256.lower():
            raise ValueError(f"checksum mismatch for {url}")
        if mode is not None:
            tmp_path.chmod(mode)
        tmp_path.replace(dest)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    finally:
        if owns_client:
            http.close()
    logger.info("Saved %s (%d bytes)", dest, size)
    return dest
