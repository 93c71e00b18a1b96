"""Key-value persistence backends used by the record store."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol
from urllib.parse import quote

LOG = logging.getLogger(__name__)


class Persistence(Protocol):
    """Flat key-value surface. Blobs are opaque text."""

    def load(self, key: str) -> Optional[str]:
        ...

    def store(self, key: str, blob: str) -> None:
        ...


class InMemoryPersistence:
    """Dictionary-backed persistence, for tests and embedding."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.blobs: Dict[str, str] = dict(initial or {})

    def load(self, key: str) -> Optional[str]:
        return self.blobs.get(key)

    def store(self, key: str, blob: str) -> None:
        self.blobs[key] = blob


class FilePersistence:
    """Stores each key as ``<directory>/<percent-encoded key>.yaml``."""

    def __init__(self, directory: Path):
        self.directory = Path(directory).expanduser()

    def path_for(self, key: str) -> Path:
        # Percent-encoding is one-to-one, so distinct keys never share a file.
        safe_key = quote(key, safe="")
        return self.directory / f"{safe_key}.yaml"

    def load(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def store(self, key: str, blob: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        # Write next to the target and swap it in, so a crash never leaves half a file.
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(blob)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        LOG.debug(f"Wrote {len(blob)} characters to {path}")
