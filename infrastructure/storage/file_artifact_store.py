"""Artifact store that writes timestamped files to local directories."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from domain.errors import ConfigError, PersistError
from domain.interfaces import ArtifactStore

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_EXTENSIONS: dict[str, str] = {
    "response": ".html",
    "record": ".txt",
    "evidence": ".json",
}


class FileArtifactStore(ArtifactStore):
    """Write ``<dir>/<YYYY-MM-DD HH:mm:ss>-<kind><ext>`` files.

    Two artifacts of the same kind in the same second get ``-1``, ``-2``...
    suffixes instead of overwriting each other.
    """

    def __init__(
        self,
        directories: Mapping[str, str | Path],
        *,
        default_dir: str | Path = "record",
        tz: str = "Asia/Seoul",
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._directories = {kind: Path(path) for kind, path in directories.items()}
        self._default_dir = Path(default_dir)
        try:
            self._tz = ZoneInfo(tz)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigError(f"Unknown timezone '{tz}'") from exc
        self._now = now or (lambda: datetime.now(timezone.utc))

    def timestamp(self) -> str:
        return self._now().astimezone(self._tz).strftime(TIMESTAMP_FORMAT)

    def save(self, content: str | bytes, kind: str) -> str:
        directory = self._directories.get(kind, self._default_dir)
        data = content.encode("utf-8") if isinstance(content, str) else content
        stem = f"{self.timestamp()}-{kind}"
        extension = _EXTENSIONS.get(kind, ".txt")
        try:
            directory.mkdir(parents=True, exist_ok=True)
            suffix = 0
            while True:
                name = f"{stem}{extension}" if suffix == 0 else f"{stem}-{suffix}{extension}"
                path = directory / name
                try:
                    with path.open("xb") as handle:
                        handle.write(data)
                    break
                except FileExistsError:
                    suffix += 1
        except OSError as exc:
            raise PersistError(f"could not write {kind} artifact to {directory}: {exc}") from exc
        logger.debug("Stored %s artifact (%d bytes) at %s", kind, len(data), path)
        return str(path)

    def delete(self, location: str) -> None:
        try:
            Path(location).unlink(missing_ok=True)
        except OSError as exc:
            raise PersistError(f"could not remove artifact {location}: {exc}") from exc
        logger.debug("Removed artifact %s", location)


__all__ = ["FileArtifactStore", "TIMESTAMP_FORMAT"]
