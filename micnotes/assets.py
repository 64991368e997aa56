"""Access to recorded audio files on local disk."""

from __future__ import annotations

import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

BYTES_PER_MINUTE = 1024 * 1024


@dataclass(frozen=True, slots=True)
class RecordedAsset:
    """What the recorder hands over once a recording has stopped."""

    ref: str
    size_bytes: int = 0

    @property
    def filename(self) -> str:
        return Path(self.ref).name

    @classmethod
    def from_path(cls, path: Path) -> "RecordedAsset":
        size = path.stat().st_size if path.exists() else 0
        return cls(ref=str(path), size_bytes=size)


def estimate_duration(size_bytes: int) -> float:
    """Rough duration guess: about one minute of AAC per megabyte."""

    return size_bytes / BYTES_PER_MINUTE * 60.0


class LocalAssetStore:
    """Resolve asset references as filesystem paths."""

    def __init__(self, media_dir: Optional[Path] = None) -> None:
        self.media_dir = media_dir

    def exists(self, ref: str) -> bool:
        return Path(ref).is_file()

    def size(self, ref: str) -> int:
        return Path(ref).stat().st_size

    def read_bytes(self, ref: str) -> bytes:
        return Path(ref).read_bytes()

    def delete(self, ref: str) -> None:
        Path(ref).unlink()

    def import_file(self, source, suffix: str = ".m4a") -> RecordedAsset:
        """Copy a binary file object into the media directory."""

        if self.media_dir is None:
            raise RuntimeError("No media directory configured for imports.")
        self.media_dir.mkdir(parents=True, exist_ok=True)
        destination = self.media_dir / f"{uuid.uuid4().hex}{suffix or '.m4a'}"
        with destination.open("wb") as output:
            shutil.copyfileobj(source, output)
        return RecordedAsset.from_path(destination)
