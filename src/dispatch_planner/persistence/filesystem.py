"""File-based persistence helpers for plan state and exported artifacts."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Iterator

from ..config import settings


class FileStorage:
    """Thin wrapper around the data root for storing JSON documents and export files."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = (root or settings.data_root).resolve()
        self.output_root = self.root / "outputs"
        self.state_root = self.root / "state"

    def state_path(self, collection: str, name: str) -> Path:
        return self.state_root / collection / f"{name}.json"

    def write_json(self, path: Path, data: Any, *, indent: int = 2) -> None:
        """Write ``data`` atomically so readers never observe a half-written document."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=indent)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def read_json(self, path: Path) -> Any | None:
        if not path.is_file():
            return None
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def iter_json(self, collection: str) -> Iterator[Any]:
        directory = self.state_root / collection
        if not directory.is_dir():
            return
        for path in sorted(directory.glob("*.json")):
            data = self.read_json(path)
            if data is not None:
                yield data

    def delete(self, path: Path) -> bool:
        if path.is_file():
            path.unlink()
            return True
        return False

    def write_bytes(self, path: Path, payload: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as handle:
            handle.write(payload)

    def resolve_output(self, folder: str, filename: str) -> Path:
        candidate = (self.output_root / folder / filename).resolve()
        if self.output_root not in candidate.parents or not candidate.is_file():
            raise FileNotFoundError(filename)
        return candidate
