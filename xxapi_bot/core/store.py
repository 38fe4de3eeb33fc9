from __future__ import annotations

import os
from pathlib import Path

from ..errors import PersistError


class FileStore:
    """Directory-backed blob store; the key is the file name."""

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self._dir = Path(directory)

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key in {".", ".."}:
            raise PersistError(f"invalid cache key: {key!r}")
        return self._dir / key

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def read(self, key: str) -> bytes:
        try:
            return self.path_for(key).read_bytes()
        except OSError as exc:
            raise PersistError(f"读取缓存失败: {key}") from exc

    def write(self, key: str, data: bytes) -> Path:
        """Write atomically: readers see either no file or the complete payload."""

        path = self.path_for(key)
        tmp = path.with_name(f".{key}.tmp")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, path)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise PersistError(f"写入缓存失败: {key}") from exc
        return path

    def list(self) -> list[str]:
        if not self._dir.exists():
            return []
        try:
            # Dot files are in-flight or abandoned temp writes, not entries.
            return sorted(
                p.name for p in self._dir.iterdir() if p.is_file() and not p.name.startswith(".")
            )
        except OSError as exc:
            raise PersistError("读取缓存目录失败") from exc

    def delete(self, key: str) -> None:
        try:
            self.path_for(key).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise PersistError(f"删除缓存失败: {key}") from exc
