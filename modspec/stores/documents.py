"""Document store abstraction and its local filesystem implementation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol

from ..errors import DocumentNotFoundError, FileSystemError, ValidationError


@dataclass(frozen=True)
class FileStat:
    mtime: float
    size: int


class DocumentStore(Protocol):
    """Async access to feature documents addressed by relative POSIX paths."""

    async def read_file(self, path: str) -> bytes: ...

    async def write_file(self, path: str, data: bytes) -> None: ...

    async def stat(self, path: str) -> FileStat: ...

    async def delete(self, path: str) -> None: ...

    async def create_directory(self, path: str) -> None: ...


def feature_path(base_path: str, feature: str, artifact: str | None = None) -> str:
    """Compose ``{base_path}/{feature}/{artifact}``."""
    parts = [part for part in (base_path, feature, artifact) if part]
    return str(PurePosixPath(*parts))


async def read_text(store: DocumentStore, path: str) -> str:
    data = await store.read_file(path)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValidationError(f"Document is not valid UTF-8: {path}") from exc


async def write_text(store: DocumentStore, path: str, text: str) -> None:
    await store.write_file(path, text.encode("utf-8"))


async def exists(store: DocumentStore, path: str) -> bool:
    try:
        await store.stat(path)
    except DocumentNotFoundError:
        return False
    return True


class LocalDocumentStore:
    """Stores documents below a workspace root on the local filesystem."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    async def read_file(self, path: str) -> bytes:
        target = self._resolve(path)
        return await asyncio.to_thread(self._guard, path, target.read_bytes)

    async def write_file(self, path: str, data: bytes) -> None:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        await asyncio.to_thread(self._guard, path, _write)

    async def stat(self, path: str) -> FileStat:
        target = self._resolve(path)
        result = await asyncio.to_thread(self._guard, path, target.stat)
        return FileStat(mtime=result.st_mtime, size=result.st_size)

    async def delete(self, path: str) -> None:
        target = self._resolve(path)
        await asyncio.to_thread(self._guard, path, target.unlink)

    async def create_directory(self, path: str) -> None:
        target = self._resolve(path)
        await asyncio.to_thread(
            self._guard, path, lambda: target.mkdir(parents=True, exist_ok=True)
        )

    def _resolve(self, path: str) -> Path:
        root = self.root.resolve()
        target = (root / path).resolve()
        if target != root and root not in target.parents:
            raise FileSystemError(f"Path escapes the workspace root: {path}", path=path)
        return target

    @staticmethod
    def _guard(path: str, operation):
        try:
            return operation()
        except FileNotFoundError as exc:
            raise DocumentNotFoundError(f"Document not found: {path}", path=path) from exc
        except OSError as exc:
            raise FileSystemError(f"Failed to access {path}: {exc}", path=path) from exc


__all__ = [
    "DocumentStore",
    "FileStat",
    "LocalDocumentStore",
    "exists",
    "feature_path",
    "read_text",
    "write_text",
]
