from __future__ import annotations

import asyncio
import contextlib
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote, unquote

import structlog

from ..exceptions import AlreadyExists, StoreError
from .objects import Clock, ObjectStore, StoredObject, utcnow

logger = structlog.get_logger(__name__)

_DATA_SUFFIX = ".bin"
_META_SUFFIX = ".json"


class FilesystemObjectStore(ObjectStore):
    """Filesystem-backed object store under ``root``.

    Layout:
      - objects/<quoted key>.bin   body, created with O_EXCL, mode 0o600
      - objects/<quoted key>.json  {"key", "uploaded", "customMetadata"}

    The exclusive create of the body file is the uniqueness arbiter. A failed
    sidecar write removes the body again. A body left without a sidecar by a
    hard crash still counts as present and is listed with its mtime as upload
    time and no metadata.
    """

    def __init__(self, root: Path | str, clock: Clock | None = None) -> None:
        self.root = Path(root).expanduser()
        self.objects = self.root / "objects"
        self._clock = clock or utcnow

    def ensure(self) -> None:
        self.objects.mkdir(parents=True, exist_ok=True)

    # ----- path helpers -----
    def _data_path(self, key: str) -> Path:
        return self.objects / f"{quote(key, safe='')}{_DATA_SUFFIX}"

    def _meta_path(self, key: str) -> Path:
        return self.objects / f"{quote(key, safe='')}{_META_SUFFIX}"

    # ----- blocking implementations, run in a worker thread -----
    def _read_entry(self, data_path: Path) -> Optional[StoredObject]:
        key = unquote(data_path.name[: -len(_DATA_SUFFIX)])
        try:
            stat = data_path.stat()
        except FileNotFoundError:
            return None
        meta_path = self._meta_path(key)
        try:
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            uploaded = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            return StoredObject(key=key, uploaded=uploaded, size=stat.st_size)
        return StoredObject(
            key=key,
            uploaded=datetime.fromisoformat(meta["uploaded"]),
            size=stat.st_size,
            custom_metadata=dict(meta.get("customMetadata") or {}),
        )

    def _list_sync(self, prefix: str, include_metadata: bool) -> List[StoredObject]:
        if not self.objects.exists():
            return []
        out: List[StoredObject] = []
        for path in self.objects.glob(f"*{_DATA_SUFFIX}"):
            key = unquote(path.name[: -len(_DATA_SUFFIX)])
            if not key.startswith(prefix):
                continue
            entry = self._read_entry(path)
            if entry is None:
                continue
            if not include_metadata:
                entry.custom_metadata = {}
            out.append(entry)
        return out

    def _put_sync(self, key: str, data: bytes, custom_metadata: Dict[str, str]) -> StoredObject:
        self.ensure()
        data_path = self._data_path(key)
        try:
            fd = os.open(data_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            raise AlreadyExists(key) from None
        meta_path = self._meta_path(key)
        tmp = meta_path.with_suffix(".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            entry = StoredObject(
                key=key, uploaded=self._clock(), size=len(data), custom_metadata=dict(custom_metadata)
            )
            meta = {
                "key": key,
                "uploaded": entry.uploaded.isoformat(),
                "customMetadata": entry.custom_metadata,
            }
            tmp.write_text(json.dumps(meta), encoding="utf-8")
            os.replace(tmp, meta_path)
        except BaseException:
            # a body without its sidecar must not outlive a failed put
            for path in (tmp, data_path):
                with contextlib.suppress(FileNotFoundError):
                    path.unlink()
            raise
        return entry

    def _delete_sync(self, keys: List[str]) -> None:
        for key in keys:
            # sidecar first so a half-deleted object is still listed as legacy
            for path in (self._meta_path(key), self._data_path(key)):
                try:
                    path.unlink()
                except FileNotFoundError:
                    pass

    async def _run(self, op: str, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except (AlreadyExists, StoreError):
            raise
        except (OSError, ValueError, KeyError) as exc:
            logger.error("store.io_error", op=op, root=str(self.root), error=str(exc))
            raise StoreError(f"{op} failed under {self.root}: {exc}") from exc

    # ----- ObjectStore API -----
    async def list(self, prefix: str = "", include_metadata: bool = True) -> List[StoredObject]:
        return await self._run("list", self._list_sync, prefix, include_metadata)

    async def head(self, key: str) -> Optional[StoredObject]:
        return await self._run("head", self._read_entry, self._data_path(key))

    async def get(self, key: str) -> Optional[bytes]:
        def _read() -> Optional[bytes]:
            try:
                return self._data_path(key).read_bytes()
            except FileNotFoundError:
                return None

        return await self._run("get", _read)

    async def put(self, key: str, data: bytes, custom_metadata: Dict[str, str]) -> StoredObject:
        entry = await self._run("put", self._put_sync, key, bytes(data), dict(custom_metadata))
        logger.debug("store.put", key=key, size=entry.size)
        return entry

    async def delete(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        await self._run("delete", self._delete_sync, keys)
        logger.debug("store.delete", keys=keys)


__all__ = ["FilesystemObjectStore"]
