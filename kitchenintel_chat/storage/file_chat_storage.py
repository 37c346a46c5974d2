import asyncio
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote

from .chat_storage import ChatStorage, StorageError

logger = logging.getLogger(__name__)


class FileChatStorage(ChatStorage):
    """Storage backed by a directory with one UTF-8 file per key.

    Survives restarts of the client, like browser local storage survives a reload.
    """
    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory).expanduser()
        self._lock = threading.Lock()

    def _path_for(self, key: str) -> Path:
        # Percent-encoded so distinct keys never share a file
        if not key:
            raise ValueError("Storage key must not be empty")
        return self.directory / f"{quote(key, safe='')}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        with self._lock:
            try:
                return path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None
            except (OSError, UnicodeDecodeError) as e:
                raise StorageError(f"Failed to read '{key}' from {path}: {e}", key=key)

    def set_item(self, key: str, value: str) -> None:
        path = self._path_for(key)
        with self._lock:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                # Write to a sibling temp file first so readers never see a partial log
                fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        f.write(value)
                    os.replace(tmp_name, path)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise
            except OSError as e:
                raise StorageError(f"Failed to write '{key}' to {path}: {e}", key=key)
        logger.debug(f"[STORAGE] Wrote {len(value)} chars to {path}")

    def remove_item(self, key: str) -> None:
        path = self._path_for(key)
        with self._lock:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(f"Failed to remove '{key}' at {path}: {e}", key=key)

    # Disk I/O runs in a worker thread, serialized by self._lock

    async def get_item_async(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self.get_item, key)

    async def set_item_async(self, key: str, value: str) -> None:
        await asyncio.to_thread(self.set_item, key, value)

    async def remove_item_async(self, key: str) -> None:
        await asyncio.to_thread(self.remove_item, key)
