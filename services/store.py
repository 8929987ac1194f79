"""
Store Service
JSON-file key-value store with get/set/all semantics
"""

import asyncio
import json
import logging
import os
from typing import Any, Dict, List, Optional

import aiofiles

from services.errors import StoreError

logger = logging.getLogger("kakuli-bot")


class JsonFileStore:
    """Key-value store persisted as a single JSON document.

    The whole document is kept in memory; every set rewrites the file through
    a temp file and an atomic replace. Keys keep insertion order.
    """

    def __init__(self, file_path: str):
        self.file_path = file_path
        self._data: Dict[str, Any] = {}
        self._lock = asyncio.Lock()
        self._loaded = False

    async def load(self):
        """Read the store file, starting empty if it does not exist"""
        async with self._lock:
            await self._load_unlocked()

    async def _load_unlocked(self):
        if self._loaded:
            return
        if not os.path.exists(self.file_path):
            self._data = {}
            self._loaded = True
            return
        try:
            async with aiofiles.open(self.file_path, mode='r', encoding='utf-8') as f:
                content = await f.read()
            self._data = json.loads(content) if content.strip() else {}
        except (OSError, ValueError) as e:
            logger.error(f"Error reading store file {self.file_path}: {e}")
            raise StoreError(f"Could not read {self.file_path}: {e}") from e
        self._loaded = True
        logger.info(f"Loaded {len(self._data)} keys from {self.file_path}")

    async def get(self, key: str, default: Optional[Any] = None) -> Any:
        """Get the value stored under key"""
        async with self._lock:
            await self._load_unlocked()
            return self._data.get(key, default)

    async def set(self, key: str, value: Any):
        """Store value under key and persist the document"""
        async with self._lock:
            await self._load_unlocked()
            previous = self._data.get(key)
            existed = key in self._data
            self._data[key] = value
            try:
                await self._save_unlocked()
            except StoreError:
                # Keep memory consistent with what is on disk
                if existed:
                    self._data[key] = previous
                else:
                    del self._data[key]
                raise

    async def all(self) -> List[Dict[str, Any]]:
        """Get every entry as {"id": key, "value": value}, in insertion order"""
        async with self._lock:
            await self._load_unlocked()
            return [{"id": key, "value": value} for key, value in self._data.items()]

    async def _save_unlocked(self):
        directory = os.path.dirname(self.file_path)
        tmp_path = f"{self.file_path}.tmp"
        try:
            if directory and not os.path.exists(directory):
                os.makedirs(directory, exist_ok=True)
            async with aiofiles.open(tmp_path, mode='w', encoding='utf-8') as f:
                await f.write(json.dumps(self._data, ensure_ascii=False))
            os.replace(tmp_path, self.file_path)
        except (OSError, TypeError) as e:
            logger.error(f"Error writing store file {self.file_path}: {e}")
            raise StoreError(f"Could not write {self.file_path}: {e}") from e
