import asyncio

import pytest


class MemoryStore:
    """In-memory key-value store that yields between every read and write"""

    def __init__(self):
        self.data = {}

    async def get(self, key, default=None):
        await asyncio.sleep(0)
        return self.data.get(key, default)

    async def set(self, key, value):
        await asyncio.sleep(0)
        self.data[key] = value

    async def all(self):
        return [{"id": key, "value": value} for key, value in self.data.items()]


@pytest.fixture
def memory_store():
    return MemoryStore()
