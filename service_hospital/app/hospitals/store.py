"""
Origin store interface for hospital records.

The production store is DynamoDB; the in-memory store backs tests and local
runs.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

from shared.logging import get_logger


class HospitalStore(ABC):
    """Authoritative storage for hospital records (plain dicts)."""

    @abstractmethod
    async def get(self, hospital_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def list(self, filters: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def search(self, query: str) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def put(self, record: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def delete(self, hospital_id: str) -> Optional[Dict[str, Any]]:
        """Remove a record and return it, or None if it did not exist."""
        ...


class InMemoryHospitalStore(HospitalStore):
    """Dictionary-backed store. Returns copies so callers can't mutate it."""

    def __init__(self, records: Optional[List[Dict[str, Any]]] = None):
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        self.logger = get_logger("hospital.store.memory")
        self.reads = 0
        for record in records or []:
            self._records[record["id"]] = copy.deepcopy(record)

    async def get(self, hospital_id: str) -> Optional[Dict[str, Any]]:
        self.reads += 1
        record = self._records.get(hospital_id)
        return copy.deepcopy(record) if record is not None else None

    async def list(self, filters: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        self.reads += 1
        filters = {k: v for k, v in (filters or {}).items() if v is not None and v != ""}
        return [
            copy.deepcopy(record)
            for record in self._records.values()
            if all(str(record.get(name)) == str(value) for name, value in filters.items())
        ]

    async def search(self, query: str) -> List[Dict[str, Any]]:
        self.reads += 1
        needle = query.lower()
        results = []
        for record in self._records.values():
            haystack = [record.get("name", ""), record.get("address", "")] + list(record.get("services", []))
            if any(needle in str(value).lower() for value in haystack):
                results.append(copy.deepcopy(record))
        return results

    async def put(self, record: Dict[str, Any]) -> Dict[str, Any]:
        async with self._lock:
            self._records[record["id"]] = copy.deepcopy(record)
        return copy.deepcopy(record)

    async def delete(self, hospital_id: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            return self._records.pop(hospital_id, None)
