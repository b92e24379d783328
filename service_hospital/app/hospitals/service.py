"""
Hospital read/write paths.

Reads go through the cache (cache-aside); writes hit the origin store first
and then invalidate every cached view the change can affect.
"""

from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from shared.errors import NotFoundError, ValidationError
from shared.logging import get_logger

from ..cache import CacheKeys, CacheService, CacheTTL
from ..cache.keys import describe_filters
from .models import REQUIRED_FIELDS, UPDATABLE_FIELDS, Hospital, utc_now_iso
from .store import HospitalStore


class HospitalService:
    """Hospital operations backed by an origin store and the cache layer."""

    def __init__(self, store: HospitalStore, cache: CacheService):
        self.store = store
        self.cache = cache
        self.logger = get_logger("hospital.service")

    # Reads

    async def get_hospital(self, hospital_id: str) -> Dict[str, Any]:
        record = await self.cache.get_or_set(
            CacheKeys.hospital(hospital_id),
            lambda: self.store.get(hospital_id),
            CacheTTL.HOSPITAL_DETAILS,
        )
        if record is None:
            raise NotFoundError("Hospital not found", {"hospital_id": hospital_id})
        return record

    async def list_hospitals(self, filters: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = dict(filters or {})
        return await self.cache.get_or_set(
            CacheKeys.hospital_list(describe_filters(filters)),
            lambda: self.store.list(filters),
            CacheTTL.HOSPITAL_LIST,
        )

    async def search_hospitals(self, query: str) -> List[Dict[str, Any]]:
        query = query.strip()
        if not query:
            raise ValidationError("Search query must not be empty")
        return await self.cache.get_or_set(
            CacheKeys.search_results(query),
            lambda: self.store.search(query),
            CacheTTL.SEARCH_RESULTS,
        )

    async def get_hospital_services(self, hospital_id: str) -> List[str]:
        async def load_services() -> Optional[List[str]]:
            record = await self.store.get(hospital_id)
            return None if record is None else list(record.get("services", []))

        services = await self.cache.get_or_set(
            CacheKeys.hospital_services(hospital_id),
            load_services,
            CacheTTL.HOSPITAL_SERVICES,
        )
        if services is None:
            raise NotFoundError("Hospital not found", {"hospital_id": hospital_id})
        return services

    # Writes

    async def create_hospital(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        missing = [name for name in REQUIRED_FIELDS if not data.get(name)]
        if missing:
            raise ValidationError("Missing required fields", {"missing": missing})

        fields = {name: data[name] for name in UPDATABLE_FIELDS if data.get(name) is not None}
        fields["createdAt"] = fields["updatedAt"] = utc_now_iso()
        try:
            hospital = Hospital(**fields)
        except PydanticValidationError as e:
            raise ValidationError("Invalid hospital data", {"errors": e.errors()}) from e

        record = await self.store.put(hospital.to_record())
        await self._invalidate_collections()
        self.logger.info("Hospital created", hospital_id=record["id"])
        return record

    async def update_hospital(self, hospital_id: str, changes: Mapping[str, Any]) -> Dict[str, Any]:
        existing = await self.store.get(hospital_id)
        if existing is None:
            raise NotFoundError("Hospital not found", {"hospital_id": hospital_id})

        merged = dict(existing)
        for name in UPDATABLE_FIELDS:
            # Falsy values keep the stored attribute.
            if changes.get(name):
                merged[name] = changes[name]
        merged["updatedAt"] = utc_now_iso()

        try:
            record = Hospital(**merged).to_record()
        except PydanticValidationError as e:
            raise ValidationError("Invalid hospital data", {"errors": e.errors()}) from e

        record = await self.store.put(record)
        await self._invalidate_hospital(hospital_id)
        self.logger.info("Hospital updated", hospital_id=hospital_id)
        return record

    async def delete_hospital(self, hospital_id: str) -> None:
        removed = await self.store.delete(hospital_id)
        if removed is None:
            raise NotFoundError("Hospital not found", {"hospital_id": hospital_id})
        await self._invalidate_hospital(hospital_id)
        self.logger.info("Hospital deleted", hospital_id=hospital_id)

    # Invalidation

    async def _invalidate_hospital(self, hospital_id: str) -> None:
        await self.cache.delete(CacheKeys.hospital(hospital_id))
        await self.cache.delete_pattern(CacheKeys.hospital_children(hospital_id))
        await self._invalidate_collections()

    async def _invalidate_collections(self) -> None:
        await self.cache.delete_pattern(CacheKeys.all_hospital_lists())
        await self.cache.delete_pattern(CacheKeys.all_location_searches())
        await self.cache.delete_pattern(CacheKeys.all_searches())
