"""
Cache key builders and TTLs shared by the hospital service handlers.
"""

import base64
from typing import Any, Mapping, Optional, Union


class CacheKeys:
    """Key builders for the colon-delimited cache namespace."""

    HOSPITAL_PREFIX = "hospital"
    HOSPITAL_LIST_PREFIX = "hospitals:list"
    LOCATION_PREFIX = "hospitals:location"
    SESSION_PREFIX = "session"
    SEARCH_PREFIX = "search"

    @staticmethod
    def hospital(hospital_id: str) -> str:
        return f"{CacheKeys.HOSPITAL_PREFIX}:{hospital_id}"

    @staticmethod
    def hospital_list(filters: Union[str, Mapping[str, Any], None] = "") -> str:
        return f"{CacheKeys.HOSPITAL_LIST_PREFIX}:{describe_filters(filters)}"

    @staticmethod
    def user_session(user_id: str) -> str:
        return f"{CacheKeys.SESSION_PREFIX}:{user_id}"

    @staticmethod
    def hospitals_by_location(lat: float, lng: float, radius: float) -> str:
        return f"{CacheKeys.LOCATION_PREFIX}:{lat}:{lng}:{radius}"

    @staticmethod
    def hospital_services(hospital_id: str) -> str:
        return f"{CacheKeys.HOSPITAL_PREFIX}:{hospital_id}:services"

    @staticmethod
    def search_results(query: str) -> str:
        encoded = base64.b64encode(query.encode("utf-8")).decode("ascii")
        return f"{CacheKeys.SEARCH_PREFIX}:{encoded}"

    # Invalidation patterns
    @staticmethod
    def all_hospital_lists() -> str:
        return f"{CacheKeys.HOSPITAL_LIST_PREFIX}:*"

    @staticmethod
    def all_location_searches() -> str:
        return f"{CacheKeys.LOCATION_PREFIX}:*"

    @staticmethod
    def all_searches() -> str:
        return f"{CacheKeys.SEARCH_PREFIX}:*"

    @staticmethod
    def hospital_children(hospital_id: str) -> str:
        return f"{CacheKeys.HOSPITAL_PREFIX}:{hospital_id}:*"


class CacheTTL:
    """Cache TTLs in seconds."""

    HOSPITAL_DETAILS = 3600      # hospital records change infrequently
    HOSPITAL_LIST = 900          # new hospitals show up in lists
    USER_SESSION = 86400
    SEARCH_RESULTS = 300
    LOCATION_SEARCH = 1800
    HOSPITAL_SERVICES = 7200


def describe_filters(filters: Union[str, Mapping[str, Any], None]) -> str:
    """Render list filters as a stable descriptor.

    Mappings become ``k=v`` pairs sorted by key and joined with ``&`` so the
    same filters always produce the same key; empty values are dropped.
    """
    if filters is None:
        return ""
    if isinstance(filters, str):
        return filters
    parts = []
    for name in sorted(filters):
        value: Optional[Any] = filters[name]
        if value is None or value == "":
            continue
        parts.append(f"{name}={value}")
    return "&".join(parts)
