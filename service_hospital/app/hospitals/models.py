"""
Hospital data models for Hospital Service.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class HospitalStatus(str, Enum):
    """Hospital lifecycle status."""
    PENDING_VALIDATION = "pending_validation"
    ACTIVE = "active"
    REJECTED = "rejected"


class Hospital(BaseModel):
    """Hospital record as stored in the origin store and cached."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    address: str
    phone: str
    email: Optional[str] = None
    capacity: Optional[int] = None
    services: List[str] = Field(default_factory=list)
    operating_hours: Dict[str, Any] = Field(default_factory=dict, alias="operatingHours")
    status: HospitalStatus = HospitalStatus.PENDING_VALIDATION
    created_at: str = Field(default_factory=utc_now_iso, alias="createdAt")
    updated_at: str = Field(default_factory=utc_now_iso, alias="updatedAt")

    def to_record(self) -> Dict[str, Any]:
        """Serialise with the origin store's camelCase attribute names."""
        return self.model_dump(by_alias=True)


# Fields a caller may change on update; id, status and timestamps are managed here.
UPDATABLE_FIELDS = (
    "name",
    "address",
    "phone",
    "email",
    "capacity",
    "services",
    "operatingHours",
)

REQUIRED_FIELDS = ("name", "address", "phone")
