"""
Hospital records: models, origin store interface and the cached service.
"""

from .models import Hospital, HospitalStatus
from .service import HospitalService
from .store import HospitalStore, InMemoryHospitalStore

__all__ = [
    "Hospital",
    "HospitalStatus",
    "HospitalService",
    "HospitalStore",
    "InMemoryHospitalStore",
]
