"""
Service helpers shared by the organization-scoped services
"""
from typing import Any, Dict, Optional
from datetime import datetime, timezone
from bson import ObjectId

from opsafe.core.exceptions import InvalidIdentifierError


def parse_object_id(value: Optional[str], label: str) -> ObjectId:
    """Convert an id string, raising InvalidIdentifierError('Invalid <label> id')"""
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise InvalidIdentifierError(f"Invalid {label} id")
    return ObjectId(value)


def scoped(organization_id: ObjectId, document_id: Optional[ObjectId] = None, **extra: Any) -> Dict[str, Any]:
    """Filter for a live (non-deleted) document of one organization"""
    query: Dict[str, Any] = {"organization_id": organization_id, "is_deleted": False}
    if document_id is not None:
        query["_id"] = document_id
    query.update(extra)
    return query


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes from clients are taken as UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
