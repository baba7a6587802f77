"""Explicit mapping from resource names to their ownership accessors."""

from __future__ import annotations

from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.models.session import UserSession
from app.models.user import User

OwnerAccessor = Callable[[Session, str], Optional[int]]


class UnknownResourceError(KeyError):
    """Resource name has no registered accessor"""


class ResourceRegistry:
    """
    Resource name -> function returning the owning user id of one instance.

    Accessors return None when the instance does not exist.
    """

    def __init__(self) -> None:
        self._accessors: Dict[str, OwnerAccessor] = {}

    def register(self, resource: str, accessor: OwnerAccessor) -> None:
        if resource in self._accessors:
            raise ValueError(f"Resource already registered: {resource}")
        self._accessors[resource] = accessor

    def __contains__(self, resource: str) -> bool:
        return resource in self._accessors

    def owner_of(self, db: Session, resource: str, resource_id: str) -> Optional[int]:
        try:
            accessor = self._accessors[resource]
        except KeyError:
            raise UnknownResourceError(resource) from None
        return accessor(db, resource_id)


def _user_owner(db: Session, resource_id: str) -> Optional[int]:
    try:
        user_id = int(resource_id)
    except ValueError:
        return None
    user = db.query(User.id).filter(User.id == user_id).first()
    return user.id if user else None


def _session_owner(db: Session, resource_id: str) -> Optional[int]:
    row = db.query(UserSession.user_id).filter(UserSession.id == resource_id).first()
    return row.user_id if row else None


resource_registry = ResourceRegistry()
resource_registry.register("users", _user_owner)
resource_registry.register("sessions", _session_owner)
