"""
Acting-user identity for request handlers.

Authentication happens upstream (gateway / identity provider). The forwarded
``X-User-Id`` and ``X-User-Role`` headers are trusted as already-authenticated
inputs; no credential checks are performed here.
"""
import logging
from typing import Optional

from fastapi import Security
from fastapi.security import APIKeyHeader

from app.core.roles import normalize_role

logger = logging.getLogger(__name__)

user_id_header = APIKeyHeader(name="X-User-Id", auto_error=False)
user_role_header = APIKeyHeader(name="X-User-Role", auto_error=False)

SYSTEM_ACTOR_ID = "system"


class Actor:
    """The user (or system process) performing an operation."""

    def __init__(self, user_id: str, role: str):
        self.user_id = user_id
        self.role = normalize_role(role)

    @classmethod
    def system(cls) -> "Actor":
        return cls(SYSTEM_ACTOR_ID, "admin")

    def __repr__(self) -> str:
        return f"Actor(user_id={self.user_id!r}, role={self.role!r})"


def get_current_actor(
    user_id: Optional[str] = Security(user_id_header),
    role: Optional[str] = Security(user_role_header),
) -> Actor:
    """
    Dependency returning the acting user.

    Requests without identity headers act as the system user (background
    validators, local development).
    """
    if not user_id:
        logger.debug("No X-User-Id header, acting as system")
        return Actor.system()
    return Actor(user_id=user_id, role=role or "")
