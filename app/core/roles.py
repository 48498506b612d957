"""
Role definitions for the actors of an audit.

Roles are supplied by the identity provider and trusted as-is; they are
recorded in the activity log, not enforced here.
- visualizador: read-only stakeholder
- proveedor: audited service provider
- auditor: evaluates sections and runs site visits
- coordinador: consolidates results and approves reports
- admin: platform administration
"""
from enum import Enum
from typing import Dict, Set


class Role(str, Enum):
    """Actor roles."""
    VISUALIZADOR = "visualizador"
    PROVEEDOR = "proveedor"
    AUDITOR = "auditor"
    COORDINADOR = "coordinador"
    ADMIN = "admin"


# Role spellings used by older clients
LEGACY_ROLE_MAP: Dict[str, Role] = {
    "viewer": Role.VISUALIZADOR,
    "provider": Role.PROVEEDOR,
    "coordinator": Role.COORDINADOR,
}

VALID_ROLES: Set[str] = {r.value for r in Role}


def normalize_role(role: str) -> str:
    """
    Normalize role string, handling legacy spellings.

    Unknown roles fall back to ``visualizador``.
    """
    role_lower = (role or "").lower().strip()

    if role_lower in LEGACY_ROLE_MAP:
        return LEGACY_ROLE_MAP[role_lower].value

    if role_lower in VALID_ROLES:
        return role_lower

    return Role.VISUALIZADOR.value
