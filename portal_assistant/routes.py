"""Fixed route registry for deterministic portal navigation."""

import re
from enum import Enum
from typing import Dict, Mapping, Optional


class Role(Enum):
    """Portal roles supplied by the caller."""
    PATIENT = "patient"
    PROVIDER = "provider"
    ADMIN = "admin"
    OWNER = "owner"

    @classmethod
    def coerce(cls, value) -> Optional["Role"]:
        """Accept a Role, a role name, or None. Unknown names map to None."""
        if value is None or isinstance(value, Role):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


RouteMap = Mapping[str, Mapping[str, str]]

# Role -> spoken keyword -> route path.
# Keyword order inside a role is match order.
DEFAULT_ROUTE_MAP: Dict[str, Dict[str, str]] = {
    "patient": {
        "labs": "/patient/labs",
        "medications": "/patient/medications",
        "appointments": "/patient/appointments",
        "settings": "/patient/settings",
        "nutrition": "/patient/nutrition",
        "records": "/patient/records",
        "calendar": "/patient/calendar",
    },
    "provider": {
        "dashboard": "/provider",
        "calendar": "/provider/calendar",
    },
    "admin": {
        "employers": "/admin/employers",
        "invoices": "/admin/invoices",
        "audit": "/admin/audit",
        "calendar": "/admin/calendar",
    },
    "owner": {
        "branding": "/employer/branding",
        "voice": "/employer/voice",
        "employees": "/employer/employees",
        "calendar": "/owner/calendar",
    },
}

# Keyword groups that hint at the speaker's role, checked in order.
ROLE_HINTS = [
    (Role.ADMIN, ("admin", "audit")),
    (Role.OWNER, ("employer", "owner", "branding")),
    (Role.PROVIDER, ("provider", "schedule")),
]


def merge_route_maps(base: RouteMap, overrides: Optional[RouteMap]) -> Dict[str, Dict[str, str]]:
    """Return a copy of base with per-role overrides layered on top."""
    merged = {role: dict(routes) for role, routes in base.items()}
    for role, routes in (overrides or {}).items():
        merged.setdefault(role, {}).update(routes)
    return merged


def infer_role(text: str) -> Role:
    """
    Guess the speaker's role from keywords in the utterance.

    "admin"/"audit" -> admin, "employer"/"owner"/"branding" -> owner,
    "provider"/"schedule" -> provider, anything else -> patient.
    """
    lowered = (text or "").lower()
    for role, hints in ROLE_HINTS:
        if any(hint in lowered for hint in hints):
            return role
    return Role.PATIENT


def _mentions(keyword: str, text_lower: str) -> bool:
    return re.search(rf"\b{re.escape(keyword)}\b", text_lower) is not None


def known_keywords(route_map: RouteMap = DEFAULT_ROUTE_MAP):
    """All route keywords across every role (deduplicated, table order)."""
    seen = {}
    for routes in route_map.values():
        for keyword in routes:
            seen.setdefault(keyword, None)
    return list(seen)


def mentions_route_keyword(text: str, route_map: RouteMap = DEFAULT_ROUTE_MAP) -> bool:
    lowered = (text or "").lower()
    return any(_mentions(keyword, lowered) for keyword in known_keywords(route_map))


def resolve_navigation_target(
    text: str,
    role=None,
    route_map: RouteMap = DEFAULT_ROUTE_MAP,
) -> Optional[str]:
    """
    Resolve the route keyword an utterance refers to.

    Search order:
    1. Keywords in the caller's role table (or the inferred role's table)
    2. Keywords in every role's table (so a misclassified role still resolves)

    Args:
        text: Raw utterance
        role: Role, role name, or None (infer from text)
        route_map: Role -> keyword -> path table

    Returns:
        The matched keyword (page key), or None if no keyword is mentioned anywhere
    """
    lowered = (text or "").lower()
    resolved_role = Role.coerce(role) or infer_role(lowered)

    for keyword in route_map.get(resolved_role.value, {}):
        if _mentions(keyword, lowered):
            return keyword

    for routes in route_map.values():
        for keyword in routes:
            if _mentions(keyword, lowered):
                return keyword

    return None


def route_path(page: str, role=None, route_map: RouteMap = DEFAULT_ROUTE_MAP) -> Optional[str]:
    """
    Look up the path for a page key, preferring the given role's table.

    Returns:
        Route path, or None if the key is unknown to every role
    """
    resolved_role = Role.coerce(role)
    if resolved_role is not None:
        path = route_map.get(resolved_role.value, {}).get(page)
        if path:
            return path
    for routes in route_map.values():
        if page in routes:
            return routes[page]
    return None
