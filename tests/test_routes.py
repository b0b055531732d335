"""
Route table and navigation resolution tests.
"""

import pytest

from portal_assistant.routes import (
    DEFAULT_ROUTE_MAP,
    Role,
    infer_role,
    merge_route_maps,
    resolve_navigation_target,
    route_path,
)


@pytest.mark.parametrize("text,expected", [
    ("open the audit log", Role.ADMIN),
    ("admin dashboard", Role.ADMIN),
    ("employer branding", Role.OWNER),
    ("provider schedule", Role.PROVIDER),
    ("my labs", Role.PATIENT),
])
def test_infer_role(text, expected):
    assert infer_role(text) is expected


def test_role_coerce():
    assert Role.coerce("Admin") is Role.ADMIN
    assert Role.coerce(Role.OWNER) is Role.OWNER
    assert Role.coerce(None) is None
    assert Role.coerce("janitor") is None


def test_resolution_prefers_role_table():
    assert resolve_navigation_target("open calendar", role="provider") == "calendar"
    assert route_path("calendar", role="provider") == "/provider/calendar"


def test_resolution_sweeps_all_roles():
    assert resolve_navigation_target("show me invoices", role="patient") == "invoices"


def test_unknown_role_still_resolves():
    assert resolve_navigation_target("go to my labs", role="janitor") == "labs"


def test_no_keyword_returns_none():
    assert resolve_navigation_target("go somewhere nice") is None


def test_keywords_match_whole_words():
    assert resolve_navigation_target("open the voicemail") is None


def test_route_path_unknown_page():
    assert route_path("nowhere") is None


def test_merge_route_maps_does_not_mutate_base():
    merged = merge_route_maps(DEFAULT_ROUTE_MAP, {"patient": {"billing": "/patient/billing"}, "guest": {"help": "/help"}})
    assert merged["patient"]["billing"] == "/patient/billing"
    assert merged["guest"] == {"help": "/help"}
    assert "billing" not in DEFAULT_ROUTE_MAP["patient"]
