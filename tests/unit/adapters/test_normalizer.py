"""Tests for CSV normalizer functions."""

from workforce.adapters.csv_loader.normalizer import (
    clean_string,
    normalize_column_name,
    normalize_department,
    parse_role,
    parse_skills,
)
from workforce.domain.value_objects.enums import RoleTier

# ─── normalize_column_name ───────────────────────────────────────────


def test_strip_trailing_spaces():
    assert normalize_column_name("  Department  ") == "department"


def test_remove_bom():
    assert normalize_column_name("\ufeffID") == "id"


def test_spaces_and_nbsp_become_underscore():
    assert normalize_column_name("Max   Capacity") == "max_capacity"
    assert normalize_column_name("Role\u00a0Tier") == "role_tier"


def test_punctuation_dropped():
    assert normalize_column_name("Skills (comma-separated)") == "skills_commaseparated"


# ─── clean_string ────────────────────────────────────────────────────


def test_clean_string():
    assert clean_string("  hello  ") == "hello"
    assert clean_string("   ") is None
    assert clean_string(None) is None


# ─── parse_skills ────────────────────────────────────────────────────


def test_parse_skills_separators():
    expected = {"ORGANIZER_VERIFICATION", "EVENT_MANAGEMENT"}
    assert parse_skills("ORGANIZER_VERIFICATION, EVENT_MANAGEMENT") == expected
    assert parse_skills("organizer_verification|event_management") == expected
    assert parse_skills("  ORGANIZER_VERIFICATION ; EVENT_MANAGEMENT  ") == expected


def test_parse_skills_empty():
    assert parse_skills("") == set()
    assert parse_skills(None) == set()


# ─── departments and roles ───────────────────────────────────────────


def test_normalize_department():
    assert normalize_department("Customer service") == "CUSTOMER_SERVICE"
    assert normalize_department("ops") == "OPERATIONS"
    assert normalize_department("event-review") == "EVENT_REVIEW"
    assert normalize_department("  ") is None


def test_parse_plain_tiers():
    assert parse_role("AGENT") == (RoleTier.AGENT, None)
    assert parse_role("Senior agent") == (RoleTier.SENIOR_AGENT, None)
    assert parse_role("head") == (RoleTier.HEAD, None)


def test_parse_legacy_roles():
    assert parse_role("OPS_SENIOR_AGENT") == (RoleTier.SENIOR_AGENT, "OPERATIONS")
    assert parse_role("CS_HEAD") == (RoleTier.HEAD, "CUSTOMER_SERVICE")
    assert parse_role("FINANCE_AGENT") == (RoleTier.AGENT, "FINANCE")


def test_parse_unknown_role():
    assert parse_role("INTERN") == (None, None)
    assert parse_role(None) == (None, None)
