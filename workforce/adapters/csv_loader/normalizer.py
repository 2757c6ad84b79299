"""CSV column normalization — handles BOM, trailing spaces, encoding quirks."""

from __future__ import annotations

import re

from workforce.domain.value_objects.enums import RoleTier

# Department prefixes used by legacy role strings such as "OPS_SENIOR_AGENT".
DEPARTMENT_PREFIXES = {
    "OPS": "OPERATIONS",
    "CS": "CUSTOMER_SERVICE",
    "FINANCE": "FINANCE",
}


def normalize_column_name(name: str) -> str:
    """Normalize a CSV column name.

    - Strips leading/trailing whitespace
    - Removes BOM characters (\\ufeff)
    - Replaces multiple spaces / non-breaking spaces with single underscore
    - Lowercases
    - Strips non-alphanumeric characters (except underscore)
    """
    # Remove BOM
    name = name.replace("\ufeff", "")
    name = name.strip()
    name = re.sub(r"[\s\u00a0]+", "_", name)
    name = name.lower()
    name = re.sub(r"[^\w]", "", name, flags=re.UNICODE)
    return name


def clean_string(value: str | None) -> str | None:
    """Strip whitespace and return None for empty strings."""
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def parse_skills(raw: str | None) -> set[str]:
    """Parse skill strings like 'ORGANIZER_VERIFICATION; EVENT_MANAGEMENT' into a set.

    Handles comma, semicolon, pipe and whitespace separators; skills are upper-cased.
    """
    if not raw:
        return set()
    parts = re.split(r"[,;|\s]+", raw.strip())
    return {p.strip().upper() for p in parts if p.strip()}


def normalize_department(raw: str | None) -> str | None:
    """'Customer service' → 'CUSTOMER_SERVICE'; short prefixes expand ('ops' → 'OPERATIONS')."""
    value = clean_string(raw)
    if not value:
        return None
    value = re.sub(r"[\s\-]+", "_", value.upper())
    return DEPARTMENT_PREFIXES.get(value, value)


def parse_role(raw: str | None) -> tuple[RoleTier | None, str | None]:
    """Split a role string into its tier and, for legacy roles, the department.

    'SENIOR_AGENT' → (SENIOR_AGENT, None)
    'OPS_HEAD'     → (HEAD, 'OPERATIONS')
    'Senior agent' → (SENIOR_AGENT, None)
    """
    value = clean_string(raw)
    if not value:
        return None, None
    value = re.sub(r"[\s\-]+", "_", value.upper())

    # Longest suffix first so SENIOR_AGENT is not read as AGENT.
    for tier in (RoleTier.SENIOR_AGENT, RoleTier.HEAD, RoleTier.AGENT):
        if value == tier.value:
            return tier, None
        if value.endswith("_" + tier.value):
            prefix = value[: -len(tier.value) - 1]
            return tier, DEPARTMENT_PREFIXES.get(prefix, prefix) or None
    return None, None
