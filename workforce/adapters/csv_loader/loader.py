"""CSV loader — reads and normalizes the agent roster file."""

from __future__ import annotations

import csv
import logging
from pathlib import Path

from workforce.adapters.csv_loader.normalizer import (
    clean_string,
    normalize_column_name,
    normalize_department,
    parse_role,
    parse_skills,
)

logger = logging.getLogger(__name__)


def _sniff_dialect(sample: str) -> type[csv.Dialect]:
    """Detect the delimiter (comma/semicolon/tab) so spreadsheet exports load as-is."""
    if not sample:
        return csv.excel

    first_line = sample.splitlines()[0]
    delims = [";", ",", "\t"]
    counts = {d: first_line.count(d) for d in delims}
    best_delim = max(counts, key=counts.get)

    if counts[best_delim] > 0:
        class DynamicDialect(csv.excel):
            delimiter = best_delim
        return DynamicDialect
    return csv.excel


def _read_csv(file_path: Path, encoding: str = "utf-8-sig") -> list[dict[str, str]]:
    """Read a CSV file with BOM handling and column normalization.

    Args:
        file_path: path to the CSV file.
        encoding: file encoding (utf-8-sig strips BOM automatically).

    Returns:
        List of dicts with normalized column names.
    """
    with open(file_path, encoding=encoding, newline="") as f:
        sample = f.read(4096)
        f.seek(0)
        dialect = _sniff_dialect(sample)
        reader = csv.DictReader(f, dialect=dialect)
        if reader.fieldnames is None:
            raise ValueError(f"CSV file {file_path} has no header row")

        col_map = {col: normalize_column_name(col) for col in reader.fieldnames}
        rows = []
        for raw_row in reader:
            row = {col_map[k]: clean_string(v) for k, v in raw_row.items() if k is not None}
            rows.append(row)

    logger.info("Loaded %d rows from %s (columns: %s)", len(rows), file_path.name, list(col_map.values()))
    return rows


def load_agents(file_path: Path) -> list[dict]:
    """Load and normalize the agent roster CSV.

    Expected columns (after normalization):
        id, name, role (or role_tier), department, capacity, skills

    ``role`` accepts plain tiers (AGENT, SENIOR_AGENT, HEAD) as well as
    legacy department roles (OPS_SENIOR_AGENT, CS_HEAD); an explicit
    ``department`` column wins over the one implied by the role. Rows
    without an id, a tier or a department are skipped with a warning.
    """
    rows = _read_csv(file_path)
    agents = []
    for line_no, row in enumerate(rows, start=2):
        agent_id = clean_string(row.get("id") or row.get("agent_id") or row.get("email"))
        tier, implied_department = parse_role(row.get("role") or row.get("role_tier"))
        department = normalize_department(row.get("department")) or implied_department

        if not agent_id or tier is None or not department:
            logger.warning(
                "Skipping roster line %d: id=%r role=%r department=%r",
                line_no, agent_id, row.get("role") or row.get("role_tier"), department,
            )
            continue

        agents.append({
            "id": agent_id,
            "name": clean_string(row.get("name") or row.get("full_name")) or agent_id,
            "role_tier": tier,
            "department": department,
            "capacity": _parse_int(row.get("capacity") or row.get("max_capacity")),
            "skills": parse_skills(row.get("skills") or row.get("categories")),
        })
    logger.info("Parsed %d agents", len(agents))
    return agents


def _parse_int(value: str | None) -> int | None:
    """'20', '20.0' → 20; empty or malformed → None (tier default applies)."""
    if not value:
        return None
    try:
        return int(float(str(value).replace(",", ".").strip()))
    except ValueError:
        return None
