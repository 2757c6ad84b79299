"""RoundRobinPolicy — rotation bookkeeping for the ROUND_ROBIN strategy."""

from __future__ import annotations

from collections.abc import Mapping

from workforce.domain.entities.agent import Agent


def rotation_complete(candidates: list[Agent], counts: Mapping[str, int]) -> bool:
    """True once every candidate has been served since the last reset.

    An empty candidate list never completes a rotation.
    """
    if not candidates:
        return False
    return all(counts.get(a.id, 0) > 0 for a in candidates)


def effective_counts(candidates: list[Agent], counts: Mapping[str, int]) -> dict[str, int]:
    """Counts the next pick should see: zeroed when the rotation is complete."""
    if rotation_complete(candidates, counts):
        return {}
    return {a.id: counts.get(a.id, 0) for a in candidates}


def rotation_key(department: str) -> str:
    """Rotation pointers persist per department."""
    return f"dept-{department.strip().lower()}"
