"""WorkItemRef value object — polymorphic pointer into an owning domain."""

from __future__ import annotations

from dataclasses import dataclass

from workforce.domain.value_objects.enums import WorkItemKind


@dataclass(frozen=True)
class WorkItemRef:
    kind: WorkItemKind
    item_id: str

    def __post_init__(self):
        if not self.item_id or not self.item_id.strip():
            raise ValueError("item_id must be a non-empty string")

    @classmethod
    def parse(cls, raw: str) -> WorkItemRef:
        """Parse the ``KIND:item_id`` form produced by ``str()``."""
        kind, sep, item_id = raw.partition(":")
        if not sep:
            raise ValueError(f"Malformed work item reference: {raw!r}")
        return cls(kind=WorkItemKind(kind.strip().upper()), item_id=item_id.strip())

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.item_id}"
