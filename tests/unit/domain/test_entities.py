"""Tests for domain entities."""

from datetime import datetime, timedelta, timezone

from workforce.domain.entities.agent import Agent
from workforce.domain.entities.queue_entry import QueueEntry
from workforce.domain.entities.work_item import WorkItem
from workforce.domain.value_objects.enums import ItemStatus, Priority, RoleTier, WorkItemKind
from workforce.domain.value_objects.work_item_ref import WorkItemRef

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def test_agent_slots_and_utilization():
    a = Agent(id="a1", name="A", role_tier=RoleTier.AGENT, department="OPS", capacity=4, current_workload=3)
    assert a.free_slots == 1
    assert a.utilization == 0.75
    assert a.is_available()
    a.current_workload = 4
    assert not a.is_available()


def test_agent_zero_capacity_is_fully_utilized():
    a = Agent(id="a1", name="A", role_tier=RoleTier.AGENT, department="OPS", capacity=0)
    assert a.utilization == 1.0
    assert not a.is_available()


def test_head_does_not_take_assignments():
    head = Agent(id="h1", name="H", role_tier=RoleTier.HEAD, department="OPS", capacity=10)
    senior = Agent(id="s1", name="S", role_tier=RoleTier.SENIOR_AGENT, department="OPS", capacity=10)
    assert not head.takes_assignments()
    assert senior.takes_assignments()


def test_agent_skill_match_is_case_insensitive_on_query():
    a = Agent(id="a1", name="A", role_tier=RoleTier.AGENT, department="OPS", capacity=1,
              skills={"EVENT_MANAGEMENT"})
    assert a.has_skill("event_management")


def test_work_item_status_helpers():
    item = WorkItem(ref=WorkItemRef(WorkItemKind.ORGANIZER, "o1"), department="OPS")
    assert item.is_assignable()
    assert not item.is_active()
    item.status = ItemStatus.IN_PROGRESS
    assert item.is_active()
    assert not item.is_assignable()


def test_work_item_skill_categories_include_kind_default():
    item = WorkItem(
        ref=WorkItemRef(WorkItemKind.EVENT, "e1"),
        department="OPS",
        categories=frozenset({"MUSIC"}),
    )
    assert item.skill_categories() == {"EVENT_MANAGEMENT", "MUSIC"}


def test_queue_entry_record_attempt_marks_stuck():
    entry = QueueEntry(
        ref=WorkItemRef(WorkItemKind.ORGANIZER, "o1"),
        priority=Priority.NORMAL,
        department="OPS",
        enqueued_at=NOW,
    )
    entry.record_attempt("still nobody", NOW + timedelta(minutes=1), max_attempts=3)
    assert entry.attempts == 2
    assert not entry.stuck
    entry.record_attempt("still nobody", NOW + timedelta(minutes=2), max_attempts=3,
                         priority=Priority.HIGH)
    assert entry.attempts == 3
    assert entry.stuck
    assert entry.priority == Priority.HIGH
    assert entry.last_failure_reason == "still nobody"


def test_queue_entry_ordering_priority_then_age():
    def _entry(item_id, priority, minutes):
        return QueueEntry(
            ref=WorkItemRef(WorkItemKind.ORGANIZER, item_id),
            priority=priority,
            department="OPS",
            enqueued_at=NOW + timedelta(minutes=minutes),
        )

    entries = [
        _entry("late-normal", Priority.NORMAL, 5),
        _entry("urgent", Priority.URGENT, 10),
        _entry("early-normal", Priority.NORMAL, 0),
    ]
    ordered = sorted(entries, key=lambda e: e.sort_key())
    assert [e.ref.item_id for e in ordered] == ["urgent", "early-normal", "late-normal"]
    assert ordered[0].age_seconds(NOW + timedelta(minutes=11)) == 60.0
