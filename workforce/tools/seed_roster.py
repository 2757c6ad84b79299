"""Seed the agent roster from a CSV file.

Usage:
    python -m workforce.tools.seed_roster
    python -m workforce.tools.seed_roster --data-dir data
    python -m workforce.tools.seed_roster --drop        # wipe engine tables first
    python -m workforce.tools.seed_roster --reconcile   # recompute workload counters only
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from workforce.adapters.csv_loader.loader import load_agents
from workforce.adapters.persistence.database import async_session_factory
from workforce.adapters.persistence.models import (
    AgentModel,
    AssignmentRecordModel,
    QueueEntryModel,
    RoundRobinStateModel,
    WorkItemModel,
)
from workforce.adapters.persistence.repositories import SqlAgentRepository
from workforce.adapters.persistence.unit_of_work import sql_uow_factory
from workforce.application.use_cases.agent_directory import AgentDirectory
from workforce.config import settings
from workforce.domain.entities.agent import Agent

logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(message)s")
logger = logging.getLogger(__name__)


async def _drop_data(session: AsyncSession) -> None:
    """Delete all engine data, ledger included. Only for fresh environments."""
    for model in [
        AssignmentRecordModel,
        QueueEntryModel,
        RoundRobinStateModel,
        WorkItemModel,
        AgentModel,
    ]:
        await session.execute(delete(model))
    await session.commit()
    logger.info("Dropped all existing data")


def _find_csv(data_dir: Path, name_hints: list[str]) -> Path | None:
    """Find a CSV file matching any of the name hints."""
    for f in sorted(data_dir.glob("*.csv")):
        fname_lower = f.stem.lower()
        for hint in name_hints:
            if hint in fname_lower:
                logger.info("Found CSV: %s (matched hint '%s')", f.name, hint)
                return f
    return None


async def seed(data_dir: Path, drop: bool = False) -> dict[str, int]:
    """Upsert every roster row. Returns counts of seeded agents per tier."""
    roster_csv = _find_csv(data_dir, ["agents", "roster", "staff", "department_members"])
    if not roster_csv:
        raise FileNotFoundError(
            f"No roster CSV found in {data_dir}. Expected something like agents.csv"
        )

    counts: dict[str, int] = {}
    async with async_session_factory() as session:
        if drop:
            await _drop_data(session)

        repo = SqlAgentRepository(session)
        for row in load_agents(roster_csv):
            tier = row["role_tier"]
            agent = Agent(
                id=row["id"],
                name=row["name"],
                role_tier=tier,
                department=row["department"],
                capacity=row["capacity"] or settings.default_capacity(tier.value),
                skills=row["skills"],
            )
            await repo.save(agent)
            counts[tier.value] = counts.get(tier.value, 0) + 1

        await session.commit()

    logger.info("Seeded roster: %s", counts)
    return counts


async def _verify_data() -> None:
    """Print sanity checks after seeding."""
    async with async_session_factory() as session:
        agents = (await session.execute(select(AgentModel))).scalars().all()

    departments: dict[str, int] = {}
    tiers: dict[str, int] = {}
    for a in agents:
        departments[a.department] = departments.get(a.department, 0) + 1
        tiers[a.role_tier] = tiers.get(a.role_tier, 0) + 1

    print(f"\n{'='*50}")
    print("ROSTER VERIFICATION")
    print(f"{'='*50}")
    print(f"Agents: {len(agents)}")
    print(f"Tier distribution: {tiers}")
    print(f"Department distribution: {departments}")
    with_skills = sum(1 for a in agents if a.skills)
    print(f"Agents with skills: {with_skills}/{len(agents)}")
    heads = {a.department for a in agents if a.role_tier == "HEAD"}
    missing = sorted(set(departments) - heads)
    if missing:
        print(f"Departments without a head (escalations cannot be reviewed): {missing}")
    print(f"{'='*50}\n")


async def _reconcile() -> None:
    report = await AgentDirectory(sql_uow_factory()).reconcile_workloads()
    logger.info("Reconciled %d agents, corrected %d", report["checked"], report["corrected"])
    for drift in report["drift"]:
        logger.info("  %s: counter=%d actual=%d", drift["agent_id"], drift["counter"], drift["actual"])


def main():
    parser = argparse.ArgumentParser(description="Seed the workforce agent roster from CSV")
    parser.add_argument(
        "--data-dir", type=str, default=settings.csv_data_path,
        help=f"Directory containing the roster CSV (default: {settings.csv_data_path})",
    )
    parser.add_argument(
        "--drop", action="store_true",
        help="Drop existing engine data before seeding",
    )
    parser.add_argument(
        "--verify-only", action="store_true",
        help="Only run verification, don't seed",
    )
    parser.add_argument(
        "--reconcile", action="store_true",
        help="Recompute workload counters from active items and exit",
    )
    args = parser.parse_args()

    if args.reconcile:
        asyncio.run(_reconcile())
        return

    data_dir = Path(args.data_dir)
    if not args.verify_only and not data_dir.exists():
        logger.error("Data directory not found: %s", data_dir)
        sys.exit(1)

    if args.verify_only:
        asyncio.run(_verify_data())
    else:
        async def run_all():
            await seed(data_dir, drop=args.drop)
            await _verify_data()

        asyncio.run(run_all())


if __name__ == "__main__":
    main()
