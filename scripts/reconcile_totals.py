"""
Recompute projects.total_spent from approved, non-deleted expenses.

Usage:
    python scripts/reconcile_totals.py              # every project
    python scripts/reconcile_totals.py <project_id> # one project
"""

import sys
import os
import asyncio

# Add parent directory to path to import database
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from constants import Collections
from services.engine import build_engine
from logging_config import get_logger

logger = get_logger("reconcile_totals")

async def reconcile(project_ids=None):
    engine = build_engine()
    if not project_ids:
        project_ids = [p["id"] for p in await engine.store.query(Collections.PROJECTS)]

    print(f"🔄 Reconciling {len(project_ids)} project(s)...")
    corrected = 0
    for project_id in project_ids:
        before = await engine.store.get(Collections.PROJECTS, project_id)
        if not before:
            print(f"⚠️  {project_id}: not found")
            continue
        total = await engine.expenses.recalculate_total_spent(project_id)
        if before.get("total_spent", 0.0) != total:
            corrected += 1
            print(f"✅ {before.get('name')}: {before.get('total_spent', 0.0)} -> {total}")

    logger.info("Reconciliation finished", extra={"data": {"projects": len(project_ids), "corrected": corrected}})
    print(f"\n✨ Done. {corrected} project(s) corrected.")

if __name__ == "__main__":
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    loop.run_until_complete(reconcile(sys.argv[1:]))
