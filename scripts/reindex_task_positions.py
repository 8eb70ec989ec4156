#!/usr/bin/env python3
"""
Reindex Task Positions Script

Finds (owner, stage) buckets whose positions are not exactly 0..n-1 and
renumbers them in their current order (position, then created_at, then id).
Each owner is repaired in its own transaction under the same owner lock the
ordering engine uses, so it is safe to run against a live database.
"""

import os
import sys
import logging
from datetime import datetime

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from models import Task
from services.ordering_invariants import find_violations
from services.task_store import TaskStore

logger = logging.getLogger(__name__)


def _compact_bucket(session, bucket, dry_run):
    tasks = session.scalars(
        select(Task)
        .where(Task.user_id == bucket.owner_id, Task.stage == bucket.stage)
        .order_by(Task.position, Task.created_at, Task.id)
    ).all()

    changed = 0
    for index, task in enumerate(tasks):
        if task.position != index:
            changed += 1
            if not dry_run:
                task.position = index
                task.updated_at = datetime.utcnow()
    return changed


def reindex_task_positions(session, owner_id=None, dry_run=False):
    """
    Compact every broken bucket (optionally for one owner).

    Returns:
        {'buckets': broken bucket count, 'tasks_updated': rows renumbered,
         'dry_run': bool}
    """
    violations = find_violations(session, owner_id)
    session.rollback()

    owners = sorted({bucket.owner_id for bucket, _ in violations})
    store = TaskStore(session)
    tasks_updated = 0

    for owner in owners:
        try:
            store.lock_owner(owner)
            # Re-check under the lock; a concurrent operation may have fixed it.
            for bucket, positions in find_violations(session, owner):
                changed = _compact_bucket(session, bucket, dry_run)
                tasks_updated += changed
                logger.info(
                    f"[REINDEX] {'would renumber' if dry_run else 'renumbered'} "
                    f"{changed} task(s) in bucket {bucket} (was {positions})"
                )
            if dry_run:
                session.rollback()
            else:
                session.commit()
        except Exception:
            session.rollback()
            logger.error(f"[REINDEX] failed for owner {owner}", exc_info=True)
            raise

    summary = {'buckets': len(violations), 'tasks_updated': tasks_updated, 'dry_run': dry_run}
    logger.info(f"[REINDEX] done: {summary}")
    return summary


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Renumber task positions so every bucket is dense")
    parser.add_argument("--dry-run", action="store_true", help="Report broken buckets without writing")
    parser.add_argument("--owner", type=int, default=None, help="Only repair this user's buckets")
    args = parser.parse_args()

    from app import create_app
    from models import db

    app = create_app()
    with app.app_context():
        result = reindex_task_positions(db.session, owner_id=args.owner, dry_run=args.dry_run)

    print("=" * 60)
    print("Task Position Reindex")
    print("=" * 60)
    print(f"Dry run: {result['dry_run']}")
    print(f"Broken buckets: {result['buckets']}")
    print(f"Tasks {'to renumber' if result['dry_run'] else 'renumbered'}: {result['tasks_updated']}")
