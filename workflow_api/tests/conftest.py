"""
Shared fixtures: in-memory repository doubles standing in for the
SQLAlchemy repositories, so services run without Postgres.

Rows are SimpleNamespace objects carrying the same attribute names as the
ORM models; the services only read and assign attributes.
"""
from __future__ import annotations

import asyncio
import itertools
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

import pytest

# the app module reads settings at import; never touch a database from tests
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")
os.environ.setdefault("AUTO_SEED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from tracker.core.deps import Actor  # noqa: E402
from tracker.domain.workflow import TERMINAL_INSPECTION_STATES  # noqa: E402

TENANT_ID = UUID("00000000-0000-4000-8000-000000000001")

_clock = itertools.count()
_EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _now() -> datetime:
    # strictly increasing so created_at ordering is deterministic
    return _EPOCH + timedelta(seconds=next(_clock))


def make_row(**values: Any) -> SimpleNamespace:
    ts = _now()
    row = SimpleNamespace(
        id=uuid4(),
        tenant_id=TENANT_ID,
        created_at=ts,
        updated_at=ts,
        is_deleted=False,
        deleted_at=None,
    )
    for key, value in values.items():
        setattr(row, key, value)
    return row


def run(coro):
    return asyncio.run(coro)


_LOCK_RANK = {"work_item": 0, "release": 1, "inspection": 2}


def assert_lock_order(lock_log) -> None:
    """Row locks must follow work item, then release, then inspection."""
    ranks = [_LOCK_RANK[kind] for kind, _ in lock_log]
    assert ranks == sorted(ranks), lock_log


class FakeSession:
    """Counts transaction outcomes; there is nothing to persist."""

    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    async def flush(self) -> None:
        return None


class FakeWorkItems:
    def __init__(self, lock_log: Optional[list] = None) -> None:
        self.rows: Dict[UUID, SimpleNamespace] = {}
        self.locked: List[UUID] = []
        self.lock_log = lock_log if lock_log is not None else []

    async def list_work_items(self, *, item_no=None, job_no=None, limit=100, offset=0):
        rows = sorted(self.rows.values(), key=lambda r: r.created_at, reverse=True)
        return rows[offset:offset + limit]

    async def get(self, item_id):
        return self.rows.get(item_id)

    async def lock(self, item_id):
        self.locked.append(item_id)
        self.lock_log.append(("work_item", item_id))
        return self.rows.get(item_id)

    async def create(self, **values):
        values.setdefault("job_no", None)
        values.setdefault("description", None)
        values.setdefault("unit_weight", None)
        row = make_row(**values)
        self.rows[row.id] = row
        return row


class FakeReleases:
    def __init__(self, lock_log: Optional[list] = None) -> None:
        self.rows: Dict[UUID, SimpleNamespace] = {}
        self.locked: List[UUID] = []
        self.lock_log = lock_log if lock_log is not None else []

    def _live(self):
        return [r for r in self.rows.values() if not r.is_deleted]

    async def list_releases(self, *, work_item_id=None, status=None, limit=100, offset=0):
        rows = [
            r for r in self._live()
            if (work_item_id is None or r.work_item_id == work_item_id)
            and (status is None or r.status == status)
        ]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return rows[offset:offset + limit]

    async def list_active_for_item(self, work_item_id):
        return [r for r in self._live() if r.work_item_id == work_item_id]

    async def get(self, release_id):
        row = self.rows.get(release_id)
        return None if row is None or row.is_deleted else row

    async def lock(self, release_id):
        self.locked.append(release_id)
        self.lock_log.append(("release", release_id))
        return await self.get(release_id)

    async def create(self, **values):
        values.setdefault("status", "PLANNING")
        values.setdefault("inspection_count", 0)
        row = make_row(**values)
        self.rows[row.id] = row
        return row

    async def soft_delete(self, release):
        release.is_deleted = True
        release.deleted_at = _now()


class FakeInspections:
    def __init__(self, lock_log: Optional[list] = None) -> None:
        self.rows: Dict[UUID, SimpleNamespace] = {}
        self.steps: Dict[UUID, List[SimpleNamespace]] = {}
        self.flushes = 0
        self.lock_log = lock_log if lock_log is not None else []

    def _live(self):
        return [r for r in self.rows.values() if not r.is_deleted]

    async def list_inspections(self, *, release_id=None, completed=None, status=None, limit=100, offset=0):
        rows = []
        for r in self._live():
            if release_id is not None and r.release_id != release_id:
                continue
            if status is not None and r.status != status:
                continue
            terminal = r.status in {s.value for s in TERMINAL_INSPECTION_STATES}
            if completed is not None and terminal != completed:
                continue
            rows.append(r)
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return rows[offset:offset + limit]

    async def get(self, inspection_id):
        row = self.rows.get(inspection_id)
        return None if row is None or row.is_deleted else row

    async def lock(self, inspection_id):
        self.lock_log.append(("inspection", inspection_id))
        return await self.get(inspection_id)

    async def get_active_for_release(self, release_id):
        terminal = {s.value for s in TERMINAL_INSPECTION_STATES}
        open_rows = [r for r in self._live() if r.release_id == release_id and r.status not in terminal]
        if not open_rows:
            return None
        return max(open_rows, key=lambda r: r.inspection_number)

    async def lock_for_release(self, release_id):
        rows = sorted(
            (r for r in self._live() if r.release_id == release_id),
            key=lambda r: r.inspection_number,
        )
        self.lock_log.extend(("inspection", r.id) for r in rows)
        return rows

    async def create(self, step_names, **values):
        defaults = dict(
            status="PENDING",
            inspected_quantity=Decimal("0"),
            approved_quantity=Decimal("0"),
            rejected_quantity=Decimal("0"),
            hold_quantity=Decimal("0"),
            inspected_override=None,
            approved_override=None,
            rejected_override=None,
            hold_override=None,
            drawing_batch=None,
            transmittal_ref=None,
            template_name=None,
            remarks=None,
            created_by=None,
            inspected_by=None,
            completed_at=None,
        )
        defaults.update(values)
        record = make_row(**defaults)
        self.rows[record.id] = record
        self.steps[record.id] = [
            make_row(
                inspection_id=record.id,
                seq_no=seq,
                step_name=name,
                approved_qty=Decimal("0"),
                rejected_qty=Decimal("0"),
                hold_qty=Decimal("0"),
                status="PENDING",
                remarks=None,
                inspected_by=None,
                inspected_at=None,
            )
            for seq, name in enumerate(step_names, start=1)
        ]
        return record

    async def list_steps(self, inspection_id):
        return list(self.steps.get(inspection_id, []))

    async def has_touched_inspection(self, release_id):
        for record in self._live():
            if record.release_id != release_id:
                continue
            if any(s.status != "PENDING" for s in self.steps.get(record.id, [])):
                return True
        return False

    async def soft_delete(self, record):
        record.is_deleted = True
        record.deleted_at = _now()

    async def soft_delete_for_release(self, release_id):
        for record in self._live():
            if record.release_id == release_id:
                await self.soft_delete(record)

    async def flush(self):
        self.flushes += 1


class FakeTemplates:
    def __init__(self) -> None:
        self.rows: Dict[UUID, SimpleNamespace] = {}

    async def list_templates(self):
        return sorted(self.rows.values(), key=lambda t: t.name)

    async def get(self, template_id):
        return self.rows.get(template_id)

    async def get_default(self):
        return next((t for t in self.rows.values() if t.is_default), None)

    async def clear_default(self):
        for t in self.rows.values():
            t.is_default = False

    async def create(self, *, name, steps, is_default=False):
        row = make_row(name=name, steps=list(steps), is_default=is_default)
        self.rows[row.id] = row
        return row


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls: List[tuple] = []

    async def notify_approved(self, tenant_id, request):
        self.calls.append((tenant_id, request))


class FailingNotifier:
    def __init__(self) -> None:
        self.attempts = 0

    async def notify_approved(self, tenant_id, request):
        self.attempts += 1
        raise RuntimeError("delivery queue unavailable")


class Workspace:
    """One tenant's worth of in-memory repositories plus the services over them."""

    def __init__(self, notifier: Optional[Any] = None) -> None:
        self.session = FakeSession()
        # (kind, id) for every row lock, in the order taken across repositories
        self.lock_log: List[tuple] = []
        self.work_items = FakeWorkItems(self.lock_log)
        self.releases = FakeReleases(self.lock_log)
        self.inspections = FakeInspections(self.lock_log)
        self.templates = FakeTemplates()
        self.notifier = notifier or RecordingNotifier()

    def work_item_service(self):
        from tracker.services.production import WorkItemService

        return WorkItemService(self.session, work_items=self.work_items, releases=self.releases)

    def release_service(self):
        from tracker.services.production import ReleaseService

        return ReleaseService(
            self.session,
            work_items=self.work_items,
            releases=self.releases,
            inspections=self.inspections,
            templates=self.templates,
        )

    def inspection_service(self):
        from tracker.services.quality import InspectionService

        return InspectionService(
            self.session, inspections=self.inspections, releases=self.releases, notifier=self.notifier
        )

    def template_service(self):
        from tracker.services.quality import TemplateService

        return TemplateService(self.session, templates=self.templates)


@pytest.fixture
def workspace() -> Workspace:
    ws = Workspace()
    run(ws.templates.create(name="Standard ITP", steps=["Fit-up", "Welding", "Visual"], is_default=True))
    return ws


@pytest.fixture
def inspector() -> Actor:
    return Actor(user_id="inspector-1", tenant_id=TENANT_ID, roles=frozenset({"quality:manage"}))


@pytest.fixture
def planner() -> Actor:
    return Actor(user_id="planner-1", tenant_id=TENANT_ID, roles=frozenset({"production:manage"}))


@pytest.fixture
def supervisor() -> Actor:
    return Actor(user_id="admin-1", tenant_id=TENANT_ID, roles=frozenset({"admin"}))
