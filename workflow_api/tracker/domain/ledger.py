"""
Quantity ledger for a work item and its production releases.

Pure functions over already-loaded records: the service layer is responsible
for holding the work item row lock while a validation and the following write
run, so two concurrent releases cannot both pass against the same snapshot.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Protocol, Sequence

from tracker.domain.exceptions import InvalidReleaseQuantity, QuantityExceeded
from tracker.domain.quantities import ZERO, to_quantity
from tracker.domain.workflow import ReleaseStatus


class ReleaseLike(Protocol):
    release_quantity: Any
    created_at: Optional[datetime]
    is_deleted: bool
    status: str


class WorkItemLike(Protocol):
    ordered_quantity: Any


@dataclass(frozen=True)
class BalanceRow:
    """One line of the running balance: the balance left after ``release``."""

    release: Any
    release_quantity: Decimal
    cumulative_released: Decimal
    balance_after: Decimal


@dataclass(frozen=True)
class LedgerSummary:
    ordered: Decimal
    released: Decimal
    remaining: Decimal
    settled: Decimal


def active_releases(releases: Iterable[ReleaseLike]) -> List[ReleaseLike]:
    """Releases that count towards the ledger (soft-deleted ones never do)."""
    return [r for r in releases if not r.is_deleted]


def released(releases: Iterable[ReleaseLike]) -> Decimal:
    return sum((to_quantity(r.release_quantity) for r in active_releases(releases)), ZERO)


# PUBLIC_INTERFACE
def remaining(item: WorkItemLike, releases: Iterable[ReleaseLike]) -> Decimal:
    """orderedQuantity minus the sum of non-deleted release quantities."""
    return to_quantity(item.ordered_quantity) - released(releases)


# PUBLIC_INTERFACE
def settled(item: WorkItemLike, releases: Iterable[ReleaseLike]) -> Decimal:
    """Quantity released and approved by inspection."""
    return sum(
        (
            to_quantity(r.release_quantity)
            for r in active_releases(releases)
            if r.status == ReleaseStatus.APPROVED.value
        ),
        ZERO,
    )


def summary(item: WorkItemLike, releases: Sequence[ReleaseLike]) -> LedgerSummary:
    ordered = to_quantity(item.ordered_quantity)
    out = released(releases)
    return LedgerSummary(
        ordered=ordered,
        released=out,
        remaining=ordered - out,
        settled=settled(item, releases),
    )


def _sort_key(release: ReleaseLike):
    # releases without a timestamp have not been flushed yet: treat them as newest
    ts = release.created_at
    return (ts is None, ts or datetime.min)


# PUBLIC_INTERFACE
def running_balance(item: WorkItemLike, releases: Iterable[ReleaseLike]) -> List[BalanceRow]:
    """
    Balance after each release, newest first.

    Releases are sorted by ``created_at`` descending and released quantity is
    accumulated top-down; each row reports ``ordered - cumulative``.
    """
    ordered = to_quantity(item.ordered_quantity)
    rows: List[BalanceRow] = []
    cumulative = ZERO
    for release in sorted(active_releases(releases), key=_sort_key, reverse=True):
        qty = to_quantity(release.release_quantity)
        cumulative += qty
        rows.append(
            BalanceRow(
                release=release,
                release_quantity=qty,
                cumulative_released=cumulative,
                balance_after=ordered - cumulative,
            )
        )
    return rows


# PUBLIC_INTERFACE
def validate_new_or_edited_release(
    item: WorkItemLike,
    releases: Iterable[ReleaseLike],
    candidate_quantity: Any,
    existing_release_quantity: Any = ZERO,
) -> Decimal:
    """
    Check a new release (or an edit of an existing one) against the ledger.

    ``existing_release_quantity`` is the quantity the edited release already
    holds, so an edit does not need to return it to the pool first.

    Returns the allowed ceiling. Raises InvalidReleaseQuantity for a
    non-positive candidate and QuantityExceeded above the ceiling; nothing is
    ever clamped.
    """
    candidate = to_quantity(candidate_quantity)
    if candidate <= ZERO:
        raise InvalidReleaseQuantity(candidate)
    ceiling = remaining(item, releases) + to_quantity(existing_release_quantity)
    if candidate > ceiling:
        raise QuantityExceeded(requested=candidate, ceiling=ceiling)
    return ceiling


# PUBLIC_INTERFACE
def validate_ordered_quantity(new_ordered: Any, releases: Iterable[ReleaseLike]) -> None:
    """An ordered quantity correction may never fall below what is already released."""
    new_value = to_quantity(new_ordered)
    out = released(releases)
    if new_value < out:
        raise QuantityExceeded(requested=out, ceiling=new_value)
