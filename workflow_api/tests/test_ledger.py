"""
Tests for the work item quantity ledger.

Validates remaining/settled figures, the running balance and release
validation. Pure: releases are plain namespaces.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from tracker.domain import ledger
from tracker.domain.exceptions import InvalidReleaseQuantity, QuantityExceeded

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


def item(ordered) -> SimpleNamespace:
    return SimpleNamespace(ordered_quantity=Decimal(str(ordered)))


def release(qty, minutes=0, status="PLANNING", deleted=False) -> SimpleNamespace:
    return SimpleNamespace(
        release_quantity=Decimal(str(qty)),
        created_at=T0 + timedelta(minutes=minutes),
        is_deleted=deleted,
        status=status,
    )


class TestRemaining:

    def test_remaining_subtracts_live_releases(self):
        assert ledger.remaining(item(100), [release(60), release(30)]) == Decimal("10")

    def test_soft_deleted_release_does_not_count(self):
        assert ledger.remaining(item(100), [release(60), release(30, deleted=True)]) == Decimal("40")

    def test_settled_counts_approved_only(self):
        rows = [release(60, status="APPROVED"), release(30, status="REWORK")]
        assert ledger.settled(item(100), rows) == Decimal("60")

    def test_summary(self):
        s = ledger.summary(item(100), [release(60, status="APPROVED"), release(25)])
        assert (s.ordered, s.released, s.remaining, s.settled) == (
            Decimal("100"), Decimal("85"), Decimal("15"), Decimal("60"),
        )


class TestValidateRelease:

    def test_release_sequence_against_ordered_quantity(self):
        wi = item(100)
        rows = []
        ledger.validate_new_or_edited_release(wi, rows, 60)
        rows.append(release(60))

        with pytest.raises(QuantityExceeded) as exc:
            ledger.validate_new_or_edited_release(wi, rows, 50)
        assert exc.value.requested == Decimal("50")
        assert exc.value.ceiling == Decimal("40")
        assert exc.value.code == "QUANTITY_EXCEEDED"

        assert ledger.validate_new_or_edited_release(wi, rows, 40) == Decimal("40")
        rows.append(release(40))
        assert ledger.remaining(wi, rows) == Decimal("0")

    @pytest.mark.parametrize("qty", [0, -1, "0.0000"])
    def test_non_positive_quantity_is_refused(self, qty):
        with pytest.raises(InvalidReleaseQuantity):
            ledger.validate_new_or_edited_release(item(100), [], qty)

    def test_edit_returns_own_quantity_to_the_pool(self):
        own = release(60)
        rows = [own, release(30)]
        assert ledger.validate_new_or_edited_release(
            item(100), rows, 70, existing_release_quantity=own.release_quantity
        ) == Decimal("70")
        with pytest.raises(QuantityExceeded) as exc:
            ledger.validate_new_or_edited_release(
                item(100), rows, Decimal("70.0001"), existing_release_quantity=own.release_quantity
            )
        assert exc.value.ceiling == Decimal("70")

    def test_fractional_quantities(self):
        rows = [release("2.5")]
        assert ledger.validate_new_or_edited_release(item("3.75"), rows, "1.25") == Decimal("1.25")


class TestRunningBalance:

    def test_newest_first_with_cumulative_balance(self):
        first, second, third = release(50, minutes=0), release(20, minutes=5), release(10, minutes=9)
        rows = ledger.running_balance(item(100), [second, first, third])
        assert [r.release for r in rows] == [third, second, first]
        assert [r.cumulative_released for r in rows] == [Decimal("10"), Decimal("30"), Decimal("80")]
        assert [r.balance_after for r in rows] == [Decimal("90"), Decimal("70"), Decimal("20")]

    def test_deleted_releases_are_skipped(self):
        rows = ledger.running_balance(item(100), [release(50), release(20, minutes=1, deleted=True)])
        assert len(rows) == 1
        assert rows[0].balance_after == Decimal("50")

    def test_unflushed_release_sorts_as_newest(self):
        pending = release(5)
        pending.created_at = None
        rows = ledger.running_balance(item(10), [release(1, minutes=3), pending])
        assert rows[0].release is pending


class TestOrderedQuantityCorrection:

    def test_correction_down_to_released_is_allowed(self):
        ledger.validate_ordered_quantity(Decimal("90"), [release(60), release(30)])

    def test_correction_below_released_is_refused(self):
        with pytest.raises(QuantityExceeded) as exc:
            ledger.validate_ordered_quantity(Decimal("80"), [release(60), release(30)])
        assert exc.value.requested == Decimal("90")
        assert exc.value.ceiling == Decimal("80")
