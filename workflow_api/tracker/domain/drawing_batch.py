"""
Plain-text encoding of multi-drawing batches.

A batch is stored as a single text field with one drawing per line; fields on
a line are separated by ``|`` and all but the drawing number are labeled::

    D-100 | Qty: 5 | Unit: pcs | RFF: 12
    D-101 | Qty: 2.5 | Unit: m

The grammar is kept compatible with text persisted by earlier versions of the
system, so ``parse(format(entries))`` must always give the entries back.
Bulk paste from a spreadsheet arrives as tab-separated rows and is spliced
into an existing entry list by ``import_pasted_rows``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from tracker.domain.quantities import ZERO, normalize_quantity, parse_quantity

FIELD_SEPARATOR = "|"
OUTPUT_SEPARATOR = " | "

# (attribute, label) in output order; the drawing number has no label
LABELS = (
    ("quantity", "Qty"),
    ("unit", "Unit"),
    ("rff_ref", "RFF"),
    ("transmittal_ref", "Transmittal"),
)

_LABEL_WORDS = r"(?P<label>transmittal|qty|unit|rff)"
# label, an optional ':'/'=' separator, then the value; without a separator
# the label must not run straight into a longer word ("Quantity", "Units")
_LABEL_RE = re.compile(
    _LABEL_WORDS + r"(?:\s*[:=]\s*|(?![a-z])\s*)(?P<value>.*)$",
    re.IGNORECASE,
)
# the leading token is a drawing number unless it is explicitly labeled
_EXPLICIT_LABEL_RE = re.compile(_LABEL_WORDS + r"\s*[:=]\s*(?P<value>.*)$", re.IGNORECASE)
_LABEL_TO_FIELD = {label.lower(): attr for attr, label in LABELS}

# spreadsheet paste column order
PASTE_COLUMNS = ("drawing_no", "quantity", "unit", "rff_ref")


@dataclass(frozen=True)
class DrawingEntry:
    """One drawing line of a batch. All fields are optional text."""

    drawing_no: Optional[str] = None
    quantity: Optional[str] = None
    unit: Optional[str] = None
    rff_ref: Optional[str] = None
    transmittal_ref: Optional[str] = None

    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))

    @property
    def quantity_value(self) -> Optional[Decimal]:
        """Numeric quantity, or None when absent or not a number."""
        if not self.quantity:
            return None
        return parse_quantity(self.quantity)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _clean_quantity(value: Optional[str]) -> Optional[str]:
    value = _clean(value)
    if value is None:
        return None
    number = parse_quantity(value)
    if number is None:
        return value
    return normalize_quantity(number)


def make_entry(
    drawing_no: Optional[str] = None,
    quantity: Optional[str] = None,
    unit: Optional[str] = None,
    rff_ref: Optional[str] = None,
    transmittal_ref: Optional[str] = None,
) -> DrawingEntry:
    """Build an entry with every token trimmed and the quantity normalized."""
    return DrawingEntry(
        drawing_no=_clean(drawing_no),
        quantity=_clean_quantity(quantity),
        unit=_clean(unit),
        rff_ref=_clean(rff_ref),
        transmittal_ref=_clean(transmittal_ref),
    )


def parse_line(line: str) -> DrawingEntry:
    values: dict = {}
    leading = True
    for raw in line.split(FIELD_SEPARATOR):
        token = raw.strip()
        if not token:
            continue
        match = (_EXPLICIT_LABEL_RE if leading else _LABEL_RE).match(token)
        leading = False
        if match:
            attr = _LABEL_TO_FIELD[match.group("label").lower()]
            values[attr] = match.group("value")
        elif "drawing_no" not in values:
            values["drawing_no"] = token
        # further unlabeled tokens are ignored, never merged into the drawing number
    return make_entry(**values)


# PUBLIC_INTERFACE
def parse(text: Optional[str]) -> List[DrawingEntry]:
    """
    Parse batch text into entries.

    Never rejects input: unknown tokens are ignored and lines without any
    recognised field are dropped.
    """
    if not text:
        return []
    entries = []
    for line in text.splitlines():
        entry = parse_line(line)
        if not entry.is_empty():
            entries.append(entry)
    return entries


def _flatten(value: str) -> str:
    # separators inside a value would split it on the next parse
    return " ".join(value.replace(FIELD_SEPARATOR, " ").split())


def format_entry(entry: DrawingEntry) -> str:
    parts = []
    if entry.drawing_no:
        parts.append(_flatten(entry.drawing_no))
    for attr, label in LABELS:
        value = getattr(entry, attr)
        if value:
            parts.append(f"{label}: {_flatten(value)}")
    return OUTPUT_SEPARATOR.join(parts)


# PUBLIC_INTERFACE
def format(entries: Iterable[DrawingEntry]) -> str:  # noqa: A001
    """Inverse of ``parse``: one line per non-empty entry, empty fields omitted."""
    lines = [format_entry(e) for e in entries if not e.is_empty()]
    return "\n".join(line for line in lines if line)


# PUBLIC_INTERFACE
def total_quantity(entries: Iterable[DrawingEntry]) -> Decimal:
    """Sum of numeric quantities across non-empty entries."""
    total = ZERO
    for entry in entries:
        if entry.is_empty():
            continue
        value = entry.quantity_value
        if value is not None:
            total += value
    return total


def parse_pasted_rows(raw_text: str) -> List[DrawingEntry]:
    rows = []
    for line in raw_text.splitlines():
        cells = line.split("\t")
        values = {name: cells[i] if i < len(cells) else None for i, name in enumerate(PASTE_COLUMNS)}
        entry = make_entry(**values)
        if not entry.is_empty():
            rows.append(entry)
    return rows


# PUBLIC_INTERFACE
def import_pasted_rows(
    raw_text: str,
    insertion_index: int,
    current_entries: Sequence[DrawingEntry],
) -> Optional[List[DrawingEntry]]:
    """
    Splice spreadsheet rows into ``current_entries`` at ``insertion_index``.

    Returns None when the buffer is a single line without a tab: that is
    ordinary typing into one field, not a paste of tabular data. The input
    sequence is never modified; a new list is returned.
    """
    if raw_text is None:
        return None
    lines = raw_text.splitlines()
    if len([ln for ln in lines if ln.strip()]) <= 1 and "\t" not in raw_text:
        return None

    pasted = parse_pasted_rows(raw_text)
    result = list(current_entries)
    index = max(0, min(insertion_index, len(result)))
    if not pasted:
        return result

    if index < len(result) and result[index].is_empty():
        result[index] = pasted[0]
        result[index + 1:index + 1] = pasted[1:]
    else:
        result[index:index] = pasted
    return result
