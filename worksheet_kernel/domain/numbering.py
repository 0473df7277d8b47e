"""
Display identifiers derived from sequence values.

Order numbers are ``YYNNN`` (two-digit year, three-digit zero-padded
per-year counter; the counter widens past 999).  Worksheet numbers are
derived from the parent order: ``DN-25003`` for revision 1,
``DN-25003-R1`` for revision 2 (the first re-issue), and so on.

Pure functions only.  Values come from SequenceService.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

DEFAULT_WORKSHEET_PREFIX = "DN"

_WORKSHEET_NUMBER_RE = re.compile(
    r"^(?P<prefix>[A-Z]+)-(?P<order>[0-9A-Za-z]+)(?:-R(?P<revision>[0-9]+))?$"
)


@dataclass(frozen=True)
class WorksheetNumber:
    prefix: str
    order_number: str
    revision: int


def order_series(year: int) -> str:
    """Sequence series holding the per-year order counter."""
    return f"order_number.{year}"


def revision_series(order_id: object) -> str:
    """Sequence series holding the per-order worksheet revision counter."""
    return f"worksheet_revision.{order_id}"


def format_order_number(year: int, value: int) -> str:
    if value < 1:
        raise ValueError(f"Order counter must be >= 1, got {value}")
    return f"{year % 100:02d}{value:03d}"


def format_worksheet_number(
    order_number: str,
    revision: int = 1,
    prefix: str = DEFAULT_WORKSHEET_PREFIX,
) -> str:
    if revision < 1:
        raise ValueError(f"Revision must be >= 1, got {revision}")
    if revision == 1:
        return f"{prefix}-{order_number}"
    return f"{prefix}-{order_number}-R{revision - 1}"


def parse_worksheet_number(text: str) -> WorksheetNumber:
    """
    Split a display number back into prefix, order number and revision.

    Raises:
        ValueError: text does not look like a worksheet number.
    """
    match = _WORKSHEET_NUMBER_RE.match(text.strip())
    if match is None:
        raise ValueError(f"Not a worksheet number: {text!r}")
    suffix = match.group("revision")
    if suffix is not None and int(suffix) < 1:
        raise ValueError(f"Revision suffix must be >= 1: {text!r}")
    revision = int(suffix) + 1 if suffix is not None else 1
    return WorksheetNumber(
        prefix=match.group("prefix"),
        order_number=match.group("order"),
        revision=revision,
    )
