"""
FDI two-digit tooth notation (ISO 3950).

The first digit is the quadrant (1-4 permanent, 5-8 primary), the second
the position counted from the midline (1-8 permanent, 1-5 primary).
Tooth numbers are carried as two-character strings ("11", "55").
"""

from __future__ import annotations

from dataclasses import dataclass

from worksheet_kernel.exceptions import InvalidToothNumberError

PERMANENT_MAX_POSITION = 8
PRIMARY_MAX_POSITION = 5

QUADRANT_NAMES: dict[int, str] = {
    1: "Upper Right",
    2: "Upper Left",
    3: "Lower Left",
    4: "Lower Right",
    5: "Upper Right",
    6: "Upper Left",
    7: "Lower Left",
    8: "Lower Right",
}

PERMANENT_POSITION_NAMES: dict[int, str] = {
    1: "Central Incisor",
    2: "Lateral Incisor",
    3: "Canine",
    4: "First Premolar",
    5: "Second Premolar",
    6: "First Molar",
    7: "Second Molar",
    8: "Third Molar",
}

# Primary dentition has no premolars
PRIMARY_POSITION_NAMES: dict[int, str] = {
    1: "Central Incisor",
    2: "Lateral Incisor",
    3: "Canine",
    4: "First Molar",
    5: "Second Molar",
}

PERMANENT_TEETH: tuple[str, ...] = tuple(
    f"{q}{p}" for q in range(1, 5) for p in range(1, PERMANENT_MAX_POSITION + 1)
)
PRIMARY_TEETH: tuple[str, ...] = tuple(
    f"{q}{p}" for q in range(5, 9) for p in range(1, PRIMARY_MAX_POSITION + 1)
)
ALL_TEETH: frozenset[str] = frozenset(PERMANENT_TEETH + PRIMARY_TEETH)


@dataclass(frozen=True)
class Tooth:
    """A validated FDI tooth."""

    number: str
    quadrant: int
    position: int

    @property
    def is_permanent(self) -> bool:
        return self.quadrant <= 4

    @property
    def is_primary(self) -> bool:
        return not self.is_permanent

    @property
    def description(self) -> str:
        names = PERMANENT_POSITION_NAMES if self.is_permanent else PRIMARY_POSITION_NAMES
        dentition = "Permanent" if self.is_permanent else "Primary"
        return f"{QUADRANT_NAMES[self.quadrant]} {names[self.position]} ({dentition})"


def parse_tooth(value: str | int) -> Tooth:
    """
    Validate an FDI tooth number and return its parts.

    Integers are accepted (``11`` == ``"11"``).

    Raises:
        InvalidToothNumberError: not two digits, bad quadrant, or a
            position beyond the dentition's range.
    """
    text = str(value).strip() if not isinstance(value, bool) else ""
    if len(text) != 2 or not (text.isascii() and text.isdigit()):
        raise InvalidToothNumberError(value, "must be exactly 2 digits")

    quadrant, position = int(text[0]), int(text[1])
    if not 1 <= quadrant <= 8:
        raise InvalidToothNumberError(value, "quadrant must be between 1 and 8")

    max_position = PERMANENT_MAX_POSITION if quadrant <= 4 else PRIMARY_MAX_POSITION
    if not 1 <= position <= max_position:
        dentition = "permanent" if quadrant <= 4 else "primary"
        raise InvalidToothNumberError(
            value, f"position must be between 1 and {max_position} for {dentition} teeth"
        )

    return Tooth(number=text, quadrant=quadrant, position=position)


def is_valid_tooth(value: str | int) -> bool:
    try:
        parse_tooth(value)
    except InvalidToothNumberError:
        return False
    return True


def sort_teeth(numbers: list[str]) -> list[str]:
    """Order tooth numbers by quadrant, then position."""
    return sorted(numbers, key=lambda n: (int(n[0]), int(n[1])))
