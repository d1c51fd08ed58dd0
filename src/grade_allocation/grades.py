"""
Grade tier model.

Tier index 0 is the highest customer grade (``D30``) and index 29 the lowest
(``D1``). A :class:`GradeRange` selects the contiguous band of tiers that may
receive a non-zero allocation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .errors import InvalidGradeLabel, InvertedGradeRange

GRADE_COUNT = 30
HIGHEST_GRADE_INDEX = 0
LOWEST_GRADE_INDEX = GRADE_COUNT - 1

DEFAULT_HIGHEST_GRADE = "D30"
DEFAULT_LOWEST_GRADE = "D1"

_LABEL_PATTERN = re.compile(r"^D([1-9][0-9]?)$")


def index_to_label(index: int) -> str:
    """
    Convert a tier index (0..29) to its external label (``D30``..``D1``).
    """

    if isinstance(index, bool) or not isinstance(index, int):
        raise InvalidGradeLabel(f"Grade index must be an int, got {index!r}")
    if not 0 <= index < GRADE_COUNT:
        raise InvalidGradeLabel(f"Grade index out of range: {index}")
    return f"D{GRADE_COUNT - index}"


def label_to_index(label: str) -> int:
    """
    Convert an external label such as ``"D30"`` or ``" d5 "`` to a tier index.
    """

    if not isinstance(label, str):
        raise InvalidGradeLabel(f"Grade label must be a string, got {label!r}")
    match = _LABEL_PATTERN.match(label.strip().upper())
    if match is None:
        raise InvalidGradeLabel(f"Unrecognised grade label: {label!r}")
    number = int(match.group(1))
    if number > GRADE_COUNT:
        raise InvalidGradeLabel(f"Grade label out of range: {label!r}")
    return GRADE_COUNT - number


GRADE_LABELS: Tuple[str, ...] = tuple(index_to_label(i) for i in range(GRADE_COUNT))


def grade_columns() -> List[str]:
    """Column labels in tier order, as used by statistics tables."""
    return list(GRADE_LABELS)


@dataclass(frozen=True)
class GradeRange:
    """
    Inclusive band of tiers ``[max_index, min_index]`` eligible for allocation.

    ``max_index`` is the highest grade (HG) and therefore the smaller index.
    """

    max_index: int = HIGHEST_GRADE_INDEX
    min_index: int = LOWEST_GRADE_INDEX

    def __post_init__(self) -> None:
        # index_to_label doubles as the bounds check
        index_to_label(self.max_index)
        index_to_label(self.min_index)
        if self.max_index > self.min_index:
            raise InvertedGradeRange(
                f"Highest grade {index_to_label(self.max_index)} is below "
                f"lowest grade {index_to_label(self.min_index)}"
            )

    @classmethod
    def full(cls) -> "GradeRange":
        return cls(HIGHEST_GRADE_INDEX, LOWEST_GRADE_INDEX)

    @classmethod
    def from_labels(
        cls, highest: Optional[str] = None, lowest: Optional[str] = None
    ) -> "GradeRange":
        """
        Build a range from HG/LG labels. Blank or missing labels fall back to
        ``D30`` and ``D1`` respectively.
        """

        if highest is None or not str(highest).strip():
            highest = DEFAULT_HIGHEST_GRADE
        if lowest is None or not str(lowest).strip():
            lowest = DEFAULT_LOWEST_GRADE
        return cls(label_to_index(highest), label_to_index(lowest))

    def contains(self, index: int) -> bool:
        return self.max_index <= index <= self.min_index

    def indices(self) -> range:
        return range(self.max_index, self.min_index + 1)

    @property
    def width(self) -> int:
        return self.min_index - self.max_index + 1

    @property
    def labels(self) -> Tuple[str, str]:
        return index_to_label(self.max_index), index_to_label(self.min_index)

    def __str__(self) -> str:
        highest, lowest = self.labels
        return f"{highest}~{lowest}"
