"""
Error types raised by the allocation engine.

Only malformed input raises. Outcomes such as "no customers in range" are
reported through result statuses instead, so one bad product never aborts a
batch.
"""

from __future__ import annotations


class AllocationError(Exception):
    """
    Base class for hard failures in the allocation engine.
    """


class InvalidGradeLabel(AllocationError, ValueError):
    """
    Raised when a grade label is outside the ``D1``..``D30`` vocabulary.
    """


class InvertedGradeRange(AllocationError, ValueError):
    """
    Raised when the highest grade of a range sits below its lowest grade.
    """


class MatrixShapeError(AllocationError, ValueError):
    """
    Raised for ragged rows, negative or non-numeric counts, duplicate regions
    and references to regions missing from a customer matrix.
    """
