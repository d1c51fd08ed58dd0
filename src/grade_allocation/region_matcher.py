"""
Matching of free-text delivery area specifications against the region
catalogue.

A specification such as ``"城区，郊区/开发区"`` is split into candidate names.
A catalogue region is selected only when one candidate equals its name after
trimming; ``"城区"`` never selects ``"城区（A片区）"``.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence

from .data_models import RegionRow

logger = logging.getLogger(__name__)

# ASCII/full-width comma, ideographic comma, full stop, dot, middle dot,
# semicolons, slash, pipe, hyphen, plus
_DELIMITER_PATTERN = re.compile(r"[,，、。.·;；/|\-+]+")


def split_region_spec(spec: Optional[str]) -> List[str]:
    """
    Split a delivery area specification into unique candidate region names,
    keeping their first-seen order.
    """

    if spec is None or not spec.strip():
        return []
    candidates: List[str] = []
    seen = set()
    for part in _DELIMITER_PATTERN.split(spec.strip()):
        name = part.strip()
        if name and name not in seen:
            seen.add(name)
            candidates.append(name)
    return candidates


def failure_function(pattern: str) -> List[int]:
    """
    Longest proper prefix that is also a suffix, for every prefix of
    ``pattern``.
    """

    table = [0] * len(pattern)
    length = 0
    i = 1
    while i < len(pattern):
        if pattern[i] == pattern[length]:
            length += 1
            table[i] = length
            i += 1
        elif length:
            length = table[length - 1]
        else:
            table[i] = 0
            i += 1
    return table


class KmpMatcher:
    """
    Knuth-Morris-Pratt substring search.

    The failure table is built per call; the matcher holds no state.
    """

    def find(self, text: str, pattern: str) -> int:
        """
        Index of the first occurrence of ``pattern`` in ``text``, or -1.
        """

        if not pattern:
            return 0
        table = failure_function(pattern)
        j = 0
        for i, char in enumerate(text):
            while j and char != pattern[j]:
                j = table[j - 1]
            if char == pattern[j]:
                j += 1
                if j == len(pattern):
                    return i - j + 1
        return -1

    def matches(self, text: str, pattern: str) -> bool:
        """
        Exact match after trimming both sides.
        """

        text = text.strip()
        pattern = pattern.strip()
        if not pattern or len(text) != len(pattern):
            return False
        return self.find(text, pattern) == 0


def _sort_by_total(rows: List[RegionRow]) -> List[RegionRow]:
    # sorted() is stable with reverse=True, ties keep catalogue order
    return sorted(rows, key=lambda row: row.total, reverse=True)


def _unique_rows(rows: Sequence[RegionRow]) -> List[RegionRow]:
    unique: List[RegionRow] = []
    seen = set()
    for row in rows:
        name = row.name.strip()
        if not name:
            continue
        if name in seen:
            logger.debug("Duplicate catalogue region %s ignored", name)
            continue
        seen.add(name)
        unique.append(row if row.name == name else RegionRow(name, row.counts))
    return unique


class RegionMatcher:
    """
    Reduces a region catalogue to the rows named by a delivery area
    specification.
    """

    def __init__(self, kmp: Optional[KmpMatcher] = None) -> None:
        self.kmp = kmp or KmpMatcher()

    def match(self, region_spec: Optional[str], catalogue: Sequence[RegionRow]) -> List[RegionRow]:
        """
        Return matching catalogue rows, duplicate-free and sorted descending
        by customer total. A blank specification selects the whole catalogue.
        """

        rows = _unique_rows(catalogue)
        candidates = split_region_spec(region_spec)
        if not candidates:
            logger.debug("No region specified, using all %d catalogue regions", len(rows))
            return _sort_by_total(rows)

        by_length: Dict[int, List[str]] = {}
        for candidate in candidates:
            by_length.setdefault(len(candidate), []).append(candidate)

        matched: List[RegionRow] = []
        unmatched = set(candidates)
        for row in rows:
            for candidate in by_length.get(len(row.name), []):
                if self.kmp.matches(row.name, candidate):
                    matched.append(row)
                    unmatched.discard(candidate)
                    break

        if unmatched:
            logger.warning(
                "Regions not found in catalogue: %s",
                ", ".join(c for c in candidates if c in unmatched),
            )
        logger.debug("Matched %d of %d requested regions", len(matched), len(candidates))
        return _sort_by_total(matched)


def match_regions(region_spec: Optional[str], catalogue: Sequence[RegionRow]) -> List[RegionRow]:
    return RegionMatcher().match(region_spec, catalogue)
