"""Crowd score aggregation.

Scores are a view over the activity log, never stored. `aggregate()` folds
any sequence of entries into per-level counts; the fold is commutative so
entry order does not matter.

Entries whose level is not one of min/moderate/max are skipped rather than
rejected, so a newer client reporting a level this service does not know
about yet cannot break reads.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Iterable


class CrowdLevel(str, enum.Enum):
    MIN = "min"
    MODERATE = "moderate"
    MAX = "max"

    @classmethod
    def values(cls) -> list[str]:
        return [level.value for level in cls]


@dataclass(frozen=True)
class CrowdScores:
    min_count: int = 0
    moderate_count: int = 0
    max_count: int = 0

    @property
    def total(self) -> int:
        return self.min_count + self.moderate_count + self.max_count

    def as_dict(self) -> dict[str, int]:
        return {
            "minCrowdScore": self.min_count,
            "moderateCrowdScore": self.moderate_count,
            "maxCrowdScore": self.max_count,
            "total": self.total,
        }


def _level_of(entry: Any) -> Any:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        return entry.get("crowdLevel", entry.get("crowd_level"))
    return getattr(entry, "crowd_level", None)


def aggregate(entries: Iterable[Any] | None) -> CrowdScores:
    """Count entries per crowd level.

    Accepts ORM ActivityEntry rows, dicts with a ``crowdLevel`` or
    ``crowd_level`` key, or bare level strings.
    """
    counts = {level: 0 for level in CrowdLevel.values()}
    for entry in entries or ():
        level = _level_of(entry)
        if isinstance(level, CrowdLevel):
            level = level.value
        if isinstance(level, str) and level in counts:
            counts[level] += 1

    return CrowdScores(
        min_count=counts[CrowdLevel.MIN.value],
        moderate_count=counts[CrowdLevel.MODERATE.value],
        max_count=counts[CrowdLevel.MAX.value],
    )
