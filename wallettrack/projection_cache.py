from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar, Union

from wallettrack.category_projection import CategoryProjection
from wallettrack.daily_projection import DailyBalanceProjection
from wallettrack.errors import UnknownViewError
from wallettrack.monthly_projection import MonthlyProjection

Projection = Union[CategoryProjection, MonthlyProjection, DailyBalanceProjection]
T = TypeVar("T")

VIEW_ALIASES = {
    "camembert": "category",
    "categories": "category",
    "barres": "monthly",
    "ligne": "daily",
    "balance": "daily",
}


class ProjectionName(str, Enum):
    CATEGORY = "category"
    MONTHLY = "monthly"
    DAILY = "daily"

    @classmethod
    def validate(cls, value: "ProjectionName | str") -> "ProjectionName":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise UnknownViewError(f"Unknown view: {value!r}")
        normalized = value.strip().lower()
        normalized = VIEW_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError as exc:
            raise UnknownViewError(f"Unknown view: {value}") from exc


@dataclass(frozen=True)
class CachedProjection(Generic[T]):
    value: Optional[T] = None
    fresh: bool = False
    reference_month: Optional[date] = None
    recompute_count: int = 0

    @property
    def stale(self) -> bool:
        return not self.fresh


class ProjectionCache:
    """Last computed value and staleness flag for each projection."""

    def __init__(self) -> None:
        self._entries: dict[ProjectionName, CachedProjection] = {
            name: CachedProjection() for name in ProjectionName
        }

    def get(self, name: ProjectionName | str) -> CachedProjection:
        return self._entries[ProjectionName.validate(name)]

    def is_stale(
        self, name: ProjectionName | str, reference_month: Optional[date] = None
    ) -> bool:
        entry = self.get(name)
        if not entry.fresh:
            return True
        return reference_month is not None and entry.reference_month != reference_month

    def invalidate(self, name: ProjectionName | str) -> None:
        normalized = ProjectionName.validate(name)
        self._entries[normalized] = replace(self._entries[normalized], fresh=False)

    def invalidate_all(self) -> None:
        for name in ProjectionName:
            self.invalidate(name)

    def invalidate_except(self, keep: ProjectionName | str) -> None:
        keep = ProjectionName.validate(keep)
        for name in ProjectionName:
            if name != keep:
                self.invalidate(name)

    def refresh(
        self,
        name: ProjectionName | str,
        builder: Callable[[], Projection],
        reference_month: Optional[date] = None,
    ) -> Projection:
        """Recompute one projection and store it.

        The entry is replaced only after ``builder`` returns; if it raises,
        the previous value and flag are left as they were.
        """
        normalized = ProjectionName.validate(name)
        value = builder()
        previous = self._entries[normalized]
        self._entries[normalized] = CachedProjection(
            value=value,
            fresh=True,
            reference_month=reference_month,
            recompute_count=previous.recompute_count + 1,
        )
        return value

    def recompute_counts(self) -> dict[ProjectionName, int]:
        return {name: entry.recompute_count for name, entry in self._entries.items()}
