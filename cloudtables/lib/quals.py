"""Qualifiers and request-parameter resolution.

A qualifier is a caller-supplied predicate on one column (``granularity =
'MONTHLY'``, ``period_start >= '2025-01-01'``). Tables declare which columns
are *key columns* for their list and get strategies; the resolver checks the
required ones are present and turns qualifiers into provider parameters.

Cost queries derive their time window from the granularity:

    HOURLY   -> %Y-%m-%dT%H:%M:%SZ, now minus N hours
    DAILY    -> %Y-%m-%d,           today minus N days
    MONTHLY  -> %Y-%m-%d,           today minus N months

Example:
    quals = QualMap([Qualifier("granularity", QualOperator.EQ, "monthly")])
    window = derive_time_window(quals.equals("granularity"), now, LookbackPolicy())
    window.start_str, window.end_str  # ('2024-10-19', '2025-10-19')
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import pandas as pd

from cloudtables.lib.config_loader import EngineSettings, ForecastPolicy, LookbackPolicy
from cloudtables.lib.errors import MissingRequiredFilter

if TYPE_CHECKING:
    from cloudtables.lib.registry import TableRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "DATE_FORMAT",
    "HOURLY_FORMAT",
    "KeyColumns",
    "QualMap",
    "QualOperator",
    "Qualifier",
    "QualifierResolver",
    "RequestPlan",
    "Strategy",
    "TimeWindow",
    "apply_period_qualifiers",
    "derive_forecast_window",
    "derive_time_window",
    "normalize_granularity",
]

HOURLY_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
DATE_FORMAT = "%Y-%m-%d"


class QualOperator(Enum):
    EQ = "="
    NE = "<>"
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="

    @classmethod
    def parse(cls, token: str) -> "QualOperator":
        token = token.strip()
        if token in ("==", "="):
            return cls.EQ
        if token == "!=":
            return cls.NE
        return cls(token)


@dataclass(frozen=True)
class Qualifier:
    """A predicate over one key column."""

    column: str
    operator: QualOperator
    value: Any

    @classmethod
    def parse(cls, expression: str) -> "Qualifier":
        """Parse ``column<op>value`` as typed on the command line.

        Example:
            >>> Qualifier.parse("period_start>=2025-01-01")
            Qualifier(column='period_start', operator=<QualOperator.GE: '>='>, value='2025-01-01')
        """
        match = _EXPRESSION_PATTERN.match(expression)
        if not match:
            raise ValueError(
                f"Cannot parse qualifier '{expression}'. Use column=value or column>=value"
            )
        column, token, value = match.groups()
        return cls(column, QualOperator.parse(token), value.strip())


# Longest operators first so ">=" is not read as ">"
_EXPRESSION_PATTERN = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*(<>|!=|>=|<=|==|=|>|<)(.*)$")


class QualMap:
    """Read-only view over one query's qualifiers."""

    def __init__(self, qualifiers: Iterable[Qualifier] = ()) -> None:
        self._quals: Tuple[Qualifier, ...] = tuple(qualifiers)

    def __iter__(self) -> Iterator[Qualifier]:
        return iter(self._quals)

    def __len__(self) -> int:
        return len(self._quals)

    def for_column(self, column: str) -> List[Qualifier]:
        return [q for q in self._quals if q.column == column]

    def equals(self, column: str) -> Any:
        """Value of the equality qualifier on ``column``, or None."""
        for q in self._quals:
            if q.column == column and q.operator is QualOperator.EQ:
                return q.value
        return None

    def has_equal(self, column: str) -> bool:
        return any(q.column == column and q.operator is QualOperator.EQ for q in self._quals)

    def ranges(self, column: str) -> List[Qualifier]:
        return [
            q for q in self._quals
            if q.column == column and q.operator in (QualOperator.LT, QualOperator.LE, QualOperator.GT, QualOperator.GE)
        ]

    def equal_values(self) -> Dict[str, Any]:
        return {q.column: q.value for q in self._quals if q.operator is QualOperator.EQ}


@dataclass(frozen=True)
class KeyColumns:
    """Key columns a retrieval strategy understands.

    ``required`` must each carry an equality qualifier; ``optional`` are
    forwarded to the provider when present.
    """

    required: Tuple[str, ...] = ()
    optional: Tuple[str, ...] = ()

    @classmethod
    def single_column(cls, name: str) -> "KeyColumns":
        return cls(required=(name,))

    @classmethod
    def all_columns(cls, names: Sequence[str], optional: Sequence[str] = ()) -> "KeyColumns":
        return cls(required=tuple(names), optional=tuple(optional))

    @property
    def names(self) -> Tuple[str, ...]:
        return self.required + self.optional

    def missing(self, quals: QualMap) -> List[str]:
        return [name for name in self.required if not quals.has_equal(name)]

    def satisfied_by(self, quals: QualMap) -> bool:
        return bool(self.required) and not self.missing(quals)


class Strategy(Enum):
    LIST = "list"
    GET = "get"


@dataclass
class RequestPlan:
    """Outcome of qualifier resolution for one query."""

    table: str
    strategy: Strategy
    params: Dict[str, Any] = field(default_factory=dict)
    quals: QualMap = field(default_factory=QualMap)
    now: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Granularity and time windows
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimeWindow:
    """A [start, end) window with the string format the provider expects."""

    start: datetime
    end: datetime
    fmt: str

    @property
    def start_str(self) -> str:
        return self.start.strftime(self.fmt)

    @property
    def end_str(self) -> str:
        return self.end.strftime(self.fmt)

    def as_date_interval(self) -> Dict[str, str]:
        return {"Start": self.start_str, "End": self.end_str}


def normalize_granularity(value: Any) -> str:
    """Uppercase a granularity; unknown values pass through for the provider to reject."""
    return str(value).strip().upper()


def _format_for(granularity: str) -> str:
    return HOURLY_FORMAT if granularity == "HOURLY" else DATE_FORMAT


def _truncate(moment: datetime, granularity: str) -> datetime:
    """Drop precision the granularity's format cannot carry."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    if granularity == "HOURLY":
        return moment.replace(microsecond=0)
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _shift_months(moment: datetime, months: int) -> datetime:
    return (pd.Timestamp(moment) + pd.DateOffset(months=months)).to_pydatetime()


def derive_time_window(
    granularity: Any,
    now: Optional[datetime] = None,
    lookback: Optional[LookbackPolicy] = None,
) -> TimeWindow:
    """Derive the cost query window ending now for a granularity.

    Unrecognized granularities get the DAILY treatment.
    """
    granularity = normalize_granularity(granularity)
    lookback = lookback or LookbackPolicy()
    end = _truncate(now or datetime.now(timezone.utc), granularity)

    if granularity == "HOURLY":
        start = end - timedelta(hours=lookback.hourly_hours)
    elif granularity == "MONTHLY":
        start = _shift_months(end, -lookback.monthly_months)
    else:
        start = end - timedelta(days=lookback.daily_days)

    return TimeWindow(start=start, end=end, fmt=_format_for(granularity))


def derive_forecast_window(
    granularity: Any,
    now: Optional[datetime] = None,
    forecast: Optional[ForecastPolicy] = None,
) -> TimeWindow:
    """Derive a forecast window starting today and reaching forward."""
    granularity = normalize_granularity(granularity)
    forecast = forecast or ForecastPolicy()
    start = _truncate(now or datetime.now(timezone.utc), "DAILY")

    if granularity == "MONTHLY":
        end = _shift_months(start, forecast.monthly_months)
    else:
        end = start + timedelta(days=forecast.daily_days)

    return TimeWindow(start=start, end=end, fmt=DATE_FORMAT)


def _as_datetime(value: Any) -> datetime:
    stamp = pd.Timestamp(value)
    if stamp.tzinfo is None:
        stamp = stamp.tz_localize("UTC")
    return stamp.to_pydatetime()


def _step(moment: datetime, granularity: str, periods: int = 1) -> datetime:
    """Move ``moment`` by whole periods of the granularity."""
    if granularity == "HOURLY":
        return moment + timedelta(hours=periods)
    if granularity == "MONTHLY":
        return _shift_months(moment, periods)
    return moment + timedelta(days=periods)


def apply_period_qualifiers(window: TimeWindow, quals: QualMap, granularity: Any) -> TimeWindow:
    """Narrow a derived window with qualifiers on period_start/period_end.

    Bounds are truncated to the granularity and sent as the provider's
    ``Start`` (inclusive) and ``End`` (exclusive). A row's ``period_end`` is
    its period's exclusive end, so ``period_end <= '2025-10-10'`` sends
    ``End = 2025-10-10``: the last row returned ends on the 10th and the
    period starting on the 10th is not part of the result.

    Equality pins one period: ``period_start = X`` asks for the period
    starting at X, ``period_end = X`` for the one ending at X. Equality
    wins over range bounds on the same column.
    """
    granularity = normalize_granularity(granularity)
    start, end = window.start, window.end

    for q in quals.ranges("period_start"):
        if q.operator in (QualOperator.GT, QualOperator.GE):
            start = _truncate(_as_datetime(q.value), granularity)
    for q in quals.ranges("period_end"):
        if q.operator in (QualOperator.LT, QualOperator.LE):
            end = _truncate(_as_datetime(q.value), granularity)

    pinned_start = quals.equals("period_start")
    pinned_end = quals.equals("period_end")
    if pinned_start is not None:
        start = _truncate(_as_datetime(pinned_start), granularity)
    if pinned_end is not None:
        end = _truncate(_as_datetime(pinned_end), granularity)
    if pinned_start is not None and pinned_end is None:
        end = _step(start, granularity)
    elif pinned_end is not None and pinned_start is None:
        start = _step(end, granularity, -1)
    if pinned_start is not None or pinned_end is not None:
        logger.debug(
            "Period equality pins window to %s .. %s",
            start.strftime(window.fmt),
            end.strftime(window.fmt),
        )

    if start >= end:
        logger.warning(
            "Period qualifiers give an empty window (%s >= %s); the provider will reject it",
            start.strftime(window.fmt),
            end.strftime(window.fmt),
        )
    return TimeWindow(start=start, end=end, fmt=window.fmt)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class QualifierResolver:
    """Turns a table name plus qualifiers into a provider request plan."""

    def __init__(self, registry: "TableRegistry", settings: Optional[EngineSettings] = None) -> None:
        self.registry = registry
        self.settings = settings or EngineSettings()

    def resolve(
        self,
        table_name: str,
        qualifiers: Iterable[Qualifier],
        *,
        now: Optional[datetime] = None,
    ) -> RequestPlan:
        """Choose get or list and build its parameters.

        Get wins when the table has one and every get key column carries an
        equality qualifier.

        Raises:
            UnknownTableError: no such table
            MissingRequiredFilter: a required list key column has no equality qualifier
        """
        table = self.registry.get(table_name)
        quals = qualifiers if isinstance(qualifiers, QualMap) else QualMap(qualifiers)
        now = now or datetime.now(timezone.utc)

        if table.get_config is not None and table.get_config.key_columns.satisfied_by(quals):
            params = {name: quals.equals(name) for name in table.get_config.key_columns.required}
            logger.debug("Resolved %s to get with %s", table.name, params)
            return RequestPlan(table=table.name, strategy=Strategy.GET, params=params, quals=quals, now=now)

        list_config = table.list_config
        if list_config is None:
            # Get-only table without its keys
            missing = table.get_config.key_columns.missing(quals) if table.get_config else []
            raise MissingRequiredFilter(
                missing[0] if missing else "?",
                table=table.name,
                required=list(table.get_config.key_columns.required) if table.get_config else [],
            )

        missing = list_config.key_columns.missing(quals)
        if missing:
            raise MissingRequiredFilter(
                missing[0],
                table=table.name,
                required=list(list_config.key_columns.required),
            )

        params = {}
        if list_config.build_params is not None:
            params = list_config.build_params(quals, self.settings, now)
        logger.debug("Resolved %s to list with %s", table.name, params)
        return RequestPlan(table=table.name, strategy=Strategy.LIST, params=params, quals=quals, now=now)
