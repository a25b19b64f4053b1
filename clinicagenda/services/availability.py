"""
Availability services: single-day evaluation and the multi-day search planner.

The service coordinates the policy store, the calendar adapter, the
busy-interval normalizer and the domain ``SlotCalculator``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date as date_type
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Tuple

import pendulum
from pendulum import Date, DateTime

from ..domain.catalog import Catalog
from ..domain.busy_intervals import BusyIntervalNormalizer
from ..domain.exceptions import AgendaError, CollaboratorError, PolicyViolation
from ..domain.models import (
    BusyInterval,
    DataSource,
    DayAvailabilityResult,
    DayPolicy,
    NextAvailable,
)
from ..domain.slot_calculator import HourEvaluation, SlotCalculator, SlotDecision
from ..domain.working_hours import WorkingHoursPolicy, is_sunday, iso_weekday
from .ports import CalendarPort, PolicyStore

logger = logging.getLogger(__name__)

Clock = Callable[[], DateTime]

DIRECTION_EARLIER = "anterior"
DIRECTION_LATER = "posterior"


@dataclass(frozen=True)
class SearchLimits:
    """Bounds of the multi-day scans."""
    primary_window: int = 3
    primary_scan_cap: int = 5
    lookback_days: int = 3
    lookahead_days: int = 14
    alternatives_target: int = 2
    min_alternative_slots: int = 1
    next_available_days: int = 30
    next_working_days: int = 14


class QueryOutcome(str, Enum):
    AVAILABLE = "available"
    ALTERNATIVES = "alternatives"
    SUNDAY_REDIRECT = "sunday-redirect"
    NEXT_AVAILABLE = "next-available"
    NOTHING = "nothing"


@dataclass
class AvailabilityQueryResult:
    """What the availability endpoint answers for one requested date."""
    requested_date: Date
    outcome: QueryOutcome
    days: List[DayAvailabilityResult] = field(default_factory=list)
    next_available: Optional[NextAvailable] = None

    @property
    def total_slots(self) -> int:
        return sum(day.available_count for day in self.days)


@dataclass
class DayDiagnosis:
    """Hour-by-hour explanation of one day's availability."""
    calendar_id: str
    policy: DayPolicy
    data_source: DataSource
    is_today: bool
    busy_intervals: List[BusyInterval]
    evaluations: List[HourEvaluation]
    simultaneous: Dict[int, int]

    @property
    def free_hours(self) -> List[int]:
        return [evaluation.hour for evaluation in self.evaluations if evaluation.is_free]

    def reason_for(self, evaluation: HourEvaluation) -> str:
        if evaluation.decision is SlotDecision.OCCUPIED:
            return f"ocupado por {len(evaluation.blocking)} evento(s)"
        return {
            SlotDecision.FREE: "libre",
            SlotDecision.LUNCH: "hora de comida",
            SlotDecision.LEAD_TIME: "menos de una hora de anticipación",
        }[evaluation.decision]


def as_date(value: date_type) -> Date:
    """Coerce datetime/date values into a pendulum ``Date``."""
    if isinstance(value, DateTime):
        return value.date()
    return pendulum.date(value.year, value.month, value.day)


class AvailabilityService:
    """
    Evaluates single days and plans multi-day searches.

    ``evaluate_day`` degrades to an empty busy set when the calendar cannot be
    read, tagging the result with ``DataSource.MOCK_FALLBACK``; booking passes
    ``allow_fallback=False`` so that a conflict check never runs on fabricated data.
    """

    def __init__(
        self,
        calendar_client: CalendarPort,
        policy_store: PolicyStore,
        *,
        timezone: str,
        policy: Optional[WorkingHoursPolicy] = None,
        slot_calculator: Optional[SlotCalculator] = None,
        calendar_refs: Optional[Mapping[str, str]] = None,
        catalog: Optional[Catalog] = None,
        limits: Optional[SearchLimits] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._calendar_client = calendar_client
        self._policy_store = policy_store
        self.timezone = timezone
        self._policy = policy or WorkingHoursPolicy()
        self._slot_calculator = slot_calculator or SlotCalculator(timezone=timezone)
        self._normalizer = BusyIntervalNormalizer(timezone)
        self._calendar_refs = dict(calendar_refs or {})
        self.catalog = catalog or Catalog()
        self.limits = limits or SearchLimits()
        self._clock = clock or (lambda: pendulum.now(timezone))

    @property
    def lead_time_minutes(self) -> int:
        return self._slot_calculator.lead_time_minutes

    def now(self) -> DateTime:
        return self._clock().in_timezone(self.timezone)

    def today(self) -> Date:
        return self.now().date()

    def calendar_ref(self, calendar_id: str) -> str:
        """External calendar reference for a calendar number (the number itself if unmapped)."""
        return self._calendar_refs.get(calendar_id, calendar_id)

    async def resolve_policy(self, calendar_id: str, day: date_type) -> DayPolicy:
        day = as_date(day)
        rule = await self._policy_store.get_working_hours_rule(calendar_id, iso_weekday(day))
        return self._policy.resolve(calendar_id, day, rule)

    async def evaluate_day(
        self,
        calendar_id: str,
        day: date_type,
        *,
        allow_fallback: bool = True,
    ) -> DayAvailabilityResult:
        """
        Compute the free slots and occupancy of one day.

        Args:
            calendar_id: Calendar number
            day: Target date
            allow_fallback: Use an empty busy set if the calendar read fails

        Returns:
            DayAvailabilityResult tagged with the data source it was built from

        Raises:
            CollaboratorError: Calendar failure with ``allow_fallback=False``,
                or a policy store failure
        """
        policy, busy, source, now = await self._load_day(calendar_id, as_date(day), allow_fallback)
        slots = self._slot_calculator.compute_available_slots(
            policy,
            busy,
            now,
            is_target_today=policy.date == now.date(),
            calendar_id=calendar_id,
        )
        result = DayAvailabilityResult.build(policy, calendar_id, slots, source)
        logger.debug(
            "%s calendar %s: %d/%d free (%s)",
            policy.date.isoformat(), calendar_id, result.available_count,
            result.total_possible_slots, source.value,
        )
        return result

    async def query_primary_window(
        self,
        calendar_id: str,
        service_id: str,
        start_date: date_type,
        window_size: Optional[int] = None,
    ) -> List[DayAvailabilityResult]:
        """
        Evaluate up to ``window_size`` non-Sunday days starting at ``start_date``.

        At most ``primary_scan_cap`` calendar days are scanned. Only days with
        at least one free slot are returned.
        """
        window_size = window_size or self.limits.primary_window
        start = as_date(start_date)
        found: List[DayAvailabilityResult] = []
        counted = 0

        for offset in range(self.limits.primary_scan_cap):
            if counted >= window_size:
                break
            day = start.add(days=offset)
            if is_sunday(day):
                continue
            counted += 1

            result = await self._safe_evaluate(calendar_id, day)
            if result is not None and result.has_availability:
                found.append(replace(result, distance=offset, priority=offset))

        logger.info(
            "Primary window from %s (service %s): %d day(s) with slots",
            start.isoformat(), service_id, len(found),
        )
        return found

    async def find_alternative_days(
        self,
        target_date: date_type,
        calendar_id: str,
        service_id: str,
        max_lookahead: Optional[int] = None,
    ) -> List[DayAvailabilityResult]:
        """
        Search around ``target_date`` for bookable days.

        At most one earlier day is taken from the lookback (never a past or
        Sunday date), then later days fill up to ``alternatives_target``.
        Earlier days sort first, later days by ascending distance.
        """
        max_lookahead = max_lookahead or self.limits.lookahead_days
        target = as_date(target_date)
        today = self.today()
        alternatives: List[DayAvailabilityResult] = []

        for offset in range(1, self.limits.lookback_days + 1):
            day = target.subtract(days=offset)
            if day < today:
                break
            if is_sunday(day):
                continue
            result = await self._safe_evaluate(calendar_id, day)
            if self._qualifies(result):
                alternatives.append(
                    replace(result, direction=DIRECTION_EARLIER, distance=offset, priority=-offset)
                )
                break

        for offset in range(1, max_lookahead + 1):
            if len(alternatives) >= self.limits.alternatives_target:
                break
            day = target.add(days=offset)
            if is_sunday(day) or day < today:
                continue
            result = await self._safe_evaluate(calendar_id, day)
            if self._qualifies(result):
                alternatives.append(
                    replace(result, direction=DIRECTION_LATER, distance=offset, priority=offset)
                )

        alternatives.sort(key=lambda result: result.priority)
        logger.info(
            "Alternatives around %s (service %s): %s",
            target.isoformat(), service_id,
            ", ".join(result.date.isoformat() for result in alternatives) or "none",
        )
        return alternatives

    async def find_next_available_date(
        self,
        from_date: date_type,
        calendar_id: str,
        service_id: str,
        max_days: Optional[int] = None,
    ) -> Optional[NextAvailable]:
        """First day after ``from_date`` with a free slot, skipping Sundays and past dates."""
        max_days = max_days or self.limits.next_available_days
        start = as_date(from_date)
        today = self.today()

        for offset in range(1, max_days + 1):
            day = start.add(days=offset)
            if is_sunday(day) or day < today:
                continue
            result = await self._safe_evaluate(calendar_id, day)
            if result is not None and result.has_availability:
                logger.info("Next available date after %s: %s %s",
                            start.isoformat(), day.isoformat(), result.slots[0].time_label)
                return NextAvailable(date=day, first_slot=result.slots[0], slots=result.slots)

        logger.info("No available date within %d days after %s (service %s)",
                    max_days, start.isoformat(), service_id)
        return None

    async def find_next_working_day(
        self,
        calendar_id: str,
        from_date: date_type,
        max_days: Optional[int] = None,
    ) -> Date:
        """First day after ``from_date`` whose policy opens; busy data is not consulted."""
        max_days = max_days or self.limits.next_working_days
        start = as_date(from_date)

        for offset in range(1, max_days + 1):
            day = start.add(days=offset)
            try:
                policy = await self.resolve_policy(calendar_id, day)
            except AgendaError as exc:
                logger.warning("Could not resolve policy for %s: %s", day.isoformat(), exc)
                continue
            if not policy.is_closed:
                return day

        return start.add(days=1)

    async def query(
        self,
        calendar_id: str,
        service_id: str,
        target_date: date_type,
    ) -> AvailabilityQueryResult:
        """
        Answer an availability request for one date.

        Unknown calendar or service numbers and past dates are rejected; Sundays are redirected to the next available
        date; otherwise the primary window is tried, then the alternative
        search, then a single next-available suggestion.
        """
        self.catalog.check(calendar_id, service_id)
        target = as_date(target_date)
        if target < self.today():
            raise PolicyViolation(
                "No se pueden consultar fechas pasadas",
                reason="past-date",
            )

        if is_sunday(target):
            suggestion = await self.find_next_available_date(target, calendar_id, service_id)
            return AvailabilityQueryResult(
                requested_date=target,
                outcome=QueryOutcome.SUNDAY_REDIRECT,
                next_available=suggestion,
            )

        days = await self.query_primary_window(calendar_id, service_id, target)
        if days:
            return AvailabilityQueryResult(requested_date=target, outcome=QueryOutcome.AVAILABLE, days=days)

        alternatives = await self.find_alternative_days(target, calendar_id, service_id)
        if alternatives:
            return AvailabilityQueryResult(
                requested_date=target, outcome=QueryOutcome.ALTERNATIVES, days=alternatives
            )

        suggestion = await self.find_next_available_date(target, calendar_id, service_id)
        return AvailabilityQueryResult(
            requested_date=target,
            outcome=QueryOutcome.NEXT_AVAILABLE if suggestion else QueryOutcome.NOTHING,
            next_available=suggestion,
        )

    async def diagnose_day(self, calendar_id: str, day: date_type) -> DayDiagnosis:
        """Explain, hour by hour, why each candidate slot is or is not offered."""
        policy, busy, source, now = await self._load_day(calendar_id, as_date(day), True)
        is_today = policy.date == now.date()
        return DayDiagnosis(
            calendar_id=calendar_id,
            policy=policy,
            data_source=source,
            is_today=is_today,
            busy_intervals=busy,
            evaluations=self._slot_calculator.evaluate_hours(policy, busy, now, is_today),
            simultaneous=SlotCalculator.simultaneous_starts(busy),
        )

    async def _load_day(
        self,
        calendar_id: str,
        day: Date,
        allow_fallback: bool,
    ) -> Tuple[DayPolicy, List[BusyInterval], DataSource, DateTime]:
        now = self.now()
        policy = await self.resolve_policy(calendar_id, day)
        if policy.is_closed:
            return policy, [], DataSource.POLICY_ONLY, now

        range_start = pendulum.datetime(day.year, day.month, day.day, tz=self.timezone)
        range_end = range_start.add(days=1)
        try:
            events = await self._calendar_client.list_events(
                self.calendar_ref(calendar_id), range_start, range_end
            )
        except CollaboratorError as exc:
            if not allow_fallback:
                raise
            logger.warning(
                "Calendar read failed for calendar %s on %s, using %s data: %s",
                calendar_id, day.isoformat(), DataSource.MOCK_FALLBACK.value, exc,
            )
            return policy, [], DataSource.MOCK_FALLBACK, now

        return policy, self._normalizer.normalize(events, day), DataSource.CALENDAR, now

    async def _safe_evaluate(self, calendar_id: str, day: Date) -> Optional[DayAvailabilityResult]:
        try:
            return await self.evaluate_day(calendar_id, day)
        except AgendaError as exc:
            logger.error("Skipping %s for calendar %s: %s", day.isoformat(), calendar_id, exc)
            return None

    def _qualifies(self, result: Optional[DayAvailabilityResult]) -> bool:
        return result is not None and result.available_count >= self.limits.min_alternative_slots
