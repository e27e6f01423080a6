"""Retreat recurrence projection — suggests next year's retreats.

A retreat held on the "2nd Saturday of August" is suggested for the 2nd
Saturday of August next year, not for the same day-of-month. Only retreats
whose start month matches the current month (any year) are considered.

``project_retreats`` is pure: same events and same ``today`` give the same
suggestions. ``RetreatRecommendations`` holds the ephemeral candidate list
and turns an accepted suggestion into a real event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from src.core.camp_service import (
    ErrorResponse,
    ResponseKind,
    ServiceResponse,
    SuccessResponse,
    catering_message,
)
from src.core.categories import get_category_color
from src.core.dates import add_days, days_between, nth_weekday_of_month, weekday_ordinal
from src.data.models import Event, User

if TYPE_CHECKING:
    from src.data.notifications import NotificationStore
    from src.data.store import CampStore

logger = logging.getLogger(__name__)

RECOMMENDATION_COLOR = "#d3d3d3"  # light gray, never a category color
RECOMMENDATION_PREFIX = "recommendation-"


def project_date(source: date, target_year: int) -> date:
    """Same month, same weekday, same ordinal occurrence in ``target_year``."""
    return nth_weekday_of_month(
        target_year, source.month, source.weekday(), weekday_ordinal(source),
    )


def project_retreats(
    events: list[Event], today: date, created_by: str = "System",
) -> list[Event]:
    """Build next-year suggestions from this month's historical retreats.

    Suggestions keep each source's duration, get the id
    ``recommendation-<source id>``, and are deduplicated by projected start
    date (the first source wins).
    """
    target_year = today.year + 1
    seen: set[date] = set()
    suggestions: list[Event] = []

    for event in events:
        if event.category != "retreat" or event.start_date.month != today.month:
            continue

        duration = days_between(event.start_date, event.end_date)
        start = project_date(event.start_date, target_year)
        if start in seen:
            logger.debug("Skipping '%s': %s already suggested", event.title, start)
            continue
        seen.add(start)

        suggestions.append(Event(
            id=f"{RECOMMENDATION_PREFIX}{event.id}",
            title=event.title,
            start_date=start,
            end_date=add_days(start, duration),
            created_by=created_by,
            category="retreat",
            color=RECOMMENDATION_COLOR,
            description=event.description or "",
        ))

    return suggestions


@dataclass
class CateringOption:
    needed: bool = False
    notes: str = ""


class RetreatRecommendations:
    """In-memory suggestion list with accept/decline. Nothing here is persisted."""

    def __init__(self, store: CampStore, notifications: NotificationStore) -> None:
        self._store = store
        self._notifications = notifications
        self._suggestions: list[Event] = []
        self._dismissed: set[str] = set()
        self._catering: dict[str, CateringOption] = {}

    @property
    def suggestions(self) -> list[Event]:
        return list(self._suggestions)

    def refresh(self, today: date, acting_user: User | None = None) -> list[Event]:
        """Recompute from the store's current events.

        Declined or accepted suggestions stay hidden, as do dates that already
        hold a retreat.
        """
        events = self._store.events
        created_by = acting_user.name if acting_user else "System"
        booked = {e.start_date for e in events if e.category == "retreat"}
        projected = project_retreats(events, today, created_by=created_by)
        self._suggestions = [
            s for s in projected
            if s.id not in self._dismissed and s.start_date not in booked
        ]
        logger.info("Retreat suggestions for %s: %d", today.isoformat(), len(self._suggestions))
        return self.suggestions

    def set_catering(self, suggestion_id: str, needed: bool, notes: str = "") -> None:
        self._catering[suggestion_id] = CateringOption(needed=needed, notes=notes)

    def accept(self, suggestion_id: str, acting_user: User | None) -> ServiceResponse:
        """Create the suggested retreat as a real event. Admins only."""
        if acting_user is None or not acting_user.is_admin:
            return ErrorResponse(
                kind=ResponseKind.ERROR,
                message="Only administrators can add retreat events",
            )

        suggestion = next((s for s in self._suggestions if s.id == suggestion_id), None)
        if suggestion is None:
            return ErrorResponse(
                kind=ResponseKind.ERROR,
                message=f"No suggestion {suggestion_id}",
            )

        catering = self._catering.get(suggestion_id, CateringOption())
        event = self._store.add_event(
            title=suggestion.title,
            start_date=suggestion.start_date,
            end_date=suggestion.end_date,
            created_by=acting_user.name,
            category="retreat",
            color=get_category_color("retreat"),
            description=suggestion.description,
            catering_needed=catering.needed,
            catering_notes=catering.notes if catering.needed else None,
        )

        if catering.needed:
            self._notifications.add_chef_notification(
                title="Catering Request",
                message=catering_message(event),
                link="/calendar",
            )

        self._forget(suggestion_id)
        logger.info("Suggestion %s accepted by %s", suggestion_id, acting_user.name)
        return SuccessResponse(
            kind=ResponseKind.SUCCESS,
            message=f"Retreat \"{event.title}\" added for {event.start_date.isoformat()}",
            event=event,
        )

    def decline(self, suggestion_id: str) -> bool:
        """Drop a suggestion from the in-memory list only."""
        if not any(s.id == suggestion_id for s in self._suggestions):
            return False
        self._forget(suggestion_id)
        logger.info("Suggestion %s declined", suggestion_id)
        return True

    def _forget(self, suggestion_id: str) -> None:
        self._dismissed.add(suggestion_id)
        self._catering.pop(suggestion_id, None)
        self._suggestions = [s for s in self._suggestions if s.id != suggestion_id]
