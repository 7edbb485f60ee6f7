"""
Translation between Session objects and MongoDB documents.

Documents use the camelCase field names the rest of the product reads.
BSON has no date-only type, so `date` is stored as midnight UTC.
Missing fields fall back to the same defaults the dashboards have
always assumed for older documents.
"""

from datetime import date, datetime, time, timezone
from typing import Any

from ...core.scheduling.errors import ValidationError
from ...core.scheduling.models import (
    DateRange,
    Role,
    Session,
    SessionStatus,
    SessionType,
)
from ...core.scheduling.store import SessionFilter


def date_to_bson(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def date_from_bson(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def session_to_document(session: Session) -> dict[str, Any]:
    """
    Build the stored fields for a session.

    Timestamps are not included: the store sets them server-side.
    """
    return {
        "_id": session.id,
        "clientId": session.client_id,
        "clientName": session.client_name,
        "coachId": session.coach_id,
        "coachName": session.coach_name,
        "title": session.title,
        "type": session.type.value,
        "date": date_to_bson(session.date),
        "time": session.time,
        "duration": session.duration,
        "status": session.status.value,
        "notes": session.notes,
        "location": session.location,
        "meetingLink": session.meeting_link,
        "createdBy": session.created_by.value,
    }


def session_from_document(doc: dict[str, Any]) -> Session:
    """
    Build a session from a stored document, applying read defaults.

    date has no default: a session without a day can't be placed on a
    calendar or conflict-checked, so such documents raise ValidationError.
    """
    if doc.get("date") is None:
        raise ValidationError("Stored session has no date", field="date")

    return Session(
        id=str(doc["_id"]),
        client_id=doc.get("clientId", ""),
        client_name=doc.get("clientName") or "Client",
        coach_id=doc.get("coachId", ""),
        coach_name=doc.get("coachName"),
        title=doc.get("title") or "Session",
        type=SessionType(doc.get("type") or SessionType.IN_PERSON.value),
        date=date_from_bson(doc["date"]),
        time=doc.get("time") or "",
        duration=doc.get("duration") or 60,
        status=SessionStatus(doc.get("status") or SessionStatus.SCHEDULED.value),
        notes=doc.get("notes"),
        location=doc.get("location"),
        meeting_link=doc.get("meetingLink"),
        created_by=Role(doc.get("createdBy") or Role.COACH.value),
        created_at=doc.get("createdAt"),
        updated_at=doc.get("updatedAt"),
    )


def date_range_to_query(date_range: DateRange) -> dict[str, Any]:
    bounds: dict[str, Any] = {}
    if date_range.start:
        bounds["$gte"] = date_to_bson(date_range.start)
    if date_range.end:
        bounds["$lte"] = date_to_bson(date_range.end)
    return bounds


def filter_to_query(session_filter: SessionFilter) -> dict[str, Any]:
    """Translate a SessionFilter into a MongoDB query document."""
    query: dict[str, Any] = {}
    if session_filter.coach_id is not None:
        query["coachId"] = session_filter.coach_id
    if session_filter.client_id is not None:
        query["clientId"] = session_filter.client_id
    if session_filter.statuses is not None:
        query["status"] = {"$in": sorted(s.value for s in session_filter.statuses)}
    if session_filter.date_range is not None:
        bounds = date_range_to_query(session_filter.date_range)
        if bounds:
            query["date"] = bounds
    return query


def upsert_pipeline(session: Session) -> list[dict[str, Any]]:
    """
    Aggregation-pipeline update that writes a session with server timestamps.

    createdAt keeps its stored value and falls back to $$NOW on insert;
    updatedAt is always $$NOW. Field values are wrapped in $literal so
    strings that happen to start with "$" aren't read as field paths.
    """
    fields = {
        key: {"$literal": value}
        for key, value in session_to_document(session).items()
        if key != "_id"
    }
    fields["createdAt"] = {"$ifNull": ["$createdAt", "$$NOW"]}
    fields["updatedAt"] = "$$NOW"
    return [{"$set": fields}]
