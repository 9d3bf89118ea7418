from datetime import datetime
from enum import Enum
from bson import ObjectId
from pymongo import ReturnDocument
import logging

from database import get_db
from apps.payments.models import PaymentStatus

logger = logging.getLogger(__name__)


def sessions_collection():
    return get_db()["therapy_sessions"]


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"
    RESCHEDULED = "rescheduled"


TERMINAL_STATUSES = (
    SessionStatus.COMPLETED.value,
    SessionStatus.CANCELLED.value,
    SessionStatus.NO_SHOW.value,
)

# Sessions that consume subscription quota
QUOTA_STATUSES = (
    SessionStatus.SCHEDULED.value,
    SessionStatus.CONFIRMED.value,
    SessionStatus.IN_PROGRESS.value,
    SessionStatus.COMPLETED.value,
)


class SessionType(str, Enum):
    INITIAL = "initial"
    FOLLOW_UP = "follow-up"
    ASSESSMENT = "assessment"
    MAINTENANCE = "maintenance"
    CONSULTATION = "consultation"


class TherapySession:
    def __init__(self,
                 therapist_id,
                 client_id,
                 scheduled_date,
                 scheduled_time,
                 scheduled_start,
                 duration,
                 session_type,
                 price,
                 created_at=None):
        now = created_at or datetime.utcnow()
        self.therapist_id = therapist_id
        self.client_id = client_id
        self.scheduled_date = scheduled_date
        self.scheduled_time = scheduled_time
        self.scheduled_start = scheduled_start
        self.duration = duration
        self.session_type = session_type
        self.status = SessionStatus.SCHEDULED.value
        self.price = price
        self.payment_status = PaymentStatus.PENDING
        self.meeting_link = None
        self.room_name = None
        self.notes = None
        self.cancellation_reason = None
        self.cancelled_at = None
        self.cancelled_by = None
        self.actual_start_time = None
        self.actual_end_time = None
        self.status_history = [{"status": self.status, "at": now, "actor_id": None}]
        self.created_at = now
        self.updated_at = now

    def save(self):
        """Save session to database"""
        session_data = dict(self.__dict__)
        result = sessions_collection().insert_one(session_data)
        session_data["_id"] = result.inserted_id
        return session_data

    @staticmethod
    def find_by_id(session_id):
        """Find session by ID"""
        if isinstance(session_id, str):
            session_id = ObjectId(session_id)
        return sessions_collection().find_one({"_id": session_id})

    @staticmethod
    def transition(session_id, from_statuses, to_status, fields=None, actor_id=None, at=None):
        """
        Move a session to `to_status` only if it is currently in one of
        `from_statuses`. Returns the updated document, or None when the
        session is missing or was in another state.
        """
        at = at or datetime.utcnow()
        update = {
            "$set": {"status": to_status, "updated_at": at, **(fields or {})},
            "$push": {"status_history": {"status": to_status, "at": at, "actor_id": actor_id}},
        }
        return sessions_collection().find_one_and_update(
            {"_id": session_id, "status": {"$in": list(from_statuses)}},
            update,
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    def reschedule(session_id, from_statuses, schedule, previous, actor_id=None, at=None):
        """
        Record a `rescheduled` step and re-enter `scheduled` at the new time
        in a single conditional write.
        """
        at = at or datetime.utcnow()
        return sessions_collection().find_one_and_update(
            {"_id": session_id, "status": {"$in": list(from_statuses)}},
            {
                "$set": {**schedule, "status": SessionStatus.SCHEDULED.value, "updated_at": at},
                "$push": {
                    "status_history": {"$each": [
                        {"status": SessionStatus.RESCHEDULED.value, "at": at,
                         "actor_id": actor_id, "previous": previous},
                        {"status": SessionStatus.SCHEDULED.value, "at": at, "actor_id": actor_id},
                    ]},
                    "reschedule_history": previous,
                },
            },
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    def update_fields(session_id, fields, at=None):
        fields = {**fields, "updated_at": at or datetime.utcnow()}
        return sessions_collection().find_one_and_update(
            {"_id": session_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    def set_meeting_link_if_absent(session_id, meeting_link, room_name):
        """Only the first writer gets to set the link"""
        return sessions_collection().find_one_and_update(
            {"_id": session_id, "meeting_link": None},
            {"$set": {"meeting_link": meeting_link, "room_name": room_name}},
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    def count_in_period(client_id, period, statuses=QUOTA_STATUSES):
        """Sessions a client has booked inside a billing window"""
        return sessions_collection().count_documents({
            "client_id": client_id,
            "scheduled_date": period.date_filter(),
            "status": {"$in": list(statuses)},
        })

    @staticmethod
    def find_by_client(client_id, status=None, limit=10, skip=0):
        """Find sessions for a specific client"""
        if isinstance(client_id, str):
            client_id = ObjectId(client_id)

        query = {"client_id": client_id}
        if status:
            query["status"] = status

        return list(sessions_collection().find(query).sort("scheduled_date", -1).skip(skip).limit(limit))

    @staticmethod
    def find_by_therapist(therapist_id, status=None, limit=10, skip=0):
        """Find sessions for a specific therapist"""
        if isinstance(therapist_id, str):
            therapist_id = ObjectId(therapist_id)

        query = {"therapist_id": therapist_id}
        if status:
            query["status"] = status

        return list(sessions_collection().find(query).sort("scheduled_date", -1).skip(skip).limit(limit))

    @staticmethod
    def find_overdue(statuses, before):
        """Sessions still waiting to start whose scheduled start is before `before`"""
        return list(sessions_collection().find({
            "status": {"$in": list(statuses)},
            "scheduled_start": {"$lt": before},
        }))
