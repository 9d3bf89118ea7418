"""
Therapy session state machine.

    scheduled -> confirmed -> in-progress -> completed
    scheduled | confirmed -> rescheduled -> scheduled
    scheduled | confirmed -> no-show
    any non-terminal state -> cancelled

Each transition is a single conditional write on the session's current
status, so two racing requests cannot both move the same session; the loser
gets Conflict. Notifications and gateway calls run in the background and
never fail the transition that triggered them.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time

from django.conf import settings
from pymongo.errors import PyMongoError

from apps.clients.models import Client
from apps.payments.models import PaymentStatus
from apps.payments.services import PaymentService
from apps.pricing.models import PlatformSettings
from apps.pricing.policies import CancellationFeePolicy, CredentialTier, RateCapPolicy
from apps.subscriptions.services import SubscriptionLifecycle
from apps.therapists.compliance import TherapistStatus
from apps.therapists.models import Therapist
from apps.therapy_sessions.models import SessionStatus, SessionType, TERMINAL_STATUSES, TherapySession
from apps.users.models import User, UserRole
from apps.utils.db_helper import to_object_id
from apps.utils.exceptions import Conflict, Forbidden, InvalidInput, NotFound
from apps.utils.notifications import NotificationDispatcher, NotificationEvent

logger = logging.getLogger(__name__)

PENDING_STATUSES = (SessionStatus.SCHEDULED.value, SessionStatus.CONFIRMED.value)
OPEN_STATUSES = PENDING_STATUSES + (SessionStatus.IN_PROGRESS.value,)

SCHEDULING_FIELDS = {"scheduled_date", "scheduled_time", "duration", "session_type"}

CLIENT_FIELDS = {"translation_enabled", "target_language", "recording_consent"}
THERAPIST_FIELDS = CLIENT_FIELDS | SCHEDULING_FIELDS | {"notes", "source_language"}
ADMIN_FIELDS = THERAPIST_FIELDS | {"payment_status"}

UPDATE_ALLOWLISTS = {
    UserRole.CLIENT: CLIENT_FIELDS,
    UserRole.THERAPIST: THERAPIST_FIELDS,
    UserRole.ADMIN: ADMIN_FIELDS,
}

TIME_FORMATS = ("%H:%M", "%H:%M:%S", "%I:%M %p")


def build_meeting_link(session):
    """Video room for a session: (meeting_link, room_name)"""
    room_name = f"session-{session['_id']}-{uuid.uuid4().hex[:8]}"
    meeting_link = f"{settings.FRONTEND_URL}/video-call?sessionId={session['_id']}&room={room_name}"
    return meeting_link, room_name


@dataclass
class BookingResult:
    session: dict
    # Advisory quota, only reported when the client booked for themselves
    quota: dict = None

    def to_dict(self):
        data = {"session": self.session}
        if self.quota is not None:
            data["quota"] = self.quota
        return data


def parse_date(value):
    """Midnight of the given day; accepts date, datetime or an ISO string"""
    if isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise InvalidInput(f"Invalid date format: {value}")
        return datetime(parsed.year, parsed.month, parsed.day)
    raise InvalidInput("Invalid date format")


def parse_time(value):
    """Wall-clock time of day, returned as (time, 'HH:MM')"""
    if isinstance(value, time):
        return value, value.strftime("%H:%M")
    if isinstance(value, str):
        for fmt in TIME_FORMATS:
            try:
                parsed = datetime.strptime(value.strip(), fmt).time()
            except ValueError:
                continue
            return parsed, parsed.strftime("%H:%M")
    raise InvalidInput(f"Invalid time format: {value}")


def normalize_duration(value):
    low, high = settings.SESSION_DURATION_BOUNDS
    if value is None:
        return settings.DEFAULT_SESSION_DURATION
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput("Duration must be a number of minutes")
    clamped = int(min(max(value, low), high))
    if clamped != value:
        logger.warning(f"Duration {value} outside [{low}, {high}]; using {clamped}")
    return clamped


def validate_session_type(value):
    if value is None:
        return SessionType.FOLLOW_UP.value
    if value not in [t.value for t in SessionType]:
        raise InvalidInput(
            f"Invalid session type. Must be one of: {', '.join([t.value for t in SessionType])}"
        )
    return value


def session_price(session_type, requested_price, therapist, snapshot):
    """
    Initial evaluations are free. Otherwise the requested price, the
    clinician's hourly rate or the platform default, in that order, always
    clamped to the clinician's rate cap.
    """
    if session_type == SessionType.INITIAL.value:
        return 0
    if requested_price is not None and (
            isinstance(requested_price, bool)
            or not isinstance(requested_price, (int, float))
            or requested_price < 0):
        raise InvalidInput("Price must be a non-negative number")

    price = requested_price or therapist.get("hourly_rate") or settings.DEFAULT_SESSION_PRICE
    return RateCapPolicy(snapshot).clamp(price, Therapist.credential_tier(therapist))


class SessionLifecycle:

    def __init__(self, clock=None, notifier=None, payments=None, subscriptions=None,
                 link_builder=build_meeting_link):
        self.clock = clock or datetime.utcnow
        self.notifier = notifier or NotificationDispatcher()
        self.payments = payments or PaymentService()
        self.subscriptions = subscriptions or SubscriptionLifecycle(clock=self.clock, notifier=self.notifier)
        self.link_builder = link_builder

    # ------------------------------------------------------------------
    # Lookups and authorization
    # ------------------------------------------------------------------

    def get(self, session_id, actor=None):
        session = TherapySession.find_by_id(to_object_id(session_id, "session ID"))
        if not session:
            raise NotFound("Session not found")
        if actor is not None:
            self._authorize(session, actor)
        return session

    @staticmethod
    def _authorize(session, actor, roles=UserRole.ALL):
        """Role of `actor` on this session; None for system actions"""
        if actor is None:
            return None

        role = actor.get("role")
        if role not in roles:
            raise Forbidden("You are not allowed to perform this action on the session")
        if role == UserRole.THERAPIST:
            therapist = Therapist.find_by_id(session["therapist_id"])
            if not therapist or not Therapist.is_owned_by(therapist, actor):
                raise Forbidden("This session belongs to another therapist")
        elif role == UserRole.CLIENT:
            client = Client.find_by_id(session["client_id"])
            if not client or client.get("user_id") != User.actor_id(actor):
                raise Forbidden("This session belongs to another client")
        return role

    def _notify_participants(self, event, session, payload=None):
        payload = {"session_id": str(session["_id"]), **(payload or {})}
        therapist = Therapist.find_by_id(session["therapist_id"])
        client = Client.find_by_id(session["client_id"])
        for participant in (therapist, client):
            if participant:
                self.notifier.send(event, participant.get("user_id"), payload)

    @staticmethod
    def _conflict(session_id, action):
        current = TherapySession.find_by_id(session_id)
        status = current["status"] if current else "missing"
        return Conflict(f"Cannot {action} a session that is {status}")

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def create(self, therapist_id, client_id, scheduled_date, scheduled_time,
               duration=None, session_type=None, requested_price=None, actor=None):
        therapist = Therapist.find_by_id(to_object_id(therapist_id, "therapist ID"))
        if not therapist:
            raise NotFound("Therapist not found")
        if therapist.get("status") != TherapistStatus.ACTIVE:
            raise Forbidden("This therapist is not accepting bookings")

        client = Client.find_by_id(to_object_id(client_id, "client ID"))
        if not client:
            raise NotFound("Client not found")

        day = parse_date(scheduled_date)
        start_time, time_label = parse_time(scheduled_time)

        if User.has_role(actor, UserRole.CLIENT) and client.get("user_id") != User.actor_id(actor):
            raise Forbidden("You can only book sessions for yourself")
        if User.has_role(actor, UserRole.THERAPIST) and not Therapist.is_owned_by(therapist, actor):
            raise Forbidden("You can only book sessions for yourself")

        session_type = validate_session_type(session_type)
        duration = normalize_duration(duration)
        snapshot = PlatformSettings.snapshot()
        price = session_price(session_type, requested_price, therapist, snapshot)

        now = self.clock()
        session = TherapySession(
            therapist_id=therapist["_id"],
            client_id=client["_id"],
            scheduled_date=day,
            scheduled_time=time_label,
            scheduled_start=datetime.combine(day.date(), start_time),
            duration=duration,
            session_type=session_type,
            price=price,
            created_at=now,
        ).save()
        logger.info(f"Session {session['_id']} booked for client {client['_id']} at {price}")

        if Client.assign_therapist_if_unassigned(client["_id"], therapist["_id"]):
            logger.info(f"Assigned therapist {therapist['_id']} to client {client['_id']}")

        self._notify_participants(NotificationEvent.SESSION_BOOKED, session, {
            "scheduled_date": day.date().isoformat(),
            "scheduled_time": time_label,
        })

        quota = None
        if User.has_role(actor, UserRole.CLIENT):
            try:
                quota = self.subscriptions.remaining_sessions(client["_id"], now=now)
            except PyMongoError:
                # Advisory only; the booking already stands
                logger.exception(f"Could not compute quota for client {client['_id']}")

        return BookingResult(session=session, quota=quota)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def confirm(self, session_id, actor=None):
        session = self.get(session_id)
        self._authorize(session, actor, roles=(UserRole.THERAPIST, UserRole.ADMIN))

        updated = TherapySession.transition(
            session["_id"], (SessionStatus.SCHEDULED.value,), SessionStatus.CONFIRMED.value,
            actor_id=User.actor_id(actor), at=self.clock(),
        )
        if not updated:
            raise self._conflict(session["_id"], "confirm")
        return updated

    def start(self, session_id, actor=None):
        """
        Begin a session. Starting a session that is already in progress
        returns it unchanged, and the meeting link is only generated once.
        """
        session = self.get(session_id)
        self._authorize(session, actor)

        if session["status"] == SessionStatus.IN_PROGRESS.value:
            return session

        now = self.clock()
        updated = TherapySession.transition(
            session["_id"], PENDING_STATUSES, SessionStatus.IN_PROGRESS.value,
            {"actual_start_time": now}, actor_id=User.actor_id(actor), at=now,
        )
        if not updated:
            current = TherapySession.find_by_id(session["_id"])
            if current and current["status"] == SessionStatus.IN_PROGRESS.value:
                return current
            raise self._conflict(session["_id"], "start")

        if not updated.get("meeting_link"):
            meeting_link, room_name = self.link_builder(updated)
            updated = (TherapySession.set_meeting_link_if_absent(updated["_id"], meeting_link, room_name)
                       or TherapySession.find_by_id(updated["_id"]))

        logger.info(f"Session {updated['_id']} started")
        self._notify_participants(NotificationEvent.SESSION_STARTED, updated, {
            "meeting_link": updated.get("meeting_link"),
        })
        return updated

    def complete(self, session_id, notes=None, actor=None):
        """
        Finish an in-progress session. Clinical goals and progress entries
        are deliberately left alone; those follow a separate evaluation.
        """
        session = self.get(session_id)
        self._authorize(session, actor, roles=(UserRole.THERAPIST, UserRole.ADMIN))

        now = self.clock()
        fields = {"actual_end_time": now}
        if notes is not None:
            fields["notes"] = notes

        updated = TherapySession.transition(
            session["_id"], (SessionStatus.IN_PROGRESS.value,), SessionStatus.COMPLETED.value,
            fields, actor_id=User.actor_id(actor), at=now,
        )
        if not updated:
            raise self._conflict(session["_id"], "complete")

        Therapist.increment_total_sessions(updated["therapist_id"])
        logger.info(f"Session {updated['_id']} completed")
        self._notify_participants(NotificationEvent.SESSION_COMPLETED, updated)
        return updated

    def cancel(self, session_id, reason=None, logged_by_therapist=False, actor=None):
        """
        Cancel a session from any non-terminal state.

        When the session's own therapist logs the cancellation, the
        credential-tier cancellation fee replaces the session price and one
        pending fee payment is recorded.
        """
        session = self.get(session_id)
        role = self._authorize(session, actor)

        if session["status"] in TERMINAL_STATUSES:
            raise Conflict(f"Cannot cancel a session that is {session['status']}")

        now = self.clock()
        fields = {
            "cancellation_reason": reason,
            "cancelled_at": now,
            "cancelled_by": User.actor_id(actor),
            "logged_by_therapist": bool(logged_by_therapist),
        }

        charge_fee = bool(logged_by_therapist) and role == UserRole.THERAPIST
        fee = 0
        snapshot = None
        tier = None
        if charge_fee:
            snapshot = PlatformSettings.snapshot()
            therapist = Therapist.find_by_id(session["therapist_id"])
            # Profiles without a tier pay the assistant fee
            tier = Therapist.credential_tier(therapist) or CredentialTier.SUPERVISED_ASSISTANT
            fee = CancellationFeePolicy(snapshot).fee(tier)
            fields["price"] = fee
            fields["cancellation_fee"] = fee

        updated = TherapySession.transition(
            session["_id"], OPEN_STATUSES, SessionStatus.CANCELLED.value,
            fields, actor_id=User.actor_id(actor), at=now,
        )
        if not updated:
            raise self._conflict(session["_id"], "cancel")
        logger.info(f"Session {updated['_id']} cancelled")

        if charge_fee and fee > 0:
            try:
                self.payments.record_cancellation_fee(updated, tier, fee, reason, snapshot=snapshot)
            except PyMongoError:
                # The cancellation is the source of truth; the fee record is
                # reconciled from the session's cancellation_fee field.
                logger.exception(f"Could not record cancellation fee for session {updated['_id']}")
            else:
                client = Client.find_by_id(updated["client_id"])
                if client:
                    self.notifier.send(NotificationEvent.CANCELLATION_FEE_CHARGED, client.get("user_id"), {
                        "session_id": str(updated["_id"]),
                        "amount": fee,
                    })

        self._notify_participants(NotificationEvent.SESSION_CANCELLED, updated, {"reason": reason})
        return updated

    def reschedule(self, session_id, new_date, new_time, actor=None):
        session = self.get(session_id)
        self._authorize(session, actor)

        day = parse_date(new_date)
        start_time, time_label = parse_time(new_time)
        previous = {
            "scheduled_date": session.get("scheduled_date"),
            "scheduled_time": session.get("scheduled_time"),
        }
        schedule = {
            "scheduled_date": day,
            "scheduled_time": time_label,
            "scheduled_start": datetime.combine(day.date(), start_time),
        }

        updated = TherapySession.reschedule(
            session["_id"], PENDING_STATUSES, schedule, previous,
            actor_id=User.actor_id(actor), at=self.clock(),
        )
        if not updated:
            raise self._conflict(session["_id"], "reschedule")

        logger.info(f"Session {updated['_id']} rescheduled to {day.date()} {time_label}")
        self._notify_participants(NotificationEvent.SESSION_RESCHEDULED, updated, {
            "scheduled_date": day.date().isoformat(),
            "scheduled_time": time_label,
        })
        return updated

    def mark_no_show(self, session_id, actor=None):
        session = self.get(session_id)
        self._authorize(session, actor, roles=(UserRole.THERAPIST, UserRole.ADMIN))

        updated = TherapySession.transition(
            session["_id"], PENDING_STATUSES, SessionStatus.NO_SHOW.value,
            actor_id=User.actor_id(actor), at=self.clock(),
        )
        if not updated:
            raise self._conflict(session["_id"], "mark as no-show")
        logger.info(f"Session {updated['_id']} marked no-show")
        return updated

    # ------------------------------------------------------------------
    # Field updates
    # ------------------------------------------------------------------

    def update(self, session_id, patch, actor):
        """Apply a partial update limited to the fields the actor's role may change"""
        if not actor:
            raise Forbidden("Authentication required")
        if not patch:
            raise InvalidInput("No fields to update")

        session = self.get(session_id)
        role = self._authorize(session, actor)

        disallowed = sorted(set(patch) - UPDATE_ALLOWLISTS.get(role, set()))
        if disallowed:
            raise Forbidden(f"You are not allowed to update: {', '.join(disallowed)}")

        if SCHEDULING_FIELDS & set(patch) and session["status"] in TERMINAL_STATUSES:
            raise Conflict(f"Cannot reschedule a session that is {session['status']}")

        fields = dict(patch)
        if "duration" in fields:
            fields["duration"] = normalize_duration(fields["duration"])

        if "scheduled_date" in fields or "scheduled_time" in fields:
            day = parse_date(fields.get("scheduled_date", session["scheduled_date"]))
            start_time, time_label = parse_time(fields.get("scheduled_time", session["scheduled_time"]))
            fields.update({
                "scheduled_date": day,
                "scheduled_time": time_label,
                "scheduled_start": datetime.combine(day.date(), start_time),
            })

        if "session_type" in fields:
            new_type = validate_session_type(fields["session_type"])
            fields["session_type"] = new_type
            initial = SessionType.INITIAL.value
            if (new_type == initial) != (session.get("session_type") == initial):
                therapist = Therapist.find_by_id(session["therapist_id"])
                fields["price"] = session_price(new_type, None, therapist, PlatformSettings.snapshot())

        if "payment_status" in fields and fields["payment_status"] not in PaymentStatus.ALL:
            raise InvalidInput(
                f"Invalid payment status. Must be one of: {', '.join(PaymentStatus.ALL)}"
            )

        return TherapySession.update_fields(session["_id"], fields, at=self.clock())
