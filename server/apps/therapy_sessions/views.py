from django.views.decorators.http import require_http_methods
from django.views.decorators.csrf import csrf_exempt
import logging

from apps.clients.models import Client
from apps.therapists.models import Therapist
from apps.therapy_sessions.lifecycle import SessionLifecycle
from apps.therapy_sessions.models import TherapySession
from apps.users.models import UserRole
from apps.utils.exceptions import InvalidInput, NotFound
from apps.utils.responses import api_response, parse_body, service_view

logger = logging.getLogger(__name__)


def _own_client_id(actor, data):
    """Clients book for their own profile unless an id is given"""
    if data.get("client_id"):
        return data["client_id"]
    if actor.get("role") == UserRole.CLIENT:
        client = Client.find_by_user_id(actor["_id"])
        if client:
            return client["_id"]
    raise InvalidInput("client_id is required")


@csrf_exempt
@require_http_methods(["GET", "POST"])
@service_view()
def sessions(request, actor):
    if request.method == "POST":
        data = parse_body(request)
        if not data.get("therapist_id"):
            raise InvalidInput("therapist_id is required")

        result = SessionLifecycle().create(
            therapist_id=data["therapist_id"],
            client_id=_own_client_id(actor, data),
            scheduled_date=data.get("scheduled_date"),
            scheduled_time=data.get("scheduled_time"),
            duration=data.get("duration"),
            session_type=data.get("session_type"),
            requested_price=data.get("price"),
            actor=actor,
        )
        return api_response(result.to_dict(), message="Session booked", status=201)

    status = request.GET.get("status")
    limit = int(request.GET.get("limit", 10))
    skip = int(request.GET.get("skip", 0))

    if actor.get("role") == UserRole.THERAPIST:
        therapist = Therapist.find_by_user_id(actor["_id"])
        if not therapist:
            raise NotFound("Therapist profile not found")
        found = TherapySession.find_by_therapist(therapist["_id"], status, limit, skip)
    else:
        client = Client.find_by_user_id(actor["_id"])
        if not client:
            raise NotFound("Client profile not found")
        found = TherapySession.find_by_client(client["_id"], status, limit, skip)

    return api_response(found, count=len(found))


@csrf_exempt
@require_http_methods(["GET", "PATCH"])
@service_view()
def session_detail(request, actor, session_id):
    lifecycle = SessionLifecycle()
    if request.method == "PATCH":
        session = lifecycle.update(session_id, parse_body(request), actor)
        return api_response(session, message="Session updated")
    return api_response(lifecycle.get(session_id, actor))


@csrf_exempt
@require_http_methods(["POST"])
@service_view()
def confirm_session(request, actor, session_id):
    session = SessionLifecycle().confirm(session_id, actor=actor)
    return api_response(session, message="Session confirmed")


@csrf_exempt
@require_http_methods(["POST"])
@service_view()
def start_session(request, actor, session_id):
    session = SessionLifecycle().start(session_id, actor=actor)
    return api_response(session, message="Session started")


@csrf_exempt
@require_http_methods(["POST"])
@service_view()
def complete_session(request, actor, session_id):
    data = parse_body(request)
    session = SessionLifecycle().complete(session_id, notes=data.get("notes"), actor=actor)
    return api_response(session, message="Session completed")


@csrf_exempt
@require_http_methods(["POST"])
@service_view()
def cancel_session(request, actor, session_id):
    data = parse_body(request)
    session = SessionLifecycle().cancel(
        session_id,
        reason=data.get("reason"),
        logged_by_therapist=data.get("logged_by_therapist") is True,
        actor=actor,
    )
    return api_response(session, message="Session cancelled")


@csrf_exempt
@require_http_methods(["POST"])
@service_view()
def reschedule_session(request, actor, session_id):
    data = parse_body(request)
    session = SessionLifecycle().reschedule(
        session_id, data.get("scheduled_date"), data.get("scheduled_time"), actor=actor
    )
    return api_response(session, message="Session rescheduled")


@csrf_exempt
@require_http_methods(["POST"])
@service_view()
def mark_no_show(request, actor, session_id):
    session = SessionLifecycle().mark_no_show(session_id, actor=actor)
    return api_response(session, message="Session marked as no-show")
