from django.views.decorators.http import require_http_methods
from django.views.decorators.csrf import csrf_exempt

from apps.therapists.models import Therapist
from apps.therapists.services import TherapistService
from apps.users.models import UserRole
from apps.utils.audit import AdminActionLog
from apps.utils.db_helper import to_object_id
from apps.utils.exceptions import NotFound
from apps.utils.responses import admin_only, api_response, parse_body, service_view


@csrf_exempt
@require_http_methods(["POST"])
@service_view(roles=[UserRole.THERAPIST, UserRole.ADMIN])
def register_therapist(request, actor):
    data = parse_body(request)
    # Admins may create a profile on behalf of a user
    user_id = actor["_id"]
    if actor.get("role") == UserRole.ADMIN and data.get("user_id"):
        user_id = to_object_id(data["user_id"], "user ID")

    therapist = Therapist.create(
        user_id=user_id,
        hourly_rate=data.get("hourly_rate", 0),
        credentials=data.get("credentials"),
        license_number=data.get("license_number"),
        specialization=data.get("specialization"),
        bio=data.get("bio"),
        languages=data.get("languages"),
    )
    return api_response(therapist, message="Therapist profile created", status=201)


@csrf_exempt
@require_http_methods(["GET"])
@service_view()
def therapist_detail(request, actor, therapist_id):
    therapist = Therapist.find_by_id(to_object_id(therapist_id, "therapist ID"))
    if not therapist:
        raise NotFound("Therapist not found")
    return api_response(therapist)


@csrf_exempt
@require_http_methods(["PUT"])
@service_view(roles=[UserRole.THERAPIST, UserRole.ADMIN])
def update_rate(request, actor, therapist_id):
    data = parse_body(request)
    therapist = TherapistService().update_hourly_rate(therapist_id, data.get("hourly_rate"), actor)
    return api_response(therapist, message="Hourly rate updated")


@csrf_exempt
@require_http_methods(["PUT"])
@admin_only
def update_credentials(request, actor, therapist_id):
    data = parse_body(request)
    therapist = TherapistService().update_credentials(therapist_id, data.get("credentials"), actor)
    return api_response(therapist, message="Credentials updated")


@csrf_exempt
@require_http_methods(["POST"])
@admin_only
def bulk_update_credentials(request, actor):
    data = parse_body(request)
    summary = TherapistService().bulk_update_credentials(
        data.get("therapist_ids"), data.get("credentials"), actor
    )
    return api_response(summary, message=f"Updated {summary['updated']} therapists")


@csrf_exempt
@require_http_methods(["PUT"])
@admin_only
def update_status(request, actor, therapist_id):
    data = parse_body(request)
    therapist = TherapistService().update_status(therapist_id, data.get("status"), actor)
    return api_response(therapist, message="Status updated")


@csrf_exempt
@require_http_methods(["POST"])
@service_view(roles=[UserRole.THERAPIST, UserRole.ADMIN])
def submit_document(request, actor, therapist_id):
    data = parse_body(request)
    therapist = TherapistService().submit_compliance_document(
        therapist_id, data.get("document_type"), data, actor
    )
    return api_response(therapist, message="Document submitted for review", status=201)


@csrf_exempt
@require_http_methods(["POST"])
@admin_only
def verify_document(request, actor, therapist_id, document_type):
    data = parse_body(request)
    result = TherapistService().verify_compliance_document(
        therapist_id, document_type, data.get("verified"), actor, notes=data.get("notes")
    )
    return api_response(result, message="Therapist activated" if result["activated"] else "Document reviewed")


@csrf_exempt
@require_http_methods(["GET"])
@admin_only
def audit_log(request, actor, therapist_id):
    entries = AdminActionLog.find_by_target(to_object_id(therapist_id, "therapist ID"))
    return api_response(entries, count=len(entries))
