from django.views.decorators.http import require_http_methods
from django.views.decorators.csrf import csrf_exempt

from apps.pricing.models import PlatformSettings
from apps.therapists.services import TherapistService
from apps.users.models import UserRole
from apps.utils.exceptions import Forbidden
from apps.utils.responses import admin_only, api_response, parse_body, service_view


@csrf_exempt
@require_http_methods(["GET", "POST"])
@service_view()
def pricing_tiers(request, actor):
    if request.method == "POST":
        if actor.get("role") != UserRole.ADMIN:
            raise Forbidden("Only administrators can create pricing tiers")
        data = parse_body(request)
        tier = PlatformSettings.create_pricing_tier(actor, data.get("tier_key"), data)
        return api_response(tier, message="Pricing tier created", status=201)

    return api_response(PlatformSettings.get_pricing_tiers())


@csrf_exempt
@require_http_methods(["PUT", "DELETE"])
@admin_only
def pricing_tier_detail(request, actor, tier_key):
    if request.method == "DELETE":
        PlatformSettings.delete_pricing_tier(actor, tier_key)
        return api_response(message="Pricing tier deleted")

    tier = PlatformSettings.update_pricing_tier(actor, tier_key, parse_body(request))
    return api_response(tier, message="Pricing tier updated")


@csrf_exempt
@require_http_methods(["GET", "PUT"])
@admin_only
def rate_caps(request, actor):
    if request.method == "PUT":
        data = parse_body(request)
        snapshot = TherapistService().update_rate_caps(
            actor,
            rate_caps=data.get("rate_caps"),
            cancellation_fees=data.get("cancellation_fees"),
        )
        message = "Rate caps updated"
    else:
        snapshot = PlatformSettings.snapshot()
        message = None

    return api_response({
        "rate_caps": snapshot.rate_caps,
        "cancellation_fees": snapshot.cancellation_fees,
        "version": snapshot.version,
    }, message=message)


@csrf_exempt
@require_http_methods(["PUT"])
@admin_only
def payment_split(request, actor):
    data = parse_body(request)
    snapshot = PlatformSettings.update_payment_split(actor, data.get("platform_fee_percent"))
    return api_response(snapshot.payment_split, message="Payment split updated")


@csrf_exempt
@require_http_methods(["GET"])
@admin_only
def settings_history(request, actor):
    history = PlatformSettings.history(limit=int(request.GET.get("limit", 20)))
    return api_response(history, count=len(history))
