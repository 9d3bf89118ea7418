from django.views.decorators.http import require_http_methods
from django.views.decorators.csrf import csrf_exempt

from apps.clients.models import Client
from apps.subscriptions.services import SubscriptionLifecycle
from apps.utils.exceptions import InvalidInput, NotFound
from apps.utils.responses import api_response, parse_body, service_view


def _client_id(actor, requested=None):
    """An explicit client id, or the caller's own client profile"""
    if requested:
        return requested
    client = Client.find_by_user_id(actor["_id"])
    if not client:
        raise NotFound("Client profile not found")
    return client["_id"]


@csrf_exempt
@require_http_methods(["POST"])
@service_view()
def subscribe(request, actor):
    data = parse_body(request)
    if not data.get("tier"):
        raise InvalidInput("tier is required")

    subscription = SubscriptionLifecycle().subscribe(
        _client_id(actor, data.get("client_id")),
        data["tier"],
        actor=actor,
        pending=data.get("pending") is True,
    )
    return api_response(subscription, message="Subscription created", status=201)


@csrf_exempt
@require_http_methods(["POST"])
@service_view()
def activate_subscription(request, actor, subscription_id):
    subscription = SubscriptionLifecycle().activate(subscription_id, actor=actor)
    return api_response(subscription, message="Subscription activated")


@csrf_exempt
@require_http_methods(["POST"])
@service_view()
def cancel_subscription(request, actor, subscription_id):
    data = parse_body(request)
    subscription = SubscriptionLifecycle().cancel(subscription_id, reason=data.get("reason"), actor=actor)
    return api_response(subscription, message="Subscription cancelled")


@csrf_exempt
@require_http_methods(["POST"])
@service_view()
def cancel_current_subscription(request, actor):
    data = parse_body(request)
    subscription = SubscriptionLifecycle().cancel_current(
        _client_id(actor, data.get("client_id")), reason=data.get("reason"), actor=actor
    )
    return api_response(subscription, message="Subscription cancelled")


@csrf_exempt
@require_http_methods(["GET"])
@service_view()
def current_subscription(request, actor):
    subscription = SubscriptionLifecycle().current_subscription(
        _client_id(actor, request.GET.get("client_id")), actor=actor
    )
    return api_response(subscription, has_subscription=subscription is not None)


@csrf_exempt
@require_http_methods(["GET"])
@service_view()
def subscription_history(request, actor):
    history = SubscriptionLifecycle().subscription_history(
        _client_id(actor, request.GET.get("client_id")), actor=actor
    )
    return api_response(history, count=len(history))


@csrf_exempt
@require_http_methods(["GET"])
@service_view()
def remaining_sessions(request, actor):
    quota = SubscriptionLifecycle().remaining_sessions(
        _client_id(actor, request.GET.get("client_id")), actor=actor
    )
    return api_response(quota)
