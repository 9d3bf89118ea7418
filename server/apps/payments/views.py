from django.views.decorators.http import require_http_methods
from django.views.decorators.csrf import csrf_exempt

from apps.payments.models import Payment
from apps.payments.services import PaymentService
from apps.therapy_sessions.lifecycle import SessionLifecycle
from apps.utils.responses import api_response, service_view


@csrf_exempt
@require_http_methods(["GET", "POST"])
@service_view()
def session_payments(request, actor, session_id):
    if request.method == "POST":
        payment, created = PaymentService().request_session_payment(session_id, actor)
        return api_response(
            payment,
            message="Payment requested" if created else "Payment already requested",
            status=201 if created else 200,
        )

    # Participants and admins only
    session = SessionLifecycle().get(session_id, actor)
    payments = Payment.find_by_session(session["_id"])
    return api_response(payments, count=len(payments))


@csrf_exempt
@require_http_methods(["GET"])
@service_view()
def payment_history(request, actor):
    limit = int(request.GET.get("limit", 10))
    skip = int(request.GET.get("skip", 0))
    payments = PaymentService.get_payment_history(actor, limit, skip)
    return api_response(payments, count=len(payments))
