import stripe
import logging

from django.conf import settings

from .models import Payment, PaymentStatus, PaymentType, payments_collection
from apps.clients.models import Client
from apps.pricing.models import PlatformSettings
from apps.pricing.policies import payment_split
from apps.therapists.models import Therapist
from apps.therapy_sessions.models import SessionStatus, TherapySession
from apps.users.models import User, UserRole
from apps.utils.background import run_in_background
from apps.utils.db_helper import to_object_id
from apps.utils.exceptions import Conflict, Forbidden, InvalidInput, NotFound

logger = logging.getLogger(__name__)


class PaymentGateway:
    """Thin adapter over Stripe; the only place that talks to the gateway"""

    @staticmethod
    def create_charge_record(amount, metadata, currency=None):
        """
        Create a PaymentIntent for `amount` (currency units).

        Returns the intent id, or None when no Stripe key is configured.
        """
        if not settings.STRIPE_SECRET_KEY:
            logger.warning("STRIPE_SECRET_KEY is not set; skipping charge creation")
            return None

        stripe.api_key = settings.STRIPE_SECRET_KEY
        intent = stripe.PaymentIntent.create(
            amount=int(round(float(amount) * 100)),
            currency=currency or settings.PAYMENT_CURRENCY,
            metadata={key: str(value) for key, value in (metadata or {}).items()},
        )
        return intent.id


class PaymentService:
    """Creates payment records for priced session events"""

    def __init__(self, gateway=None):
        self.gateway = gateway or PaymentGateway()

    def _create_once(self, session, amount, payment_type, metadata, snapshot=None):
        split = payment_split(amount, snapshot or PlatformSettings.snapshot())
        payment = Payment(
            session_id=session["_id"],
            client_id=session.get("client_id"),
            therapist_id=session.get("therapist_id"),
            amount=amount,
            payment_type=payment_type,
            currency=settings.PAYMENT_CURRENCY,
            platform_fee=split["platform_fee"],
            therapist_fee=split["therapist_fee"],
            metadata=metadata,
        )
        record, created = payment.save_once()
        if created:
            logger.info(f"Created {payment_type} payment {record['_id']} for session {session['_id']}")
            run_in_background(self._charge, record)
        return record, created

    def record_cancellation_fee(self, session, credential_type, fee, reason, snapshot=None):
        """
        Exactly one pending cancellation-fee record per session.
        Returns (payment, created).
        """
        return self._create_once(
            session, fee, PaymentType.CANCELLATION_FEE,
            {"credential_type": credential_type, "reason": reason},
            snapshot=snapshot,
        )

    def request_session_payment(self, session_id, actor):
        session = TherapySession.find_by_id(to_object_id(session_id, "session ID"))
        if not session:
            raise NotFound("Session not found")

        if not User.has_role(actor, UserRole.ADMIN):
            client = Client.find_by_id(session["client_id"])
            if not client or client.get("user_id") != User.actor_id(actor):
                raise Forbidden("You can only pay for your own sessions")

        if session["status"] == SessionStatus.CANCELLED.value:
            raise Conflict("Cannot pay for a cancelled session")
        if not session.get("price") or session["price"] <= 0:
            raise InvalidInput("This session has nothing to pay")

        return self._create_once(
            session, session["price"], PaymentType.SESSION_PAYMENT,
            {"session_type": session.get("session_type")},
        )

    def _charge(self, payment):
        """Runs in the background; failures mark the record and are logged"""
        try:
            intent_id = self.gateway.create_charge_record(
                payment["amount"],
                {
                    "payment_id": payment["_id"],
                    "session_id": payment["session_id"],
                    "type": payment["metadata"]["type"],
                },
                currency=payment.get("currency"),
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating charge for payment {payment['_id']}: {str(e)}")
            Payment.update_status(payment["_id"], PaymentStatus.FAILED)
            return None

        if intent_id:
            Payment.record_charge(payment["_id"], intent_id)
        return intent_id

    @staticmethod
    def get_payment_history(actor, limit=10, skip=0):
        """Payments visible to the actor, newest first"""
        if User.has_role(actor, UserRole.ADMIN):
            return list(payments_collection().find().sort("created_at", -1).skip(skip).limit(limit))

        if User.has_role(actor, UserRole.THERAPIST):
            therapist = Therapist.find_by_user_id(actor["_id"])
            if not therapist:
                raise NotFound("Therapist profile not found")
            return Payment.find_by_therapist(therapist["_id"], limit, skip)

        client = Client.find_by_user_id(actor["_id"])
        if not client:
            raise NotFound("Client profile not found")
        return Payment.find_by_client(client["_id"], limit, skip)
