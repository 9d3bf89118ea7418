from datetime import datetime
from bson import ObjectId
from pymongo.errors import DuplicateKeyError
import logging

from database import get_db

logger = logging.getLogger(__name__)


def payments_collection():
    return get_db()["payments"]


class PaymentType:
    SESSION_PAYMENT = "session_payment"
    CANCELLATION_FEE = "cancellation_fee"


class PaymentStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    FAILED = "failed"

    ALL = (PENDING, COMPLETED, REFUNDED, FAILED)


class Payment:
    """Model for storing payment records"""

    def __init__(self, session_id, client_id, therapist_id, amount,
                 payment_type, currency="usd", payment_status=PaymentStatus.PENDING,
                 platform_fee=None, therapist_fee=None, metadata=None):
        """
        Create a new payment record

        Args:
            session_id: ID of the therapy session
            client_id: ID of the paying client
            therapist_id: ID of the therapist
            amount (float): Amount in currency units
            payment_type (str): One of PaymentType, stored as metadata.type
            platform_fee (int): Platform share in cents
            therapist_fee (int): Therapist share in cents
            metadata (dict): Extra details kept alongside the type tag
        """
        self.session_id = session_id
        self.client_id = client_id
        self.therapist_id = therapist_id
        self.amount = amount
        self.amount_in_cents = int(round(float(amount) * 100))
        self.currency = currency
        self.payment_status = payment_status
        self.platform_fee = platform_fee
        self.therapist_fee = therapist_fee
        self.payment_intent_id = None
        self.metadata = {**(metadata or {}), "type": payment_type}
        self.created_at = datetime.utcnow()
        self.updated_at = datetime.utcnow()

    def save_once(self):
        """
        Insert this record unless one of the same type already exists for the
        session. Returns (document, created).
        """
        existing = Payment.find_for_session(self.session_id, self.metadata["type"])
        if existing:
            return existing, False

        payment_data = self.__dict__
        try:
            payments_collection().insert_one(payment_data)
        except DuplicateKeyError:
            # Lost the race to a concurrent writer
            return Payment.find_for_session(self.session_id, self.metadata["type"]), False
        return payment_data, True

    @staticmethod
    def find_by_id(payment_id):
        """Find payment by ID"""
        if isinstance(payment_id, str):
            payment_id = ObjectId(payment_id)
        return payments_collection().find_one({"_id": payment_id})

    @staticmethod
    def find_for_session(session_id, payment_type):
        return payments_collection().find_one({"session_id": session_id, "metadata.type": payment_type})

    @staticmethod
    def find_by_session(session_id):
        """All payment records for a therapy session"""
        if isinstance(session_id, str):
            session_id = ObjectId(session_id)
        return list(payments_collection().find({"session_id": session_id}).sort("created_at", 1))

    @staticmethod
    def find_by_client(client_id, limit=10, skip=0):
        return list(payments_collection().find({"client_id": client_id})
                    .sort("created_at", -1)
                    .skip(skip)
                    .limit(limit))

    @staticmethod
    def find_by_therapist(therapist_id, limit=10, skip=0):
        return list(payments_collection().find({"therapist_id": therapist_id})
                    .sort("created_at", -1)
                    .skip(skip)
                    .limit(limit))

    @staticmethod
    def record_charge(payment_id, payment_intent_id):
        payments_collection().update_one(
            {"_id": payment_id},
            {"$set": {"payment_intent_id": payment_intent_id, "updated_at": datetime.utcnow()}}
        )

    @staticmethod
    def update_status(payment_id, status):
        """Update payment status"""
        if isinstance(payment_id, str):
            payment_id = ObjectId(payment_id)
        payments_collection().update_one(
            {"_id": payment_id},
            {"$set": {"payment_status": status, "updated_at": datetime.utcnow()}}
        )
        return True
