from datetime import datetime
from bson.objectid import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
import logging

from database import get_db
from apps.pricing.models import PlatformSettings
from apps.pricing.policies import CredentialTier, RateCapPolicy
from apps.therapists.compliance import TherapistStatus
from apps.utils.exceptions import Conflict, InvalidInput

logger = logging.getLogger(__name__)


def therapists_collection():
    return get_db()["therapists"]


class Therapist:
    def __init__(self, user_id, hourly_rate, credentials=CredentialTier.SUPERVISED_ASSISTANT,
                 license_number=None, specialization=None, bio=None, languages=None):
        self.user_id = user_id  # Reference to the user ID
        self.credentials = credentials
        self.hourly_rate = hourly_rate
        self.license_number = license_number
        self.specialization = specialization or []
        self.bio = bio
        self.languages = languages or ["English"]
        self.status = TherapistStatus.PENDING
        self.compliance_documents = {}
        self.total_sessions = 0
        self.activated_at = None
        self.created_at = datetime.utcnow()
        self.updated_at = datetime.utcnow()

    def save(self):
        """ Save therapist to MongoDB """
        therapist_data = self.__dict__
        result = therapists_collection().insert_one(therapist_data)
        return result.inserted_id

    @staticmethod
    def create(user_id, hourly_rate, credentials=None, snapshot=None, **profile):
        """
        Register a clinician profile in `pending` status.

        The requested rate is clamped to the tier's cap rather than rejected.
        """
        credentials = credentials or CredentialTier.SUPERVISED_ASSISTANT
        if not CredentialTier.is_valid(credentials):
            raise InvalidInput(
                f"Invalid credential tier. Must be one of: {', '.join(CredentialTier.ALL)}"
            )
        if not isinstance(hourly_rate, (int, float)) or hourly_rate < 0:
            raise InvalidInput("Hourly rate must be a non-negative number")

        policy = RateCapPolicy(snapshot or PlatformSettings.snapshot())
        therapist = Therapist(
            user_id=user_id,
            hourly_rate=policy.clamp(hourly_rate, credentials),
            credentials=credentials,
            **profile
        )
        try:
            therapist.save()
        except DuplicateKeyError:
            raise Conflict("A therapist profile already exists for this user")
        return therapist.__dict__

    @staticmethod
    def find_by_id(therapist_id):
        """ Find therapist by ID """
        if not isinstance(therapist_id, ObjectId):
            therapist_id = ObjectId(therapist_id)
        return therapists_collection().find_one({"_id": therapist_id})

    @staticmethod
    def find_by_user_id(user_id):
        """ Find therapist by user ID """
        if isinstance(user_id, str) and ObjectId.is_valid(user_id):
            user_id = ObjectId(user_id)
        return therapists_collection().find_one({"user_id": user_id})

    @staticmethod
    def credential_tier(therapist):
        # Missing or unrecognized tiers are resolved by the pricing and compliance rules
        return therapist.get("credentials")

    @staticmethod
    def is_owned_by(therapist, actor):
        return bool(actor) and therapist.get("user_id") == actor.get("_id")

    @staticmethod
    def update_if_unchanged(therapist_id, expected, fields):
        """
        Write `fields` only if every key in `expected` still holds the value
        it was read with. Returns the updated document or None.
        """
        query = {"_id": therapist_id, **expected}
        return therapists_collection().find_one_and_update(
            query,
            {"$set": {**fields, "updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    def set_document(therapist_id, doc_type, entry):
        fields = {f"compliance_documents.{doc_type}.{key}": value for key, value in entry.items()}
        fields["updated_at"] = datetime.utcnow()
        return therapists_collection().find_one_and_update(
            {"_id": therapist_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    def activate_if_pending(therapist_id, at=None):
        """Flip pending to active; None if the account was in another state"""
        at = at or datetime.utcnow()
        return therapists_collection().find_one_and_update(
            {"_id": therapist_id, "status": TherapistStatus.PENDING},
            {"$set": {"status": TherapistStatus.ACTIVE, "activated_at": at, "updated_at": at}},
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    def set_status(therapist_id, status):
        return therapists_collection().find_one_and_update(
            {"_id": therapist_id},
            {"$set": {"status": status, "updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    def increment_total_sessions(therapist_id):
        therapists_collection().update_one(
            {"_id": therapist_id},
            {"$inc": {"total_sessions": 1}, "$set": {"updated_at": datetime.utcnow()}}
        )

    @staticmethod
    def clamp_rates_to_caps(snapshot):
        """
        Lower every stored hourly rate that is above its tier's current cap.
        Profiles with a missing or unrecognized tier are held to the
        full-licensure cap. Returns the number of profiles changed.
        """
        policy = RateCapPolicy(snapshot)
        now = datetime.utcnow()
        groups = [({"credentials": tier}, policy.max_rate(tier)) for tier in CredentialTier.ALL]
        groups.append(({"credentials": {"$nin": list(CredentialTier.ALL)}}, policy.max_rate(None)))

        changed = 0
        for query, cap in groups:
            result = therapists_collection().update_many(
                {**query, "hourly_rate": {"$gt": cap}},
                {"$set": {"hourly_rate": cap, "updated_at": now}},
            )
            changed += result.modified_count
        return changed
