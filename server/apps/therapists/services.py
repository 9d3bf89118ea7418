import logging
from datetime import datetime

from pymongo.errors import PyMongoError

from apps.pricing.models import PlatformSettings
from apps.pricing.policies import CredentialTier, RateCapPolicy
from apps.therapists import compliance
from apps.therapists.compliance import TherapistStatus
from apps.therapists.models import Therapist
from apps.users.models import User, UserRole
from apps.utils.audit import AdminActionLog, AuditAction
from apps.utils.db_helper import to_object_id
from apps.utils.exceptions import Conflict, CoordinatorError, Forbidden, InvalidInput, NotFound
from apps.utils.notifications import NotificationDispatcher, NotificationEvent

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3


class TherapistService:
    """Credential, rate and compliance changes to clinician profiles"""

    def __init__(self, clock=None, notifier=None):
        self.clock = clock or datetime.utcnow
        self.notifier = notifier or NotificationDispatcher()

    def _get(self, therapist_id):
        therapist = Therapist.find_by_id(to_object_id(therapist_id, "therapist ID"))
        if not therapist:
            raise NotFound("Therapist not found")
        return therapist

    @staticmethod
    def _require_admin(actor):
        if not User.has_role(actor, UserRole.ADMIN):
            raise Forbidden("Only administrators can perform this action")

    # ------------------------------------------------------------------
    # Credentials and rates
    # ------------------------------------------------------------------

    def update_rate_caps(self, actor, rate_caps=None, cancellation_fees=None):
        """
        Change the platform rate caps and fees, then bring every stored
        hourly rate back under its tier's new cap.
        """
        self._require_admin(actor)
        snapshot = PlatformSettings.update_rate_caps(actor, rate_caps, cancellation_fees)
        if not rate_caps:
            return snapshot

        reclamped = Therapist.clamp_rates_to_caps(snapshot)
        if reclamped:
            logger.info(f"Lowered {reclamped} hourly rate(s) to the new caps {snapshot.rate_caps}")
            AdminActionLog.record(
                User.actor_id(actor), AuditAction.THERAPIST_RATES_RECLAMPED, "system", "therapists",
                {"rate_caps": snapshot.rate_caps, "version": snapshot.version, "reclamped": reclamped}
            )
        return snapshot

    def update_credentials(self, therapist_id, tier, actor):
        """
        Change a clinician's credential tier. If the stored hourly rate is
        above the new tier's cap it is lowered in the same write.
        """
        self._require_admin(actor)
        if not CredentialTier.is_valid(tier):
            raise InvalidInput(
                f"Invalid credential tier. Must be one of: {', '.join(CredentialTier.ALL)}"
            )

        policy = RateCapPolicy(PlatformSettings.snapshot())
        for _ in range(MAX_WRITE_ATTEMPTS):
            therapist = self._get(therapist_id)
            previous_tier = therapist.get("credentials")
            previous_rate = therapist.get("hourly_rate")

            fields = {"credentials": tier}
            if policy.exceeds(previous_rate, tier):
                fields["hourly_rate"] = policy.clamp(previous_rate, tier)

            # Conditional on the rate we read so a concurrent rate change
            # cannot slip past the new cap.
            updated = Therapist.update_if_unchanged(
                therapist["_id"], {"hourly_rate": previous_rate}, fields
            )
            if updated:
                break
        else:
            raise Conflict("Therapist was modified concurrently, please retry")

        AdminActionLog.record(
            User.actor_id(actor), AuditAction.THERAPIST_CREDENTIALS_UPDATED, "therapist",
            updated["_id"], {
                "previous_credentials": previous_tier,
                "credentials": tier,
                "previous_hourly_rate": previous_rate,
                "hourly_rate": updated.get("hourly_rate"),
            }
        )
        logger.info(f"Therapist {updated['_id']} credentials set to {tier}")
        return updated

    def bulk_update_credentials(self, therapist_ids, tier, actor):
        """
        Apply one tier to many clinicians. Each id is processed on its own and
        reported individually; a failure never stops the rest.
        """
        self._require_admin(actor)
        if not CredentialTier.is_valid(tier):
            raise InvalidInput(
                f"Invalid credential tier. Must be one of: {', '.join(CredentialTier.ALL)}"
            )
        if not isinstance(therapist_ids, list) or not therapist_ids:
            raise InvalidInput("therapist_ids must be a non-empty list")

        results = []
        for therapist_id in therapist_ids:
            try:
                updated = self.update_credentials(therapist_id, tier, actor)
                results.append({
                    "therapist_id": str(therapist_id),
                    "success": True,
                    "hourly_rate": updated.get("hourly_rate"),
                })
            except CoordinatorError as e:
                results.append({"therapist_id": str(therapist_id), "success": False, "message": e.message})
            except PyMongoError as e:
                logger.exception(f"Credential update failed for therapist {therapist_id}")
                results.append({"therapist_id": str(therapist_id), "success": False, "message": str(e)})

        updated_count = sum(1 for result in results if result["success"])
        return {
            "results": results,
            "updated": updated_count,
            "failed": len(results) - updated_count,
        }

    def update_hourly_rate(self, therapist_id, rate, actor):
        """Set a clinician's hourly rate, clamped to their tier's cap"""
        if not isinstance(rate, (int, float)) or isinstance(rate, bool) or rate < 0:
            raise InvalidInput("Hourly rate must be a non-negative number")

        policy = RateCapPolicy(PlatformSettings.snapshot())
        for _ in range(MAX_WRITE_ATTEMPTS):
            therapist = self._get(therapist_id)
            if not (User.has_role(actor, UserRole.ADMIN) or Therapist.is_owned_by(therapist, actor)):
                raise Forbidden("You can only update your own rate")

            tier = Therapist.credential_tier(therapist)
            previous_rate = therapist.get("hourly_rate")
            # Conditional on the tier we clamped against
            updated = Therapist.update_if_unchanged(
                therapist["_id"],
                {"credentials": therapist.get("credentials")},
                {"hourly_rate": policy.clamp(rate, tier)},
            )
            if updated:
                break
        else:
            raise Conflict("Therapist was modified concurrently, please retry")

        AdminActionLog.record(
            User.actor_id(actor), AuditAction.THERAPIST_RATE_UPDATED, "therapist", updated["_id"],
            {"previous_hourly_rate": previous_rate, "requested": rate, "hourly_rate": updated["hourly_rate"]}
        )
        return updated

    def update_status(self, therapist_id, status, actor):
        """Explicit admin status change (pause, deactivate, reinstate)"""
        self._require_admin(actor)
        if status not in TherapistStatus.ALL:
            raise InvalidInput(f"Invalid status. Must be one of: {', '.join(TherapistStatus.ALL)}")
        therapist = self._get(therapist_id)
        return Therapist.set_status(therapist["_id"], status)

    # ------------------------------------------------------------------
    # Compliance documents
    # ------------------------------------------------------------------

    def submit_compliance_document(self, therapist_id, doc_type, details, actor):
        if doc_type not in compliance.ALL_DOCUMENT_TYPES:
            raise InvalidInput(f"Unknown compliance document type {doc_type}")

        therapist = self._get(therapist_id)
        if not (User.has_role(actor, UserRole.ADMIN) or Therapist.is_owned_by(therapist, actor)):
            raise Forbidden("You can only submit documents for your own profile")

        details = details or {}
        entry = {
            "document_number": details.get("document_number"),
            "expiry_date": details.get("expiry_date"),
            "document_url": details.get("document_url"),
            "verified": False,
            "verified_at": None,
            "verified_by": None,
            "submitted_at": self.clock(),
        }
        return Therapist.set_document(therapist["_id"], doc_type, entry)

    def verify_compliance_document(self, therapist_id, doc_type, verified, actor, notes=None):
        """
        Record an admin's verification decision on one document, then
        activate the account if it is pending and a complete set is verified.
        """
        self._require_admin(actor)
        if doc_type not in compliance.ALL_DOCUMENT_TYPES:
            raise InvalidInput(f"Unknown compliance document type {doc_type}")
        if not isinstance(verified, bool):
            raise InvalidInput("verified must be true or false")

        therapist = self._get(therapist_id)
        now = self.clock()
        updated = Therapist.set_document(therapist["_id"], doc_type, {
            "verified": verified,
            "verified_at": now if verified else None,
            "verified_by": User.actor_id(actor),
            "review_notes": notes,
        })

        AdminActionLog.record(
            User.actor_id(actor),
            AuditAction.THERAPIST_DOCUMENT_VERIFIED if verified else AuditAction.THERAPIST_DOCUMENT_REJECTED,
            "document", updated["_id"], {"document_type": doc_type, "notes": notes}
        )

        tier = Therapist.credential_tier(updated)
        paths = compliance.satisfied_paths(updated.get("compliance_documents"), tier)
        activated = False

        if compliance.should_activate(updated.get("compliance_documents"), tier, updated.get("status")):
            activated_doc = Therapist.activate_if_pending(updated["_id"], at=now)
            if activated_doc:
                activated = True
                updated = activated_doc
                AdminActionLog.record(
                    User.actor_id(actor), AuditAction.THERAPIST_ACTIVATED, "therapist",
                    updated["_id"], {"satisfied_paths": paths}
                )
                self.notifier.send(
                    NotificationEvent.ACCOUNT_ACTIVATED, updated.get("user_id"),
                    {"therapist_id": str(updated["_id"])}
                )
                logger.info(f"Therapist {updated['_id']} activated via {', '.join(paths)}")

        return {"therapist": updated, "activated": activated, "satisfied_paths": paths}
