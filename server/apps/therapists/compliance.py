"""
Compliance documents and the rule that auto-activates a clinician.

A clinician's `compliance_documents` maps a document type to an entry such as
``{"verified": True, "verified_at": ..., "document_number": ...}``. Three
families of document sets are accepted, and the account is activated when any
one of them is completely verified:

* primary: the current requirements, which depend on the credential tier
* legacy regional: the set used before the current requirements existed
* legacy original: the oldest two-document format

Nothing in this module touches storage.
"""
from dataclasses import dataclass

from apps.pricing.policies import CredentialTier


class DocumentType:
    PROFESSIONAL_CERTIFICATION = "professional_certification"
    STATE_LICENSURE = "state_licensure"
    LIABILITY_INSURANCE_POLICY = "liability_insurance_policy"
    BACKGROUND_CHECK = "background_check"
    SUPERVISION_AGREEMENT = "supervision_agreement"

    # Legacy regional set
    SPA_MEMBERSHIP = "spa_membership"
    STATE_REGISTRATION = "state_registration"
    PROFESSIONAL_INDEMNITY_INSURANCE = "professional_indemnity_insurance"
    WORKING_WITH_CHILDREN_CHECK = "working_with_children_check"
    POLICE_CHECK = "police_check"

    # Original format
    STATE_LICENSE = "state_license"
    LIABILITY_INSURANCE = "liability_insurance"


class TherapistStatus:
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    INACTIVE = "inactive"

    ALL = (PENDING, ACTIVE, PAUSED, INACTIVE)


@dataclass(frozen=True)
class ComplianceRuleSet:
    name: str
    required: tuple

    def satisfied_by(self, verified_types):
        return all(doc_type in verified_types for doc_type in self.required)


PRIMARY_RULES = {
    CredentialTier.FULL_LICENSURE: ComplianceRuleSet("primary", (
        DocumentType.PROFESSIONAL_CERTIFICATION,
        DocumentType.STATE_LICENSURE,
        DocumentType.LIABILITY_INSURANCE_POLICY,
        DocumentType.BACKGROUND_CHECK,
    )),
    CredentialTier.SUPERVISED_ASSISTANT: ComplianceRuleSet("primary", (
        DocumentType.STATE_LICENSURE,
        DocumentType.LIABILITY_INSURANCE_POLICY,
        DocumentType.BACKGROUND_CHECK,
        DocumentType.SUPERVISION_AGREEMENT,
    )),
}

LEGACY_REGIONAL_RULES = ComplianceRuleSet("legacy_regional", (
    DocumentType.SPA_MEMBERSHIP,
    DocumentType.STATE_REGISTRATION,
    DocumentType.PROFESSIONAL_INDEMNITY_INSURANCE,
    DocumentType.WORKING_WITH_CHILDREN_CHECK,
    DocumentType.POLICE_CHECK,
))

LEGACY_ORIGINAL_RULES = ComplianceRuleSet("legacy_original", (
    DocumentType.STATE_LICENSE,
    DocumentType.LIABILITY_INSURANCE,
))

ALL_DOCUMENT_TYPES = frozenset(
    doc_type
    for rules in (*PRIMARY_RULES.values(), LEGACY_REGIONAL_RULES, LEGACY_ORIGINAL_RULES)
    for doc_type in rules.required
)


def verified_document_types(documents):
    """Document types whose entry is marked verified"""
    verified = set()
    for doc_type, entry in (documents or {}).items():
        if isinstance(entry, dict) and entry.get("verified") is True:
            verified.add(doc_type)
    return verified


def rule_sets_for(tier):
    # Unknown tiers are held to the full-licensure requirements
    primary = PRIMARY_RULES.get(tier, PRIMARY_RULES[CredentialTier.FULL_LICENSURE])
    return (primary, LEGACY_REGIONAL_RULES, LEGACY_ORIGINAL_RULES)


def satisfied_paths(documents, tier):
    verified = verified_document_types(documents)
    return [rules.name for rules in rule_sets_for(tier) if rules.satisfied_by(verified)]


def should_activate(documents, tier, current_status):
    """
    True when a pending account has a complete verified document set.
    Active, paused and inactive accounts are never changed by this rule.
    """
    if current_status != TherapistStatus.PENDING:
        return False
    return bool(satisfied_paths(documents, tier))
