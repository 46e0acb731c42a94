"""Platform policy versioning package."""

from lendit.policy.cache import PolicyCache
from lendit.policy.service import (
    INSURANCE_POLICY_SLUG,
    OWNER_RESPONSIBILITIES_SLUG,
    RENTER_RESPONSIBILITIES_SLUG,
    ActivePolicy,
    BookingPolicyData,
    BookingPolicyVersion,
    PolicyProvider,
    PolicyService,
    PolicyStaleness,
    PolicyValidation,
    PolicyVersionInfo,
    format_policy_version,
)

__all__ = [
    "INSURANCE_POLICY_SLUG",
    "OWNER_RESPONSIBILITIES_SLUG",
    "RENTER_RESPONSIBILITIES_SLUG",
    "ActivePolicy",
    "BookingPolicyData",
    "BookingPolicyVersion",
    "PolicyCache",
    "PolicyProvider",
    "PolicyService",
    "PolicyStaleness",
    "PolicyValidation",
    "PolicyVersionInfo",
    "format_policy_version",
]
