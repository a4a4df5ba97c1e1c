# partner_api/services/__init__.py
"""
Business logic services organized by domain functionality.
"""

from partner_api.services.access_scope import AccessScopeResolver
from partner_api.services.company_hierarchy import CompanyHierarchyResolver
from partner_api.services.offer_inheritance import OfferInheritanceEngine, SyncReport
from partner_api.services.referral_codec import ReferralLink, decode, encode_child_link, encode_direct_link
from partner_api.services.referral_resolver import ReferralLinkResolver, ReferralResolution

__all__ = [
    # Hierarchy and scope
    "AccessScopeResolver",
    "CompanyHierarchyResolver",
    # Inheritance
    "OfferInheritanceEngine",
    "SyncReport",
    # Referral links
    "ReferralLink",
    "ReferralLinkResolver",
    "ReferralResolution",
    "decode",
    "encode_child_link",
    "encode_direct_link",
]
