# partner_api/routes/__init__.py
"""
API route handlers organized by domain.
"""

from partner_api.routes.coupons import router as coupons_router
from partner_api.routes.health import router as health_router
from partner_api.routes.offer_inheritance import router as offer_inheritance_router
from partner_api.routes.offers import router as offers_router
from partner_api.routes.referrals import router as referrals_router
from partner_api.routes.registrations import router as registrations_router

__all__ = [
    "coupons_router",
    "health_router",
    "offer_inheritance_router",
    "offers_router",
    "referrals_router",
    "registrations_router",
]
