# partner_api/models/__init__.py
"""
SQLAlchemy ORM models for database entities.
"""

from partner_api.models.company import Company
from partner_api.models.coupon import Coupon
from partner_api.models.enums import DiscountType, EmployeeRole, OfferType, RegistrationStatus
from partner_api.models.offer import Offer
from partner_api.models.registration import Registration

__all__ = [
    "Company",
    "Coupon",
    "DiscountType",
    "EmployeeRole",
    "Offer",
    "OfferType",
    "Registration",
    "RegistrationStatus",
]
