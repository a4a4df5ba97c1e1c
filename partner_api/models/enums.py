# partner_api/models/enums.py
from __future__ import annotations

from enum import Enum


class OfferType(str, Enum):
    LONG_PROGRAM = "long-program"
    CERTIFICATION = "certification"


class EmployeeRole(str, Enum):
    """Partner employee roles.

    ADMINISTRATIVE employees act for their company's whole subtree and may
    manage offers; COMMERCIAL employees are confined to their own company.
    """

    ADMINISTRATIVE = "ADMINISTRATIVE"
    COMMERCIAL = "COMMERCIAL"

    @property
    def can_view_subtree(self) -> bool:
        return self is EmployeeRole.ADMINISTRATIVE

    @property
    def can_manage_offers(self) -> bool:
        return self is EmployeeRole.ADMINISTRATIVE

    @property
    def can_manage_inheritance(self) -> bool:
        return self is EmployeeRole.ADMINISTRATIVE


class DiscountType(str, Enum):
    FIXED = "FIXED"
    PERCENT = "PERCENT"


class RegistrationStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
