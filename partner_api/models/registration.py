# partner_api/models/registration.py
from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Index, Integer, String

from partner_api.db.base import Base
from partner_api.models.enums import RegistrationStatus


class Registration(Base):
    """An enrollment attributed to an offer through a referral link."""

    __tablename__ = "registrations"

    offer_id = Column(
        Integer,
        ForeignKey("partner_offers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    # Company credited for the enrollment
    company_id = Column(
        Integer,
        ForeignKey("partner_companies.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    referral_link = Column(String(255), nullable=False)
    applicant_reference = Column(String(255), nullable=False)
    status = Column(
        String(16),
        nullable=False,
        default=RegistrationStatus.PENDING.value,
        server_default=RegistrationStatus.PENDING.value,
    )

    __table_args__ = (
        Index("idx_registrations_company_status", "company_id", "status"),
    )
