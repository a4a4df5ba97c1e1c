# partner_api/models/offer.py
from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)

from partner_api.db.base import Base


class Offer(Base):
    __tablename__ = "partner_offers"

    company_id = Column(
        Integer,
        ForeignKey("partner_companies.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    course_id = Column(Integer, nullable=False, index=True)

    name = Column(String(200), nullable=False)
    offer_type = Column(String(32), nullable=False)

    total_amount = Column(Numeric(10, 2), nullable=False)
    installments = Column(Integer, nullable=False, default=1, server_default="1")
    installment_frequency = Column(Integer, nullable=False, default=1, server_default="1")
    custom_payment_plan = Column(JSON, nullable=True)

    referral_link = Column(String(255), nullable=False, unique=True)

    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    is_inherited = Column(Boolean, nullable=False, default=False, server_default="false")
    parent_offer_id = Column(
        Integer,
        ForeignKey("partner_offers.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    created_by_employee_id = Column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("parent_offer_id", "company_id", name="uq_partner_offers_parent_company"),
        CheckConstraint("total_amount > 0", name="total_amount_positive"),
        CheckConstraint("installments > 0", name="installments_positive"),
        CheckConstraint("installment_frequency > 0", name="installment_frequency_positive"),
        CheckConstraint(
            "(is_inherited AND parent_offer_id IS NOT NULL) "
            "OR (NOT is_inherited AND parent_offer_id IS NULL)",
            name="inherited_has_parent",
        ),
        Index("idx_partner_offers_company_active", "company_id", "is_active"),
    )
