# partner_api/models/coupon.py
from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, String

from partner_api.db.base import Base


class Coupon(Base):
    __tablename__ = "coupons"

    company_id = Column(
        Integer,
        ForeignKey("partner_companies.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    # Unique per company hierarchy, enforced by the coupon service
    code = Column(String(64), nullable=False)

    discount_type = Column(String(16), nullable=False)
    discount_amount = Column(Numeric(10, 2), nullable=True)
    discount_percent = Column(Numeric(5, 2), nullable=True)

    max_uses = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0, server_default="0")

    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")

    created_by_employee_id = Column(Integer, nullable=True)

    __table_args__ = (
        Index("idx_coupons_code", "code"),
    )
