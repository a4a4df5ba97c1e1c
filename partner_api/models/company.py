# partner_api/models/company.py
from __future__ import annotations

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String

from partner_api.db.base import Base


class Company(Base):
    __tablename__ = "partner_companies"

    name = Column(String(200), nullable=False)
    # Human-chosen code used as the leading segment of referral links
    code = Column(String(64), nullable=False, unique=True)

    parent_id = Column(
        Integer,
        ForeignKey("partner_companies.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    hierarchy_level = Column(Integer, nullable=False, default=0, server_default="0")

    is_premium = Column(Boolean, nullable=False, default=False, server_default="false")
    can_create_children = Column(Boolean, nullable=False, default=False, server_default="false")
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")

    __table_args__ = (
        Index("idx_partner_companies_parent_active", "parent_id", "is_active"),
    )

    @property
    def has_premium_entitlement(self) -> bool:
        return bool(self.is_premium or self.can_create_children)
