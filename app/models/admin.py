from __future__ import annotations

"""
Admin model.

Design decisions:
- Two roles only: super-admin (everything, every region) and regular
  admin (content in assigned regions).  No role table.
- Assigned regions are a plain association table; they are ignored for
  super-admins.
- Failed-login bookkeeping is NOT stored here; it lives in the
  rate-limit store and is lost on restart.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, IntegerPrimaryKeyMixin, TimestampMixin

if TYPE_CHECKING:
    from app.models.region import Region

admin_regions = Table(
    "admin_regions",
    Base.metadata,
    Column("admin_id", ForeignKey("admins.id", ondelete="CASCADE"), primary_key=True),
    Column("region_code", ForeignKey("regions.code", ondelete="CASCADE"), primary_key=True),
)


class Admin(Base, IntegerPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "admins"

    username: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    email: Mapped[str] = mapped_column(String(256), unique=True, index=True, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    profile_picture_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    is_super_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_test_account: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # ── Relationships ────────────────────────────────────────────────
    regions: Mapped[list["Region"]] = relationship(  # noqa: F821
        secondary=admin_regions,
        lazy="selectin",
    )

    @property
    def assigned_regions(self) -> list[str]:
        return sorted(r.code for r in self.regions)

    def __repr__(self) -> str:
        return f"<Admin {self.username}>"
