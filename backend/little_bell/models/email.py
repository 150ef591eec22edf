"""Email model: a tracked message owned by exactly one tenant."""
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from little_bell.models.base import Base, TimestampMixin


class Email(Base, TimestampMixin):
    """Registered email. Always looked up by (tenant_id, id)."""

    __tablename__ = "emails"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
    )
    subject: Mapped[Optional[str]] = mapped_column(Text)
    recipient: Mapped[Optional[str]] = mapped_column(String(320))

    __table_args__ = (
        Index("idx_emails_tenant", "tenant_id", "id"),
        {"sqlite_autoincrement": True},  # ids are never reused
    )

    def __repr__(self) -> str:
        return f"<Email {self.id} tenant={self.tenant_id!r}>"
