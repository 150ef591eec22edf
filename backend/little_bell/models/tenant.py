"""Tenant model: the isolation boundary for all tracking data."""
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from little_bell.models.base import Base, TimestampMixin


class Tenant(Base, TimestampMixin):
    """A tenant, identified by the opaque string in the URL path."""

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Tenant {self.id!r}>"
