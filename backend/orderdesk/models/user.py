"""
OrderDesk Backend - Staff Account Model
=========================================

What:  Minimal view of the `users` table owned by the auth service.
Who:   Populated onto orders as their manager and shipper.

Orders hold weak references to users: deleting a user nulls the reference,
it never deletes the order.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import List, Type

from sqlalchemy import DateTime, Enum as SAEnum, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from orderdesk.database import Base
from orderdesk.models.status import UserRole


def enum_values(enum_cls: Type[enum.Enum]) -> List[str]:
    """Persist enum values ("Paid") rather than member names ("PAID")."""
    return [member.value for member in enum_cls]


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[UserRole] = mapped_column(
        SAEnum(UserRole, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        default=UserRole.STAFF,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role='{self.role.value}')>"
