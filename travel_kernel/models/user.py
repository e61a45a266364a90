"""
Module: travel_kernel.models.user
Responsibility: ORM persistence for the organisational hierarchy the chain
    builder walks: users (with supervisor, role and phone) and departments
    (with manager, director and parent department).
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

The engine reads this hierarchy; it never edits it.  Managing users and
departments is the concern of an outer administration surface.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from travel_kernel.db.base import TrackedBase, UUIDString
from travel_kernel.domain.roles import Role


class Department(TrackedBase):
    """Department node.  ``manager_id`` / ``director_id`` reference users."""

    __tablename__ = "departments"

    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("departments.id"), nullable=True,
    )
    manager_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    director_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    parent: Mapped[Department | None] = relationship("Department", remote_side="Department.id")

    def __repr__(self) -> str:
        return f"<Department {self.code}>"


class User(TrackedBase):
    """User account.  ``phone_number`` is the proof used by external callers."""

    __tablename__ = "users"

    __table_args__ = (
        Index("ix_users_role_created", "role", "created_at"),
        Index("ix_users_department", "department_id"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(
        String(30), nullable=False, default=Role.EMPLOYEE.value,
    )
    department_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("departments.id"), nullable=True,
    )
    supervisor_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=True,
    )
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    department: Mapped[Department | None] = relationship("Department", foreign_keys=[department_id])

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"

    @property
    def role_enum(self) -> Role:
        return Role(self.role)

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None
