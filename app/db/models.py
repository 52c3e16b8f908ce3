from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, func, text as sql_text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.identity.store import LINK_PRIMARY


class Contact(Base):
    __tablename__ = "contacts"
    __table_args__ = (
        CheckConstraint("link_precedence IN ('primary', 'secondary')", name="ck_contacts_link_precedence"),
        CheckConstraint(
            "(link_precedence = 'primary' AND linked_id IS NULL) OR "
            "(link_precedence = 'secondary' AND linked_id IS NOT NULL)",
            name="ck_contacts_secondary_has_link",
        ),
        Index("ix_contacts_email", "email"),
        Index("ix_contacts_phone_number", "phone_number"),
        Index("ix_contacts_linked_id", "linked_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    linked_id: Mapped[int | None] = mapped_column(ForeignKey("contacts.id"), nullable=True)
    link_precedence: Mapped[str] = mapped_column(
        String(16), nullable=False, default=LINK_PRIMARY, server_default=sql_text("'primary'")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_primary(self) -> bool:
        return self.link_precedence == LINK_PRIMARY

    def __repr__(self) -> str:
        return f"<Contact id={self.id} precedence={self.link_precedence} linked_id={self.linked_id}>"
