"""AliasRecord model – an alias bound to the RSA key that claimed it."""

from __future__ import annotations

from sqlalchemy import BigInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ddns.db.base import Base


class AliasRecord(Base):
    __tablename__ = "alias_records"

    alias: Mapped[str] = mapped_column(String(253), primary_key=True)
    # public_key and secret are written once, at claim time
    public_key: Mapped[str] = mapped_column(Text, nullable=False)
    secret: Mapped[str] = mapped_column(String(64), nullable=False)

    # epoch milliseconds
    created: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated: Mapped[int] = mapped_column(BigInteger, nullable=False)

    @property
    def is_claimed(self) -> bool:
        return bool(self.public_key) and bool(self.secret)

    def __repr__(self) -> str:
        return f"<AliasRecord {self.alias} updated={self.updated}>"
