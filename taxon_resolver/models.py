from __future__ import annotations

from typing import Optional
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, Integer, Index, Text


class Base(DeclarativeBase):
    pass


class TaxonCodeRecord(Base):
    __tablename__ = "taxon_code"
    __table_args__ = (
        Index("ix_taxon_code_code", "taxon_code"),
        Index("ix_taxon_code_accepted_registry_id", "accepted_registry_id"),
        Index("ix_taxon_code_status", "status"),
        Index("ix_taxon_code_family_genus", "family", "genus"),
        {"extend_existing": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    taxon_code: Mapped[str] = mapped_column(String(32), nullable=False)
    taxon_name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    registry_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rank: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    accepted_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    accepted_registry_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # jerarquía
    kingdom: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    phylum: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    class_name: Mapped[Optional[str]] = mapped_column("class_name", String(64), nullable=True)
    order_name: Mapped[Optional[str]] = mapped_column("order_name", String(64), nullable=True)
    family: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    genus: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # procedencia: registry | manual | none  /  rule | extended | override
    resolution_source: Mapped[str] = mapped_column(String(16), nullable=False, default="none")
    code_source: Mapped[str] = mapped_column(String(16), nullable=False, default="rule")
    frequency: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
