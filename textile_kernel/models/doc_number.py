"""
Module: textile_kernel.models.doc_number
Responsibility: Counter row per document type for human-readable numbering.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per doc_type (unique).
    - last_number only increases within a period.  (last_year, last_month)
      record when it last advanced; it restarts at 1 only when a field the
      reset policy numbers by has changed.
    - Mutated only by DocNumberService under SELECT ... FOR UPDATE, inside
      the transaction of the document being numbered.
"""

from sqlalchemy import BigInteger, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from textile_kernel.db.base import TrackedBase


class DocNumberConfig(TrackedBase):
    """Numbering policy and last issued counter for one document type."""

    __tablename__ = "doc_number_configs"

    doc_type: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    prefix: Mapped[str] = mapped_column(String(20), nullable=False)
    reset_period: Mapped[str] = mapped_column(String(10), nullable=False)
    padding: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    last_number: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_month: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<DocNumberConfig {self.doc_type} {self.prefix} last={self.last_number}>"
