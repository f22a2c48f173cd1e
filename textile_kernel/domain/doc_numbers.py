"""
Document numbers -- period keys and formatting.

Responsibility:
    Pure rules for human-readable document numbers: which period a moment in
    time falls into for a given reset policy, and how a (prefix, period,
    counter) triple is rendered.  Counter allocation and locking live in
    ``textile_kernel.services.doc_number_service``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Formats:
    YEARLY   ->  {prefix}{YYYY}/{NNNN}         e.g. PO/2025/0001
    MONTHLY  ->  {prefix}{YYYY}/{MM}/{NNNN}    e.g. GRN/2025/03/0007
    NEVER    ->  {prefix}{NNNN}                e.g. RET/0042

    The prefix always ends in "/"; one is appended if missing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class DocType(str, Enum):
    """Numbered document types."""

    PO = "PO"
    GRN = "GRN"
    WO = "WO"
    ADJ = "ADJ"
    RET = "RET"
    ISSUE = "ISSUE"
    RECEIPT = "RECEIPT"


class ResetPeriod(str, Enum):
    """When the per-type counter starts again from 1."""

    YEARLY = "YEARLY"
    MONTHLY = "MONTHLY"
    NEVER = "NEVER"


@dataclass(frozen=True)
class DocNumberDefaults:
    """Seed values for a DocNumberConfig row."""

    prefix: str
    reset_period: ResetPeriod
    padding: int = 4


DEFAULT_DOC_NUMBER_CONFIGS: dict[DocType, DocNumberDefaults] = {
    DocType.PO: DocNumberDefaults("PO/", ResetPeriod.YEARLY),
    DocType.GRN: DocNumberDefaults("GRN/", ResetPeriod.MONTHLY),
    DocType.WO: DocNumberDefaults("WO/", ResetPeriod.YEARLY),
    DocType.ADJ: DocNumberDefaults("ADJ/", ResetPeriod.MONTHLY),
    DocType.RET: DocNumberDefaults("RET/", ResetPeriod.MONTHLY),
    DocType.ISSUE: DocNumberDefaults("ISS/", ResetPeriod.MONTHLY),
    DocType.RECEIPT: DocNumberDefaults("RCPT/", ResetPeriod.MONTHLY),
}


@dataclass(frozen=True)
class PeriodKey:
    """
    Identity of a numbering period.

    ``year``/``month`` are None where the reset policy ignores them:
    YEARLY keeps only the year, NEVER keeps neither.
    """

    year: int | None
    month: int | None

    @classmethod
    def for_moment(cls, reset_period: ResetPeriod, moment: datetime) -> PeriodKey:
        if reset_period == ResetPeriod.MONTHLY:
            return cls(year=moment.year, month=moment.month)
        if reset_period == ResetPeriod.YEARLY:
            return cls(year=moment.year, month=None)
        return cls(year=None, month=None)

    def segment(self) -> str:
        """Render the period part of a document number, with trailing slash."""
        if self.year is None:
            return ""
        if self.month is None:
            return f"{self.year}/"
        return f"{self.year}/{self.month:02d}/"


def normalize_prefix(prefix: str) -> str:
    """Strip whitespace and ensure a single trailing slash."""
    cleaned = prefix.strip()
    return cleaned if cleaned.endswith("/") else f"{cleaned}/"


def format_doc_number(prefix: str, period: PeriodKey, number: int, padding: int) -> str:
    """Render ``{prefix}{periodSegment}{zero-padded number}``."""
    return f"{normalize_prefix(prefix)}{period.segment()}{number:0{padding}d}"


def period_prefix(prefix: str, period: PeriodKey) -> str:
    """Everything before the counter; used by the scanning fallback."""
    return f"{normalize_prefix(prefix)}{period.segment()}"


def parse_counter(doc_number: str, prefix: str, period: PeriodKey) -> int | None:
    """Extract the counter from a number issued in ``period``, or None."""
    head = period_prefix(prefix, period)
    if not doc_number.startswith(head):
        return None
    tail = doc_number[len(head):]
    return int(tail) if tail.isdigit() else None


def starts_new_period(
    reset_period: ResetPeriod,
    last_year: int | None,
    last_month: int | None,
    moment: datetime,
) -> bool:
    """
    Whether a counter last advanced in (last_year, last_month) restarts at ``moment``.

    Only the fields the current policy numbers by are compared, so switching
    a type between YEARLY and MONTHLY inside one period keeps counting
    instead of reissuing numbers already handed out.
    """
    if reset_period == ResetPeriod.NEVER:
        return False
    if last_year is None:
        return True
    if reset_period == ResetPeriod.YEARLY:
        return last_year != moment.year
    return (last_year, last_month) != (moment.year, moment.month)
