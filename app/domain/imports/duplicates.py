"""Fingerprinting and duplicate classification for statement entries."""
from __future__ import annotations

import hashlib
import re
import unicodedata
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Set

from app.domain.imports.parsers.base import StatementEntry
from app.domain.imports.schemas import DuplicateStrategy

CENTS = Decimal("0.01")


class DuplicateOutcome(str, Enum):
    NEW = "NEW"
    DUPLICATE_SKIP = "DUPLICATE_SKIP"
    DUPLICATE_IMPORT = "DUPLICATE_IMPORT"
    DUPLICATE_FLAG = "DUPLICATE_FLAG"


def normalize_description(value: str) -> str:
    """Lower-case, accent-free, whitespace-collapsed form used for matching."""
    normalized = unicodedata.normalize("NFKD", value or "")
    normalized = normalized.encode("ASCII", "ignore").decode("ASCII")
    return re.sub(r"\s+", " ", normalized.strip()).lower()


def compute_fingerprint(user_id: int, entry: StatementEntry) -> str:
    """Return the SHA-256 key for an entry.

    The bank's own reference wins when present; otherwise the key is built
    from the posting day, the signed amount and the description.
    """
    if entry.external_id:
        payload = f"ext|{user_id}|{entry.external_id.strip()}"
    else:
        amount = entry.amount.quantize(CENTS, rounding=ROUND_HALF_UP)
        payload = f"{user_id}|{entry.date.date().isoformat()}|{amount}|{normalize_description(entry.description)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class DuplicateDetector:
    """Classify fingerprints for one import call.

    Keeps the set of fingerprints accepted earlier in the same file; the
    instance must not outlive the call.
    """

    def __init__(self, strategy: DuplicateStrategy) -> None:
        self.strategy = strategy
        self._seen: Set[str] = set()

    def classify(self, fingerprint: str, persisted: bool) -> DuplicateOutcome:
        """``persisted`` tells whether the user already owns a transaction with this fingerprint."""
        if not persisted and fingerprint not in self._seen:
            # Marked before persistence so later lines match even if the save fails.
            self._seen.add(fingerprint)
            return DuplicateOutcome.NEW

        if self.strategy == DuplicateStrategy.SKIP:
            return DuplicateOutcome.DUPLICATE_SKIP
        if self.strategy == DuplicateStrategy.FLAG:
            return DuplicateOutcome.DUPLICATE_FLAG
        return DuplicateOutcome.DUPLICATE_IMPORT

    def seen_in_batch(self, fingerprint: str) -> bool:
        return fingerprint in self._seen


__all__ = ["DuplicateDetector", "DuplicateOutcome", "compute_fingerprint", "normalize_description"]
