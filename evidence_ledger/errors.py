"""
Evidence Ledger Error Taxonomy

Every failure raised by the validation gate, the cipher wrapper and the
ledger derives from EvidenceLedgerError so collaborators can fail closed
with a single except clause.

Messages never carry the offending raw input, key material or plaintext.
"""

from typing import List, Optional


class EvidenceLedgerError(Exception):
    """Base class for all evidence ledger errors."""


class SecurityException(EvidenceLedgerError):
    """
    Raised when the validation gate rejects an input.

    Only the field name, the validation context and a sanitized description
    are kept. The rejected value itself is never attached.
    """

    def __init__(self, message: str, field_name: str = "Input", context: Optional[str] = None):
        self.field_name = field_name
        self.context = context
        self.message = message
        super().__init__(message)


class IntegrityError(EvidenceLedgerError):
    """Authenticated decryption failed (wrong key, corrupted nonce or ciphertext)."""


class LedgerError(EvidenceLedgerError):
    """Base class for ledger state errors."""


class UninitializedKeyError(LedgerError):
    """An operation was attempted before a key was established."""

    def __init__(self, message: str = "Storage locked: encryption key not initialized"):
        super().__init__(message)


class StoreError(LedgerError):
    """The block store could not be read."""


class UnknownBlockError(LedgerError, KeyError):
    """A block index does not exist in the chain or has no stored payload."""

    def __init__(self, index: int, message: Optional[str] = None):
        self.index = index
        super().__init__(message or f"Unknown block index: {index}")

    def __str__(self) -> str:
        return self.args[0]


class ChainIntegrityError(LedgerError):
    """The hash chain failed verification."""

    def __init__(self, report):
        self.report = report
        super().__init__(
            f"Chain verification failed at block {report.broken_index}: {report.reason}"
        )


class EvidenceLockedError(LedgerError):
    """A destructive action targeted items that are locked as evidence."""

    def __init__(self, locked_indices: List[int]):
        self.locked_indices = sorted(locked_indices)
        super().__init__(
            f"{len(self.locked_indices)} item(s) are locked as evidence and cannot be deleted. "
            "Unlock them first."
        )
