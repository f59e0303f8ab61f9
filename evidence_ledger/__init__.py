"""
Evidence Ledger

Version: 1.0.0

A zero-trust input gate in front of a tamper-evident, encrypted,
hash-chained event ledger.

- Every externally supplied string is canonicalized, scanned for attack
  signatures and checked against an allowlist schema before it may touch
  ledger state. Rejections are recorded as SECURITY_VIOLATION blocks.
- Every record is encrypted with a passphrase-derived key and linked to its
  predecessor by hash. Nothing is ever updated or removed; lock, unlock and
  delete are themselves appended records.
- The visible item set is a projection, rebuilt by replaying the chain.

Usage:
    from evidence_ledger import (
        Ledger,
        SqliteBlockStore,
        EvidenceVault,
        EventType,
    )

    ledger = Ledger(SqliteBlockStore("data/evidence_ledger.db"))
    ledger.initialize(passphrase)

    vault = EvidenceVault(ledger)
    block = vault.add_evidence(EventType.EVIDENCE_SNAPSHOT, "Front gate",
                               camera_id="CAM-01")
    vault.lock([block.index], "admin")

    for item in vault.items():
        print(item.index, item.type, item.locked)

    report = ledger.verify_chain(check_payloads=True)
"""

__version__ = "1.0.0"

# Errors
from .errors import (
    EvidenceLedgerError,
    SecurityException,
    IntegrityError,
    LedgerError,
    StoreError,
    UninitializedKeyError,
    UnknownBlockError,
    ChainIntegrityError,
    EvidenceLockedError,
)

# Canonicalization and hashing
from .canonicalization import canonicalize, canonicalize_text
from .hashing import sha256_hex, block_hash, record_hash

# Validation gate
from .signatures import find_attack_signature, scan
from .validation import (
    InputValidator,
    ValidationContext,
    matches_schema,
    validate,
)

# Keys and cipher
from .keys import DerivedKey, derive_key
from .cipher import encrypt, decrypt

# Records
from .records import (
    EventType,
    Severity,
    EventRecord,
    LockEvidenceRecord,
    UnlockEvidenceRecord,
    TombstoneRecord,
    SecurityViolationRecord,
    parse_record,
)

# Chain and storage
from .chain import (
    Block,
    BreakReason,
    ChainVerificationReport,
    genesis_block,
    verify_blocks,
)
from .store import (
    BlockStore,
    InMemoryBlockStore,
    SqliteBlockStore,
    get_block_store,
)

# Ledger and projections
from .ledger import Ledger
from .projector import (
    Projector,
    CachedProjector,
    Projection,
    ProjectedItem,
    CorruptedBlock,
)
from .vault import EvidenceVault, master_key_fingerprint


__all__ = [
    # Version
    "__version__",

    # Errors
    "EvidenceLedgerError",
    "SecurityException",
    "IntegrityError",
    "LedgerError",
    "StoreError",
    "UninitializedKeyError",
    "UnknownBlockError",
    "ChainIntegrityError",
    "EvidenceLockedError",

    # Canonicalization
    "canonicalize",
    "canonicalize_text",

    # Hashing
    "sha256_hex",
    "block_hash",
    "record_hash",

    # Validation
    "find_attack_signature",
    "scan",
    "InputValidator",
    "ValidationContext",
    "matches_schema",
    "validate",

    # Keys and cipher
    "DerivedKey",
    "derive_key",
    "encrypt",
    "decrypt",

    # Records
    "EventType",
    "Severity",
    "EventRecord",
    "LockEvidenceRecord",
    "UnlockEvidenceRecord",
    "TombstoneRecord",
    "SecurityViolationRecord",
    "parse_record",

    # Chain and storage
    "Block",
    "BreakReason",
    "ChainVerificationReport",
    "genesis_block",
    "verify_blocks",
    "BlockStore",
    "InMemoryBlockStore",
    "SqliteBlockStore",
    "get_block_store",

    # Ledger
    "Ledger",
    "Projector",
    "CachedProjector",
    "Projection",
    "ProjectedItem",
    "CorruptedBlock",
    "EvidenceVault",
    "master_key_fingerprint",
]
