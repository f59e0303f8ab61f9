"""
Evidence Ledger

Append-only, hash-linked chain of encrypted blocks.

State machine:
    UNINITIALIZED --initialize(passphrase)--> UNLOCKED

In the UNINITIALIZED state every reading or mutating operation raises
UninitializedKeyError. There is no transition back; the session ends with
the lifetime of the Ledger instance.

Appends are serialized by an internal lock: reading the previous block,
encrypting, persisting and pushing happen as one step, so two concurrent
appends can never share an index or a previous block.
"""

import json
import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Union

from . import config
from .canonicalization import canonicalize
from .chain import Block, ChainVerificationReport, genesis_block, verify_blocks
from .cipher import decrypt as decrypt_payload, encrypt as encrypt_payload
from .errors import (
    ChainIntegrityError,
    IntegrityError,
    StoreError,
    UninitializedKeyError,
    UnknownBlockError,
)
from .hashing import record_hash
from .keys import DerivedKey, derive_key
from .logging_config import audit_log
from .records import EventRecord, EventType, TargetedRecord, parse_record, targeted_record
from .store import BlockStore, InMemoryBlockStore
from .util import freshness_marker, now_millis

logger = logging.getLogger(__name__)


class Ledger:
    """
    Tamper-evident encrypted event ledger.

    Usage:
        ledger = Ledger(SqliteBlockStore("data/ledger.db"))
        ledger.initialize(passphrase)

        block = ledger.append({"type": "EVIDENCE_SNAPSHOT", "description": "Gate"})
        ledger.lock_item(block.index, "admin")

        report = ledger.verify_chain()
    """

    def __init__(
        self,
        store: Optional[BlockStore] = None,
        kdf_iterations: int = config.KDF_ITERATIONS,
        salt: Union[str, bytes] = config.KEY_SALT,
        verify_on_load: bool = config.VERIFY_ON_LOAD
    ):
        self._store = store if store is not None else InMemoryBlockStore()
        self._kdf_iterations = kdf_iterations
        self._salt = salt
        self._verify_on_load = verify_on_load
        self._lock = threading.RLock()
        self._key: Optional[DerivedKey] = None
        self._key_epoch = 0
        self._chain: List[Block] = self._store.load_blocks()

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    @property
    def store(self) -> BlockStore:
        return self._store

    @property
    def is_unlocked(self) -> bool:
        return self._key is not None

    @property
    def key_epoch(self) -> int:
        """Incremented every time a key is (re-)established."""
        return self._key_epoch

    def initialize(self, passphrase: str) -> bool:
        """
        Derive the session key and make sure a genesis block exists.

        Re-initializing replaces the key. A wrong passphrase is not detected
        here; it yields a different key and later decryptions fail.

        Raises:
            ValueError: If the passphrase is empty
            ChainIntegrityError: If verify_on_load is set and a link is broken;
                the ledger is left locked and key_epoch is unchanged
        """
        key = derive_key(passphrase, salt=self._salt, iterations=self._kdf_iterations)

        with self._lock:
            if self._chain and self._verify_on_load:
                report = verify_blocks(list(self._chain))
                audit_log.chain_verified(report.valid, report.blocks_checked,
                                         report.broken_index,
                                         report.reason.value if report.reason else None)
                if not report.valid:
                    self._key = None
                    raise ChainIntegrityError(report)

            if self._key is not None:
                logger.warning("Ledger key re-derived; previous session key discarded")
            self._key = key
            self._key_epoch += 1

            if not self._chain:
                genesis = genesis_block()
                self._store.append(genesis, None)
                self._chain.append(genesis)

            audit_log.key_established(len(self._chain), self._key_epoch)
        return True

    def close(self) -> None:
        """Drop the key and release the store."""
        with self._lock:
            self._key = None
            self._store.close()

    def __enter__(self) -> 'Ledger':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def ensure_unlocked(self) -> None:
        """Raise UninitializedKeyError unless a key is established."""
        self._require_key()

    def _require_key(self) -> DerivedKey:
        key = self._key
        if key is None:
            raise UninitializedKeyError()
        return key

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------

    def append(self, record: Union[EventRecord, Mapping[str, Any]]) -> Block:
        """
        Encrypt a record and link it onto the chain.

        Args:
            record: EventRecord or mapping with a known "type"

        Returns:
            The new Block, including its plaintext data_hash

        Raises:
            UninitializedKeyError: If no key is established
            UnknownBlockError: If a lock, unlock or tombstone targets no existing item
            ValueError: If the record is malformed
        """
        self._require_key()
        typed = parse_record(record)
        payload = typed.to_payload()
        plaintext = canonicalize(payload)
        data_hash = record_hash(plaintext)

        with self._lock:
            key = self._require_key()
            if isinstance(typed, TargetedRecord) and typed.target_index >= len(self._chain):
                raise UnknownBlockError(typed.target_index,
                                        f"Cannot target block {typed.target_index!r}")
            previous = self._chain[-1]
            blob = encrypt_payload(key, plaintext)
            timestamp = now_millis()
            block = Block(
                index=previous.index + 1,
                previous_hash=previous.hash(),
                timestamp=timestamp,
                data_hash=data_hash,
                signature=freshness_marker(timestamp),
            )
            self._store.append(block, blob)
            self._chain.append(block)

        audit_log.block_appended(block.index, block.data_hash, payload["type"])
        return block

    def lock_item(self, index: int, user: str) -> bool:
        """Append a LOCK_EVIDENCE record for a block."""
        return self._append_targeted(EventType.LOCK_EVIDENCE, index, user)

    def unlock_item(self, index: int, user: str) -> bool:
        """Append an UNLOCK_EVIDENCE record for a block."""
        return self._append_targeted(EventType.UNLOCK_EVIDENCE, index, user)

    def delete_item(self, index: int, user: str) -> bool:
        """Append a TOMBSTONE record for a block. Nothing is erased."""
        return self._append_targeted(EventType.TOMBSTONE, index, user)

    def _append_targeted(self, record_type: EventType, index: int, user: str) -> bool:
        self._require_key()
        if not isinstance(index, int) or isinstance(index, bool) or not 0 < index < self.chain_length():
            raise UnknownBlockError(index, f"Cannot target block {index!r}")
        self.append(targeted_record(record_type, index, user))
        return True

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    def open_block(self, index: int) -> Dict[str, Any]:
        """
        Decrypt one block strictly.

        Raises:
            UninitializedKeyError: If no key is established
            UnknownBlockError: If there is no payload for index
            IntegrityError: If authentication fails
            ValueError: If the plaintext is not a JSON object
        """
        key = self._require_key()
        blob = self._store.get_payload(index)
        if blob is None:
            raise UnknownBlockError(index)

        plaintext = decrypt_payload(key, blob)
        record = json.loads(plaintext.decode('utf-8'))
        if not isinstance(record, dict):
            raise ValueError(f"Block {index} payload is not a record")
        return record

    def decrypt(self, index: int) -> Optional[Dict[str, Any]]:
        """
        Decrypt one block, returning None on any failure.

        The failure is logged, not raised, so a single corrupted block does
        not hide the rest of the evidence. Use open_block() to see why.

        Raises:
            UninitializedKeyError: If no key is established
        """
        self._require_key()
        try:
            return self.open_block(index)
        except (UnknownBlockError, IntegrityError, StoreError, ValueError) as e:
            audit_log.decrypt_failed(index, type(e).__name__)
            return None

    def blocks(self) -> List[Block]:
        """Snapshot of the chain metadata."""
        with self._lock:
            return list(self._chain)

    def block(self, index: int) -> Block:
        with self._lock:
            if not 0 <= index < len(self._chain):
                raise UnknownBlockError(index)
            return self._chain[index]

    def chain_length(self) -> int:
        with self._lock:
            return len(self._chain)

    def storage_bytes_used(self) -> int:
        return self._store.bytes_used()

    # ------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------

    def verify_chain(self, check_payloads: bool = False) -> ChainVerificationReport:
        """
        Walk every block and report the first broken link.

        Link checks need no key. With check_payloads, every payload is also
        decrypted and compared against its data_hash (requires the key).
        """
        hasher = None
        if check_payloads:
            key = self._require_key()

            def hasher(index: int) -> str:
                blob = self._store.get_payload(index)
                if blob is None:
                    raise KeyError(index)
                return record_hash(decrypt_payload(key, blob))

        report = verify_blocks(self.blocks(), hasher)
        audit_log.chain_verified(report.valid, report.blocks_checked,
                                 report.broken_index,
                                 report.reason.value if report.reason else None)
        return report
