"""
Evidence Vault

Policy layer over the ledger for operators managing stored evidence:

- Externally supplied fields pass the validation gate before any append
- Locking only affects visible, currently unlocked items
- Unlocking requires the master access key
- Deleting is refused while any selected item is locked
"""

from typing import Any, Dict, Iterable, List, Optional

from . import config
from .chain import Block
from .errors import EvidenceLockedError, SecurityException
from .hashing import sha256_hex
from .ledger import Ledger
from .projector import CachedProjector, ProjectedItem, Projector
from .records import MEDIA_TYPES, SEMANTIC_TYPES, EventRecord, EventType, Severity
from .util import constant_time_compare
from .validation import InputValidator, ValidationContext

CATEGORY_ALL = "ALL"
CATEGORY_MEDIA = "MEDIA"
CATEGORY_LOGS = "LOGS"


def master_key_fingerprint(master_key: str) -> str:
    """SHA-256 fingerprint of a master access key (trimmed, upper-cased)."""
    return sha256_hex(master_key.strip().upper())


class EvidenceVault:
    """
    Operator-facing evidence management.

    Args:
        ledger: An initialized Ledger
        validator: Gate for external input (default: one recording into ledger)
        master_key_hash: Fingerprint required to unlock evidence
        projector: Read model (default: CachedProjector over ledger)
    """

    def __init__(
        self,
        ledger: Ledger,
        validator: Optional[InputValidator] = None,
        master_key_hash: Optional[str] = config.MASTER_KEY_HASH,
        projector: Optional[Projector] = None
    ):
        self.ledger = ledger
        self.validator = validator or InputValidator(ledger)
        self.master_key_hash = master_key_hash
        self.projector = projector or CachedProjector(ledger)

    def close(self) -> None:
        """Flush pending violation records and stop the validator worker."""
        self.validator.close()

    def __enter__(self) -> 'EvidenceVault':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------

    def record_event(
        self,
        event_type: EventType,
        description: str,
        severity: Severity = Severity.INFO,
        **fields: Any
    ) -> Block:
        """
        Append a system-originated audit entry.

        Raises:
            ValueError: If event_type is a lock, unlock, tombstone or violation type
        """
        _require_plain_type(event_type)
        return self.ledger.append(
            EventRecord(type=event_type, description=description, severity=severity, **fields)
        )

    def add_evidence(
        self,
        event_type: EventType,
        description: str,
        camera_id: Optional[str] = None,
        location: Optional[str] = None,
        data: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        severity: Severity = Severity.INFO
    ) -> Block:
        """
        Store an evidence item.

        Raises:
            SecurityException: If camera_id or location is rejected
            ValueError: If event_type is a lock, unlock, tombstone or violation type
        """
        _require_plain_type(event_type)
        if camera_id is not None:
            camera_id = self.validator.validate(camera_id, ValidationContext.SAFE_TEXT, "Camera ID")
        if location is not None:
            location = self.validator.validate(location, ValidationContext.SAFE_TEXT, "Location")

        return self.ledger.append(EventRecord(
            type=event_type,
            description=description,
            severity=severity,
            camera_id=camera_id or None,
            location=location or None,
            data=data,
            metadata=metadata or {},
        ))

    def lock(self, indices: Iterable[int], user: str) -> List[int]:
        """
        Lock visible, unlocked items as evidence.

        Returns:
            Indices that were locked
        """
        user = self._validate_user(user)
        current = self._visible()
        targets = [i for i in _unique(indices) if i in current and not current[i].locked]
        for index in targets:
            self.ledger.lock_item(index, user)
        return targets

    def unlock(self, indices: Iterable[int], user: str, master_key: str) -> List[int]:
        """
        Unlock locked items after checking the master access key.

        Raises:
            SecurityException: If the key is malformed, not configured or wrong
        """
        user = self._validate_user(user)
        self._check_master_key(master_key, user)

        current = self._visible()
        targets = [i for i in _unique(indices) if i in current and current[i].locked]
        for index in targets:
            self.ledger.unlock_item(index, user)
        return targets

    def delete(self, indices: Iterable[int], user: str) -> List[int]:
        """
        Tombstone visible items.

        Raises:
            EvidenceLockedError: If any selected item is locked
        """
        user = self._validate_user(user)
        selected = _unique(indices)
        current = self._visible()

        locked = [i for i in selected if i in current and current[i].locked]
        if locked:
            raise EvidenceLockedError(locked)

        targets = [i for i in selected if i in current]
        for index in targets:
            self.ledger.delete_item(index, user)
        return targets

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    def items(self) -> List[ProjectedItem]:
        return self.projector.materialize()

    def search(self, text: Optional[str] = None, category: str = CATEGORY_ALL) -> List[ProjectedItem]:
        """
        Filter visible items by free text and category.

        Text matches description, type or camera id, case-insensitively.
        """
        needle = text.lower() if text else None
        results = []
        for item in self.items():
            if needle is not None and not any(
                needle in str(item.get(key, "")).lower()
                for key in ("description", "type", "camera_id")
            ):
                continue
            is_media = item.type in MEDIA_TYPES
            if category == CATEGORY_MEDIA and not is_media:
                continue
            if category == CATEGORY_LOGS and is_media:
                continue
            results.append(item)
        return results

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------

    def _visible(self) -> Dict[int, ProjectedItem]:
        return {item.index: item for item in self.items()}

    def _validate_user(self, user: str) -> str:
        user = self.validator.validate(user, ValidationContext.SAFE_TEXT, "User")
        if not user:
            raise SecurityException("User cannot be empty.", field_name="User")
        return user

    def _check_master_key(self, master_key: str, user: str) -> None:
        master_key = self.validator.validate(master_key, ValidationContext.MASTER_KEY, "Master Key")
        if not self.master_key_hash:
            raise SecurityException("No master key configured; unlocking is disabled.",
                                    field_name="Master Key")
        if not constant_time_compare(master_key_fingerprint(master_key), self.master_key_hash.lower()):
            self.record_event(EventType.AUTH, f"Master key rejected for {user}", Severity.WARNING)
            raise SecurityException("Access denied: invalid master key.", field_name="Master Key")


def _unique(indices: Iterable[int]) -> List[int]:
    seen = []
    for index in indices:
        if index not in seen:
            seen.append(index)
    return seen


def _require_plain_type(event_type: EventType) -> None:
    # Targeted records go through lock/unlock/delete, violations through the validator
    value = getattr(event_type, "value", event_type)
    if value in SEMANTIC_TYPES:
        raise ValueError(f"{value} records cannot be written directly")
