"""
Event Records

The plaintext payload of every ledger block is one event record, a tagged
variant discriminated by ``type``. Records are self-contained and refer to
other items only by block index.

Unknown record types are rejected; unknown extra fields are preserved.
"""

from enum import Enum
from typing import Any, Dict, Literal, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field

from .util import now_millis


class EventType(str, Enum):
    """Known record types."""
    # Evidence
    EVIDENCE_SNAPSHOT = "EVIDENCE_SNAPSHOT"
    EVIDENCE_SIMULATION = "EVIDENCE_SIMULATION"
    VIDEO_CLIP = "VIDEO_CLIP"

    # Audit and configuration
    AUTH = "AUTH"
    MOTION = "MOTION"
    WIFI = "WIFI"
    SYSTEM = "SYSTEM"
    EXPORT = "EXPORT"
    STORAGE = "STORAGE"
    CONFIG = "CONFIG"
    SHARE_LINK = "SHARE_LINK"
    SCAN_NETWORK = "SCAN_NETWORK"
    INCIDENT = "INCIDENT"
    CONSENT_CHANGE = "CONSENT_CHANGE"

    # Semantic records folded by the projector
    LOCK_EVIDENCE = "LOCK_EVIDENCE"
    UNLOCK_EVIDENCE = "UNLOCK_EVIDENCE"
    TOMBSTONE = "TOMBSTONE"

    SECURITY_VIOLATION = "SECURITY_VIOLATION"


MEDIA_TYPES = frozenset({
    EventType.EVIDENCE_SNAPSHOT.value,
    EventType.EVIDENCE_SIMULATION.value,
    EventType.VIDEO_CLIP.value,
})


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class EventRecord(BaseModel):
    """Generic evidence or audit record."""

    model_config = ConfigDict(extra="allow", use_enum_values=True)

    type: EventType
    description: str = ""
    severity: Severity = Severity.INFO
    timestamp: int = Field(default_factory=now_millis)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    camera_id: Optional[str] = None
    location: Optional[str] = None
    data: Optional[str] = None  # base64 media

    def to_payload(self) -> Dict[str, Any]:
        """Plain JSON-compatible dict, the form that is encrypted."""
        return self.model_dump(mode="json", exclude_none=True)


class TargetedRecord(EventRecord):
    """A record acting on another block."""
    target_index: int = Field(ge=1)
    user: str = Field(min_length=1)


class LockEvidenceRecord(TargetedRecord):
    type: Literal["LOCK_EVIDENCE"] = "LOCK_EVIDENCE"


class UnlockEvidenceRecord(TargetedRecord):
    type: Literal["UNLOCK_EVIDENCE"] = "UNLOCK_EVIDENCE"


class TombstoneRecord(TargetedRecord):
    type: Literal["TOMBSTONE"] = "TOMBSTONE"


class SecurityViolationRecord(EventRecord):
    """A rejected input, with the offending value already masked."""
    type: Literal["SECURITY_VIOLATION"] = "SECURITY_VIOLATION"
    severity: Severity = Severity.CRITICAL
    payload_fragment: str
    validation_schema: str
    field_name: str = "Input"


RECORD_CLASSES: Dict[str, Type[EventRecord]] = {
    EventType.LOCK_EVIDENCE.value: LockEvidenceRecord,
    EventType.UNLOCK_EVIDENCE.value: UnlockEvidenceRecord,
    EventType.TOMBSTONE.value: TombstoneRecord,
    EventType.SECURITY_VIOLATION.value: SecurityViolationRecord,
}

# Types only the ledger and the validation gate may write
SEMANTIC_TYPES = frozenset(RECORD_CLASSES)


def parse_record(data: Union[EventRecord, Mapping[str, Any]]) -> EventRecord:
    """
    Build the typed record for a mapping, or re-check a generic record
    whose type belongs to one of the typed variants.

    Raises:
        ValueError: If the type is unknown or a field is invalid
            (pydantic.ValidationError is a ValueError)
    """
    if isinstance(data, EventRecord):
        model = RECORD_CLASSES.get(getattr(data.type, "value", data.type))
        if model is None or isinstance(data, model):
            return data
        return model.model_validate(data.model_dump())
    if not isinstance(data, Mapping):
        raise ValueError("Record must be a mapping")

    record_type = data.get("type")
    model = EventRecord
    if isinstance(record_type, str):
        model = RECORD_CLASSES.get(record_type, EventRecord)
    return model.model_validate(dict(data))


def targeted_record(record_type: EventType, target_index: int, user: str,
                    description: Optional[str] = None) -> TargetedRecord:
    """Create a lock, unlock or tombstone record."""
    model = RECORD_CLASSES[record_type.value]
    if description is None:
        verb = {
            EventType.LOCK_EVIDENCE: "locked",
            EventType.UNLOCK_EVIDENCE: "unlocked",
            EventType.TOMBSTONE: "deleted",
        }[record_type]
        description = f"Item {target_index} {verb} by {user}"
    return model(target_index=target_index, user=user, description=description)
