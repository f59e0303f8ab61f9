"""
Zero-Trust Input Validation Gate

Every externally supplied string passes through InputValidator.validate()
before it may influence ledger state.

Order of operations:
1. Canonicalize (NFKC, strip control characters, trim)
2. Attack signature scan (skipped for PASSWORD)
3. Empty check (only SAFE_TEXT may be empty)
4. Context-specific allowlist schema

Every rejection by step 2 or 4 is recorded into the ledger as a
SECURITY_VIOLATION with the value masked. Recording runs on a background
worker and can never block, replace or suppress the caller's exception.
"""

import ipaddress
import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from enum import Enum
from typing import Optional, Set, Union

from . import config
from .canonicalization import canonicalize_text
from .errors import SecurityException
from .logging_config import audit_log
from .records import SecurityViolationRecord
from .signatures import scan
from .util import mask_value


class ValidationContext(str, Enum):
    """Schemas an input can be validated against."""
    IP = "IP"
    PORT = "PORT"
    SAFE_TEXT = "SAFE_TEXT"
    FILENAME = "FILENAME"
    MASTER_KEY = "MASTER_KEY"
    SERIAL = "SERIAL"
    PASSWORD = "PASSWORD"


# ============================================================
# Allowlist Schemas
# ============================================================

# Every pattern is used with fullmatch() and contains only bounded or
# single-level repetition. Character classes are spelled out in ASCII
# because \d and \w match non-ASCII digits and letters.
_OCTET = r'(?:25[0-5]|2[0-4][0-9]|1[0-9][0-9]|[1-9]?[0-9])'

PATTERNS = {
    # Dotted quad, no leading zeros (no octal interpretation)
    ValidationContext.IP: re.compile(r'(?:' + _OCTET + r'\.){3}' + _OCTET),
    ValidationContext.PORT: re.compile(r'[0-9]+'),
    ValidationContext.SAFE_TEXT: re.compile(r'[a-zA-Z0-9 _.\-]+'),
    ValidationContext.FILENAME: re.compile(r'[a-zA-Z0-9_\-]{1,255}'),
    ValidationContext.MASTER_KEY: re.compile(r'[A-F0-9]{4}(?:-[A-F0-9]{4}){3}'),
    ValidationContext.SERIAL: re.compile(r'[A-Z0-9\-]+'),
    # Printable ASCII only, prevents unicode smuggling in secrets
    ValidationContext.PASSWORD: re.compile(r'[\x20-\x7e]{8,}'),
}

PRIVATE_NETWORKS = (
    ipaddress.IPv4Network("10.0.0.0/8"),
    ipaddress.IPv4Network("172.16.0.0/12"),
    ipaddress.IPv4Network("192.168.0.0/16"),
)

RESERVED_ADDRESSES = frozenset({"0.0.0.0", "255.255.255.255"})

MIN_PORT = 1
MAX_PORT = 65535

# Contexts whose rejected values are never written, even truncated
SECRET_CONTEXTS = frozenset({ValidationContext.PASSWORD, ValidationContext.MASTER_KEY})

UPPERCASE_CONTEXTS = frozenset({ValidationContext.MASTER_KEY, ValidationContext.SERIAL})

EMPTY_ALLOWED = frozenset({ValidationContext.SAFE_TEXT})


def _is_private_ipv4(value: str) -> bool:
    if value in RESERVED_ADDRESSES:
        return False
    address = ipaddress.IPv4Address(value)
    return any(address in network for network in PRIVATE_NETWORKS)


def matches_schema(value: str, context: ValidationContext) -> bool:
    """
    Check canonical text against the allowlist schema of a context.
    """
    if context in UPPERCASE_CONTEXTS:
        if not value.isascii():
            return False
        value = value.upper()

    if not PATTERNS[context].fullmatch(value):
        return False

    if context == ValidationContext.IP:
        return _is_private_ipv4(value)
    if context == ValidationContext.PORT:
        digits = value.lstrip('0')
        # Leading zeros are allowed; cap the length before int()
        return len(digits) <= len(str(MAX_PORT)) and MIN_PORT <= int(digits or '0') <= MAX_PORT
    return True


class InputValidator:
    """
    The validation gate.

    Args:
        ledger: Ledger that receives SECURITY_VIOLATION records (optional)
        background: Record violations on a worker thread (default True)

    Usage:
        validator = InputValidator(ledger)
        port = validator.validate(raw_port, ValidationContext.PORT, "Target Port")
    """

    def __init__(self, ledger=None, background: bool = True):
        self._ledger = ledger
        self._background = background
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    def validate(
        self,
        value: Optional[str],
        context: Union[ValidationContext, str],
        field_name: str = "Input"
    ) -> str:
        """
        Validate an untrusted string.

        Returns:
            The canonical value (upper-cased for MASTER_KEY and SERIAL)

        Raises:
            SecurityException: On any rejection. The message never contains
                the rejected value.
        """
        try:
            context = ValidationContext(context)
        except ValueError:
            raise SecurityException(
                f"Unknown validation context for {field_name}.", field_name=field_name
            ) from None

        if value is not None and not isinstance(value, str):
            raise SecurityException(
                f"{field_name} must be text.", field_name=field_name, context=context.value
            )

        clean = canonicalize_text(value)

        try:
            scan(clean, context.value, field_name)
        except SecurityException:
            self._report(clean, context, field_name, stage="attack_signature")
            raise

        if not clean:
            if context in EMPTY_ALLOWED:
                return clean
            raise SecurityException(
                f"{field_name} cannot be empty or whitespace only.",
                field_name=field_name,
                context=context.value,
            )

        if not matches_schema(clean, context):
            self._report(clean, context, field_name, stage="schema")
            raise SecurityException(
                f"Security policy violation: {field_name} format is invalid "
                "or contains prohibited characters.",
                field_name=field_name,
                context=context.value,
            )

        if context in UPPERCASE_CONTEXTS:
            return clean.upper()
        return clean

    # ------------------------------------------------------------
    # Violation recording
    # ------------------------------------------------------------

    def _report(self, clean: str, context: ValidationContext, field_name: str, stage: str) -> None:
        audit_log.security_violation(field_name, context.value, stage)
        if self._ledger is None:
            return

        record = SecurityViolationRecord(
            description=f"Injection blocked ({context.value}): {field_name}",
            payload_fragment=mask_value(clean, fully_masked=context in SECRET_CONTEXTS),
            validation_schema=context.value,
            field_name=field_name,
            metadata={"stage": stage},
        )

        if not self._background:
            self._record(record)
            return

        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="violation-recorder"
                )
            future = self._executor.submit(self._record, record)
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _record(self, record: SecurityViolationRecord) -> None:
        # Best effort: a failure here must never reach the rejected caller
        try:
            self._ledger.append(record)
        except Exception as e:
            audit_log.violation_record_failed(record.field_name, record.validation_schema,
                                              type(e).__name__)

    def flush(self, timeout: Optional[float] = config.VIOLATION_FLUSH_TIMEOUT) -> bool:
        """
        Wait for pending violation records.

        Returns:
            True if nothing is pending any more
        """
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self) -> None:
        """Flush and stop the recorder thread."""
        self.flush()
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def __enter__(self) -> 'InputValidator':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def validate(
    value: Optional[str],
    context: Union[ValidationContext, str],
    field_name: str = "Input"
) -> str:
    """
    Validate without recording violations into a ledger.

    Rejections are still logged through the audit logger.
    """
    return InputValidator().validate(value, context, field_name)
