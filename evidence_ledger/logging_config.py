"""
Logging configuration for the evidence ledger.

Provides structured JSON logging for audit trails and debugging.
Key material, passphrases and rejected raw inputs are never logged.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable for correlating log lines of one logical operation
correlation_id_var: ContextVar[str] = ContextVar('correlation_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format suitable for
    log aggregation systems.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data)


class AuditLogger:
    """
    Specialized logger for ledger and validation events.
    """

    def __init__(self, name: str = "evidence_ledger.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return

        extra = {
            "event_type": event_type,
            "correlation_id": correlation_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def key_established(self, chain_length: int, key_epoch: int) -> None:
        self._log(
            logging.INFO,
            "KEY_ESTABLISHED",
            chain_length=chain_length,
            key_epoch=key_epoch,
            message="Ledger unlocked"
        )

    def block_appended(self, index: int, data_hash: str, record_type: str) -> None:
        self._log(
            logging.INFO,
            "BLOCK_APPENDED",
            index=index,
            data_hash=data_hash,
            record_type=record_type,
            message=f"Block {index} appended ({record_type})"
        )

    def decrypt_failed(self, index: int, reason: str) -> None:
        self._log(
            logging.ERROR,
            "DECRYPT_FAILED",
            index=index,
            reason=reason,
            message=f"Decryption failed for block {index}"
        )

    def security_violation(self, field_name: str, context: str, stage: str) -> None:
        """Log a rejected input. The value itself is never passed here."""
        self._log(
            logging.WARNING,
            "SECURITY_VIOLATION",
            field_name=field_name,
            context=context,
            stage=stage,
            message=f"Blocked input for {field_name} ({context})"
        )

    def violation_record_failed(self, field_name: str, context: str, error: str) -> None:
        self._log(
            logging.ERROR,
            "VIOLATION_RECORD_FAILED",
            field_name=field_name,
            context=context,
            error=error,
            message="Failed to record security violation"
        )

    def chain_verified(self, valid: bool, blocks_checked: int,
                       broken_index: Optional[int] = None, reason: Optional[str] = None) -> None:
        level = logging.INFO if valid else logging.CRITICAL
        self._log(
            level,
            "CHAIN_VERIFIED",
            valid=valid,
            blocks_checked=blocks_checked,
            broken_index=broken_index,
            reason=reason,
            message="Chain intact" if valid else f"Chain broken at block {broken_index}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """
    Set the correlation ID for the current context.

    Returns:
        The correlation ID that was set
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    correlation_id_var.set(correlation_id)
    return correlation_id


audit_log = AuditLogger()
