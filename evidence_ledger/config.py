"""
Configuration module for the evidence ledger.

Centralizes all configuration with environment variable support and
validation.
"""

import os
from pathlib import Path
from typing import Dict, Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("LEDGER_ENV", "dev")  # dev|stage|prod

# Storage
STORE_KIND = os.getenv("LEDGER_STORE", "sqlite")  # sqlite|memory
DB_PATH = os.getenv("LEDGER_DB_PATH", "data/evidence_ledger.db")

# Key derivation
KDF_ITERATIONS = int(os.getenv("LEDGER_KDF_ITERATIONS", "100000"))
KEY_SALT = os.getenv("LEDGER_KEY_SALT", "EVIDENCE_LEDGER_LOCAL_SALT")

# Verify hash links whenever a ledger is unlocked
VERIFY_ON_LOAD = _env_bool("LEDGER_VERIFY_ON_LOAD", "true")

# SHA-256 fingerprint of the master access key (required to unlock evidence)
MASTER_KEY_HASH: Optional[str] = os.getenv("LEDGER_MASTER_KEY_HASH") or None

# Passphrase source for the CLI
PASSPHRASE_ENV = os.getenv("LEDGER_PASSPHRASE_ENV", "LEDGER_PASSPHRASE")

# Logging
LOG_LEVEL = os.getenv("LEDGER_LOG_LEVEL", "INFO")
LOG_JSON = _env_bool("LEDGER_LOG_JSON", "true")
LOG_FILE: Optional[str] = os.getenv("LEDGER_LOG_FILE") or None

# Seconds to wait for pending security-violation records on shutdown
VIOLATION_FLUSH_TIMEOUT = float(os.getenv("LEDGER_VIOLATION_FLUSH_TIMEOUT", "5"))


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Validate configuration values.
    Returns dict of check name -> passed.
    """
    checks = {
        "store_kind": STORE_KIND in ("sqlite", "memory"),
        "kdf_iterations": KDF_ITERATIONS >= 10000,
        "key_salt": bool(KEY_SALT),
        "master_key_hash": MASTER_KEY_HASH is None or len(MASTER_KEY_HASH) == 64,
    }
    if STORE_KIND == "sqlite":
        parent = Path(DB_PATH).parent
        checks["db_directory"] = not parent.exists() or parent.is_dir()
    return checks


# ============================================================
# Feature Flags
# ============================================================

def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return _env_bool("LEDGER_DEBUG", "")
