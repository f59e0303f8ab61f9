#!/usr/bin/env python3
"""
Evidence Ledger Command Line Interface

Usage:
    evidence-ledger append --type <type> --description <text> [--meta k=v]...
    evidence-ledger list [--json]
    evidence-ledger lock <index> --user <name>
    evidence-ledger unlock <index> --user <name> --master-key <key>
    evidence-ledger delete <index> --user <name>
    evidence-ledger verify [--payloads]
    evidence-ledger validate <value> --context <context>
    evidence-ledger stats

The passphrase is read from the environment variable named by
--passphrase-env, or prompted for when it is unset.
"""

import argparse
import getpass
import json
import os
import sys
from typing import Dict, List, Optional

from . import config
from .errors import (
    ChainIntegrityError,
    EvidenceLedgerError,
    EvidenceLockedError,
    SecurityException,
)
from .ledger import Ledger
from .logging_config import configure_logging, set_correlation_id
from .records import SEMANTIC_TYPES, EventType, Severity
from .store import get_block_store
from .util import b64e
from .validation import ValidationContext, validate
from .vault import EvidenceVault

EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_USAGE = 2


def read_passphrase(env_var: str) -> str:
    """Passphrase from the environment, else an interactive prompt."""
    passphrase = os.environ.get(env_var)
    if passphrase:
        return passphrase
    return getpass.getpass("Ledger passphrase: ")


def parse_meta(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Turn repeated k=v options into a dict."""
    meta = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Metadata must be key=value, got {pair!r}")
        meta[key] = value
    return meta


def open_ledger(args, unlock: bool = True, verify_on_load: bool = config.VERIFY_ON_LOAD) -> Ledger:
    """Open the ledger database named by --db and optionally unlock it."""
    ledger = Ledger(get_block_store(config.STORE_KIND, args.db), verify_on_load=verify_on_load)
    if unlock:
        try:
            ledger.initialize(read_passphrase(args.passphrase_env))
        except Exception:
            ledger.close()
            raise
    return ledger


def open_vault(ledger: Ledger) -> EvidenceVault:
    return EvidenceVault(ledger, master_key_hash=config.MASTER_KEY_HASH)


def cmd_append(args):
    """Append an evidence item or audit entry."""
    try:
        meta = parse_meta(args.meta)
    except ValueError as e:
        print(f"✗ {e}", file=sys.stderr)
        return EXIT_USAGE

    data = None
    if args.data_file:
        with open(args.data_file, 'rb') as f:
            data = b64e(f.read())

    with open_ledger(args) as ledger, open_vault(ledger) as vault:
        block = vault.add_evidence(
            EventType(args.type),
            args.description,
            camera_id=args.camera,
            location=args.location,
            data=data,
            metadata=meta,
            severity=Severity(args.severity),
        )

    print(f"✓ Block {block.index} appended")
    print(f"  data_hash: {block.data_hash}")
    return EXIT_OK


def cmd_list(args):
    """List visible items, newest first."""
    with open_ledger(args) as ledger, open_vault(ledger) as vault:
        projection = vault.projector.replay()

    if args.json:
        print(json.dumps([item.to_dict() for item in projection.items], indent=2))
    else:
        for item in projection.items:
            flag = "LOCKED" if item.locked else "      "
            print(f"{item.index:>6}  {flag}  {item.type:<20} {item.get('description', '')}")

    if projection.corrupted:
        print(f"\n✗ {len(projection.corrupted)} block(s) could not be decrypted:", file=sys.stderr)
        for corrupted in projection.corrupted:
            print(f"  - block {corrupted.index}: {corrupted.reason}", file=sys.stderr)
    return EXIT_OK


def cmd_lock(args):
    """Lock an item as evidence."""
    with open_ledger(args) as ledger, open_vault(ledger) as vault:
        locked = vault.lock([args.index], args.user)

    if not locked:
        print(f"✗ Item {args.index} is not visible or already locked", file=sys.stderr)
        return EXIT_REJECTED
    print(f"✓ Item {args.index} locked")
    return EXIT_OK


def cmd_unlock(args):
    """Unlock an item with the master access key."""
    with open_ledger(args) as ledger, open_vault(ledger) as vault:
        unlocked = vault.unlock([args.index], args.user, args.master_key)

    if not unlocked:
        print(f"✗ Item {args.index} is not visible or not locked", file=sys.stderr)
        return EXIT_REJECTED
    print(f"✓ Item {args.index} unlocked")
    return EXIT_OK


def cmd_delete(args):
    """Tombstone an item."""
    with open_ledger(args) as ledger, open_vault(ledger) as vault:
        deleted = vault.delete([args.index], args.user)

    if not deleted:
        print(f"✗ Item {args.index} is not visible", file=sys.stderr)
        return EXIT_REJECTED
    print(f"✓ Item {args.index} deleted")
    return EXIT_OK


def cmd_verify(args):
    """Verify the hash chain (and optionally every payload)."""
    with open_ledger(args, unlock=args.payloads, verify_on_load=False) as ledger:
        report = ledger.verify_chain(check_payloads=args.payloads)

    if report.valid:
        print(f"✓ VALID: {report.blocks_checked} block(s) checked")
        return EXIT_OK

    print(f"✗ INVALID: {report.reason.value if report.reason else 'UNKNOWN'}")
    print(json.dumps(report.to_dict(), indent=2))
    return EXIT_REJECTED


def cmd_validate(args):
    """Run a value through the validation gate."""
    print(validate(args.value, args.context, args.field))
    return EXIT_OK


def cmd_stats(args):
    """Show chain and storage statistics."""
    with open_ledger(args) as ledger, open_vault(ledger) as vault:
        items = vault.items()
        stats = {
            "chain_length": ledger.chain_length(),
            "storage_bytes_used": ledger.storage_bytes_used(),
            "visible_items": len(items),
            "locked_items": sum(1 for item in items if item.locked),
        }
    print(json.dumps(stats, indent=2))
    return EXIT_OK


COMMANDS = {
    "append": cmd_append,
    "list": cmd_list,
    "lock": cmd_lock,
    "unlock": cmd_unlock,
    "delete": cmd_delete,
    "verify": cmd_verify,
    "validate": cmd_validate,
    "stats": cmd_stats,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="evidence-ledger",
        description="Tamper-evident encrypted evidence ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  evidence-ledger append --type EVIDENCE_SNAPSHOT --description "Front gate" --camera CAM-01
  evidence-ledger lock 1 --user admin
  evidence-ledger verify --payloads
  evidence-ledger validate 192.168.1.20 --context IP
        """
    )
    parser.add_argument("--db", default=config.DB_PATH, help="Ledger database file")
    parser.add_argument("--passphrase-env", default=config.PASSPHRASE_ENV,
                        help="Environment variable holding the passphrase")
    parser.add_argument("--log-level", default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Log level")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # append
    append_parser = subparsers.add_parser("append", help="Append an evidence item")
    append_parser.add_argument("-t", "--type", required=True,
                               choices=[t.value for t in EventType if t.value not in SEMANTIC_TYPES],
                               help="Record type")
    append_parser.add_argument("-d", "--description", required=True, help="Description")
    append_parser.add_argument("-s", "--severity", default=Severity.INFO.value,
                               choices=[s.value for s in Severity], help="Severity")
    append_parser.add_argument("--camera", help="Camera identifier")
    append_parser.add_argument("--location", help="Location label")
    append_parser.add_argument("--data-file", help="Media file to attach (stored base64)")
    append_parser.add_argument("-m", "--meta", action="append", help="Metadata key=value")

    # list
    list_parser = subparsers.add_parser("list", help="List visible items")
    list_parser.add_argument("--json", action="store_true", help="Output JSON")

    # lock / unlock / delete
    lock_parser = subparsers.add_parser("lock", help="Lock an item as evidence")
    lock_parser.add_argument("index", type=int, help="Block index")
    lock_parser.add_argument("-u", "--user", required=True, help="Operator name")

    unlock_parser = subparsers.add_parser("unlock", help="Unlock an item")
    unlock_parser.add_argument("index", type=int, help="Block index")
    unlock_parser.add_argument("-u", "--user", required=True, help="Operator name")
    unlock_parser.add_argument("-k", "--master-key", required=True, help="Master access key")

    delete_parser = subparsers.add_parser("delete", help="Delete (tombstone) an item")
    delete_parser.add_argument("index", type=int, help="Block index")
    delete_parser.add_argument("-u", "--user", required=True, help="Operator name")

    # verify
    verify_parser = subparsers.add_parser("verify", help="Verify the hash chain")
    verify_parser.add_argument("--payloads", action="store_true",
                               help="Also decrypt and re-hash every payload")

    # validate
    validate_parser = subparsers.add_parser("validate", help="Validate a value")
    validate_parser.add_argument("value", help="Untrusted value")
    validate_parser.add_argument("-c", "--context", required=True,
                                 choices=[c.value for c in ValidationContext], help="Schema")
    validate_parser.add_argument("-f", "--field", default="Input", help="Field label")

    # stats
    subparsers.add_parser("stats", help="Show chain statistics")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = args.log_level or ("DEBUG" if config.is_debug() else config.LOG_LEVEL)
    configure_logging(level=level, json_format=config.LOG_JSON, log_file=config.LOG_FILE)
    set_correlation_id()

    failed = [name for name, passed in config.validate_config().items() if not passed]
    if failed:
        print(f"✗ Invalid configuration: {', '.join(failed)}", file=sys.stderr)
        return EXIT_USAGE

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        return EXIT_USAGE

    try:
        return command(args)
    except EvidenceLockedError as e:
        print(f"✗ {e}", file=sys.stderr)
        print(f"  Locked: {e.locked_indices}", file=sys.stderr)
        return EXIT_REJECTED
    except SecurityException as e:
        print(f"✗ REJECTED: {e}", file=sys.stderr)
        return EXIT_REJECTED
    except ChainIntegrityError as e:
        print(f"✗ {e}", file=sys.stderr)
        print(json.dumps(e.report.to_dict(), indent=2), file=sys.stderr)
        return EXIT_REJECTED
    except EvidenceLedgerError as e:
        print(f"✗ {e}", file=sys.stderr)
        return EXIT_REJECTED
    except ValueError as e:
        print(f"✗ {e}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
