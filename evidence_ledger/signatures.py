"""
Attack Signature Scanner

Fail-closed denylist scan for injection payloads. Runs on canonical text
only, before any schema check.

Design principles:
- Deterministic (fixed signature set, no heuristics)
- Linear time in input length: signatures are literal substrings or an
  ordered pair of word-bounded keywords located by two independent
  searches. No pattern contains a nested or repeated wildcard.
- Fail-closed: a match raises, nothing is sanitized or partially accepted
"""

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Tuple

from .errors import SecurityException


@dataclass(frozen=True)
class KeywordSequence:
    """Two keywords that must appear in order (e.g. SELECT ... FROM)."""
    name: str
    first: Pattern
    second: Pattern

    def matches(self, text: str) -> bool:
        head = self.first.search(text)
        if head is None:
            return False
        return self.second.search(text, head.end()) is not None


def _word(keyword: str) -> Pattern:
    return re.compile(r'\b' + keyword + r'\b', re.IGNORECASE)


def _sequence(name: str, first: str, second: str) -> KeywordSequence:
    return KeywordSequence(name=name, first=_word(first), second=_word(second))


# SQL injection
SQL_SEQUENCES: Tuple[KeywordSequence, ...] = (
    _sequence("sql_union_select", "UNION", "SELECT"),
    _sequence("sql_select_from", "SELECT", "FROM"),
    _sequence("sql_insert_into", "INSERT", "INTO"),
    _sequence("sql_update_set", "UPDATE", "SET"),
    _sequence("sql_delete_from", "DELETE", "FROM"),
)

# Matched case-sensitively as plain substrings
LITERAL_SIGNATURES: Tuple[Tuple[str, str], ...] = (
    ("sql_line_comment", "--"),
    ("sql_block_comment", "/*"),
    ("shell_separator", ";"),
    ("shell_pipe", "|"),
    ("shell_backtick", "`"),
    ("shell_substitution", "$("),
    ("shell_background", "&"),
    ("path_traversal", "../"),
    ("path_traversal_windows", "..\\"),
)

# Matched against the lower-cased text
MARKUP_SIGNATURES: Tuple[Tuple[str, str], ...] = (
    ("script_tag", "<script"),
    ("javascript_uri", "javascript:"),
    ("onerror_handler", "onerror="),
    ("onload_handler", "onload="),
)


def find_attack_signature(text: str) -> Optional[str]:
    """
    Return the name of the first attack signature found in text, or None.
    """
    for name, literal in LITERAL_SIGNATURES:
        if literal in text:
            return name

    lowered = text.lower()
    for name, marker in MARKUP_SIGNATURES:
        if marker in lowered:
            return name

    for sequence in SQL_SEQUENCES:
        if sequence.matches(text):
            return sequence.name

    return None


def scan(text: str, context: str, field_name: str = "Input") -> None:
    """
    Scan canonical text for attack signatures.

    Args:
        text: Canonicalized input
        context: Validation context name (PASSWORD is never scanned)
        field_name: Field label used in the error message

    Raises:
        SecurityException: If any signature matches
    """
    if context == "PASSWORD":
        return

    signature = find_attack_signature(text)
    if signature is not None:
        raise SecurityException(
            f"Malicious pattern detected in {field_name} ({context}).",
            field_name=field_name,
            context=context,
        )
