"""
Hash Chain Metadata and Verification

Each block stores the hash of its predecessor's metadata (never of its
ciphertext), so the chain can be audited without the key. Blocks are
immutable once appended.

Verification walks every block and reports the first broken link:
1. index == position
2. genesis shape (index 0, zero previous hash)
3. previous_hash == block_hash(previous block)
4. optionally, data_hash == SHA-256(decrypted payload)
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence

from .hashing import block_hash
from .util import now_millis

GENESIS_PREVIOUS_HASH = "0" * 64
GENESIS_DATA_HASH = "GENESIS_BLOCK"
GENESIS_SIGNATURE = "SYSTEM_INIT"


@dataclass(frozen=True)
class Block:
    """Chain metadata entry."""
    index: int
    previous_hash: str
    timestamp: int
    data_hash: str
    signature: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def hash(self) -> str:
        """Link hash of this block, embedded by its successor."""
        return block_hash(self.to_dict())


def genesis_block(timestamp: Optional[int] = None) -> Block:
    """Create the fixed first entry of a chain."""
    return Block(
        index=0,
        previous_hash=GENESIS_PREVIOUS_HASH,
        timestamp=timestamp if timestamp is not None else now_millis(),
        data_hash=GENESIS_DATA_HASH,
        signature=GENESIS_SIGNATURE,
    )


class BreakReason(str, Enum):
    """Why a chain failed verification."""
    EMPTY = "EMPTY"
    INDEX_MISMATCH = "INDEX_MISMATCH"
    BAD_GENESIS = "BAD_GENESIS"
    LINK_MISMATCH = "LINK_MISMATCH"
    PAYLOAD_MISSING = "PAYLOAD_MISSING"
    PAYLOAD_UNREADABLE = "PAYLOAD_UNREADABLE"
    DATA_HASH_MISMATCH = "DATA_HASH_MISMATCH"


@dataclass
class ChainVerificationReport:
    """Result of walking a chain."""
    valid: bool
    blocks_checked: int
    broken_index: Optional[int] = None
    reason: Optional[BreakReason] = None
    details: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "blocks_checked": self.blocks_checked,
            "broken_index": self.broken_index,
            "reason": self.reason.value if self.reason else None,
            "details": self.details,
        }

    @classmethod
    def ok(cls, blocks_checked: int) -> 'ChainVerificationReport':
        return cls(valid=True, blocks_checked=blocks_checked)

    @classmethod
    def broken(cls, index: int, reason: BreakReason, details: str) -> 'ChainVerificationReport':
        return cls(valid=False, blocks_checked=index + 1, broken_index=index,
                   reason=reason, details=details)


# Returns the recomputed data hash of a block's payload. Raises KeyError if
# the payload is missing and any other exception if it cannot be read.
PayloadHasher = Callable[[int], str]


def verify_blocks(
    blocks: Sequence[Block],
    payload_hasher: Optional[PayloadHasher] = None
) -> ChainVerificationReport:
    """
    Verify a sequence of blocks starting at genesis.

    Args:
        blocks: The full chain, genesis first
        payload_hasher: If given, also re-hash each non-genesis payload

    Returns:
        ChainVerificationReport naming the first broken block, if any
    """
    if not blocks:
        return ChainVerificationReport(valid=False, blocks_checked=0,
                                       reason=BreakReason.EMPTY, details="Chain has no genesis block")

    previous: Optional[Block] = None
    for position, block in enumerate(blocks):
        if block.index != position:
            return ChainVerificationReport.broken(
                position, BreakReason.INDEX_MISMATCH,
                f"Expected index {position}, found {block.index}"
            )

        if previous is None:
            if block.previous_hash != GENESIS_PREVIOUS_HASH or block.data_hash != GENESIS_DATA_HASH:
                return ChainVerificationReport.broken(
                    position, BreakReason.BAD_GENESIS, "Genesis block has been altered"
                )
        else:
            expected = previous.hash()
            if block.previous_hash != expected:
                return ChainVerificationReport.broken(
                    position, BreakReason.LINK_MISMATCH,
                    f"previous_hash does not match block {previous.index}"
                )

            if payload_hasher is not None:
                try:
                    computed = payload_hasher(block.index)
                except KeyError:
                    return ChainVerificationReport.broken(
                        position, BreakReason.PAYLOAD_MISSING, "No stored payload"
                    )
                except Exception as e:
                    return ChainVerificationReport.broken(
                        position, BreakReason.PAYLOAD_UNREADABLE, type(e).__name__
                    )
                if computed != block.data_hash:
                    return ChainVerificationReport.broken(
                        position, BreakReason.DATA_HASH_MISMATCH,
                        "Decrypted payload does not match data_hash"
                    )

        previous = block

    return ChainVerificationReport.ok(len(blocks))
