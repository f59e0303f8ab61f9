"""
Projector

Replays the ledger to reconstruct the externally visible item set.

Algorithm:
1. Walk blocks from index 1 (genesis has no payload) in chain order
2. Decrypt each block
3. Fold LOCK_EVIDENCE / UNLOCK_EVIDENCE / TOMBSTONE into the locked and
   deleted index sets; chain order guarantees the latest toggle wins
4. Keep every decrypted record, semantic ones included, as audit entries
5. Emit every item whose index is not deleted, annotated with `locked`,
   newest first

Projector re-derives everything on each call. CachedProjector folds only
blocks appended since its last call and must always agree with a full
replay.
"""

import copy
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from .chain import Block
from .errors import IntegrityError, StoreError, UnknownBlockError
from .ledger import Ledger
from .logging_config import audit_log
from .records import EventType


@dataclass(frozen=True)
class ProjectedItem:
    """Read-only materialized view of one block."""
    index: int
    block_hash: str
    timestamp: int
    record: Dict[str, Any]
    locked: bool

    @property
    def type(self) -> Optional[str]:
        return self.record.get("type")

    def get(self, key: str, default: Any = None) -> Any:
        return self.record.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        """Flatten record fields with prefixed chain metadata."""
        item = dict(self.record)
        item["_block_index"] = self.index
        item["_block_hash"] = self.block_hash
        item["_timestamp"] = self.timestamp
        item["locked"] = self.locked
        return item


@dataclass(frozen=True)
class CorruptedBlock:
    """A block whose payload could not be decrypted or parsed."""
    index: int
    reason: str


@dataclass
class Projection:
    """Full replay result: visible items plus blocks that failed to open."""
    items: List[ProjectedItem] = field(default_factory=list)
    corrupted: List[CorruptedBlock] = field(default_factory=list)


TOGGLE_TYPES = (
    EventType.LOCK_EVIDENCE.value,
    EventType.UNLOCK_EVIDENCE.value,
    EventType.TOMBSTONE.value,
)


def _target_of(record: Dict[str, Any]) -> Optional[int]:
    target = record.get("target_index")
    if isinstance(target, int) and not isinstance(target, bool) and target > 0:
        return target
    return None


class _ReplayState:
    """Accumulated fold over the chain."""

    def __init__(self):
        self.locked: Set[int] = set()
        self.deleted: Set[int] = set()
        self.entries: "OrderedDict[int, Tuple[Block, Dict[str, Any]]]" = OrderedDict()
        self.corrupted: List[CorruptedBlock] = []

    def fold(self, ledger: Ledger, block: Block) -> None:
        try:
            record = ledger.open_block(block.index)
        except (UnknownBlockError, IntegrityError, StoreError, ValueError) as e:
            audit_log.decrypt_failed(block.index, type(e).__name__)
            self.corrupted.append(CorruptedBlock(index=block.index, reason=type(e).__name__))
            return

        record_type = record.get("type")
        if record_type in TOGGLE_TYPES:
            target = _target_of(record)
            if target is not None:
                if record_type == EventType.LOCK_EVIDENCE.value:
                    self.locked.add(target)
                elif record_type == EventType.UNLOCK_EVIDENCE.value:
                    self.locked.discard(target)
                else:
                    self.deleted.add(target)

        self.entries[block.index] = (block, record)

    def project(self) -> Projection:
        items = [
            ProjectedItem(
                index=index,
                block_hash=block.data_hash,
                timestamp=block.timestamp,
                record=copy.deepcopy(record),
                locked=index in self.locked,
            )
            for index, (block, record) in self.entries.items()
            if index not in self.deleted
        ]
        items.reverse()
        return Projection(items=items, corrupted=list(self.corrupted))


class Projector:
    """Full-replay projector."""

    def __init__(self, ledger: Ledger):
        self.ledger = ledger

    def replay(self) -> Projection:
        """
        Replay the whole chain.

        Raises:
            UninitializedKeyError: If the ledger has no key
        """
        self.ledger.ensure_unlocked()
        state = _ReplayState()
        for block in self.ledger.blocks()[1:]:
            state.fold(self.ledger, block)
        return state.project()

    def materialize(self) -> List[ProjectedItem]:
        """Visible items, newest first. Undecryptable blocks are skipped."""
        return self.replay().items


class CachedProjector(Projector):
    """
    Incremental projector.

    Blocks are immutable and the fold is order-dependent only, so folding
    new blocks onto the retained state equals a full replay. The state is
    discarded whenever the ledger's key changes.
    """

    def __init__(self, ledger: Ledger):
        super().__init__(ledger)
        self._lock = threading.Lock()
        self._reset()

    def _reset(self) -> None:
        self._state = _ReplayState()
        self._next_index = 1
        self._epoch = self.ledger.key_epoch

    def invalidate(self) -> None:
        with self._lock:
            self._reset()

    def replay(self) -> Projection:
        self.ledger.ensure_unlocked()
        with self._lock:
            if self._epoch != self.ledger.key_epoch:
                self._reset()
            blocks = self.ledger.blocks()
            for block in blocks[self._next_index:]:
                self._state.fold(self.ledger, block)
            self._next_index = max(self._next_index, len(blocks))
            return self._state.project()
