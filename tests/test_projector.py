"""
Projector Test Suite

The visible item set must always equal a deterministic replay of the chain.
"""

import unittest

from evidence_ledger import (
    BlockStore,
    CachedProjector,
    InMemoryBlockStore,
    Ledger,
    Projector,
    StoreError,
    UninitializedKeyError,
)

TEST_ITERATIONS = 10000
PASSPHRASE = "correct horse"


class UnreadableStore(BlockStore):
    """Wraps a store and fails to read the payloads of some indices."""

    def __init__(self, inner, unreadable):
        self.inner = inner
        self.unreadable = set(unreadable)

    def load_blocks(self):
        return self.inner.load_blocks()

    def append(self, block, payload):
        self.inner.append(block, payload)

    def get_payload(self, index):
        if index in self.unreadable:
            raise StoreError(f"Cannot read payload {index}")
        return self.inner.get_payload(index)

    def bytes_used(self):
        return self.inner.bytes_used()

    def close(self):
        self.inner.close()


class ProjectorTestCase(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryBlockStore()
        self.ledger = Ledger(self.store, kdf_iterations=TEST_ITERATIONS)
        self.ledger.initialize(PASSPHRASE)
        self.projector = Projector(self.ledger)

    def add(self, description, record_type="EVIDENCE_SNAPSHOT"):
        return self.ledger.append({"type": record_type, "description": description}).index

    def visible(self, projector=None):
        return {item.index: item for item in (projector or self.projector).materialize()}


class TestProjection(ProjectorTestCase):

    def test_empty_chain(self):
        self.assertEqual(self.projector.materialize(), [])

    def test_newest_first(self):
        a = self.add("gate")
        b = self.add("yard")
        self.assertEqual([item.index for item in self.projector.materialize()], [b, a])

    def test_lock_marks_target(self):
        a = self.add("gate")
        self.ledger.lock_item(a, "admin")
        items = self.visible()
        self.assertTrue(items[a].locked)
        self.assertEqual(items[a].get("description"), "gate")

    def test_lock_record_kept_as_audit_entry(self):
        a = self.add("gate")
        self.ledger.lock_item(a, "admin")
        items = self.projector.materialize()
        self.assertEqual(len(items), 2)
        self.assertEqual(items[0].type, "LOCK_EVIDENCE")
        self.assertEqual(items[0].get("target_index"), a)
        self.assertFalse(items[0].locked)

    def test_latest_toggle_wins(self):
        a = self.add("gate")
        self.ledger.lock_item(a, "admin")
        self.ledger.unlock_item(a, "admin")
        self.assertFalse(self.visible()[a].locked)

        self.ledger.lock_item(a, "admin")
        self.assertTrue(self.visible()[a].locked)

    def test_tombstone_hides_item(self):
        a = self.add("gate")
        b = self.add("yard")
        self.ledger.delete_item(a, "admin")
        items = self.visible()
        self.assertNotIn(a, items)
        self.assertIn(b, items)
        self.assertIn(self.ledger.chain_length() - 1, items)

    def test_tombstone_beats_lock(self):
        a = self.add("gate")
        self.ledger.lock_item(a, "admin")
        self.ledger.delete_item(a, "admin")
        self.assertNotIn(a, self.visible())

    def test_tombstone_is_permanent(self):
        a = self.add("gate")
        self.ledger.delete_item(a, "admin")
        self.ledger.unlock_item(a, "admin")
        self.assertNotIn(a, self.visible())

    def test_target_index_on_other_types_ignored(self):
        a = self.add("gate")
        self.ledger.append({"type": "SYSTEM", "description": "x", "target_index": a})
        self.assertFalse(self.visible()[a].locked)

    def test_item_metadata(self):
        a = self.add("gate")
        block = self.ledger.block(a)
        item = self.visible()[a]
        self.assertEqual(item.block_hash, block.data_hash)
        self.assertEqual(item.timestamp, block.timestamp)

        flat = item.to_dict()
        self.assertEqual(flat["_block_index"], a)
        self.assertEqual(flat["_block_hash"], block.data_hash)
        self.assertEqual(flat["_timestamp"], block.timestamp)
        self.assertEqual(flat["locked"], False)
        self.assertEqual(flat["description"], "gate")

    def test_replay_is_idempotent(self):
        a = self.add("gate")
        self.add("yard")
        self.ledger.lock_item(a, "admin")
        first = [item.to_dict() for item in self.projector.materialize()]
        second = [item.to_dict() for item in self.projector.materialize()]
        self.assertEqual(first, second)

    def test_returned_items_are_copies(self):
        a = self.add("gate")
        self.visible()[a].record["description"] = "changed"
        self.assertEqual(self.visible()[a].get("description"), "gate")

    def test_uninitialized_refused(self):
        locked = Ledger(kdf_iterations=TEST_ITERATIONS)
        with self.assertRaises(UninitializedKeyError):
            Projector(locked).materialize()


class TestCorruptedBlocks(ProjectorTestCase):
    """A single unreadable block must not hide the rest of the evidence."""

    def test_corrupted_block_skipped_and_reported(self):
        a = self.add("gate")
        b = self.add("yard")
        blob = bytearray(self.store._payloads[a])
        blob[-1] ^= 0x01
        self.store._payloads[a] = bytes(blob)

        with self.assertLogs("evidence_ledger.audit", level="ERROR"):
            projection = self.projector.replay()
        self.assertEqual([item.index for item in projection.items], [b])
        self.assertEqual(len(projection.corrupted), 1)
        self.assertEqual(projection.corrupted[0].index, a)
        self.assertEqual(projection.corrupted[0].reason, "IntegrityError")

    def test_unreadable_store_block_reported(self):
        a = self.add("gate")
        b = self.add("yard")
        store = UnreadableStore(self.store, {a})
        reader = Ledger(store, kdf_iterations=TEST_ITERATIONS)
        reader.initialize(PASSPHRASE)

        with self.assertLogs("evidence_ledger.audit", level="ERROR"):
            projection = Projector(reader).replay()
        self.assertEqual([item.index for item in projection.items], [b])
        self.assertEqual(projection.corrupted[0].index, a)
        self.assertEqual(projection.corrupted[0].reason, "StoreError")

    def test_wrong_key_shows_nothing(self):
        self.add("gate")
        other = Ledger(self.store, kdf_iterations=TEST_ITERATIONS)
        other.initialize("battery staple")
        with self.assertLogs("evidence_ledger.audit", level="ERROR"):
            projection = Projector(other).replay()
        self.assertEqual(projection.items, [])
        self.assertEqual(len(projection.corrupted), 1)


class TestCachedProjector(ProjectorTestCase):

    def assertMatchesFullReplay(self, cached):
        self.assertEqual(
            [item.to_dict() for item in cached.materialize()],
            [item.to_dict() for item in self.projector.materialize()],
        )

    def test_incremental_equals_full_replay(self):
        cached = CachedProjector(self.ledger)
        a = self.add("gate")
        self.assertMatchesFullReplay(cached)

        b = self.add("yard")
        self.ledger.lock_item(a, "admin")
        self.assertMatchesFullReplay(cached)

        self.ledger.unlock_item(a, "admin")
        self.ledger.delete_item(b, "admin")
        self.add("dock", record_type="VIDEO_CLIP")
        self.assertMatchesFullReplay(cached)

    def test_reset_on_new_key(self):
        cached = CachedProjector(self.ledger)
        self.add("gate")
        self.assertEqual(len(cached.materialize()), 1)

        self.ledger.initialize("battery staple")
        with self.assertLogs("evidence_ledger.audit", level="ERROR"):
            self.assertEqual(cached.materialize(), [])

    def test_invalidate(self):
        cached = CachedProjector(self.ledger)
        self.add("gate")
        cached.materialize()
        cached.invalidate()
        self.assertMatchesFullReplay(cached)


if __name__ == "__main__":
    unittest.main()
