"""
Block Store Test Suite
"""

import dataclasses
import os
import tempfile
import unittest

from evidence_ledger import (
    InMemoryBlockStore,
    Ledger,
    SqliteBlockStore,
    StoreError,
    genesis_block,
    get_block_store,
)

TEST_ITERATIONS = 10000
PASSPHRASE = "correct horse"


class TestSqliteBlockStore(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp.name, "nested", "ledger.db")

    def tearDown(self):
        self.tmp.cleanup()

    def test_chain_survives_reopen(self):
        with Ledger(SqliteBlockStore(self.path), kdf_iterations=TEST_ITERATIONS) as ledger:
            ledger.initialize(PASSPHRASE)
            first = ledger.append({"type": "EVIDENCE_SNAPSHOT", "description": "gate"})
            ledger.lock_item(first.index, "admin")
            blocks = ledger.blocks()

        with Ledger(SqliteBlockStore(self.path), kdf_iterations=TEST_ITERATIONS) as reopened:
            reopened.initialize(PASSPHRASE)
            self.assertEqual(reopened.blocks(), blocks)
            self.assertEqual(reopened.decrypt(first.index)["description"], "gate")
            self.assertTrue(reopened.verify_chain(check_payloads=True).valid)

            second = reopened.append({"type": "SYSTEM", "description": "restart"})
            self.assertEqual(second.index, 3)
            self.assertEqual(second.previous_hash, blocks[-1].hash())

    def test_only_ciphertext_on_disk(self):
        with Ledger(SqliteBlockStore(self.path), kdf_iterations=TEST_ITERATIONS) as ledger:
            ledger.initialize(PASSPHRASE)
            ledger.append({"type": "EVIDENCE_SNAPSHOT", "description": "plaintext-marker"})

        directory = os.path.dirname(self.path)
        for name in os.listdir(directory):
            with open(os.path.join(directory, name), "rb") as f:
                self.assertNotIn(b"plaintext-marker", f.read())

    def test_duplicate_index_rejected(self):
        store = SqliteBlockStore(self.path)
        try:
            store.append(genesis_block(), None)
            with self.assertRaises(ValueError):
                store.append(genesis_block(), None)
            self.assertEqual(len(store.load_blocks()), 1)
        finally:
            store.close()

    def test_bytes_used(self):
        store = SqliteBlockStore(self.path)
        try:
            self.assertEqual(store.bytes_used(), 0)
            store.append(genesis_block(), None)
            self.assertEqual(store.bytes_used(), 0)
            self.assertIsNone(store.get_payload(0))
        finally:
            store.close()

    def test_read_after_close_is_store_error(self):
        store = SqliteBlockStore(self.path)
        store.append(genesis_block(), None)
        store.close()
        with self.assertRaises(StoreError):
            store.get_payload(0)


class TestInMemoryBlockStore(unittest.TestCase):

    def test_out_of_sequence_rejected(self):
        store = InMemoryBlockStore()
        with self.assertRaises(ValueError):
            store.append(dataclasses.replace(genesis_block(), index=1), None)

    def test_load_returns_copy(self):
        store = InMemoryBlockStore()
        store.append(genesis_block(), None)
        store.load_blocks().clear()
        self.assertEqual(len(store.load_blocks()), 1)


class TestFactory(unittest.TestCase):

    def test_memory(self):
        self.assertIsInstance(get_block_store("memory"), InMemoryBlockStore)

    def test_sqlite(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = get_block_store("sqlite", os.path.join(tmp, "ledger.db"))
            try:
                self.assertIsInstance(store, SqliteBlockStore)
            finally:
                store.close()

    def test_unknown(self):
        with self.assertRaises(ValueError):
            get_block_store("s3")


if __name__ == "__main__":
    unittest.main()
