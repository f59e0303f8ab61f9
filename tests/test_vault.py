"""
Evidence Vault Test Suite

Critical invariant tested:
    LOCKED EVIDENCE CANNOT BE DELETED, AND ONLY THE MASTER KEY UNLOCKS IT
"""

import unittest

from evidence_ledger import (
    EventType,
    EvidenceLockedError,
    EvidenceVault,
    InputValidator,
    Ledger,
    SecurityException,
    master_key_fingerprint,
    sha256_hex,
)
from evidence_ledger.vault import CATEGORY_LOGS, CATEGORY_MEDIA

TEST_ITERATIONS = 10000
MASTER_KEY = "ABCD-1234-EF56-7890"


class VaultTestCase(unittest.TestCase):

    def setUp(self):
        self.ledger = Ledger(kdf_iterations=TEST_ITERATIONS)
        self.ledger.initialize("correct horse")
        self.vault = EvidenceVault(
            self.ledger,
            validator=InputValidator(self.ledger, background=False),
            master_key_hash=master_key_fingerprint(MASTER_KEY),
        )

    def snapshot(self, description="Front gate", camera_id="CAM-01"):
        return self.vault.add_evidence(EventType.EVIDENCE_SNAPSHOT, description,
                                       camera_id=camera_id).index

    def visible(self):
        return {item.index: item for item in self.vault.items()}

    def records_of_type(self, record_type):
        return [
            record for record in (self.ledger.decrypt(i) for i in range(1, self.ledger.chain_length()))
            if record["type"] == record_type
        ]


class TestAddEvidence(VaultTestCase):

    def test_evidence_stored(self):
        index = self.snapshot()
        item = self.visible()[index]
        self.assertEqual(item.get("camera_id"), "CAM-01")
        self.assertEqual(item.type, "EVIDENCE_SNAPSHOT")
        self.assertFalse(item.locked)

    def test_external_fields_canonicalized(self):
        index = self.vault.add_evidence(EventType.VIDEO_CLIP, "clip",
                                        camera_id="  ＣＡＭ-02 ", location="Loading Dock").index
        record = self.ledger.decrypt(index)
        self.assertEqual(record["camera_id"], "CAM-02")
        self.assertEqual(record["location"], "Loading Dock")

    def test_malicious_camera_id_rejected_and_recorded(self):
        with self.assertRaises(SecurityException):
            self.snapshot(camera_id="CAM;01")
        self.assertEqual(self.records_of_type("EVIDENCE_SNAPSHOT"), [])
        violations = self.records_of_type("SECURITY_VIOLATION")
        self.assertEqual(len(violations), 1)
        self.assertEqual(violations[0]["field_name"], "Camera ID")

    def test_record_event(self):
        block = self.vault.record_event(EventType.CONFIG, "Retention changed", camera_id="CAM-01")
        record = self.ledger.decrypt(block.index)
        self.assertEqual(record["type"], "CONFIG")
        self.assertEqual(record["camera_id"], "CAM-01")

    def test_semantic_types_refused(self):
        length = self.ledger.chain_length()
        for event_type in (EventType.LOCK_EVIDENCE, EventType.UNLOCK_EVIDENCE,
                           EventType.TOMBSTONE, EventType.SECURITY_VIOLATION):
            with self.subTest(event_type=event_type):
                with self.assertRaises(ValueError):
                    self.vault.add_evidence(event_type, "x")
                with self.assertRaises(ValueError):
                    self.vault.record_event(event_type, "x", target_index=1, user="admin")
        self.assertEqual(self.ledger.chain_length(), length)


class TestLocking(VaultTestCase):

    def test_lock(self):
        index = self.snapshot()
        self.assertEqual(self.vault.lock([index], "admin"), [index])
        self.assertTrue(self.visible()[index].locked)

    def test_lock_skips_locked_and_unknown(self):
        index = self.snapshot()
        self.vault.lock([index], "admin")
        self.assertEqual(self.vault.lock([index, 999], "admin"), [])

    def test_duplicate_indices_locked_once(self):
        index = self.snapshot()
        self.assertEqual(self.vault.lock([index, index], "admin"), [index])
        self.assertEqual(len(self.records_of_type("LOCK_EVIDENCE")), 1)

    def test_user_validated(self):
        index = self.snapshot()
        with self.assertRaises(SecurityException):
            self.vault.lock([index], "admin; rm -rf /")
        with self.assertRaises(SecurityException):
            self.vault.lock([index], "   ")
        self.assertFalse(self.visible()[index].locked)


class TestUnlocking(VaultTestCase):
    """
    Attack Vector: Unlocking evidence without authority.

    Defense: master key fingerprint compared in constant time.
    """

    def setUp(self):
        super().setUp()
        self.index = self.snapshot()
        self.vault.lock([self.index], "admin")

    def test_unlock_with_master_key(self):
        self.assertEqual(self.vault.unlock([self.index], "admin", MASTER_KEY), [self.index])
        self.assertFalse(self.visible()[self.index].locked)

    def test_master_key_case_and_whitespace_insensitive(self):
        self.assertEqual(
            self.vault.unlock([self.index], "admin", "  abcd-1234-ef56-7890 "), [self.index]
        )

    def test_wrong_key_rejected_and_audited(self):
        with self.assertRaises(SecurityException):
            self.vault.unlock([self.index], "admin", "FFFF-FFFF-FFFF-FFFF")
        self.assertTrue(self.visible()[self.index].locked)

        auth = self.records_of_type("AUTH")
        self.assertEqual(len(auth), 1)
        self.assertEqual(auth[0]["severity"], "warning")
        self.assertNotIn("FFFF", auth[0]["description"])

    def test_malformed_key_rejected(self):
        with self.assertRaises(SecurityException):
            self.vault.unlock([self.index], "admin", "letmein")
        violations = self.records_of_type("SECURITY_VIOLATION")
        self.assertEqual(violations[-1]["payload_fragment"], "********")

    def test_unlocking_disabled_without_configured_key(self):
        vault = EvidenceVault(self.ledger, validator=self.vault.validator, master_key_hash=None)
        with self.assertRaises(SecurityException):
            vault.unlock([self.index], "admin", MASTER_KEY)

    def test_unlock_skips_unlocked(self):
        other = self.snapshot("Yard")
        self.assertEqual(self.vault.unlock([other], "admin", MASTER_KEY), [])

    def test_fingerprint(self):
        self.assertEqual(master_key_fingerprint(" abcd-1234-ef56-7890\n"), sha256_hex(MASTER_KEY))


class TestDeleting(VaultTestCase):

    def test_delete(self):
        index = self.snapshot()
        self.assertEqual(self.vault.delete([index], "admin"), [index])
        self.assertNotIn(index, self.visible())

    def test_locked_item_cannot_be_deleted(self):
        locked = self.snapshot()
        free = self.snapshot("Yard")
        self.vault.lock([locked], "admin")

        with self.assertRaises(EvidenceLockedError) as ctx:
            self.vault.delete([free, locked], "admin")
        self.assertEqual(ctx.exception.locked_indices, [locked])

        # All or nothing: the unlocked item survives too
        items = self.visible()
        self.assertIn(locked, items)
        self.assertIn(free, items)
        self.assertEqual(self.records_of_type("TOMBSTONE"), [])

    def test_delete_after_unlock(self):
        index = self.snapshot()
        self.vault.lock([index], "admin")
        self.vault.unlock([index], "admin", MASTER_KEY)
        self.assertEqual(self.vault.delete([index], "admin"), [index])
        self.assertNotIn(index, self.visible())

    def test_history_retained(self):
        index = self.snapshot()
        self.vault.delete([index], "admin")
        self.assertEqual(self.ledger.decrypt(index)["description"], "Front gate")


class TestSearch(VaultTestCase):

    def setUp(self):
        super().setUp()
        self.gate = self.snapshot("Front gate", "CAM-01")
        self.clip = self.vault.add_evidence(EventType.VIDEO_CLIP, "Parking lot", camera_id="CAM-07").index
        self.boot = self.vault.record_event(EventType.SYSTEM, "Boot complete").index

    def indices(self, items):
        return [item.index for item in items]

    def test_all(self):
        self.assertEqual(self.indices(self.vault.search()), [self.boot, self.clip, self.gate])

    def test_text_matches_description_type_and_camera(self):
        self.assertEqual(self.indices(self.vault.search("GATE")), [self.gate])
        self.assertEqual(self.indices(self.vault.search("video_clip")), [self.clip])
        self.assertEqual(self.indices(self.vault.search("cam-07")), [self.clip])

    def test_categories(self):
        self.assertEqual(self.indices(self.vault.search(category=CATEGORY_MEDIA)),
                         [self.clip, self.gate])
        self.assertEqual(self.indices(self.vault.search(category=CATEGORY_LOGS)), [self.boot])

    def test_text_and_category(self):
        self.assertEqual(self.vault.search("boot", category=CATEGORY_MEDIA), [])


class TestClose(unittest.TestCase):

    def test_close_flushes_background_violations(self):
        ledger = Ledger(kdf_iterations=TEST_ITERATIONS)
        ledger.initialize("correct horse")
        with EvidenceVault(ledger, master_key_hash=None) as vault:
            with self.assertRaises(SecurityException):
                vault.add_evidence(EventType.EVIDENCE_SNAPSHOT, "gate", camera_id="CAM;01")

        self.assertEqual(ledger.chain_length(), 2)
        record = ledger.decrypt(1)
        self.assertEqual(record["type"], "SECURITY_VIOLATION")
        self.assertEqual(record["field_name"], "Camera ID")


if __name__ == "__main__":
    unittest.main()
