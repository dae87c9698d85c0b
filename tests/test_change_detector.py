import unittest


def _record(**overrides):
    from discovery_bridge.models.records import SourceRecord

    data = dict(key="MTT-1", title="Ship it", status="Ready", updated_at="2025-01-01T10:00:00.000+0000")
    data.update(overrides)
    return SourceRecord(**data)


class FingerprintTests(unittest.TestCase):
    def test_same_projection_same_hash(self):
        from discovery_bridge.models.records import HierarchyLevel, Relationships
        from discovery_bridge.services.change_detector import fingerprint

        rels = Relationships(parent="MTT-0", children=["MTT-2"])
        a = fingerprint(_record(description="one", fields={"x": 1}), rels, HierarchyLevel.STORY)
        b = fingerprint(_record(description="two", fields={"y": 2}), rels, HierarchyLevel.STORY)

        self.assertEqual(a, b)
        self.assertEqual(len(a), 64)

    def test_each_projected_attribute_changes_hash(self):
        from discovery_bridge.models.records import HierarchyLevel, Relationships
        from discovery_bridge.services.change_detector import fingerprint

        base = fingerprint(_record(), Relationships(), HierarchyLevel.STORY)
        variants = [
            fingerprint(_record(title="Other"), Relationships(), HierarchyLevel.STORY),
            fingerprint(_record(status="Done"), Relationships(), HierarchyLevel.STORY),
            fingerprint(_record(updated_at="2025-02-01"), Relationships(), HierarchyLevel.STORY),
            fingerprint(_record(), Relationships(parent="MTT-9"), HierarchyLevel.STORY),
            fingerprint(_record(), Relationships(children=["MTT-2"]), HierarchyLevel.STORY),
            fingerprint(_record(), Relationships(), HierarchyLevel.EPIC),
        ]
        for variant in variants:
            self.assertNotEqual(variant, base)

    def test_related_links_do_not_change_hash(self):
        from discovery_bridge.models.records import HierarchyLevel, Relationships
        from discovery_bridge.services.change_detector import fingerprint

        self.assertEqual(
            fingerprint(_record(), Relationships(), HierarchyLevel.STORY),
            fingerprint(_record(), Relationships(related=["MTT-5"]), HierarchyLevel.STORY),
        )


class NeedsWriteTests(unittest.TestCase):
    def test_missing_metadata_or_hash_mismatch(self):
        from discovery_bridge.models.metadata import SyncMetadata
        from discovery_bridge.models.records import Relationships
        from discovery_bridge.services.change_detector import needs_write

        self.assertTrue(needs_write(None, "h", Relationships()))
        self.assertTrue(needs_write(SyncMetadata(source_id="MTT-1", content_hash="old"), "h", Relationships()))
        self.assertFalse(needs_write(SyncMetadata(source_id="MTT-1", content_hash="h"), "h", Relationships()))

    def test_checkbox_disagreeing_with_child_state(self):
        from discovery_bridge.models.metadata import SyncMetadata
        from discovery_bridge.models.records import Relationships
        from discovery_bridge.services.change_detector import needs_write
        from discovery_bridge.services.hierarchy import SourceIndex

        meta = SyncMetadata(source_id="MTT-1", content_hash="h")
        rels = Relationships(children=["MTT-2", "MTT-3"])
        index = SourceIndex({"MTT-2": 12, "MTT-3": 1})
        body = "## 📋 Subtasks\n\n- [ ] #12 (MTT-2)\n- [x] #1 (MTT-3)"

        self.assertFalse(needs_write(meta, "h", rels, body, index, {12: False, 1: True}))
        self.assertTrue(needs_write(meta, "h", rels, body, index, {12: True, 1: True}))
        self.assertTrue(needs_write(meta, "h", rels, body, index, {12: False, 1: False}))

    def test_unlisted_mirrored_child_needs_write(self):
        from discovery_bridge.models.metadata import SyncMetadata
        from discovery_bridge.models.records import Relationships
        from discovery_bridge.services.change_detector import needs_write
        from discovery_bridge.services.hierarchy import SourceIndex

        meta = SyncMetadata(source_id="MTT-1", content_hash="h")
        rels = Relationships(children=["MTT-2"])

        self.assertTrue(needs_write(meta, "h", rels, "no list", SourceIndex({"MTT-2": 4}), {4: False}))
        # Not yet mirrored: nothing to compare against
        self.assertFalse(needs_write(meta, "h", rels, "no list", SourceIndex(), {}))


if __name__ == "__main__":
    unittest.main()
