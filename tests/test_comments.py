import unittest
from types import SimpleNamespace
from unittest.mock import Mock


def _comment(origin="jpd", cid="10021", body="Hello", name="Dana", url=""):
    from discovery_bridge.models.records import Author, Comment, System

    return Comment(
        id=cid,
        author=Author(name=name, profile_url=url),
        body=body,
        created_at="2025-01-01T11:00:00.000+0000",
        origin_system=System(origin),
        origin_comment_id=cid,
    )


class MarkerTests(unittest.TestCase):
    def test_marker_round_trip(self):
        from discovery_bridge.services.comments import comment_hash, extract_marker, has_marker, render_marker

        comment = _comment()
        marker_text = render_marker(comment, synced_at="2025-01-02T00:00:00Z")

        self.assertTrue(marker_text.startswith("<!-- comment-sync:{"))
        self.assertTrue(has_marker(f"text\n\n{marker_text}"))
        marker = extract_marker(f"text\n\n{marker_text}")
        self.assertEqual(marker.origin_system, "jpd")
        self.assertEqual(marker.origin_comment_id, "10021")
        self.assertEqual(marker.content_hash, comment_hash(comment))
        self.assertEqual(marker.synced_at, "2025-01-02T00:00:00Z")

    def test_broken_marker_is_still_a_marker_but_not_extractable(self):
        from discovery_bridge.services.comments import extract_marker, has_marker

        body = "<!-- comment-sync:{broken -->"
        self.assertTrue(has_marker(body))
        self.assertIsNone(extract_marker(body))
        self.assertFalse(has_marker("plain"))
        self.assertFalse(has_marker(None))

    def test_hash_depends_on_author_body_and_time(self):
        from discovery_bridge.services.comments import comment_hash

        self.assertEqual(comment_hash(_comment()), comment_hash(_comment(cid="other")))
        self.assertNotEqual(comment_hash(_comment()), comment_hash(_comment(body="Bye")))
        self.assertNotEqual(comment_hash(_comment()), comment_hash(_comment(name="Eve")))


class FormatCommentTests(unittest.TestCase):
    def test_attribution_with_profile_link(self):
        from discovery_bridge.models.records import System
        from discovery_bridge.services.comments import format_comment

        text = format_comment(
            _comment(url="https://acme.atlassian.net/people/acc-1", body="  Hello  "),
            System.DESTINATION,
            synced_at="2025-01-02T00:00:00Z",
        )

        head, body, marker = text.split("\n\n")
        self.assertEqual(head, "**[Dana](https://acme.atlassian.net/people/acc-1)** commented in JPD:")
        self.assertEqual(body, "Hello")
        self.assertTrue(marker.startswith("<!-- comment-sync:"))

    def test_attribution_without_profile_link(self):
        from discovery_bridge.models.records import System
        from discovery_bridge.services.comments import format_comment

        text = format_comment(_comment(origin="gitlab", cid="42", name="alice"), System.SOURCE)
        self.assertTrue(text.startswith("**alice** commented in GitLab:\n\nHello\n\n"))

    def test_formatting_into_origin_system_is_rejected(self):
        from discovery_bridge.models.records import System
        from discovery_bridge.services.comments import format_comment

        with self.assertRaises(ValueError):
            format_comment(_comment(), System.SOURCE)


class ShouldSyncTests(unittest.TestCase):
    def test_marked_comments_never_sync(self):
        from discovery_bridge.services.comments import render_marker, should_sync

        marked = _comment(body=f"copy\n\n{render_marker(_comment(origin='gitlab', cid='5'))}")
        self.assertFalse(should_sync(marked, []))

    def test_already_mirrored_original_is_skipped(self):
        from discovery_bridge.models.records import System
        from discovery_bridge.services.comments import format_comment, should_sync

        original = _comment()
        mirror = _comment(origin="gitlab", cid="900", body=format_comment(original, System.DESTINATION))

        self.assertFalse(should_sync(original, [mirror]))
        self.assertTrue(should_sync(_comment(cid="10022"), [mirror]))


class NormalizeTests(unittest.TestCase):
    def test_jira_comment(self):
        from discovery_bridge.models.records import System
        from discovery_bridge.services.comments import normalize

        comment = normalize(
            {
                "id": 10021,
                "author": {"displayName": "Dana", "accountId": "acc-1"},
                "body": {"type": "doc", "content": [{"type": "paragraph", "content": [{"type": "text", "text": "Hi"}]}]},
                "created": "2025-01-01T11:00:00.000+0000",
            },
            System.SOURCE,
            "https://acme.atlassian.net",
        )

        self.assertEqual(comment.id, "10021")
        self.assertEqual(comment.body, "Hi")
        self.assertEqual(comment.author.profile_url, "https://acme.atlassian.net/people/acc-1")
        self.assertEqual(comment.origin_system, System.SOURCE)

    def test_gitlab_note(self):
        from discovery_bridge.models.records import System
        from discovery_bridge.services.comments import normalize

        note = SimpleNamespace(
            id=77, body="Nice", created_at="2025-01-01T00:00:00Z", author={"name": "Alice", "username": "alice"}
        )
        comment = normalize(note, System.DESTINATION, "https://gitlab.example")

        self.assertEqual(comment.id, "77")
        self.assertEqual(comment.author.name, "Alice")
        self.assertEqual(comment.author.profile_url, "https://gitlab.example/alice")


class CommentSyncManagerTests(unittest.TestCase):
    def _manager(self, source_comments, destination_notes, dry_run=False):
        from discovery_bridge.services.comments import CommentSyncManager
        from discovery_bridge.services.context import SyncContext

        source = Mock()
        source.get_comments.return_value = source_comments
        destination = Mock()
        destination.get_comments.return_value = destination_notes
        ctx = SyncContext(dry_run=dry_run)
        manager = CommentSyncManager(source, destination, ctx, "https://acme.atlassian.net", "https://gitlab.example")
        return manager, source, destination, ctx

    def _jira(self, cid, text):
        return {
            "id": cid,
            "author": {"displayName": "Dana", "accountId": "acc-1"},
            "body": {"type": "doc", "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}]},
            "created": "2025-01-01T11:00:00.000+0000",
        }

    def _note(self, nid, body, system=False):
        return SimpleNamespace(
            id=nid, body=body, system=system, created_at="2025-01-02T00:00:00Z", author={"name": "Alice", "username": "alice"}
        )

    def test_both_directions(self):
        manager, source, destination, ctx = self._manager([self._jira("1", "From JPD")], [self._note(2, "From GitLab")])

        self.assertEqual(manager.sync_pair("MTT-1", 5), 2)

        destination.add_comment.assert_called_once()
        self.assertEqual(destination.add_comment.call_args[0][0], 5)
        self.assertIn("From JPD", destination.add_comment.call_args[0][1])
        source.add_comment.assert_called_once()
        self.assertEqual(source.add_comment.call_args[0][0], "MTT-1")
        self.assertIn("From GitLab", source.add_comment.call_args[0][1])
        self.assertEqual(ctx.summary.comments_mirrored, 2)

    def test_system_notes_and_one_direction(self):
        manager, source, destination, _ = self._manager(
            [self._jira("1", "From JPD")], [self._note(2, "changed title", system=True)]
        )

        self.assertEqual(manager.sync_pair("MTT-1", 5, to_destination=False), 0)
        source.add_comment.assert_not_called()
        destination.add_comment.assert_not_called()

    def test_dry_run_counts_only(self):
        manager, source, destination, ctx = self._manager([self._jira("1", "From JPD")], [])

        self.assertEqual(manager.sync_pair("MTT-1", 5), 1)
        destination.add_comment.assert_not_called()
        self.assertEqual(ctx.summary.comments_mirrored, 1)


if __name__ == "__main__":
    unittest.main()
