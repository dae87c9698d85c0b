import io
import json
import logging
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest.mock import patch

logging.disable(logging.CRITICAL)


def _summary(status="success"):
    from discovery_bridge.models.report import RunSummary

    summary = RunSummary(run_id="cli1", status=status)
    summary.created.append("MTT-1 -> #1")
    return summary


class CliTests(unittest.TestCase):
    def test_sync_prints_text_summary(self):
        from discovery_bridge import cli

        out = io.StringIO()
        with patch("discovery_bridge.services.runner.SyncRunner.run", return_value=_summary()) as run:
            with redirect_stdout(out):
                code = cli.main(["sync", "--dry-run"])

        self.assertEqual(code, 0)
        run.assert_called_once_with(dry_run=True)
        self.assertIn("Sync run cli1", out.getvalue())

    def test_sync_json_and_failed_exit_code(self):
        from discovery_bridge import cli

        out = io.StringIO()
        with patch("discovery_bridge.services.runner.SyncRunner.run", return_value=_summary("failed")):
            with redirect_stdout(out):
                code = cli.main(["sync", "--json"])

        self.assertEqual(code, 1)
        self.assertEqual(json.loads(out.getvalue())["status"], "failed")

    def test_validate_reports_config_errors(self):
        import tempfile
        from pathlib import Path

        from discovery_bridge import cli

        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "sync.yaml"
            path.write_text("sync:\n  direction: sideways\n", encoding="utf-8")
            err = io.StringIO()
            with redirect_stderr(err):
                code = cli.main(["--config", str(path), "validate"])

        self.assertEqual(code, 2)
        self.assertIn("sync.direction", err.getvalue())

    def test_validate_without_field_requirements(self):
        from discovery_bridge import cli

        out = io.StringIO()
        with redirect_stdout(out):
            code = cli.main(["--config", "/nonexistent/sync.yaml", "validate"])

        self.assertEqual(code, 0)
        self.assertIn("Sync rules OK", out.getvalue())


if __name__ == "__main__":
    unittest.main()
