import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest import mock

import lottoevent.config as config_module
import lottoevent.db as db_module
from lottoevent import cli


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        os.environ["DATABASE_URL"] = f"sqlite:///{Path(self._tmpdir.name) / 'cli.db'}"
        config_module.load_settings.cache_clear()
        patcher = mock.patch.object(cli, "configure_logging")
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        db_module.SessionLocal.remove()
        db_module.engine.dispose()
        config_module.load_settings.cache_clear()
        os.environ.pop("DATABASE_URL", None)
        self._tmpdir.cleanup()

    def _run(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out):
            code = cli.main(list(argv))
        return code, out.getvalue()

    def _create_event(self) -> int:
        code, output = self._run(
            "create-event",
            "Spring lotto",
            "--start",
            "2099-01-01T10:00:00Z",
            "--end",
            "2099-01-02T10:00:00Z",
            "--announce-start",
            "2099-01-03T10:00:00Z",
            "--announce-end",
            "2099-01-04T10:00:00Z",
        )
        self.assertEqual(code, 0)
        event = json.loads(output)
        self.assertEqual(event["phase"], "READY")
        self.assertEqual(event["start_at"], "2099-01-01T10:00:00")
        return event["id"]

    def test_create_generate_and_stats(self) -> None:
        event_id = self._create_event()

        code, output = self._run("generate-pool", str(event_id), "--size", "12", "--winners", "4")
        self.assertEqual(code, 0)
        summary = json.loads(output)
        self.assertEqual(summary["size"], 12)
        self.assertEqual(summary["number_domain"], [1, 45])

        code, output = self._run("stats", str(event_id))
        self.assertEqual(code, 0)
        stats = json.loads(output)
        self.assertEqual(stats["slot_count"], 12)
        self.assertEqual(stats["winning_slots"], 4)
        self.assertEqual(stats["claimed_count"], 0)

        code, output = self._run("list-events")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(output)["total"], 1)

    def test_domain_errors_return_nonzero(self) -> None:
        event_id = self._create_event()
        self.assertEqual(self._run("generate-pool", str(event_id), "--size", "3", "--winners", "5")[0], 1)
        self.assertEqual(self._run("stats", "404")[0], 1)

    def test_rejects_bad_timestamp(self) -> None:
        with redirect_stdout(io.StringIO()), mock.patch("sys.stderr", new_callable=io.StringIO):
            with self.assertRaises(SystemExit):
                cli.main(["create-event", "x", "--start", "yesterday", "--end", "a", "--announce-start", "b", "--announce-end", "c"])


if __name__ == "__main__":
    unittest.main()
