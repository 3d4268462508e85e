import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from aimpick.storage import (
    append_log,
    create_capture_context,
    status_payload,
    tail_lines,
    write_json,
    write_status,
)


class StorageTests(unittest.TestCase):
    def test_capture_context_never_reuses_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            first = create_capture_context(Path(tmp))
            second = create_capture_context(Path(tmp))
            self.assertNotEqual(first.capture_dir, second.capture_dir)
            self.assertTrue(first.capture_id.startswith("aim_capture_"))
            self.assertEqual(first.manifest_path.name, "manifest.json")
            self.assertEqual(first.viewer_path.name, "capture_viewer.html")
            self.assertEqual(first.screenshots_dir.name, "element_screenshots")

    def test_capture_context_gives_up_after_collisions(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with patch("pathlib.Path.exists", return_value=True):
                with self.assertRaises(RuntimeError):
                    create_capture_context(Path(tmp))

    def test_write_json_is_pretty_and_unicode(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "doc.json"
            write_json(path, {"name": "café"})
            text = path.read_text(encoding="utf-8")
            self.assertEqual(text, '{\n  "name": "café"\n}\n')

    def test_status_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            self.assertEqual(status_payload(root), {"status": "no-captures"})
            write_status(
                capture_id="aim_capture_x",
                capture_dir=root / "aim_capture_x",
                url="https://site.test",
                result="exported",
                selections=2,
                root=root,
            )
            payload = status_payload(root)
            self.assertEqual(payload["result"], "exported")
            self.assertEqual(payload["state"], "completed")
            self.assertEqual(payload["selections"], 2)
            self.assertNotIn("message", payload)
            self.assertEqual(json.loads((root / "status.json").read_text(encoding="utf-8"))["url"], "https://site.test")

    def test_append_log_and_tail(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log_path = Path(tmp) / "capture.log"
            self.assertEqual(tail_lines(log_path, 5), [])
            for idx in range(5):
                append_log(log_path, f"line {idx}\n")
            self.assertEqual(tail_lines(log_path, 2), ["line 3", "line 4"])


if __name__ == "__main__":
    unittest.main()
