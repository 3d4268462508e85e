import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from aimpick.capture import (
    CaptureSettings,
    download_media,
    export_capture,
    extension_for,
    media_file_name,
    normalize_dedup,
    truncate_text,
)
from aimpick.models import Selection
from aimpick.storage import create_capture_context


class _FakeLocator:
    def __init__(self, selector: str, page: "_FakePage"):
        self.selector = selector
        self.page = page

    @property
    def first(self) -> "_FakeLocator":
        return self

    def wait_for(self, timeout: int = 0) -> None:
        if self.selector not in self.page.elements:
            raise TimeoutError(f"Timeout {timeout}ms exceeded waiting for {self.selector}")

    def bounding_box(self) -> dict:
        return {"x": 1, "y": 2, "width": 30, "height": 40}

    def inner_text(self, timeout: int = 0) -> str:
        return self.page.elements[self.selector].get("text", "")

    def screenshot(self, path: str) -> None:
        failure = self.page.elements[self.selector].get("shot_error")
        if failure:
            raise RuntimeError(failure)
        Path(path).write_bytes(b"png")

    def evaluate(self, _script: str) -> str:
        return self.page.elements[self.selector].get("nested", "")


class _FakePage:
    def __init__(self, url: str, elements: dict[str, dict]):
        self.url = url
        self.elements = elements
        self.full_page_shots: list[str] = []

    def locator(self, selector: str) -> _FakeLocator:
        return _FakeLocator(selector, self)

    def screenshot(self, path: str, full_page: bool = False) -> None:
        self.full_page_shots.append(path)
        Path(path).write_bytes(b"full")


class _FakeResponse:
    def __init__(self, status: int, body: bytes = b"", content_type: str = ""):
        self.status = status
        self._body = body
        self.headers = {"content-type": content_type} if content_type else {}

    def body(self) -> bytes:
        return self._body


class _FakeRequest:
    def __init__(self, responses: dict[str, object]):
        self.responses = responses
        self.calls: list[tuple[str, int]] = []

    def get(self, url: str, max_redirects: int = 20) -> _FakeResponse:
        self.calls.append((url, max_redirects))
        response = self.responses.get(url)
        if isinstance(response, Exception):
            raise response
        if response is None:
            return _FakeResponse(404)
        return response


class _FakeContext:
    def __init__(self, request: _FakeRequest):
        self.request = request


class CaptureHelperTests(unittest.TestCase):
    def test_normalize_dedup_resolves_and_keeps_order(self) -> None:
        urls = normalize_dedup("https://a.com/x/", ["", "img.png", "https://a.com/x/img.png", None, "  /y "])
        self.assertEqual(urls, ["https://a.com/x/img.png", "https://a.com/y"])

    def test_extension_prefers_content_type(self) -> None:
        self.assertEqual(extension_for("image/png", "https://a/b.jpg"), ".png")
        self.assertEqual(extension_for("video/webm; codecs=vp9", "https://a/b"), ".webm")
        self.assertEqual(extension_for("IMAGE/JPEG", "https://a/b"), ".jpg")

    def test_extension_falls_back_to_url_suffix(self) -> None:
        self.assertEqual(extension_for("", "https://a/b/file.XYZ?q=1"), ".xyz")
        self.assertEqual(extension_for("text/html", "https://a/b/file"), ".bin")
        self.assertEqual(extension_for(None, "https://a/b/file.toolongext"), ".bin")
        self.assertEqual(extension_for("", "https://a.example/"), ".bin")

    def test_truncate_text(self) -> None:
        self.assertEqual(truncate_text(" a\r\nb ", 10), "a\nb")
        self.assertEqual(truncate_text("abcdef", 3), "abc...")
        self.assertEqual(truncate_text(None, 3), "")

    def test_media_file_name(self) -> None:
        self.assertEqual(media_file_name(1, 1, ".png"), "media_001.png")
        self.assertEqual(media_file_name(12, 2, ".jpg"), "media_012_2.jpg")


class DownloadMediaTests(unittest.TestCase):
    def test_download_failures_become_records(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            capture = create_capture_context(Path(tmp))
            request = _FakeRequest(
                {
                    "https://a/empty": _FakeResponse(200, b"", "image/png"),
                    "https://a/boom": RuntimeError("socket hang up"),
                }
            )
            missing = download_media(request, "https://a/missing", capture=capture, index=1, ordinal=1)
            empty = download_media(request, "https://a/empty", capture=capture, index=1, ordinal=1)
            boom = download_media(request, "https://a/boom", capture=capture, index=1, ordinal=1, max_redirects=2)

            self.assertEqual(missing.error, "HTTP 404")
            self.assertEqual(empty.error, "empty body")
            self.assertEqual(boom.error, "socket hang up")
            self.assertFalse(any(record.ok for record in (missing, empty, boom)))
            self.assertEqual(request.calls[-1], ("https://a/boom", 2))
            self.assertFalse(capture.media_dir.exists())

    def test_successful_download_is_written_under_media(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            capture = create_capture_context(Path(tmp))
            request = _FakeRequest({"https://a/pic": _FakeResponse(200, b"\x89PNG", "image/png")})
            record = download_media(request, "https://a/pic", capture=capture, index=3, ordinal=2)
            self.assertTrue(record.ok)
            self.assertEqual(record.saved_as, "media/media_003_2.png")
            self.assertEqual((capture.capture_dir / record.saved_as).read_bytes(), b"\x89PNG")
            self.assertEqual(record.to_dict(), {"url": "https://a/pic", "savedAs": "media/media_003_2.png"})


class ExportCaptureTests(unittest.TestCase):
    def _fixture(self) -> tuple[_FakePage, _FakeContext, list[Selection]]:
        page = _FakePage(
            "https://site.test/p/",
            {
                "#hero": {"text": "Hero image", "nested": "https://site.test/p/a.png"},
                "a.doc": {"text": "  Read   more\r\n"},
            },
        )
        request = _FakeRequest({"https://site.test/p/a.png": _FakeResponse(200, b"img", "image/png")})
        selections = [
            Selection(selector="#hero", tag="img", kind="image", src="a.png"),
            Selection(selector="#gone", tag="div", kind="element"),
            Selection(selector="a.doc", tag="a", kind="link", href="/doc.pdf"),
        ]
        return page, _FakeContext(request), selections

    def test_export_writes_manifest_with_one_result_per_selection(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            capture = create_capture_context(Path(tmp))
            page, context, selections = self._fixture()
            outcome = export_capture(
                page,
                context,
                selections,
                capture=capture,
                label="default",
                video_enabled=False,
                settings=CaptureSettings(locate_timeout_ms=10),
            )

            self.assertEqual(outcome.capture.capture_dir, capture.capture_dir)
            self.assertEqual(outcome.full_page_screenshot, "page_full.png")
            payload = json.loads(capture.manifest_path.read_text(encoding="utf-8"))
            self.assertEqual(payload["pageUrl"], "https://site.test/p/")
            self.assertEqual(payload["label"], "default")
            self.assertFalse(payload["videoEnabled"])
            self.assertEqual(len(payload["selections"]), 3)
            self.assertEqual([item["index"] for item in payload["results"]], [1, 2, 3])

            first, second, third = payload["results"]
            self.assertEqual(first["innerText"], "Hero image")
            self.assertEqual(first["screenshotPath"], "element_screenshots/el_001.png")
            self.assertEqual(first["boundingBox"], {"x": 1.0, "y": 2.0, "width": 30.0, "height": 40.0})
            self.assertEqual(first["downloads"], [{"url": "https://site.test/p/a.png", "savedAs": "media/media_001.png"}])
            self.assertNotIn("error", first)

            self.assertTrue(second["error"].startswith("Not found:"))
            self.assertEqual(second["downloads"], [])
            self.assertNotIn("screenshotPath", second)

            self.assertEqual(third["innerText"], "Read   more")
            self.assertEqual(third["downloads"], [{"url": "https://site.test/doc.pdf", "error": "HTTP 404"}])
            self.assertNotIn("error", third)

            self.assertTrue(capture.viewer_path.exists())
            log_text = capture.log_path.read_text(encoding="utf-8")
            self.assertIn("item=2 error=not_found selector=#gone", log_text)
            self.assertIn("export_done results=3 failed=1", log_text)

    def test_missing_selector_is_reported_per_item(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            capture = create_capture_context(Path(tmp))
            page, context, _ = self._fixture()
            outcome = export_capture(
                page,
                context,
                [Selection(selector="   ")],
                capture=capture,
                label="x",
                video_enabled=True,
            )
            self.assertEqual(outcome.manifest.results[0].error, "Missing selector")
            self.assertTrue(outcome.manifest.to_dict()["videoEnabled"])

    def test_media_write_error_is_recorded_and_batch_continues(self) -> None:
        real_write_bytes = Path.write_bytes

        def write_bytes(path: Path, data: bytes) -> int:
            if path.name.startswith("media_"):
                raise OSError(28, "No space left on device")
            return real_write_bytes(path, data)

        with tempfile.TemporaryDirectory() as tmp:
            capture = create_capture_context(Path(tmp))
            page, context, selections = self._fixture()
            with patch.object(Path, "write_bytes", write_bytes):
                outcome = export_capture(page, context, selections, capture=capture, label="full", video_enabled=False)

            self.assertTrue(capture.manifest_path.exists())
            self.assertEqual(len(outcome.manifest.results), 3)
            first = outcome.manifest.results[0]
            self.assertIsNone(first.error)
            self.assertEqual(
                [record.to_dict() for record in first.downloads],
                [{"url": "https://site.test/p/a.png", "error": "[Errno 28] No space left on device"}],
            )
            self.assertEqual(outcome.manifest.results[2].inner_text, "Read   more")

    def test_screenshot_failure_is_kept_on_the_item(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            capture = create_capture_context(Path(tmp))
            page = _FakePage("https://site.test/", {"#card": {"text": "Card", "shot_error": "Element is not visible"}})
            context = _FakeContext(_FakeRequest({}))
            outcome = export_capture(page, context, [Selection(selector="#card")], capture=capture, label="x", video_enabled=False)

            payload = outcome.manifest.results[0].to_dict()
            self.assertEqual(payload["screenshotError"], "Element is not visible")
            self.assertNotIn("screenshotPath", payload)
            self.assertNotIn("error", payload)
            self.assertEqual(payload["innerText"], "Card")
            self.assertIn("item=1 screenshot_failed=Element is not visible", capture.log_path.read_text(encoding="utf-8"))

    def test_second_export_uses_fresh_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            capture = create_capture_context(Path(tmp))
            page, context, selections = self._fixture()
            first = export_capture(page, context, selections[:1], capture=capture, label="a", video_enabled=False)
            original = capture.manifest_path.read_text(encoding="utf-8")
            second = export_capture(page, context, selections[2:], capture=capture, label="b", video_enabled=False)

            self.assertEqual(first.capture.capture_dir, capture.capture_dir)
            self.assertNotEqual(second.capture.capture_dir, capture.capture_dir)
            self.assertEqual(capture.manifest_path.read_text(encoding="utf-8"), original)
            self.assertTrue(second.capture.manifest_path.exists())


if __name__ == "__main__":
    unittest.main()
