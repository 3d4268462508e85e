import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import MagicMock, patch

from aimpick.bootstrap import RunConfig
from aimpick.capture import CaptureSettings, ExportOutcome
from aimpick.models import Manifest, Selection
from aimpick.pick_script import PickSessionState
from aimpick.profiles import ProfileLibrary
from aimpick.session import SessionAbortedError, run_install, run_interactive


def _fake_export(page, context, selections, *, capture, label, video_enabled, settings=None):
    manifest = Manifest(
        captured_at="2024-01-01T00:00:00+00:00",
        page_url="https://site.test/",
        label=label,
        video_enabled=video_enabled,
        selections=list(selections),
        results=[],
    )
    return ExportOutcome(capture=capture, manifest=manifest, full_page_screenshot=None)


class SessionTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.captures = root / "captures"
        self.library = ProfileLibrary(root / "profiles")
        self.config = RunConfig(
            capture=CaptureSettings(),
            nav_timeout_ms=1000,
            nav_max_attempts=2,
            open_folder=False,
            profiles_dir=root / "profiles",
            captures_dir=self.captures,
        )
        self.page = MagicMock()
        self.page.url = "https://site.test/"
        self.context = MagicMock()
        self.browser = MagicMock()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _status(self) -> dict:
        return json.loads((self.captures / "status.json").read_text(encoding="utf-8"))

    def _run(self, state: PickSessionState, export=None):
        export = export or MagicMock(side_effect=_fake_export)
        with patch("aimpick.session.playwright_available", return_value=True), patch(
            "playwright.sync_api.sync_playwright"
        ), patch("aimpick.session._open_page", return_value=(self.browser, self.context, self.page)), patch(
            "aimpick.session.navigate_with_retry", return_value=1
        ), patch("aimpick.session.install_picker", return_value=True), patch(
            "aimpick.session.wait_for_session_end", return_value=state
        ), patch("aimpick.session.export_capture", export):
            with redirect_stdout(io.StringIO()):
                outcome = run_interactive(
                    "https://site.test/",
                    profile_name="default",
                    video=False,
                    headless=True,
                    config=self.config,
                    library=self.library,
                )
        return outcome, export

    def test_finish_exports_selections(self) -> None:
        state = PickSessionState(active=True, done=True, selections=[Selection(selector="#a"), Selection(selector="#b")])
        outcome, export = self._run(state)
        self.assertEqual(outcome.result, "exported")
        self.assertEqual(export.call_count, 1)
        self.assertEqual(export.call_args.kwargs["label"], "default")
        self.assertEqual([item.selector for item in export.call_args.args[2]], ["#a", "#b"])
        self.assertEqual(self._status()["result"], "exported")
        self.browser.close.assert_called_once()
        self.context.close.assert_called_once()

    def test_cancel_skips_export(self) -> None:
        outcome, export = self._run(PickSessionState(active=True, canceled=True, selections=[Selection(selector="#a")]))
        self.assertEqual(outcome.result, "canceled")
        export.assert_not_called()
        self.assertIsNone(outcome.manifest_path)
        self.assertEqual(self._status()["result"], "canceled")

    def test_finish_without_selections_is_empty(self) -> None:
        outcome, export = self._run(PickSessionState(active=True, done=True))
        self.assertEqual(outcome.result, "empty")
        export.assert_not_called()

    def test_navigation_failure_aborts_and_records_status(self) -> None:
        with patch("aimpick.session.playwright_available", return_value=True), patch(
            "playwright.sync_api.sync_playwright"
        ), patch("aimpick.session._open_page", return_value=(self.browser, self.context, self.page)), patch(
            "aimpick.session.navigate_with_retry", side_effect=RuntimeError("net::ERR_CERT_INVALID")
        ):
            with redirect_stdout(io.StringIO()):
                with self.assertRaises(SessionAbortedError):
                    run_interactive(
                        "https://site.test/",
                        profile_name="default",
                        video=False,
                        headless=True,
                        config=self.config,
                        library=self.library,
                    )
        status = self._status()
        self.assertEqual(status["state"], "failed")
        self.assertIn("net::ERR_CERT_INVALID", status["message"])
        self.browser.close.assert_called_once()

    def _run_failing(self, target: str, **patch_kwargs) -> SessionAbortedError:
        state = PickSessionState(active=True, done=True, selections=[Selection(selector="#a")])
        with patch("aimpick.session.playwright_available", return_value=True), patch(
            "playwright.sync_api.sync_playwright"
        ), patch("aimpick.session._open_page", return_value=(self.browser, self.context, self.page)), patch(
            "aimpick.session.navigate_with_retry", return_value=1
        ), patch("aimpick.session.install_picker", return_value=True), patch(
            "aimpick.session.wait_for_session_end", return_value=state
        ), patch("aimpick.session.export_capture", side_effect=_fake_export):
            with patch(target, **patch_kwargs):
                with redirect_stdout(io.StringIO()):
                    with self.assertRaises(SessionAbortedError) as ctx:
                        run_interactive(
                            "https://site.test/",
                            profile_name="default",
                            video=False,
                            headless=True,
                            config=self.config,
                            library=self.library,
                        )
        return ctx.exception

    def test_picker_install_error_aborts_and_records_status(self) -> None:
        error = RuntimeError("Page.evaluate: Execution context was destroyed, most likely because of a navigation")
        aborted = self._run_failing("aimpick.session.install_picker", side_effect=error)
        self.assertIs(aborted.cause, error)
        status = self._status()
        self.assertEqual(status["state"], "failed")
        self.assertEqual(status["result"], "failed")
        self.assertIn("Execution context was destroyed", status["message"])
        self.browser.close.assert_called_once()

    def test_picker_not_installed_records_failed_status(self) -> None:
        aborted = self._run_failing("aimpick.session.install_picker", return_value=False)
        self.assertIn("Picker script could not be installed", str(aborted))
        self.assertEqual(self._status()["state"], "failed")

    def test_export_error_after_finish_aborts(self) -> None:
        aborted = self._run_failing("aimpick.session.export_capture", side_effect=OSError(28, "No space left on device"))
        self.assertIsInstance(aborted.cause, OSError)
        self.assertEqual(self._status()["state"], "failed")

    def test_bridge_expose_error_aborts(self) -> None:
        self.page.expose_function.side_effect = RuntimeError("Function \"aimGetConfig\" has been already registered")
        self._run_failing("aimpick.session.wait_for_session_end", return_value=PickSessionState())
        self.assertEqual(self._status()["state"], "failed")

    def test_install_with_unknown_profile_aborts_before_launch(self) -> None:
        with patch("aimpick.session.playwright_available") as available:
            with self.assertRaises(SessionAbortedError):
                run_install(
                    "https://site.test/",
                    selection_profile="ghost",
                    sel_index=0,
                    profile_name="default",
                    video=False,
                    headless=True,
                    config=self.config,
                    library=self.library,
                )
        available.assert_not_called()

    def test_missing_playwright_aborts(self) -> None:
        with patch("aimpick.session.playwright_available", return_value=False):
            with self.assertRaises(SessionAbortedError) as ctx:
                run_interactive(
                    "https://site.test/",
                    profile_name="default",
                    video=False,
                    headless=True,
                    config=self.config,
                    library=self.library,
                )
        self.assertIn("playwright install chromium", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
