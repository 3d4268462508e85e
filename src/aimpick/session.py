"""Session runner: launch, navigate, pick, export."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from aimpick.bootstrap import (
    RunConfig,
    is_page_closed_error,
    launch_browser,
    new_browser_context,
    open_folder,
    page_is_closed,
    playwright_available,
    safe_close,
)
from aimpick.capture import ExportOutcome, export_capture
from aimpick.models import Selection
from aimpick.navigation import navigate_with_retry
from aimpick.pick_script import install_picker, register_picker, wait_for_session_end
from aimpick.profiles import (
    BrowserProfile,
    ProfileLibrary,
    ensure_default_profiles,
    load_browser_profile,
    selections_from_selection_profile,
)
from aimpick.storage import CaptureContext, append_log, create_capture_context, write_status
from aimpick.web_bridge import HostBridge


class SessionAbortedError(RuntimeError):
    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


@dataclass(frozen=True)
class SessionOutcome:
    result: str
    capture_dir: Path
    manifest_path: Path | None = None
    selections: int = 0


def run_interactive(
    url: str,
    *,
    profile_name: str,
    video: bool,
    headless: bool,
    config: RunConfig,
    library: ProfileLibrary,
) -> SessionOutcome:
    """Open ``url``, let the operator pick elements, export on finish."""
    _require_playwright()
    from playwright.sync_api import sync_playwright

    ensure_default_profiles(library)
    profile = load_browser_profile(library, profile_name)
    capture = create_capture_context(config.captures_dir)
    log = _session_logger(capture)
    log(f"capture_id={capture.capture_id}")
    log(f"mode=interactive url={url} profile={profile.name} video={video} headless={headless}")
    write_status(capture_id=capture.capture_id, capture_dir=capture.capture_dir, url=url, result="running", state="running", root=config.captures_dir)
    print(f"Output:   {capture.capture_dir}")
    print(f"Profile:  {profile.name}")
    print(f"Navigate: {url}")

    exports: list[ExportOutcome] = []
    try:
        with sync_playwright() as p:
            browser, context, page = _open_page(p, profile, headless=headless, video_dir=_video_dir(capture, video))
            try:
                _navigate(page, url, config=config, log=log)

                def installer(selections: list[Selection], label: str) -> str:
                    outcome = _export(page, context, selections, capture, label=label, video=video, config=config, log=log)
                    exports.append(outcome)
                    return "OK"

                bridge = HostBridge(
                    library,
                    current_browser_profile=profile.name,
                    current_url=lambda: str(page.url or ""),
                    installer=installer,
                    log=log,
                )
                bridge.expose(page)
                if not install_picker(page):
                    raise SessionAbortedError("Picker script could not be installed on the page")
                log("picker=installed")
                print("Pick elements in the browser. Install (F9) exports, Esc cancels.")

                try:
                    state = wait_for_session_end(page)
                except Exception as exc:
                    if page_is_closed(page) or is_page_closed_error(exc):
                        log("session=page_closed")
                        print("Page closed. Exiting.")
                        return _finish(capture, url, "closed", exports, config)
                    raise

                if state.canceled:
                    log("session=canceled")
                    print("Canceled.")
                    return _finish(capture, url, "canceled", exports, config)
                if not state.selections:
                    log("session=empty")
                    print("No selections.")
                    return _finish(capture, url, "empty", exports, config)
                log(f"session=done selections={len(state.selections)}")
                installer(state.selections, profile.name)
                return _finish(capture, url, "exported", exports, config)
            finally:
                safe_close(context, browser)
    except SessionAbortedError as exc:
        _abort(capture, url, exc, config=config, log=log)
        raise
    except Exception as exc:
        raise _abort(capture, url, exc, config=config, log=log) from exc


def run_install(
    url: str,
    *,
    selection_profile: str,
    sel_index: int,
    profile_name: str,
    video: bool,
    headless: bool,
    config: RunConfig,
    library: ProfileLibrary,
) -> SessionOutcome:
    """Export a saved selection profile against ``url`` without operator input."""
    ensure_default_profiles(library)
    try:
        selections = selections_from_selection_profile(library, selection_profile, sel_index)
    except (OSError, ValueError) as exc:
        raise SessionAbortedError(str(exc), exc) from exc
    if not selections:
        raise SessionAbortedError(f"No selections in profile {selection_profile!r}")
    _require_playwright()
    from playwright.sync_api import sync_playwright

    profile = load_browser_profile(library, profile_name)
    capture = create_capture_context(config.captures_dir)
    log = _session_logger(capture)
    log(f"capture_id={capture.capture_id}")
    log(f"mode=install url={url} profile={profile.name} selection_profile={selection_profile} index={sel_index}")
    write_status(capture_id=capture.capture_id, capture_dir=capture.capture_dir, url=url, result="running", state="running", root=config.captures_dir)
    print(f"Output:   {capture.capture_dir}")
    print(f"Navigate: {url}")

    exports: list[ExportOutcome] = []
    try:
        with sync_playwright() as p:
            browser, context, page = _open_page(p, profile, headless=headless, video_dir=_video_dir(capture, video))
            try:
                _navigate(page, url, config=config, log=log)
                label = f"{profile.name} / {selection_profile}"
                exports.append(_export(page, context, selections, capture, label=label, video=video, config=config, log=log))
            finally:
                safe_close(context, browser)
        return _finish(capture, url, "exported", exports, config)
    except SessionAbortedError as exc:
        _abort(capture, url, exc, config=config, log=log)
        raise
    except Exception as exc:
        raise _abort(capture, url, exc, config=config, log=log) from exc


def _require_playwright() -> None:
    if not playwright_available():
        raise SessionAbortedError(
            "Playwright Python package is not installed. "
            "Install it and run `playwright install chromium`."
        )


def _session_logger(capture: CaptureContext) -> Callable[[str], None]:
    def log(message: str) -> None:
        append_log(capture.log_path, message)

    return log


def _video_dir(capture: CaptureContext, video: bool) -> Path | None:
    return capture.capture_dir / "video" if video else None


def _open_page(playwright_obj: Any, profile: BrowserProfile, *, headless: bool, video_dir: Path | None) -> tuple[Any, Any, Any]:
    try:
        browser = launch_browser(playwright_obj, profile, headless=headless)
    except Exception as exc:
        raise SessionAbortedError(f"Browser launch failed: {exc}", exc) from exc
    try:
        context = new_browser_context(browser, profile, video_dir=video_dir)
        register_picker(context)
        page = context.new_page()
    except Exception as exc:
        safe_close(browser)
        raise SessionAbortedError(f"Browser context setup failed: {exc}", exc) from exc
    return browser, context, page


def _navigate(page: Any, url: str, *, config: RunConfig, log: Callable[[str], None]) -> None:
    def report(message: str) -> None:
        print(message)
        log(message)

    try:
        attempts = navigate_with_retry(
            page,
            url,
            max_attempts=config.nav_max_attempts,
            timeout_ms=config.nav_timeout_ms,
            log=report,
        )
    except Exception as exc:
        log(f"navigation=failed error={exc}")
        raise SessionAbortedError(f"Navigation failed: {exc}", exc) from exc
    log(f"navigation=ok attempts={attempts}")


def _abort(
    capture: CaptureContext,
    url: str,
    exc: BaseException,
    *,
    config: RunConfig,
    log: Callable[[str], None],
) -> SessionAbortedError:
    """Record a failed status for ``exc`` and return it as a session abort."""
    if isinstance(exc, SessionAbortedError):
        aborted = exc
    else:
        aborted = SessionAbortedError(f"Browser session failed: {exc}", exc)
    log(f"session=aborted error={aborted}")
    write_status(
        capture_id=capture.capture_id,
        capture_dir=capture.capture_dir,
        url=url,
        result="failed",
        state="failed",
        message=str(aborted),
        root=config.captures_dir,
    )
    return aborted


def _export(
    page: Any,
    context: Any,
    selections: list[Selection],
    capture: CaptureContext,
    *,
    label: str,
    video: bool,
    config: RunConfig,
    log: Callable[[str], None],
) -> ExportOutcome:
    outcome = export_capture(
        page,
        context,
        selections,
        capture=capture,
        label=label,
        video_enabled=video,
        settings=config.capture,
    )
    print(f"Saved:  {outcome.capture.manifest_path}")
    print(f"Viewer: {outcome.capture.viewer_path}")
    log(f"export manifest={outcome.capture.manifest_path}")
    if config.open_folder:
        error = open_folder(outcome.capture.capture_dir)
        if error:
            log(f"open_folder_failed={error}")
    return outcome


def _finish(
    capture: CaptureContext,
    url: str,
    result: str,
    exports: list[ExportOutcome],
    config: RunConfig,
) -> SessionOutcome:
    last = exports[-1] if exports else None
    capture_dir = last.capture.capture_dir if last else capture.capture_dir
    manifest_path = last.capture.manifest_path if last else None
    selections = len(last.manifest.results) if last else 0
    write_status(
        capture_id=capture_dir.name,
        capture_dir=capture_dir,
        url=url,
        result=result,
        selections=selections,
        message=f"exports={len(exports)}",
        root=config.captures_dir,
    )
    return SessionOutcome(
        result=result,
        capture_dir=capture_dir,
        manifest_path=manifest_path,
        selections=selections,
    )
