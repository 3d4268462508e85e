"""Bootstrap helpers: environment configuration, browser launch, host utilities."""

from __future__ import annotations

import importlib.util
import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from aimpick.capture import CaptureSettings
from aimpick.constants import NAV_MAX_ATTEMPTS
from aimpick.profiles import PROFILES_DIR, BrowserProfile
from aimpick.storage import CAPTURES_DIR


@dataclass(frozen=True)
class RunConfig:
    capture: CaptureSettings
    nav_timeout_ms: int
    nav_max_attempts: int
    open_folder: bool
    profiles_dir: Path
    captures_dir: Path


def load_run_config() -> RunConfig:
    locate_timeout_ms = _env_int("AIMPICK_LOCATE_TIMEOUT_MS", 3500)
    locate_timeout_ms = max(250, min(60000, locate_timeout_ms))
    inner_text_timeout_ms = _env_int("AIMPICK_INNER_TEXT_TIMEOUT_MS", 2000)
    inner_text_timeout_ms = max(100, min(30000, inner_text_timeout_ms))
    inner_text_max_chars = _env_int("AIMPICK_INNER_TEXT_MAX_CHARS", 4000)
    inner_text_max_chars = max(1, min(200000, inner_text_max_chars))
    max_redirects = max(0, min(20, _env_int("AIMPICK_MAX_REDIRECTS", 5)))
    nav_timeout_ms = max(1000, min(300000, _env_int("AIMPICK_NAV_TIMEOUT_MS", 60000)))
    nav_max_attempts = max(1, min(20, _env_int("AIMPICK_NAV_MAX_ATTEMPTS", NAV_MAX_ATTEMPTS)))
    raw_open = str(os.getenv("AIMPICK_OPEN_FOLDER", "1")).strip().lower()
    return RunConfig(
        capture=CaptureSettings(
            locate_timeout_ms=locate_timeout_ms,
            inner_text_timeout_ms=inner_text_timeout_ms,
            inner_text_max_chars=inner_text_max_chars,
            max_redirects=max_redirects,
        ),
        nav_timeout_ms=nav_timeout_ms,
        nav_max_attempts=nav_max_attempts,
        open_folder=raw_open not in {"0", "false", "no", "off"},
        profiles_dir=Path(os.getenv("AIMPICK_PROFILES_DIR", "") or PROFILES_DIR),
        captures_dir=Path(os.getenv("AIMPICK_CAPTURES_DIR", "") or CAPTURES_DIR),
    )


def playwright_available() -> bool:
    return importlib.util.find_spec("playwright.sync_api") is not None


def launch_browser(playwright_obj: Any, profile: BrowserProfile, *, headless: bool) -> Any:
    kwargs: dict[str, Any] = {"headless": headless, "args": profile.launch_args()}
    try:
        return playwright_obj.chromium.launch(channel="chrome", **kwargs)
    except Exception:
        return playwright_obj.chromium.launch(**kwargs)


def new_browser_context(browser: Any, profile: BrowserProfile, *, video_dir: Path | None = None) -> Any:
    options = profile.context_options()
    if video_dir is not None:
        video_dir.mkdir(parents=True, exist_ok=True)
        options["record_video_dir"] = str(video_dir)
        options["record_video_size"] = {
            "width": profile.viewport_width,
            "height": profile.viewport_height,
        }
    return browser.new_context(**options)


def page_is_closed(page: Any | None) -> bool:
    if page is None:
        return True
    checker = getattr(page, "is_closed", None)
    if callable(checker):
        try:
            return bool(checker())
        except Exception:
            return True
    return False


def is_page_closed_error(exc: BaseException) -> bool:
    msg = str(exc or "").lower()
    return (
        ("target page" in msg and "closed" in msg)
        or "context or browser has been closed" in msg
        or "page closed" in msg
        or "browser has been closed" in msg
    )


def safe_close(*resources: Any) -> None:
    for resource in resources:
        if resource is None:
            continue
        try:
            resource.close()
        except Exception:
            continue


def open_folder(path: Path) -> str | None:
    """Open ``path`` in the platform file browser; returns an error text on failure."""
    target = str(path.resolve())
    if sys.platform.startswith("win"):
        command = ["explorer", target]
    elif sys.platform == "darwin":
        command = ["open", target]
    else:
        command = ["xdg-open", target]
    try:
        subprocess.Popen(command, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except Exception as exc:
        return str(exc) or exc.__class__.__name__
    return None


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not str(raw).strip():
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default
