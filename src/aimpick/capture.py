"""Capture/export pipeline: re-resolve selections and write the manifest."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import urljoin, urlparse

from aimpick.constants import (
    CONTENT_TYPE_EXTENSIONS,
    FALLBACK_EXTENSION,
    FULL_PAGE_SCREENSHOT,
    URL_EXTENSION_MAX_LEN,
)
from aimpick.models import BoundingBox, CaptureResult, DownloadRecord, Manifest, Selection
from aimpick.storage import (
    CaptureContext,
    append_log,
    create_capture_context,
    relative_posix,
    write_json,
)
from aimpick.viewer import write_viewer


NESTED_MEDIA_JS = """
(el) => {
  const pick = (u) => (u && typeof u === 'string') ? u : '';
  const img = el.matches?.('img') ? el : el.querySelector?.('img');
  if (img && img.src) return pick(img.currentSrc || img.src);
  const v = el.matches?.('video') ? el : el.querySelector?.('video');
  if (v) {
    if (v.currentSrc) return pick(v.currentSrc);
    if (v.src) return pick(v.src);
    const s = v.querySelector?.('source');
    if (s && s.src) return pick(s.src);
  }
  const s2 = el.querySelector?.('source');
  if (s2 && s2.src) return pick(s2.src);
  return '';
}
"""


@dataclass(frozen=True)
class CaptureSettings:
    locate_timeout_ms: int = 3500
    inner_text_timeout_ms: int = 2000
    inner_text_max_chars: int = 4000
    max_redirects: int = 5


@dataclass(frozen=True)
class ExportOutcome:
    capture: CaptureContext
    manifest: Manifest
    full_page_screenshot: str | None


def normalize_dedup(base_url: str, urls: list[str]) -> list[str]:
    """Resolve candidates against ``base_url``; drop blanks and repeats, keep order."""
    out: list[str] = []
    seen: set[str] = set()
    for raw in urls:
        if raw is None:
            continue
        value = str(raw).strip()
        if not value:
            continue
        try:
            value = urljoin(base_url, value) if base_url else value
        except ValueError:
            pass
        if value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


def extension_for(content_type: str | None, url: str) -> str:
    lowered = (content_type or "").lower()
    for fragment, extension in CONTENT_TYPE_EXTENSIONS:
        if fragment in lowered:
            return extension
    try:
        path = urlparse(url).path
    except ValueError:
        return FALLBACK_EXTENSION
    suffix = PurePosixPath(path).suffix if "." in path.rsplit("/", 1)[-1] else ""
    if suffix and len(suffix) <= URL_EXTENSION_MAX_LEN:
        return suffix.lower()
    return FALLBACK_EXTENSION


def truncate_text(text: str | None, max_chars: int) -> str:
    value = (text or "").replace("\r", "").strip()
    if len(value) <= max_chars:
        return value
    return value[:max_chars] + "..."


def media_file_name(index: int, ordinal: int, extension: str) -> str:
    if ordinal <= 1:
        return f"media_{index:03d}{extension}"
    return f"media_{index:03d}_{ordinal}{extension}"


def download_media(
    request: Any,
    url: str,
    *,
    capture: CaptureContext,
    index: int,
    ordinal: int,
    max_redirects: int = 5,
) -> DownloadRecord:
    """Fetch one media URL through the browser context request API."""
    try:
        response = request.get(url, max_redirects=max_redirects)
        status = int(response.status)
        if status < 200 or status >= 300:
            return DownloadRecord(url=url, error=f"HTTP {status}")
        body = response.body()
    except Exception as exc:
        return DownloadRecord(url=url, error=str(exc) or exc.__class__.__name__)
    if not body:
        return DownloadRecord(url=url, error="empty body")
    headers = getattr(response, "headers", None) or {}
    content_type = str(headers.get("content-type", "") or "")
    target = capture.media_dir / media_file_name(index, ordinal, extension_for(content_type, url))
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(body)
    except OSError as exc:
        return DownloadRecord(url=url, error=str(exc) or exc.__class__.__name__)
    return DownloadRecord(url=url, saved_as=relative_posix(target, capture.capture_dir))


def capture_selection(
    page: Any,
    request: Any,
    selection: Selection,
    index: int,
    *,
    capture: CaptureContext,
    settings: CaptureSettings,
) -> CaptureResult:
    result = CaptureResult(index=index, resolved_url=_page_url(page), selection=selection)
    selector = selection.selector.strip()
    if not selector:
        result.error = "Missing selector"
        _log(capture, f"item={index} error=missing_selector")
        return result

    locator = page.locator(selector).first
    try:
        locator.wait_for(timeout=settings.locate_timeout_ms)
    except Exception as exc:
        result.error = f"Not found: {exc}"
        _log(capture, f"item={index} error=not_found selector={selector}")
        return result

    try:
        result.bounding_box = BoundingBox.from_playwright(locator.bounding_box())
    except Exception as exc:
        _log(capture, f"item={index} bounding_box_failed={exc}")
    try:
        raw_text = locator.inner_text(timeout=settings.inner_text_timeout_ms)
        result.inner_text = truncate_text(raw_text, settings.inner_text_max_chars)
    except Exception as exc:
        _log(capture, f"item={index} inner_text_failed={exc}")

    shot = capture.screenshots_dir / f"el_{index:03d}.png"
    try:
        shot.parent.mkdir(parents=True, exist_ok=True)
        locator.screenshot(path=str(shot))
        result.screenshot_path = relative_posix(shot, capture.capture_dir)
    except Exception as exc:
        result.screenshot_error = str(exc) or exc.__class__.__name__
        _log(capture, f"item={index} screenshot_failed={result.screenshot_error}")

    candidates = [selection.src, selection.href]
    try:
        nested = locator.evaluate(NESTED_MEDIA_JS)
        if isinstance(nested, str):
            candidates.append(nested)
    except Exception as exc:
        _log(capture, f"item={index} media_probe_failed={exc}")

    saved = 0
    for url in normalize_dedup(result.resolved_url, candidates):
        record = download_media(
            request,
            url,
            capture=capture,
            index=index,
            ordinal=saved + 1,
            max_redirects=settings.max_redirects,
        )
        if record.ok:
            saved += 1
            _log(capture, f"item={index} downloaded={record.saved_as} url={url}")
        else:
            _log(capture, f"item={index} download_failed={record.error} url={url}")
        result.downloads.append(record)
    return result


def export_capture(
    page: Any,
    browser_context: Any,
    selections: list[Selection],
    *,
    capture: CaptureContext,
    label: str,
    video_enabled: bool,
    settings: CaptureSettings | None = None,
) -> ExportOutcome:
    """Capture every selection in order and write manifest plus viewer.

    When ``capture`` already holds a manifest, a new sibling directory is
    allocated instead.
    """
    settings = settings or CaptureSettings()
    if capture.manifest_path.exists():
        capture = create_capture_context(capture.capture_dir.parent)
    capture.screenshots_dir.mkdir(parents=True, exist_ok=True)
    capture.media_dir.mkdir(parents=True, exist_ok=True)
    _log(capture, f"export_start label={label} selections={len(selections)}")

    request = browser_context.request
    results: list[CaptureResult] = []
    for index, selection in enumerate(selections, start=1):
        results.append(
            capture_selection(page, request, selection, index, capture=capture, settings=settings)
        )

    full_page: str | None = None
    full_page_path = capture.capture_dir / FULL_PAGE_SCREENSHOT
    try:
        page.screenshot(path=str(full_page_path), full_page=True)
        full_page = relative_posix(full_page_path, capture.capture_dir)
    except Exception as exc:
        _log(capture, f"full_page_screenshot_failed={exc}")

    manifest = Manifest(
        captured_at=datetime.now(timezone.utc).astimezone().isoformat(),
        page_url=_page_url(page),
        label=label,
        video_enabled=video_enabled,
        selections=list(selections),
        results=results,
    )
    write_json(capture.manifest_path, manifest.to_dict())
    write_viewer(capture.viewer_path)
    failed = sum(1 for item in results if item.error)
    _log(capture, f"export_done results={len(results)} failed={failed} manifest={capture.manifest_path}")
    return ExportOutcome(capture=capture, manifest=manifest, full_page_screenshot=full_page)


def _page_url(page: Any) -> str:
    try:
        return str(page.url or "")
    except Exception:
        return ""


def _log(capture: CaptureContext, message: str) -> None:
    append_log(capture.log_path, message)
