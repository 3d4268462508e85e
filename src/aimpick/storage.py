"""File storage helpers for capture sessions."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from aimpick.constants import (
    CAPTURE_LOG_NAME,
    MANIFEST_NAME,
    MEDIA_DIRNAME,
    SCREENSHOTS_DIRNAME,
    VIEWER_NAME,
)


CAPTURES_DIR = Path("captures")
STATUS_NAME = "status.json"


@dataclass(frozen=True)
class CaptureContext:
    capture_id: str
    capture_dir: Path
    log_path: Path
    manifest_path: Path
    viewer_path: Path
    screenshots_dir: Path
    media_dir: Path


def create_capture_context(root: Path | None = None) -> CaptureContext:
    """Allocate a fresh timestamp-named capture directory.

    An existing directory is never reused, so a manifest written by an
    earlier export can not be overwritten.
    """
    base_dir = root or CAPTURES_DIR
    base_dir.mkdir(parents=True, exist_ok=True)
    capture_dir: Path | None = None
    capture_id = ""
    for attempt in range(100):
        base = datetime.now().strftime("aim_capture_%Y%m%d_%H%M%S")
        suffix = f"-{attempt:02d}" if attempt else ""
        capture_id = f"{base}{suffix}"
        candidate = base_dir / capture_id
        if candidate.exists():
            continue
        candidate.mkdir(parents=True, exist_ok=False)
        capture_dir = candidate
        break
    if capture_dir is None:
        raise RuntimeError("Could not allocate unique capture directory")
    return CaptureContext(
        capture_id=capture_id,
        capture_dir=capture_dir,
        log_path=capture_dir / CAPTURE_LOG_NAME,
        manifest_path=capture_dir / MANIFEST_NAME,
        viewer_path=capture_dir / VIEWER_NAME,
        screenshots_dir=capture_dir / SCREENSHOTS_DIRNAME,
        media_dir=capture_dir / MEDIA_DIRNAME,
    )


def append_log(path: Path, message: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fh.write(message.rstrip() + "\n")


def write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, ensure_ascii=False)
        fh.write("\n")


def read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def relative_posix(path: Path, base: Path) -> str:
    return path.relative_to(base).as_posix()


def write_status(
    *,
    capture_id: str,
    capture_dir: Path,
    url: str,
    result: str,
    state: str = "completed",
    selections: int | None = None,
    message: str | None = None,
    root: Path | None = None,
) -> None:
    payload: dict[str, Any] = {
        "capture_id": capture_id,
        "capture_dir": str(capture_dir),
        "url": url,
        "result": result,
        "state": state,
        "updated_at_utc": datetime.now(timezone.utc).isoformat(),
    }
    if selections is not None:
        payload["selections"] = selections
    if message:
        payload["message"] = message
    write_json((root or CAPTURES_DIR) / STATUS_NAME, payload)


def status_payload(root: Path | None = None) -> dict[str, Any]:
    status_path = (root or CAPTURES_DIR) / STATUS_NAME
    if not status_path.exists():
        return {"status": "no-captures"}
    return read_json(status_path)


def tail_lines(path: Path, line_count: int) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8") as fh:
        lines = fh.readlines()
    return [line.rstrip("\n") for line in lines[-line_count:]]
