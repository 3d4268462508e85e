"""Data models and strict parsing for selections, profiles and capture results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from aimpick.constants import ALLOWED_KINDS


@dataclass(frozen=True)
class Selection:
    selector: str
    tag: str = ""
    kind: str = "element"
    text: str = ""
    src: str = ""
    href: str = ""
    outer_html: str = ""

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Selection":
        if not isinstance(payload, dict):
            raise ValueError("selection must be an object")
        kind = _opt_str(payload, "kind") or "element"
        if kind not in ALLOWED_KINDS:
            kind = "element"
        return cls(
            selector=_opt_str(payload, "selector"),
            tag=_opt_str(payload, "tag"),
            kind=kind,
            text=_opt_str(payload, "text"),
            src=_opt_str(payload, "src"),
            href=_opt_str(payload, "href"),
            outer_html=_opt_str(payload, "outerHtml"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "selector": self.selector,
            "tag": self.tag,
            "kind": self.kind,
            "text": self.text,
            "src": self.src,
            "href": self.href,
            "outerHtml": self.outer_html,
        }


@dataclass(frozen=True)
class BoundingBox:
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_playwright(cls, box: dict[str, Any] | None) -> "BoundingBox | None":
        if not box:
            return None
        return cls(
            x=float(box.get("x", 0.0)),
            y=float(box.get("y", 0.0)),
            width=float(box.get("width", 0.0)),
            height=float(box.get("height", 0.0)),
        )

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class DownloadRecord:
    url: str
    saved_as: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return bool(self.saved_as) and not self.error

    def to_dict(self) -> dict[str, str]:
        if self.error:
            return {"url": self.url, "error": self.error}
        return {"url": self.url, "savedAs": self.saved_as}


@dataclass
class CaptureResult:
    index: int
    resolved_url: str
    selection: Selection
    bounding_box: BoundingBox | None = None
    inner_text: str | None = None
    screenshot_path: str | None = None
    screenshot_error: str | None = None
    downloads: list[DownloadRecord] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "index": self.index,
            "resolvedUrl": self.resolved_url,
            "selector": self.selection.selector,
            "tag": self.selection.tag,
            "kind": self.selection.kind,
            "pickedText": self.selection.text,
            "src": self.selection.src,
            "href": self.selection.href,
            "outerHtml": self.selection.outer_html,
        }
        if self.bounding_box is not None:
            payload["boundingBox"] = self.bounding_box.to_dict()
        if self.inner_text is not None:
            payload["innerText"] = self.inner_text
        if self.screenshot_path:
            payload["screenshotPath"] = self.screenshot_path
        if self.screenshot_error:
            payload["screenshotError"] = self.screenshot_error
        payload["downloads"] = [item.to_dict() for item in self.downloads]
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class Manifest:
    captured_at: str
    page_url: str
    label: str
    video_enabled: bool
    selections: list[Selection]
    results: list[CaptureResult]

    def to_dict(self) -> dict[str, Any]:
        return {
            "capturedAt": self.captured_at,
            "pageUrl": self.page_url,
            "label": self.label,
            "videoEnabled": self.video_enabled,
            "selections": [item.to_dict() for item in self.selections],
            "results": [item.to_dict() for item in self.results],
        }


@dataclass(frozen=True)
class UrlProfile:
    name: str
    url: str

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "UrlProfile":
        if not isinstance(payload, dict):
            raise ValueError("url profile must be an object")
        return cls(name=_opt_str(payload, "name").strip(), url=_opt_str(payload, "url").strip())

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "url": self.url}


@dataclass(frozen=True)
class SelectionProfileItem:
    selector: str
    tag: str = ""
    kind: str = ""
    text: str = ""

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "SelectionProfileItem":
        if not isinstance(payload, dict):
            raise ValueError("profile item must be an object")
        return cls(
            selector=_opt_str(payload, "selector"),
            tag=_opt_str(payload, "tag"),
            kind=_opt_str(payload, "kind"),
            text=_opt_str(payload, "text"),
        )

    def to_selection(self) -> Selection:
        kind = self.kind if self.kind in ALLOWED_KINDS else "element"
        return Selection(selector=self.selector, tag=self.tag, kind=kind, text=self.text)

    def to_dict(self) -> dict[str, str]:
        return {"selector": self.selector, "tag": self.tag, "kind": self.kind, "text": self.text}


@dataclass(frozen=True)
class SelectionProfile:
    name: str
    created_at: str
    notes: str
    items: list[SelectionProfileItem]

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "SelectionProfile":
        if not isinstance(payload, dict):
            raise ValueError("selection profile must be an object")
        items = payload.get("items")
        if not isinstance(items, list):
            raise ValueError("items must be array")
        return cls(
            name=_opt_str(payload, "name").strip(),
            created_at=_opt_str(payload, "createdAt"),
            notes=_opt_str(payload, "notes"),
            items=[SelectionProfileItem.from_dict(item) for item in items],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "createdAt": self.created_at,
            "notes": self.notes,
            "items": [item.to_dict() for item in self.items],
        }


def _opt_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    return value
