"""Host side of the page bridge: typed requests, profile operations, bindings.

Every operation returns a string. Failures come back as ``"ERR: <reason>"``
(or an ``{"error": ...}`` document for ``getConfig``) and never raise into
the page script.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from aimpick.constants import BRIDGE_OPERATIONS
from aimpick.models import Selection, SelectionProfile, SelectionProfileItem, UrlProfile
from aimpick.profiles import (
    ProfileLibrary,
    ProfileNameError,
    load_url_profiles,
    save_url_profiles,
    selections_from_selection_profile,
    validate_profile_name,
)


Installer = Callable[[list[Selection], str], str]


class BridgeRequestError(ValueError):
    pass


@dataclass(frozen=True)
class SaveUrlProfilesRequest:
    profiles: list[UrlProfile]

    @classmethod
    def parse(cls, raw: Any) -> "SaveUrlProfilesRequest":
        payload = _payload_dict(raw)
        entries = payload.get("profiles")
        if not isinstance(entries, list):
            raise BridgeRequestError("profiles must be array")
        profiles: list[UrlProfile] = []
        for entry in entries:
            try:
                profile = UrlProfile.from_dict(entry)
            except ValueError as exc:
                raise BridgeRequestError(str(exc)) from exc
            _checked_name(profile.name)
            if not profile.url.startswith(("http://", "https://")):
                raise BridgeRequestError(f"url must start with http:// or https:// ({profile.name})")
            profiles.append(profile)
        return cls(profiles=profiles)


@dataclass(frozen=True)
class SaveBrowserProfileRequest:
    name: str
    content: str

    @classmethod
    def parse(cls, raw: Any) -> "SaveBrowserProfileRequest":
        payload = _payload_dict(raw)
        content = payload.get("content", "")
        if not isinstance(content, str):
            raise BridgeRequestError("content must be a string")
        return cls(name=_checked_name(payload.get("name")), content=content)


@dataclass(frozen=True)
class SaveSelectionProfileRequest:
    profile: SelectionProfile

    @classmethod
    def parse(cls, raw: Any) -> "SaveSelectionProfileRequest":
        payload = _payload_dict(raw)
        name = _checked_name(payload.get("name"))
        items = payload.get("items")
        if not isinstance(items, list):
            raise BridgeRequestError("items must be array")
        try:
            parsed_items = [SelectionProfileItem.from_dict(item) for item in items]
        except ValueError as exc:
            raise BridgeRequestError(str(exc)) from exc
        created_at = payload.get("createdAt")
        notes = payload.get("notes")
        return cls(
            profile=SelectionProfile(
                name=name,
                created_at=created_at if isinstance(created_at, str) and created_at else _now_iso(),
                notes=notes if isinstance(notes, str) else "",
                items=parsed_items,
            )
        )


@dataclass(frozen=True)
class InstallFromProfileRequest:
    sel_profile: str
    sel_index: int = 0

    @classmethod
    def parse(cls, raw: Any) -> "InstallFromProfileRequest":
        payload = _payload_dict(raw)
        sel_profile = str(payload.get("selProfile") or "").strip()
        if not sel_profile:
            raise BridgeRequestError("missing selProfile")
        _checked_name(sel_profile)
        try:
            sel_index = int(payload.get("selIndex") or 0)
        except (TypeError, ValueError):
            sel_index = 0
        return cls(sel_profile=sel_profile, sel_index=max(0, sel_index))


class HostBridge:
    def __init__(
        self,
        library: ProfileLibrary,
        *,
        current_browser_profile: str = "default",
        current_url: Callable[[], str] | None = None,
        installer: Installer | None = None,
        log: Callable[[str], None] | None = None,
    ):
        self.library = library
        self.current_browser_profile = current_browser_profile
        self._current_url = current_url or (lambda: "")
        self._installer = installer
        self._log = log

    def get_config(self) -> str:
        try:
            payload = {
                "browserProfiles": self.library.browser.list(),
                "currentBrowserProfile": self.current_browser_profile,
                "urlProfiles": load_url_profiles(self.library),
                "currentUrl": self._current_url(),
                "selectionProfiles": self.library.selections.list(),
            }
        except Exception as exc:
            self._note(f"bridge_op=getConfig error={exc}")
            return json.dumps({"error": str(exc)}, ensure_ascii=False)
        return json.dumps(payload, ensure_ascii=False)

    def save_url_profiles(self, raw: Any) -> str:
        try:
            request = SaveUrlProfilesRequest.parse(raw)
            save_url_profiles(self.library, request.profiles)
        except BridgeRequestError as exc:
            return self._err("saveUrlProfiles", str(exc))
        except Exception as exc:
            return self._err("saveUrlProfiles", str(exc) or exc.__class__.__name__)
        self._note(f"bridge_op=saveUrlProfiles count={len(request.profiles)}")
        return "OK"

    def save_browser_profile(self, raw: Any) -> str:
        try:
            request = SaveBrowserProfileRequest.parse(raw)
            size = self.library.browser.put(request.name, request.content)
        except BridgeRequestError as exc:
            return self._err("saveBrowserProfile", str(exc))
        except Exception as exc:
            return self._err("saveBrowserProfile", str(exc) or exc.__class__.__name__)
        if request.name not in self.library.browser.list():
            return self._err("saveBrowserProfile", "saved but not visible in list (unexpected)")
        path = self.library.browser.path_for(request.name)
        self._note(f"bridge_op=saveBrowserProfile name={request.name} bytes={size}")
        return f"OK: saved {path.as_posix()} ({size} bytes)"

    def load_browser_profile(self, name: Any = "") -> str:
        try:
            return self.library.browser.get(_name_arg(name)) or ""
        except Exception as exc:
            self._note(f"bridge_op=loadBrowserProfile error={exc}")
            return ""

    def load_selection_profile(self, name: Any = "") -> str:
        try:
            raw = self.library.selections.get(_name_arg(name))
            if raw is None:
                return "{}"
            json.loads(raw)
            return raw
        except Exception as exc:
            self._note(f"bridge_op=loadSelectionProfile error={exc}")
            return "{}"

    def save_selection_profile(self, raw: Any) -> str:
        try:
            request = SaveSelectionProfileRequest.parse(raw)
            name = request.profile.name
            content = json.dumps(request.profile.to_dict(), indent=2, ensure_ascii=False) + "\n"
            size = self.library.selections.put(name, content)
        except BridgeRequestError as exc:
            return self._err("saveSelectionProfile", str(exc))
        except Exception as exc:
            return self._err("saveSelectionProfile", str(exc) or exc.__class__.__name__)
        if name not in self.library.selections.list():
            return self._err("saveSelectionProfile", "saved but not visible in list (unexpected)")
        path = self.library.selections.path_for(name)
        self._note(f"bridge_op=saveSelectionProfile name={name} items={len(request.profile.items)}")
        return f"OK: saved {path.as_posix()} ({size} bytes)"

    def install_from_profile(self, raw: Any) -> str:
        try:
            request = InstallFromProfileRequest.parse(raw)
            selections = selections_from_selection_profile(
                self.library,
                request.sel_profile,
                request.sel_index,
            )
        except BridgeRequestError as exc:
            return self._err("installFromProfile", str(exc))
        except Exception as exc:
            return self._err("installFromProfile", str(exc) or exc.__class__.__name__)
        if not selections:
            return self._err("installFromProfile", "no selections")
        if self._installer is None:
            return self._err("installFromProfile", "no live page to export from")
        label = f"{self.current_browser_profile} / {request.sel_profile}"
        try:
            outcome = self._installer(selections, label)
        except Exception as exc:
            return self._err("installFromProfile", str(exc) or exc.__class__.__name__)
        self._note(f"bridge_op=installFromProfile profile={request.sel_profile} items={len(selections)}")
        return outcome or "OK"

    def dispatch(self, operation: str, payload: Any = None) -> str:
        handlers: dict[str, Callable[[Any], str]] = {
            "getConfig": lambda _payload: self.get_config(),
            "saveUrlProfiles": self.save_url_profiles,
            "saveBrowserProfile": self.save_browser_profile,
            "loadBrowserProfile": self.load_browser_profile,
            "loadSelectionProfile": self.load_selection_profile,
            "saveSelectionProfile": self.save_selection_profile,
            "installFromProfile": self.install_from_profile,
        }
        handler = handlers.get(operation)
        if handler is None:
            return f"ERR: unknown operation {operation!r}"
        return handler(payload)

    def bindings(self) -> dict[str, Callable[..., str]]:
        """Page function names mapped to callables taking the raw script arguments."""
        out: dict[str, Callable[..., str]] = {}
        for operation in BRIDGE_OPERATIONS:
            out["aim" + operation[0].upper() + operation[1:]] = _binding(self, operation)
        return out

    def expose(self, page: Any) -> None:
        for name, fn in self.bindings().items():
            page.expose_function(name, fn)

    def _err(self, operation: str, reason: str) -> str:
        self._note(f"bridge_op={operation} error={reason}")
        return f"ERR: {reason}"

    def _note(self, message: str) -> None:
        if self._log is None:
            return
        try:
            self._log(message)
        except Exception:
            return


def _binding(bridge: HostBridge, operation: str) -> Callable[..., str]:
    def call(*args: Any) -> str:
        return bridge.dispatch(operation, args[0] if args else None)

    return call


def _payload_dict(raw: Any) -> dict[str, Any]:
    if raw is None or raw == "":
        raise BridgeRequestError("empty request")
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise BridgeRequestError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(raw, dict):
        raise BridgeRequestError("request must be a JSON object")
    return raw


def _name_arg(raw: Any) -> str:
    if isinstance(raw, dict):
        raw = raw.get("name")
    return str(raw or "").strip()


def _checked_name(name: Any) -> str:
    try:
        return validate_profile_name(name)
    except ProfileNameError as exc:
        raise BridgeRequestError(str(exc)) from exc


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
