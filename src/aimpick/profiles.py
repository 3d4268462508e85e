"""Named profile storage: browser settings, saved URLs and saved selector sets."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from aimpick.constants import (
    DEFAULT_BROWSER_PROFILE,
    DEFAULT_BROWSER_PROFILE_TEXT,
    DEFAULT_CHROMIUM_ARGS,
    DEFAULT_SELECTION_PROFILE,
    INVALID_NAME_MESSAGE,
    PROFILE_NAME_RE,
    STEALTH_BROWSER_PROFILE_TEXT,
)
from aimpick.models import Selection, SelectionProfile, UrlProfile


PROFILES_DIR = Path("profiles")
URL_PROFILES_DOC = "url_profiles"


class ProfileNameError(ValueError):
    pass


def validate_profile_name(name: Any) -> str:
    value = str(name or "").strip()
    if not value:
        raise ProfileNameError("missing name")
    if not PROFILE_NAME_RE.match(value):
        raise ProfileNameError(INVALID_NAME_MESSAGE)
    return value


class FileProfileStore:
    """Profiles stored as ``<root>/<name><suffix>``.

    Only the get/list/put contract is used by callers, so another backend
    can replace this one as long as it offers the same three methods.
    """

    def __init__(self, root: Path, suffix: str, *, fallback: str | None = None):
        self.root = root
        self.suffix = suffix
        self.fallback = fallback

    def path_for(self, name: str) -> Path:
        return self.root / f"{validate_profile_name(name)}{self.suffix}"

    def get(self, name: str) -> str | None:
        try:
            path = self.path_for(name)
        except ProfileNameError:
            return None
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def list(self) -> list[str]:
        names: list[str] = []
        if self.root.is_dir():
            for path in self.root.iterdir():
                if path.is_file() and path.name.lower().endswith(self.suffix):
                    names.append(path.name[: -len(self.suffix)])
        if not names and self.fallback:
            names.append(self.fallback)
        return sorted(names, key=str.lower)

    def put(self, name: str, content: str) -> int:
        path = self.path_for(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = content.replace("\r\n", "\n").encode("utf-8")
        path.write_bytes(data)
        return path.stat().st_size


@dataclass
class ProfileLibrary:
    root: Path = PROFILES_DIR
    browser: FileProfileStore = field(init=False)
    selections: FileProfileStore = field(init=False)
    documents: FileProfileStore = field(init=False)

    def __post_init__(self) -> None:
        self.browser = FileProfileStore(self.root, ".properties", fallback=DEFAULT_BROWSER_PROFILE)
        self.selections = FileProfileStore(
            self.root / "selection_profiles",
            ".json",
            fallback=DEFAULT_SELECTION_PROFILE,
        )
        self.documents = FileProfileStore(self.root, ".json")


def ensure_default_profiles(library: ProfileLibrary) -> None:
    """Seed the profile directory; existing files are left untouched."""
    if library.browser.get("default") is None:
        library.browser.put("default", DEFAULT_BROWSER_PROFILE_TEXT)
    if library.browser.get("stealth") is None:
        library.browser.put("stealth", STEALTH_BROWSER_PROFILE_TEXT)
    if library.documents.get(URL_PROFILES_DOC) is None:
        payload = {"profiles": [{"name": "Example", "url": "https://example.com"}]}
        library.documents.put(URL_PROFILES_DOC, _pretty(payload))
    if library.selections.get("sample") is None:
        sample = {
            "name": "sample",
            "createdAt": "",
            "notes": "Replace selectors with your own.",
            "items": [{"selector": "h1", "tag": "h1", "kind": "element", "text": ""}],
        }
        library.selections.put("sample", _pretty(sample))


def parse_properties(text: str) -> dict[str, str]:
    values: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith(("#", "!")):
            continue
        sep_positions = [pos for pos in (line.find("="), line.find(":")) if pos >= 0]
        if not sep_positions:
            values[line] = ""
            continue
        sep = min(sep_positions)
        values[line[:sep].strip()] = line[sep + 1 :].strip()
    return values


@dataclass(frozen=True)
class BrowserProfile:
    name: str = DEFAULT_BROWSER_PROFILE
    viewport_width: int = 1400
    viewport_height: int = 900
    user_agent: str = ""
    locale: str = ""
    timezone_id: str = ""
    storage_state_path: str = ""
    extra_chromium_args: tuple[str, ...] = ()

    @classmethod
    def from_properties(cls, name: str, text: str) -> "BrowserProfile":
        props = parse_properties(text)
        raw_args = props.get("extraChromiumArgs", "")
        return cls(
            name=name,
            viewport_width=_int_or(props.get("viewportWidth"), 1400),
            viewport_height=_int_or(props.get("viewportHeight"), 900),
            user_agent=props.get("userAgent", ""),
            locale=props.get("locale", ""),
            timezone_id=props.get("timezoneId", ""),
            storage_state_path=props.get("storageStatePath", ""),
            extra_chromium_args=tuple(part.strip() for part in raw_args.split(",") if part.strip()),
        )

    def launch_args(self) -> list[str]:
        return list(self.extra_chromium_args or DEFAULT_CHROMIUM_ARGS)

    def context_options(self, *, cwd: Path | None = None) -> dict[str, Any]:
        options: dict[str, Any] = {
            "viewport": {"width": self.viewport_width, "height": self.viewport_height},
        }
        if self.user_agent:
            options["user_agent"] = self.user_agent
        if self.locale:
            options["locale"] = self.locale
        if self.timezone_id:
            options["timezone_id"] = self.timezone_id
        if self.storage_state_path:
            state_path = Path(self.storage_state_path)
            if not state_path.is_absolute():
                state_path = ((cwd or Path.cwd()) / state_path).resolve()
            if state_path.is_file():
                options["storage_state"] = str(state_path)
        return options


def load_browser_profile(library: ProfileLibrary, name: str | None) -> BrowserProfile:
    profile_name = str(name or "").strip() or DEFAULT_BROWSER_PROFILE
    text = library.browser.get(profile_name)
    if text is None:
        return BrowserProfile(name=profile_name)
    return BrowserProfile.from_properties(profile_name, text)


def load_url_profiles(library: ProfileLibrary) -> list[dict[str, Any]]:
    raw = library.documents.get(URL_PROFILES_DOC)
    if raw is None:
        return []
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return []
    profiles = payload.get("profiles") if isinstance(payload, dict) else None
    if not isinstance(profiles, list):
        return []
    return profiles


def save_url_profiles(library: ProfileLibrary, profiles: list[UrlProfile]) -> int:
    payload = {"profiles": [item.to_dict() for item in profiles]}
    return library.documents.put(URL_PROFILES_DOC, _pretty(payload))


def load_selection_profile(library: ProfileLibrary, name: str) -> SelectionProfile:
    raw = library.selections.get(name)
    if raw is None:
        raise FileNotFoundError(f"Selection profile not found: {name}")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid selection profile JSON: {exc}") from exc
    profile = SelectionProfile.from_dict(payload)
    if not profile.name:
        profile = SelectionProfile(name=name, created_at=profile.created_at, notes=profile.notes, items=profile.items)
    return profile


def save_selection_profile(library: ProfileLibrary, profile: SelectionProfile) -> int:
    name = validate_profile_name(profile.name)
    return library.selections.put(name, _pretty(profile.to_dict()))


def selections_from_selection_profile(
    library: ProfileLibrary,
    name: str,
    sel_index: int = 0,
) -> list[Selection]:
    """Return the profile items as selections; ``sel_index`` is 1-based, 0 means all."""
    profile = load_selection_profile(library, name)
    selections: list[Selection] = []
    for position, item in enumerate(profile.items, start=1):
        if sel_index > 0 and position != sel_index:
            continue
        if not item.selector.strip():
            continue
        selections.append(item.to_selection())
    return selections


def _pretty(payload: dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


def _int_or(raw: str | None, default: int) -> int:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return default
