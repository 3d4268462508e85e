"""Shared constants for selector synthesis, profiles and capture export."""

import re

PROFILE_NAME_RE = re.compile(r"^[A-Za-z0-9._-]{1,80}$")
INVALID_NAME_MESSAGE = "invalid name (use letters/numbers/._-)"

# Checked in this order; the first present attribute wins.
STABLE_ATTRIBUTES = (
    "data-testid",
    "data-test-id",
    "data-qa",
    "data-id",
    "aria-label",
    "name",
    "role",
)
STABLE_ATTRIBUTE_MAX_LEN = 140
MAX_SELECTOR_SEGMENTS = 8
MAX_CLASSES_PER_SEGMENT = 2
TEXT_SNIPPET_MAX_CHARS = 240

ALLOWED_KINDS = {"image", "video", "source", "link", "input", "element"}

KIND_BY_TAG = {
    "img": "image",
    "video": "video",
    "source": "source",
    "a": "link",
    "input": "input",
    "textarea": "input",
    "select": "input",
}

NAV_BACKOFF_MS = (250, 600, 1200, 2000, 3000, 4500)
NAV_MAX_ATTEMPTS = 6
NAV_SETTLE_MS = 150

# Lower-cased substrings of navigation errors worth retrying.
TRANSIENT_NAV_SIGNATURES = (
    "err_network_changed",
    "err_internet_disconnected",
    "err_address_unreachable",
    "err_name_not_resolved",
    "err_network_access_denied",
    "err_connection_closed",
    "err_connection_reset",
    "err_connection_refused",
    "err_timed_out",
    "navigation interrupted",
)

# Content-type fragment -> file extension, first match wins.
CONTENT_TYPE_EXTENSIONS = (
    ("image/png", ".png"),
    ("image/jpeg", ".jpg"),
    ("image/jpg", ".jpg"),
    ("image/webp", ".webp"),
    ("image/gif", ".gif"),
    ("video/mp4", ".mp4"),
    ("video/webm", ".webm"),
    ("application/pdf", ".pdf"),
)
URL_EXTENSION_MAX_LEN = 6
FALLBACK_EXTENSION = ".bin"

MANIFEST_NAME = "manifest.json"
VIEWER_NAME = "capture_viewer.html"
FULL_PAGE_SCREENSHOT = "page_full.png"
SCREENSHOTS_DIRNAME = "element_screenshots"
MEDIA_DIRNAME = "media"
CAPTURE_LOG_NAME = "capture.log"

DEFAULT_BROWSER_PROFILE = "default"
DEFAULT_SELECTION_PROFILE = "sample"
DEFAULT_START_URL = "https://example.com"
DEFAULT_CHROMIUM_ARGS = ("--disable-blink-features=AutomationControlled",)

DEFAULT_BROWSER_PROFILE_TEXT = "\n".join(
    (
        "viewportWidth=1400",
        "viewportHeight=900",
        "userAgent=",
        "locale=",
        "timezoneId=",
        "storageStatePath=",
        "extraChromiumArgs=",
        "",
    )
)

STEALTH_BROWSER_PROFILE_TEXT = "\n".join(
    (
        "viewportWidth=1400",
        "viewportHeight=900",
        "extraChromiumArgs=--disable-blink-features=AutomationControlled,"
        "--disable-features=IsolateOrigins,site-per-process",
        "",
    )
)

BRIDGE_OPERATIONS = (
    "getConfig",
    "saveUrlProfiles",
    "saveBrowserProfile",
    "loadBrowserProfile",
    "loadSelectionProfile",
    "saveSelectionProfile",
    "installFromProfile",
)
