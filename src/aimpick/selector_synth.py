"""CSS selector synthesis for picked elements.

The same rules run in two places: ``SELECTOR_JS`` is injected into the live
page by the picker, and the functions below apply them to a parsed static
document so selection profiles can be built from saved HTML.

Priority order for one element:

1. a non-empty ``id`` gives ``#<escaped id>``;
2. otherwise the first stable attribute (see ``STABLE_ATTRIBUTES``) with a
   short enough value gives ``tag[attr="value"]``;
3. otherwise a structural path is built from the element upwards, stopping
   at the first ancestor with a stable attribute, at the document root, or
   after ``MAX_SELECTOR_SEGMENTS`` segments.
"""

from __future__ import annotations

import json
import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from aimpick.constants import (
    KIND_BY_TAG,
    MAX_CLASSES_PER_SEGMENT,
    MAX_SELECTOR_SEGMENTS,
    STABLE_ATTRIBUTE_MAX_LEN,
    STABLE_ATTRIBUTES,
    TEXT_SNIPPET_MAX_CHARS,
)
from aimpick.models import Selection


_WS_RE = re.compile(r"\s+")


def css_escape(value: str) -> str:
    """Serialize an identifier the way ``CSS.escape`` does."""
    out: list[str] = []
    length = len(value)
    for pos, char in enumerate(value):
        code = ord(char)
        if code == 0:
            out.append("�")
        elif 0x01 <= code <= 0x1F or code == 0x7F:
            out.append(f"\\{code:x} ")
        elif pos == 0 and "0" <= char <= "9":
            out.append(f"\\{code:x} ")
        elif pos == 1 and "0" <= char <= "9" and value[0] == "-":
            out.append(f"\\{code:x} ")
        elif pos == 0 and char == "-" and length == 1:
            out.append("\\-")
        elif code >= 0x80 or char in "-_" or char.isascii() and char.isalnum():
            out.append(char)
        else:
            out.append("\\" + char)
    return "".join(out)


def quote_attribute_value(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def stable_attribute_selector(element: Tag) -> str:
    for attr in STABLE_ATTRIBUTES:
        raw = element.get(attr)
        if raw is None:
            continue
        value = " ".join(raw) if isinstance(raw, list) else str(raw)
        if value and len(value) <= STABLE_ATTRIBUTE_MAX_LEN:
            return f"{element.name}[{attr}={quote_attribute_value(value)}]"
    return ""


def build_selector(element: Tag) -> str:
    if not isinstance(element, Tag) or isinstance(element, BeautifulSoup):
        return ""
    element_id = element.get("id")
    if element_id:
        return "#" + css_escape(str(element_id))
    stable = stable_attribute_selector(element)
    if stable:
        return stable

    parts: list[str] = []
    current: Tag | None = element
    while current is not None and not _is_document_root(current):
        anchor = stable_attribute_selector(current)
        if anchor:
            parts.insert(0, anchor)
            break
        part = current.name
        classes = _class_list(current)[:MAX_CLASSES_PER_SEGMENT]
        part += "".join("." + css_escape(name) for name in classes)
        parent = current.parent
        if parent is not None:
            same = [child for child in parent.find_all(True, recursive=False) if child.name == current.name]
            if len(same) > 1:
                position = next(i for i, child in enumerate(same, start=1) if child is current)
                part += f":nth-of-type({position})"
        parts.insert(0, part)
        current = parent if isinstance(parent, Tag) and not isinstance(parent, BeautifulSoup) else None
        if len(parts) >= MAX_SELECTOR_SEGMENTS:
            break
    return " > ".join(parts)


def guess_kind(element: Tag) -> str:
    return KIND_BY_TAG.get((element.name or "").lower(), "element")


def text_snippet(element: Tag) -> str:
    text = _WS_RE.sub(" ", element.get_text(" ")).strip()
    return text[:TEXT_SNIPPET_MAX_CHARS]


def element_src(element: Tag, base_url: str = "") -> str:
    if element.name not in {"img", "video", "source"}:
        return ""
    return _resolve(str(element.get("src") or ""), base_url)


def element_href(element: Tag, base_url: str = "") -> str:
    if element.name != "a":
        return ""
    return _resolve(str(element.get("href") or ""), base_url)


def selection_for(element: Tag, base_url: str = "") -> Selection:
    return Selection(
        selector=build_selector(element),
        tag=(element.name or "").lower(),
        kind=guess_kind(element),
        text=text_snippet(element),
        src=element_src(element, base_url),
        href=element_href(element, base_url),
        outer_html=str(element),
    )


def selections_from_html(html: str, query: str, *, base_url: str = "") -> list[Selection]:
    """Synthesize selections for every element of ``html`` matching ``query``."""
    soup = BeautifulSoup(html, "html.parser")
    selections: list[Selection] = []
    for element in soup.select(query):
        selection = selection_for(element, base_url)
        if selection.selector:
            selections.append(selection)
    return selections


def _is_document_root(element: Tag) -> bool:
    parent = element.parent
    if parent is None:
        return True
    return isinstance(parent, BeautifulSoup) and element.name == "html"


def _class_list(element: Tag) -> list[str]:
    raw = element.get("class") or []
    if isinstance(raw, str):
        raw = raw.split()
    return [name for name in raw if name]


def _resolve(value: str, base_url: str) -> str:
    value = value.strip()
    if not value or not base_url:
        return value
    return urljoin(base_url, value)


SELECTOR_JS = """
  const __AIM_STABLE_ATTRS = __STABLE_ATTRS__;
  const __AIM_STABLE_MAX = __STABLE_MAX__;
  const __AIM_MAX_SEGMENTS = __MAX_SEGMENTS__;
  const __AIM_MAX_CLASSES = __MAX_CLASSES__;
  const __AIM_TEXT_MAX = __TEXT_MAX__;
  const __AIM_KINDS = __KIND_BY_TAG__;

  function cssEscape(s) {
    try { return CSS.escape(String(s)); }
    catch (e) { return String(s).replace(/[^a-zA-Z0-9_-]/g, '\\\\$&'); }
  }

  function quoteAttr(v) {
    return '"' + String(v).replace(/\\\\/g, '\\\\\\\\').replace(/"/g, '\\\\"') + '"';
  }

  function stableAttrSelector(el) {
    for (const a of __AIM_STABLE_ATTRS) {
      const v = el.getAttribute && el.getAttribute(a);
      if (v && v.length <= __AIM_STABLE_MAX) {
        return `${el.tagName.toLowerCase()}[${a}=${quoteAttr(v)}]`;
      }
    }
    return '';
  }

  function buildSelector(el) {
    if (!(el instanceof Element)) return '';
    if (el.id) return '#' + cssEscape(el.id);
    const stable = stableAttrSelector(el);
    if (stable) return stable;
    const parts = [];
    let cur = el;
    while (cur && cur.nodeType === 1 && cur !== document.documentElement) {
      const anchor = stableAttrSelector(cur);
      if (anchor) { parts.unshift(anchor); break; }
      let part = cur.tagName.toLowerCase();
      if (cur.classList && cur.classList.length) {
        part += Array.from(cur.classList).slice(0, __AIM_MAX_CLASSES).map(c => '.' + cssEscape(c)).join('');
      }
      const parent = cur.parentElement;
      if (parent) {
        const same = Array.from(parent.children).filter(x => x.tagName === cur.tagName);
        if (same.length > 1) part += `:nth-of-type(${same.indexOf(cur) + 1})`;
      }
      parts.unshift(part);
      cur = parent;
      if (parts.length >= __AIM_MAX_SEGMENTS) break;
    }
    return parts.join(' > ');
  }

  function textSnippet(el) {
    try {
      const t = (el.innerText || el.textContent || '').trim().replace(/\\s+/g, ' ');
      return t.slice(0, __AIM_TEXT_MAX);
    } catch (e) { return ''; }
  }

  function guessKind(el) {
    const tag = (el.tagName || '').toLowerCase();
    return __AIM_KINDS[tag] || 'element';
  }

  function getSrc(el) {
    try {
      const tag = (el.tagName || '').toLowerCase();
      if (tag === 'img' || tag === 'video') return el.currentSrc || el.src || '';
      if (tag === 'source') return el.src || '';
    } catch (e) {}
    return '';
  }

  function getHref(el) {
    try {
      if ((el.tagName || '').toLowerCase() === 'a') return el.href || '';
    } catch (e) {}
    return '';
  }
"""


def selector_script() -> str:
    """Return ``SELECTOR_JS`` with the synthesis limits filled in."""
    return (
        SELECTOR_JS.replace("__STABLE_ATTRS__", json.dumps(list(STABLE_ATTRIBUTES)))
        .replace("__STABLE_MAX__", str(STABLE_ATTRIBUTE_MAX_LEN))
        .replace("__MAX_SEGMENTS__", str(MAX_SELECTOR_SEGMENTS))
        .replace("__MAX_CLASSES__", str(MAX_CLASSES_PER_SEGMENT))
        .replace("__TEXT_MAX__", str(TEXT_SNIPPET_MAX_CHARS))
        .replace("__KIND_BY_TAG__", json.dumps(KIND_BY_TAG))
    )
