"""Deterministic CSS selector generation for recorded targets.

Strategies, strongest first; each candidate is kept only when it matches exactly
one element of the target's document:

1. stable id                     #login
2. test attributes               [data-testid="submit"]
3. classes                       .primary / .btn.btn-lg.wide
4. tag + attribute               input[name="q"], button[aria-label="Close"]
5. positional path (<= 5 levels) #form > div:nth-child(2) > button

The positional path is re-checked too, but it is returned even when ambiguous
(a warning is logged) so callers always get a non-empty locator.
"""

from __future__ import annotations

import logging
import re

import soupsieve
from bs4 import Tag

logger = logging.getLogger("mcp.bronco.selectors")

TEST_ATTRIBUTES = ("data-testid", "data-cy", "data-test", "data-automation-id")
INPUT_LIKE_TAGS = frozenset({"input", "textarea", "select"})
ACTIVATABLE_TAGS = frozenset({"button", "a"})
MAX_PATH_DEPTH = 5
MAX_CLASS_COMBINATION = 3

_STATE_CLASS_RE = re.compile(r"^(hover|active|focus|visited|disabled)")
_ROOT_NAMES = frozenset({"html", "body", "[document]"})


def is_stable_id(value: object) -> bool:
    """Generated ids tend to start with a digit or contain ':' (React useId, etc.)."""
    return isinstance(value, str) and bool(value) and not value[0].isdigit() and ":" not in value


def css_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\a ")
    return f'"{escaped}"'


def document_root(element: Tag) -> Tag:
    root = element
    while isinstance(root.parent, Tag):
        root = root.parent
    return root


def count_matches(root: Tag, selector: str, *, limit: int = 0) -> int:
    try:
        return len(root.select(selector, limit=limit))
    except soupsieve.SelectorSyntaxError:
        return 0


def is_unique(root: Tag, selector: str) -> bool:
    return count_matches(root, selector, limit=2) == 1


def _attr(element: Tag, name: str) -> str | None:
    raw = element.get(name)
    if isinstance(raw, list):
        raw = " ".join(raw)
    return raw if isinstance(raw, str) and raw else None


def _usable_classes(element: Tag) -> list[str]:
    raw = element.get("class")
    classes = raw if isinstance(raw, list) else (raw.split() if isinstance(raw, str) else [])
    return [c for c in classes if c and not _STATE_CLASS_RE.match(c) and not c[0].isdigit()]


def _by_id(element: Tag, root: Tag) -> str | None:
    el_id = _attr(element, "id")
    if not is_stable_id(el_id):
        return None
    selector = f"#{soupsieve.escape(el_id)}"
    return selector if is_unique(root, selector) else None


def _by_test_attribute(element: Tag, root: Tag) -> str | None:
    for attr in TEST_ATTRIBUTES:
        value = _attr(element, attr)
        if value is None:
            continue
        selector = f"[{attr}={css_string(value)}]"
        if is_unique(root, selector):
            return selector
    return None


def _by_classes(element: Tag, root: Tag) -> str | None:
    classes = _usable_classes(element)
    if not classes:
        return None
    for cls in classes:
        selector = f".{soupsieve.escape(cls)}"
        if is_unique(root, selector):
            return selector
    combined = "".join(f".{soupsieve.escape(c)}" for c in classes[:MAX_CLASS_COMBINATION])
    return combined if is_unique(root, combined) else None


def _by_tag_attribute(element: Tag, root: Tag) -> str | None:
    tag = element.name
    if tag in INPUT_LIKE_TAGS:
        candidates = ("name", "placeholder")
    elif tag in ACTIVATABLE_TAGS:
        candidates = ("aria-label",)
    else:
        return None
    for attr in candidates:
        value = _attr(element, attr)
        if value is None:
            continue
        selector = f"{tag}[{attr}={css_string(value)}]"
        if is_unique(root, selector):
            return selector
    return None


def _element_index(parent: Tag, element: Tag) -> tuple[int, bool]:
    """(1-based position among element siblings, whether a same-tag sibling exists)."""
    position = 0
    index = 0
    same_tag = 0
    for child in parent.find_all(True, recursive=False):
        position += 1
        if child is element:
            index = position
        if child.name == element.name:
            same_tag += 1
    return index, same_tag > 1


def positional_path(element: Tag) -> str:
    parts: list[str] = []
    current: Tag | None = element
    while isinstance(current, Tag) and current.name not in _ROOT_NAMES and len(parts) < MAX_PATH_DEPTH:
        el_id = _attr(current, "id")
        if is_stable_id(el_id):
            parts.insert(0, f"#{soupsieve.escape(el_id)}")
            break
        part = current.name
        parent = current.parent
        if isinstance(parent, Tag):
            index, collides = _element_index(parent, current)
            if collides and index:
                part += f":nth-child({index})"
        parts.insert(0, part)
        current = parent
    return " > ".join(parts) or element.name


def generate_selector(element: Tag) -> str:
    root = document_root(element)
    for strategy in (_by_id, _by_test_attribute, _by_classes, _by_tag_attribute):
        selector = strategy(element, root)
        if selector:
            return selector

    path = positional_path(element)
    if not is_unique(root, path):
        logger.warning("ambiguous_selector selector=%s matches=%s", path, count_matches(root, path))
    return path


__all__ = [
    "TEST_ATTRIBUTES",
    "count_matches",
    "css_string",
    "generate_selector",
    "is_stable_id",
    "is_unique",
    "positional_path",
]
