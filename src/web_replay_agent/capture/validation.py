"""
Validation - Selector syntax checks and action business rules.

Selectors come in the flavours Playwright understands: plain CSS (with a few
Playwright-only pseudo-classes), ``xpath=`` / ``//`` XPath, ``text=`` and
``role=`` engines, optionally chained with ``>>``. CSS is compiled with
soupsieve (the engine behind BeautifulSoup's ``select``) and XPath with lxml,
so a selector that passes here is one the browser will at least parse.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Union
from urllib.parse import urlsplit

import soupsieve as sv
from bs4 import BeautifulSoup
from lxml import etree
from lxml import html as lxml_html

from web_replay_agent.models import SELECTORLESS_TYPES, Action, ActionType

logger = logging.getLogger(__name__)

FALLBACK_SELECTOR = "body"

_PW_TEXT_PSEUDO = re.compile(r":(?:has-text|text|text-is)\(")
_PW_DROP_PSEUDO = re.compile(r":(?:visible|enabled)\b(?!\()")
_ROLE_SELECTOR = re.compile(
    r'^role=[a-z]+(\[(name|checked|disabled|expanded|level|pressed|selected)'
    r'(=("([^"\\]|\\.)*"|\'([^\'\\]|\\.)*\'|[^\]]+)[is]?)?\])*$'
)


def css_escape_identifier(value: str) -> str:
    """Escape ``value`` for use after ``#`` or ``.`` (CSS.escape semantics)."""
    out = []
    for index, char in enumerate(value):
        code = ord(char)
        if code == 0:
            out.append("\ufffd")
        elif 0x01 <= code <= 0x1F or code == 0x7F:
            out.append(f"\\{code:x} ")
        elif index == 0 and char.isdigit():
            out.append(f"\\{code:x} ")
        elif index == 1 and char.isdigit() and value[0] == "-":
            out.append(f"\\{code:x} ")
        elif index == 0 and char == "-" and len(value) == 1:
            out.append("\\-")
        elif code >= 0x80 or char in "-_" or char.isalnum():
            out.append(char)
        else:
            out.append("\\" + char)
    return "".join(out)


def quote_attribute_value(value: str) -> str:
    """Double-quoted CSS string literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\a ")
    return f'"{escaped}"'


def quote_xpath_literal(value: str) -> Optional[str]:
    """XPath string literal, or None when ``value`` contains both quote kinds."""
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    return None


def to_soupsieve_css(selector: str) -> str:
    """Rewrite Playwright-only pseudo-classes into soupsieve equivalents."""
    selector = _PW_TEXT_PSEUDO.sub(":-soup-contains(", selector)
    return _PW_DROP_PSEUDO.sub("", selector)


def is_valid_css(selector: str) -> bool:
    try:
        sv.compile(to_soupsieve_css(selector))
    except (sv.SelectorSyntaxError, NotImplementedError, ValueError):
        return False
    return True


def is_valid_xpath(expression: str) -> bool:
    try:
        etree.XPath(expression)
    except etree.XPathSyntaxError:
        return False
    return True


def selector_engine(selector: str) -> str:
    """Which Playwright engine ``selector`` targets: css, xpath, text or role."""
    stripped = selector.strip()
    if stripped.startswith("xpath=") or stripped.startswith("//") or stripped.startswith("(//"):
        return "xpath"
    if stripped.startswith("text="):
        return "text"
    if stripped.startswith("role="):
        return "role"
    return "css"


def _validate_part(part: str) -> bool:
    part = part.strip()
    if not part:
        return False
    engine = selector_engine(part)
    if engine == "xpath":
        expression = part[len("xpath="):] if part.startswith("xpath=") else part
        return bool(expression.strip()) and is_valid_xpath(expression)
    if engine == "text":
        return bool(part[len("text="):].strip())
    if engine == "role":
        return bool(_ROLE_SELECTOR.match(part))
    if part.startswith("css="):
        part = part[len("css="):]
    return is_valid_css(part)


def validate_selector(selector: object) -> bool:
    """True when ``selector`` is a non-empty string every part of which parses."""
    if not isinstance(selector, str) or not selector.strip():
        return False
    return all(_validate_part(part) for part in selector.split(">>"))


def coerce_selector(selector: object) -> str:
    """``selector`` when valid, otherwise the ``body`` fallback."""
    if validate_selector(selector):
        return selector.strip()  # type: ignore[union-attr]
    return FALLBACK_SELECTOR


class DomSnapshot:
    """
    Static HTML snapshot that selectors can be counted against.

    CSS is evaluated with BeautifulSoup/soupsieve, XPath with lxml. ``text=``
    and ``role=`` engines need a live page and report None.
    """

    def __init__(self, source: Union[str, BeautifulSoup]):
        if isinstance(source, BeautifulSoup):
            self._soup = source
            self._html = str(source)
        else:
            self._html = source
            self._soup = BeautifulSoup(source, "lxml")
        self._tree = None

    @property
    def soup(self) -> BeautifulSoup:
        return self._soup

    def count(self, selector: str) -> Optional[int]:
        if not validate_selector(selector) or ">>" in selector:
            return None
        engine = selector_engine(selector)
        if engine == "css":
            css = selector[len("css="):] if selector.startswith("css=") else selector
            return len(self._soup.select(to_soupsieve_css(css)))
        if engine == "xpath":
            if self._tree is None:
                self._tree = lxml_html.fromstring(self._html or "<html></html>")
            expression = selector[len("xpath="):] if selector.startswith("xpath=") else selector
            result = self._tree.xpath(expression)
            return len(result) if isinstance(result, list) else None
        return None


@dataclass
class ValidationIssue:
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


def validate_action(action: Action) -> List[ValidationIssue]:
    """
    Business-rule checks applied before an action is persisted.

    Returns an empty list when the action is valid.
    """
    issues: List[ValidationIssue] = []

    if not action.id:
        issues.append(ValidationIssue("id", "must not be empty"))

    if not validate_selector(action.selector):
        if action.type not in SELECTORLESS_TYPES or action.selector:
            issues.append(ValidationIssue("selector", f"invalid selector {action.selector!r}"))

    if action.type == ActionType.NAVIGATE:
        scheme = urlsplit(action.url or "").scheme
        if scheme not in ("http", "https"):
            issues.append(ValidationIssue("url", "navigate requires an http(s) URL"))

    if action.type in (ActionType.TYPE, ActionType.SELECT, ActionType.DRAG_DROP, ActionType.KEY_PRESS):
        if action.value is None:
            issues.append(ValidationIssue("value", f"{action.type.value} requires a value"))

    if action.type == ActionType.DRAG_DROP and action.value is not None and not validate_selector(action.value):
        issues.append(ValidationIssue("value", "drop target is not a valid selector"))

    if action.timeout is not None and action.timeout <= 0:
        issues.append(ValidationIssue("timeout", "must be positive"))

    if action.retry_count is not None and action.retry_count < 0:
        issues.append(ValidationIssue("retry_count", "must not be negative"))

    return issues
