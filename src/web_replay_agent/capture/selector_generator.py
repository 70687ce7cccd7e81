"""
Selector Generator - Robust, ranked selectors for a recorded element.

Candidates are produced strategy by strategy (id, data attributes, semantic
attributes, role, classes, short text, position, ancestor path, XPath).
Every candidate is syntax-checked before it is offered. The primary selector
is chosen by a fixed priority table rather than by confidence, so an id
always beats a class even when the class set scored more points.

Example:
    >>> generator = SelectorGenerator()
    >>> result = generator.generate_selector(ElementDescriptor(
    ...     tag_name="button", attributes={"id": "login-btn"}))
    >>> result.primary, result.stability
    ('#login-btn', 'high')
"""

import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Literal, Optional, Union

from bs4 import BeautifulSoup

from web_replay_agent.capture.validation import (
    DomSnapshot,
    FALLBACK_SELECTOR,
    css_escape_identifier,
    quote_attribute_value,
    quote_xpath_literal,
    selector_engine,
    validate_selector,
)

if TYPE_CHECKING:
    from playwright.async_api import ElementHandle, Page

logger = logging.getLogger(__name__)


Stability = Literal["high", "medium", "low"]
Uniqueness = Literal["unique", "multiple", "ambiguous", "unknown"]
Maintainability = Literal["excellent", "good", "fair", "poor"]


DATA_ATTRIBUTES = (
    "data-testid",
    "data-test-id",
    "data-cy",
    "data-test",
    "data-qa",
    "data-automation",
    "data-automation-id",
    "data-id",
    "data-key",
    "data-name",
)

SEMANTIC_ATTRIBUTES = (
    "name",
    "type",
    "placeholder",
    "title",
    "alt",
    "aria-label",
)

IMPLICIT_ROLES = {
    "button": "button",
    "a": "link",
    "img": "img",
    "form": "form",
    "nav": "navigation",
    "main": "main",
    "header": "banner",
    "footer": "contentinfo",
    "select": "combobox",
    "textarea": "textbox",
    "table": "table",
    "ul": "list",
    "ol": "list",
    "li": "listitem",
}

INPUT_ROLES = {
    "checkbox": "checkbox",
    "radio": "radio",
    "button": "button",
    "submit": "button",
    "reset": "button",
    "search": "searchbox",
    "range": "slider",
    "number": "spinbutton",
}

CONFIDENCE_WEIGHTS = {
    "id": 0.4,
    "data": 0.3,
    "semantic": 0.2,
    "role": 0.15,
    "class": 0.1,
    "text": 0.05,
    "position": 0.05,
    "hierarchy": 0.1,
    "xpath": 0.05,
}

# Generated framework classes churn between builds
_VOLATILE_CLASS_PREFIXES = ("css-", "sc-", "jsx-", "ng-", "svelte-", "is-", "has-")


@dataclass
class ElementDescriptor:
    """
    Serializable snapshot of an element, as collected in the page.

    Attributes:
        tag_name: Element tag (any case)
        attributes: All attributes by name
        text: Trimmed text content
        sibling_index: 1-based position among all element siblings
        type_index: 1-based position among same-tag siblings
        parent: Descriptor of the parent element (up to <body>)
    """
    tag_name: str
    attributes: Dict[str, str] = field(default_factory=dict)
    text: str = ""
    sibling_index: Optional[int] = None
    type_index: Optional[int] = None
    parent: Optional["ElementDescriptor"] = None

    @property
    def tag(self) -> str:
        return (self.tag_name or "").lower()

    @property
    def element_id(self) -> Optional[str]:
        value = self.attributes.get("id")
        return value.strip() if value and value.strip() else None

    @property
    def class_list(self) -> List[str]:
        return [c for c in (self.attributes.get("class") or "").split() if c]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ElementDescriptor":
        parent = data.get("parent")
        attributes = data.get("attributes") or {}
        return cls(
            tag_name=str(data.get("tagName") or data.get("tag_name") or data.get("tag") or ""),
            attributes={str(k): str(v) for k, v in attributes.items() if v is not None},
            text=str(data.get("text") or "").strip(),
            sibling_index=data.get("siblingIndex", data.get("sibling_index")),
            type_index=data.get("typeIndex", data.get("type_index")),
            parent=cls.from_dict(parent) if isinstance(parent, dict) else None,
        )

    def ancestors(self) -> List["ElementDescriptor"]:
        chain = []
        node = self.parent
        while node is not None and node.tag not in ("", "body", "html"):
            chain.append(node)
            node = node.parent
        return chain


@dataclass
class SelectorOptions:
    """
    Which strategies the generator runs.

    Attributes:
        prioritize_id: Emit ``#id`` candidates
        prioritize_data_attributes: Emit ``[data-*]`` candidates
        prioritize_semantic_attributes: Emit name/type/aria-label/... candidates
        include_roles: Emit ``role=`` candidates
        include_classes: Emit class and class-pair candidates
        include_text_content: Emit short-text candidates
        include_position: Emit nth-child / nth-of-type candidates
        include_hierarchy: Emit ancestor-path candidates
        include_xpath: Emit XPath candidates
        max_text_length: Text at or above this length is never used
        max_alternatives: Alternatives kept besides the primary
    """
    prioritize_id: bool = True
    prioritize_data_attributes: bool = True
    prioritize_semantic_attributes: bool = True
    include_roles: bool = True
    include_classes: bool = True
    include_text_content: bool = False
    include_position: bool = False
    include_hierarchy: bool = True
    include_xpath: bool = False
    max_text_length: int = 50
    max_alternatives: int = 5

    @classmethod
    def from_strategy(cls, strategy: str) -> "SelectorOptions":
        """Map a capture ``selectorStrategy`` (css, xpath, text, hybrid) to options."""
        strategy = (strategy or "css").lower()
        if strategy == "xpath":
            return cls(include_xpath=True)
        if strategy == "text":
            return cls(include_text_content=True)
        if strategy == "hybrid":
            return cls(include_text_content=True, include_position=True, include_xpath=True)
        return cls()


@dataclass
class GeneratedSelector:
    """Ranked selector set for one element."""
    primary: str
    alternatives: List[str] = field(default_factory=list)
    confidence: float = 0.0
    stability: Stability = "low"
    uniqueness: Uniqueness = "unknown"
    maintainability: Maintainability = "poor"
    reasoning: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary": self.primary,
            "alternatives": list(self.alternatives),
            "confidence": self.confidence,
            "stability": self.stability,
            "uniqueness": self.uniqueness,
            "maintainability": self.maintainability,
            "reasoning": list(self.reasoning),
        }


def _is_stable_class(name: str) -> bool:
    if ":" in name or "[" in name:
        return False
    if name.startswith(_VOLATILE_CLASS_PREFIXES):
        return False
    # hashed names like "a1b2c3d4"
    digits = sum(ch.isdigit() for ch in name)
    return not (len(name) >= 6 and digits >= 3)


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


def uniqueness_from_count(count: Optional[int]) -> Uniqueness:
    if count is None:
        return "unknown"
    if count == 1:
        return "unique"
    if count <= 5:
        return "multiple"
    return "ambiguous"


class SelectorGenerator:
    """
    Builds :class:`GeneratedSelector` results from element descriptors.

    The generator is stateless apart from its options and can be shared.
    """

    def __init__(self, options: Optional[SelectorOptions] = None):
        self.options = options or SelectorOptions()

    @classmethod
    def for_strategy(cls, strategy: str) -> "SelectorGenerator":
        return cls(SelectorOptions.from_strategy(strategy))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_selector(
        self,
        element: Union[ElementDescriptor, Dict[str, Any]],
        dom: Union[None, str, BeautifulSoup, DomSnapshot] = None,
    ) -> GeneratedSelector:
        """
        Generate ranked selectors for ``element``.

        Args:
            element: Descriptor (or its dict form) of the target element
            dom: Optional HTML snapshot used to assess uniqueness

        Returns:
            GeneratedSelector; ``primary`` is never empty
        """
        if isinstance(element, dict):
            element = ElementDescriptor.from_dict(element)

        candidates: List[str] = []
        reasoning: List[str] = []
        confidence = 0.0

        for strategy, builder in self._strategies():
            produced = [s for s in builder(element) if validate_selector(s)]
            if not produced:
                continue
            candidates.extend(produced)
            confidence += CONFIDENCE_WEIGHTS[strategy]
            reasoning.append(f"{strategy}: {len(produced)} selector(s)")

        candidates = _dedupe(candidates)
        if candidates:
            primary = self.choose_primary(candidates)
        else:
            primary = element.tag or FALLBACK_SELECTOR
            reasoning.append("No usable attributes; falling back to tag name")

        alternatives = [c for c in candidates if c != primary][: self.options.max_alternatives]

        uniqueness: Uniqueness = "unknown"
        if dom is not None:
            snapshot = dom if isinstance(dom, DomSnapshot) else DomSnapshot(dom)
            uniqueness = uniqueness_from_count(snapshot.count(primary))

        return GeneratedSelector(
            primary=primary,
            alternatives=alternatives,
            confidence=round(min(confidence, 1.0), 2),
            stability=self.calculate_stability(primary),
            uniqueness=uniqueness,
            maintainability=self.calculate_maintainability(primary),
            reasoning=reasoning,
        )

    async def generate_selector_live(
        self,
        element: Union[ElementDescriptor, Dict[str, Any]],
        page: "Page",
    ) -> GeneratedSelector:
        """Like :meth:`generate_selector`, with uniqueness re-queried on the live page."""
        result = self.generate_selector(element)
        result.uniqueness = await self.assess_uniqueness(result.primary, page)
        return result

    async def describe_element(self, handle: "ElementHandle") -> ElementDescriptor:
        """Collect a descriptor for a live element handle."""
        data = await handle.evaluate(DESCRIBE_ELEMENT_JS)
        return ElementDescriptor.from_dict(data or {})

    @staticmethod
    async def assess_uniqueness(selector: str, page: "Page") -> Uniqueness:
        try:
            count = await page.locator(selector).count()
        except Exception as e:
            logger.debug(f"Uniqueness check failed for {selector!r}: {e}")
            return "ambiguous"
        return uniqueness_from_count(count)

    def generate_multi_element_selector(
        self,
        elements: List[Union[ElementDescriptor, Dict[str, Any]]],
    ) -> GeneratedSelector:
        """One selector matching every element in ``elements`` (common traits only)."""
        descriptors = [
            e if isinstance(e, ElementDescriptor) else ElementDescriptor.from_dict(e)
            for e in elements
        ]
        if not descriptors:
            return GeneratedSelector(
                primary="",
                stability="low",
                uniqueness="ambiguous",
                maintainability="poor",
                reasoning=["No elements provided"],
            )
        if len(descriptors) == 1:
            return self.generate_selector(descriptors[0])

        candidates: List[str] = []
        tags = {d.tag for d in descriptors}
        tag = tags.pop() if len(tags) == 1 else ""

        shared_attributes = set(descriptors[0].attributes.items())
        for descriptor in descriptors[1:]:
            shared_attributes &= set(descriptor.attributes.items())
        for name, value in sorted(shared_attributes):
            if name in ("id", "class", "style") or not value:
                continue
            candidates.append(f"{tag}[{name}={quote_attribute_value(value)}]")

        shared_classes = set(descriptors[0].class_list)
        for descriptor in descriptors[1:]:
            shared_classes &= set(descriptor.class_list)
        for name in sorted(c for c in shared_classes if _is_stable_class(c)):
            candidates.append(f"{tag}.{css_escape_identifier(name)}")

        if tag:
            candidates.append(tag)

        candidates = _dedupe(c for c in candidates if validate_selector(c))
        primary = candidates[0] if candidates else FALLBACK_SELECTOR
        return GeneratedSelector(
            primary=primary,
            alternatives=candidates[1:][: self.options.max_alternatives],
            confidence=0.7,
            stability="medium",
            uniqueness="multiple",
            maintainability="fair",
            reasoning=[f"Common traits of {len(descriptors)} elements"],
        )

    # ------------------------------------------------------------------
    # Ranking
    # ------------------------------------------------------------------

    @staticmethod
    def choose_primary(candidates: List[str]) -> str:
        """id > data attribute > name/type > role > class > hierarchy > first."""
        checks = (
            lambda s: s.startswith("#") and " > " not in s,
            lambda s: "[data-" in s and " > " not in s,
            lambda s: not s.startswith("role=") and ("[name=" in s or "[type=" in s) and " > " not in s,
            lambda s: s.startswith("role=") or "[role=" in s,
            lambda s: s.startswith(".") and " > " not in s,
            lambda s: " > " in s,
        )
        for check in checks:
            for candidate in candidates:
                if check(candidate):
                    return candidate
        return candidates[0]

    @staticmethod
    def calculate_stability(selector: str) -> Stability:
        if ":nth-" in selector or ":has-text(" in selector or selector.startswith("text="):
            return "low"
        if selector_engine(selector) == "xpath":
            return "high" if "@id=" in selector or "@data-" in selector else "low"
        if " > " in selector or selector.startswith("role="):
            return "medium"
        if selector.startswith("#") or "[data-" in selector or "[name=" in selector or "[type=" in selector:
            return "high"
        if "[role=" in selector or "." in selector:
            return "medium"
        return "low"

    @staticmethod
    def calculate_maintainability(selector: str) -> Maintainability:
        if selector.startswith("#") and " > " not in selector:
            return "excellent"
        if selector.startswith("[data-") or selector.startswith("role="):
            return "good"
        if "[name=" in selector or "[aria-label=" in selector:
            return "good"
        if ":nth-" in selector or selector.count(" > ") > 2 or selector_engine(selector) == "xpath":
            return "poor"
        return "fair"

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _strategies(self):
        opts = self.options
        enabled = [
            ("id", opts.prioritize_id, self._id_selectors),
            ("data", opts.prioritize_data_attributes, self._data_selectors),
            ("semantic", opts.prioritize_semantic_attributes, self._semantic_selectors),
            ("role", opts.include_roles, self._role_selectors),
            ("class", opts.include_classes, self._class_selectors),
            ("text", opts.include_text_content, self._text_selectors),
            ("position", opts.include_position, self._position_selectors),
            ("hierarchy", opts.include_hierarchy, self._hierarchy_selectors),
        ]
        for name, on, builder in enabled:
            if on:
                yield name, builder
        if opts.include_xpath:
            yield "xpath", self._xpath_selectors

    def _id_selectors(self, element: ElementDescriptor) -> List[str]:
        element_id = element.element_id
        if not element_id:
            return []
        return [f"#{css_escape_identifier(element_id)}"]

    def _data_selectors(self, element: ElementDescriptor) -> List[str]:
        return [
            f"[{name}={quote_attribute_value(element.attributes[name])}]"
            for name in DATA_ATTRIBUTES
            if element.attributes.get(name)
        ]

    def _semantic_selectors(self, element: ElementDescriptor) -> List[str]:
        tag = element.tag
        selectors = [
            f"{tag}[{name}={quote_attribute_value(element.attributes[name])}]"
            for name in SEMANTIC_ATTRIBUTES
            if element.attributes.get(name)
        ]
        name = element.attributes.get("name")
        input_type = element.attributes.get("type")
        if name and input_type:
            selectors.append(
                f"{tag}[type={quote_attribute_value(input_type)}][name={quote_attribute_value(name)}]"
            )
        return selectors

    def infer_role(self, element: ElementDescriptor) -> Optional[str]:
        explicit = element.attributes.get("role")
        if explicit:
            return explicit.split()[0]
        if element.tag == "input":
            return INPUT_ROLES.get((element.attributes.get("type") or "text").lower(), "textbox")
        if element.tag == "a" and "href" not in element.attributes:
            return None
        return IMPLICIT_ROLES.get(element.tag)

    def _role_selectors(self, element: ElementDescriptor) -> List[str]:
        role = self.infer_role(element)
        if not role or not role.isalpha():
            return []
        selectors = []
        if element.attributes.get("role"):
            selectors.append(f'{element.tag}[role={quote_attribute_value(element.attributes["role"])}]')
        accessible_name = element.attributes.get("aria-label") or element.text
        if accessible_name and len(accessible_name) < self.options.max_text_length:
            selectors.append(f"role={role.lower()}[name={quote_attribute_value(accessible_name)}]")
        else:
            selectors.append(f"role={role.lower()}")
        return selectors

    def _class_selectors(self, element: ElementDescriptor) -> List[str]:
        classes = [c for c in element.class_list if _is_stable_class(c)][:4]
        escaped = [css_escape_identifier(c) for c in classes]
        selectors = [f".{c}" for c in escaped]
        selectors.extend(f".{a}.{b}" for a, b in combinations(escaped, 2))
        return selectors

    def _text_selectors(self, element: ElementDescriptor) -> List[str]:
        text = " ".join(element.text.split())
        if not (0 < len(text) < self.options.max_text_length):
            return []
        quoted = quote_attribute_value(text)
        return [f"{element.tag or '*'}:has-text({quoted})", f"text={quoted}"]

    def _position_selectors(self, element: ElementDescriptor) -> List[str]:
        tag = element.tag or "*"
        selectors = []
        if element.sibling_index:
            selectors.append(f"{tag}:nth-child({element.sibling_index})")
        if element.type_index:
            selectors.append(f"{tag}:nth-of-type({element.type_index})")
        return selectors

    @staticmethod
    def _path_segment(element: ElementDescriptor) -> str:
        if element.element_id:
            return f"#{css_escape_identifier(element.element_id)}"
        classes = [c for c in element.class_list if _is_stable_class(c)]
        if classes:
            return f"{element.tag}.{css_escape_identifier(classes[0])}"
        return element.tag

    def _hierarchy_selectors(self, element: ElementDescriptor) -> List[str]:
        if not element.tag:
            return []
        segments = [self._path_segment(element)]
        for ancestor in element.ancestors():
            segments.insert(0, self._path_segment(ancestor))
            if ancestor.element_id:
                break
        full = " > ".join(segments)
        selectors = [full]
        if len(segments) > 3:
            selectors.append(" > ".join(segments[-3:]))
        return selectors

    def _xpath_selectors(self, element: ElementDescriptor) -> List[str]:
        tag = element.tag or "*"
        selectors = []
        if element.element_id:
            literal = quote_xpath_literal(element.element_id)
            if literal:
                selectors.append(f"xpath=//{tag}[@id={literal}]")
        for name in DATA_ATTRIBUTES + ("name",):
            value = element.attributes.get(name)
            literal = quote_xpath_literal(value) if value else None
            if literal:
                selectors.append(f"xpath=//{tag}[@{name}={literal}]")
        text = " ".join(element.text.split())
        if 0 < len(text) < self.options.max_text_length:
            literal = quote_xpath_literal(text)
            if literal:
                selectors.append(f"xpath=//{tag}[normalize-space()={literal}]")
        return selectors


# Serializes an element the way ElementDescriptor.from_dict expects.
DESCRIBE_ELEMENT_JS = r"""
(el) => {
    function describe(node, depth) {
        if (!node || !node.tagName) return null;
        const attributes = {};
        for (const attr of node.attributes) attributes[attr.name] = attr.value;
        const parentEl = node.parentElement;
        let siblingIndex = null, typeIndex = null;
        if (parentEl) {
            const children = Array.from(parentEl.children);
            siblingIndex = children.indexOf(node) + 1;
            typeIndex = children.filter(c => c.tagName === node.tagName).indexOf(node) + 1;
        }
        const tag = node.tagName.toLowerCase();
        return {
            tagName: tag,
            attributes: attributes,
            text: depth === 0 ? (node.innerText || node.textContent || '').trim().slice(0, 200) : '',
            siblingIndex: siblingIndex,
            typeIndex: typeIndex,
            parent: (depth < 12 && parentEl && tag !== 'body') ? describe(parentEl, depth + 1) : null,
        };
    }
    return describe(el, 0);
}
"""
