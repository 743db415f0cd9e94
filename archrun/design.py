"""Parse a design artifact into a component catalog.

The artifact is plain markdown. Components are headings prefixed with
``Component:``; deeper headings inside a component describe its sub-elements.
Metadata uses ``Key: value`` lines and ``Exposes:`` introduces a bullet list of
public elements::

    ## Component: pdf-viewer
    Aliases: pdf reader, document viewer
    Platform: web
    Depends on: storage

    ### model
    Kind: model
    Exposes:
    - PdfDocument (stateful) - Parsed document with a page cache
    - load_document(path: str) -> PdfDocument raises FileNotFoundError - Load a PDF

    ### view
    Depends on: model
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import DesignDocumentError
from .models import (
    ComponentSpec,
    DesignDocument,
    PublicElement,
    SubElement,
    TIER_INTEGRATION,
    TIER_LOGIC,
    TIER_MODELS,
    TIER_MODULES,
    TIER_STRUCTURE,
    TIER_TESTS,
    slugify,
)


logger = logging.getLogger("archrun.design")

TIER_KEYWORDS: Dict[int, Tuple[str, ...]] = {
    TIER_MODELS: ("model", "models", "type", "types", "schema", "schemas", "data", "entity", "entities", "dto"),
    TIER_STRUCTURE: ("structure", "core", "scaffold", "skeleton", "layout", "shell", "store", "state"),
    TIER_MODULES: ("view", "views", "module", "modules", "component", "components", "subcomponent",
                   "page", "pages", "screen", "screens", "widget", "widgets", "ui"),
    TIER_LOGIC: ("logic", "handler", "handlers", "service", "services", "controller", "controllers",
                 "hook", "hooks", "action", "actions", "business", "api", "endpoint", "endpoints"),
    TIER_INTEGRATION: ("style", "styles", "styling", "theme", "css", "integration", "integrations",
                       "adapter", "adapters", "ops", "deploy", "deployment", "config"),
    TIER_TESTS: ("test", "tests", "testing", "spec", "specs"),
}
DEFAULT_TIER = TIER_MODULES

_HEADING_PATTERN = re.compile(r"^(?P<hashes>#{1,6})\s+(?P<title>.+?)\s*#*\s*$")
_COMPONENT_PREFIX = re.compile(r"^component\s*:\s*", re.IGNORECASE)
_ELEMENT_PREFIX = re.compile(r"^(?:sub-?element|element)\s*:\s*", re.IGNORECASE)
_KEY_VALUE_PATTERN = re.compile(r"^\s*(?:[-*]\s+)?(?:\*\*)?(?P<key>[A-Za-z][A-Za-z \-]*?)(?:\*\*)?\s*:\s*(?P<value>.*)$")
_BULLET_PATTERN = re.compile(r"^\s*[-*]\s+(?P<text>.+)$")
_ELEMENT_PATTERN = re.compile(
    r"^`?(?P<name>[A-Za-z_][\w.\-]*)(?P<params>\(.*?\))?"
    r"(?:\s*->\s*(?P<returns>[^\s].*?))?"
    r"(?:\s+raises\s+(?P<raises>[\w., ]+?))?`?"
    r"(?P<stateful>\s*\(stateful\))?"
    r"(?:\s+-\s+(?P<description>.+))?$"
)
_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")

_EMPTY_VALUES = {"", "none", "(none)", "-", "n/a"}

_KEY_ALIASES = {
    "aliases": "aliases",
    "alias": "aliases",
    "also known as": "aliases",
    "depends on": "depends_on",
    "dependencies": "depends_on",
    "depends": "depends_on",
    "requires": "depends_on",
    "platform": "platform",
    "target": "platform",
    "target platform": "platform",
    "kind": "kind",
    "tier": "kind",
    "type": "kind",
    "description": "description",
    "purpose": "description",
    "summary": "description",
    "exposes": "exposes",
    "public": "exposes",
    "public api": "exposes",
    "stateful": "stateful",
}


def tier_for(kind: str, name: str = "") -> int:
    """Map a declared kind (or, failing that, the element name) to a delivery tier."""
    value = kind.strip().lower()
    if value.isdigit():
        tier = int(value)
        if TIER_MODELS <= tier <= TIER_TESTS:
            return tier
        raise DesignDocumentError(f"Tier {tier} is outside the range {TIER_MODELS}-{TIER_TESTS}.")

    for source in (value, name.lower()):
        tokens = [token for token in _TOKEN_SPLIT.split(source) if token]
        for tier, keywords in TIER_KEYWORDS.items():
            if any(token in keywords for token in tokens):
                return tier
    return DEFAULT_TIER


def split_list(value: str) -> Tuple[str, ...]:
    """Split a comma separated metadata value, treating 'none' markers as empty."""
    if value.strip().lower() in _EMPTY_VALUES:
        return ()
    items = [item.strip().strip("`") for item in value.split(",")]
    return tuple(item for item in items if item and item.lower() not in _EMPTY_VALUES)


def split_parameters(params: str) -> Tuple[str, ...]:
    """Split a parenthesised parameter list on top-level commas."""
    inner = params.strip()[1:-1]
    parts: List[str] = []
    depth = 0
    current: List[str] = []
    for char in inner:
        if char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return tuple(part for part in parts if part and part not in {"self", "cls"})


def parse_public_element(text: str) -> PublicElement:
    """Parse one ``Exposes:`` bullet into a public element."""
    match = _ELEMENT_PATTERN.match(text.strip())
    if not match:
        raise DesignDocumentError(f"Cannot parse exposed element '{text.strip()}'.")

    params = match.group("params")
    returns = match.group("returns")
    signature = None
    if params is not None:
        signature = f"{match.group('name')}{params}"
        if returns:
            signature += f" -> {returns.strip()}"

    raises = split_list(match.group("raises") or "")
    return PublicElement(
        name=match.group("name"),
        signature=signature,
        parameters=split_parameters(params) if params is not None else (),
        returns=returns.strip() if returns else None,
        raises=raises,
        stateful=match.group("stateful") is not None,
        description=(match.group("description") or "").strip(),
    )


class _Draft:
    """Mutable accumulator for a heading section while parsing."""

    def __init__(self, name: str, level: int, line_number: int):
        self.name = name
        self.level = level
        self.line_number = line_number
        self.fields: Dict[str, str] = {}
        self.exposes: List[PublicElement] = []
        self.elements: List["_Draft"] = []
        self.collecting_exposes = False


class DesignParser:
    """Turn design markdown into an immutable DesignDocument."""

    def parse(self, text: str, source_path: Optional[Path] = None, mtime: Optional[float] = None) -> DesignDocument:
        drafts = self._collect(text)
        components = [self._build_component(draft) for draft in drafts]

        seen: Dict[str, str] = {}
        for component in components:
            slug = slugify(component.name)
            if slug in seen:
                raise DesignDocumentError(
                    f"Component '{component.name}' is declared more than once in the design artifact "
                    f"('{seen[slug]}' and '{component.name}' both become '{slug}')."
                )
            seen[slug] = component.name

        logger.debug(f"Parsed {len(components)} components from design artifact")
        return DesignDocument(components=tuple(components), source_path=source_path, mtime=mtime)

    def parse_file(self, path: Path | str) -> DesignDocument:
        resolved = Path(path).resolve()
        try:
            text = resolved.read_text(encoding="utf-8")
        except OSError as e:
            raise DesignDocumentError(f"Cannot read design artifact {resolved}: {e}") from e
        return self.parse(text, source_path=resolved, mtime=resolved.stat().st_mtime)

    # ------------------------------------------------------------------
    # Private helper methods
    # ------------------------------------------------------------------

    def _collect(self, text: str) -> List[_Draft]:
        components: List[_Draft] = []
        component: Optional[_Draft] = None
        current: Optional[_Draft] = None
        in_fence = False

        for line_number, line in enumerate(text.splitlines(), start=1):
            if line.strip().startswith("```"):
                in_fence = not in_fence
                continue
            if in_fence:
                continue

            heading = _HEADING_PATTERN.match(line)
            if heading:
                level = len(heading.group("hashes"))
                title = heading.group("title").strip()
                if _COMPONENT_PREFIX.match(title):
                    name = _COMPONENT_PREFIX.sub("", title).strip().strip("`")
                    if not name:
                        raise DesignDocumentError(f"Line {line_number}: component heading without a name.")
                    component = _Draft(name, level, line_number)
                    components.append(component)
                    current = component
                elif component is not None and level > component.level:
                    element = _Draft(_ELEMENT_PREFIX.sub("", title).strip().strip("`"), level, line_number)
                    component.elements.append(element)
                    current = element
                else:
                    component = None
                    current = None
                continue

            if current is None:
                continue

            if current.collecting_exposes:
                bullet = _BULLET_PATTERN.match(line)
                if bullet:
                    current.exposes.append(parse_public_element(bullet.group("text")))
                    continue
                if not line.strip():
                    continue
                current.collecting_exposes = False

            pair = _KEY_VALUE_PATTERN.match(line)
            if not pair:
                continue
            key = _KEY_ALIASES.get(pair.group("key").strip().lower())
            if key is None:
                continue
            value = pair.group("value").strip()
            if key == "exposes":
                current.collecting_exposes = True
                if value and value.lower() not in _EMPTY_VALUES:
                    current.exposes.append(parse_public_element(value))
                continue
            current.fields[key] = value

        return components

    def _build_component(self, draft: _Draft) -> ComponentSpec:
        seen: Dict[str, str] = {}
        for element in draft.elements:
            slug = slugify(element.name)
            if slug in seen:
                raise DesignDocumentError(
                    f"Component '{draft.name}' declares sub-element '{element.name}' more than once "
                    f"('{seen[slug]}' and '{element.name}' both become '{slug}')."
                )
            seen[slug] = element.name

        elements = tuple(self._build_element(element) for element in draft.elements)
        return ComponentSpec(
            name=draft.name,
            aliases=split_list(draft.fields.get("aliases", "")),
            dependencies=split_list(draft.fields.get("depends_on", "")),
            platform=draft.fields.get("platform") or None,
            sub_elements=elements,
            description=draft.fields.get("description", ""),
        )

    def _build_element(self, draft: _Draft) -> SubElement:
        kind = draft.fields.get("kind", "")
        exposes = list(draft.exposes)
        if draft.fields.get("stateful", "").strip().lower() in {"yes", "true"}:
            exposes = [
                PublicElement(
                    name=item.name,
                    signature=item.signature,
                    parameters=item.parameters,
                    returns=item.returns,
                    raises=item.raises,
                    stateful=True,
                    description=item.description,
                )
                for item in exposes
            ]
        return SubElement(
            name=draft.name,
            tier=tier_for(kind, draft.name),
            kind=kind.strip().lower(),
            depends_on=split_list(draft.fields.get("depends_on", "")),
            exposes=tuple(exposes),
            description=draft.fields.get("description", ""),
        )


def load_design(path: Path | str) -> DesignDocument:
    """Parse the design artifact at ``path``."""
    return DesignParser().parse_file(path)
