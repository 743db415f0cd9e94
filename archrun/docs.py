"""Documentation blocks for the public surface of emitted code units."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Set

from .errors import SequencingError
from .models import CodeUnitResult, DocBlock, PublicElement


logger = logging.getLogger("archrun.docs")

WEB_PLATFORMS = {"web", "ui", "frontend", "react", "vue", "svelte"}


def _argument_name(parameter: str) -> Optional[str]:
    """Name of a required parameter, or None for defaulted/variadic ones."""
    if "=" in parameter or parameter.startswith("*"):
        return None
    name = parameter.split(":", 1)[0].strip()
    return name or None


def _module_name(component: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", component.lower()).strip("_") or "component"


def _instance_name(class_name: str) -> str:
    snake = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", class_name)
    return _module_name(snake)


class DocSynthesizer:
    """Derive DocBlocks from code units that have already been emitted."""

    def __init__(self, emitted: Iterable[str] = (), platform: Optional[str] = None):
        self.emitted: Set[str] = set(emitted)
        self.platform = (platform or "").lower() or None

    def register(self, result: CodeUnitResult) -> None:
        """Record that the code unit behind ``result`` now exists."""
        self.emitted.add(result.unit_id)

    def synthesize(self, result: CodeUnitResult) -> List[DocBlock]:
        """Build one DocBlock per public element introduced by ``result``.

        Raises:
            SequencingError: the code unit has not been emitted yet.
        """
        if result.unit_id not in self.emitted:
            raise SequencingError(
                f"Cannot document '{result.unit_id}' before its code has been emitted",
                unit_id=result.unit_id,
            )

        blocks = [self._block(result, element) for element in result.public_elements]
        for block in blocks:
            issues = block.validate()
            if issues:
                logger.warning(f"Doc block issues for {result.unit_id}: {issues}")
        return blocks

    def _block(self, result: CodeUnitResult, element: PublicElement) -> DocBlock:
        owner = f"{result.component}/{result.element}" if result.element else result.component
        integration_points = list(result.integration_points)
        integration_points.append(f"Provided by {owner}")
        integration_points.extend(f"Defined in `{path}`" for path in result.files)

        block = DocBlock(
            element=element.name,
            summary=element.description or f"{element.name} exposed by {owner}.",
            integration_points=integration_points,
            usage_example=self._usage(result, element),
        )
        if element.is_callable:
            block.parameters = list(element.parameters)
            block.returns = element.returns or "None"
            block.raises = list(element.raises)
        if element.stateful:
            block.state_management = (
                f"{element.name} holds state across calls. Create it once per "
                f"{result.component} instance and pass it to consumers instead of rebuilding it."
            )
        return block

    def _usage(self, result: CodeUnitResult, element: PublicElement) -> str:
        module = _module_name(result.component)
        if element.is_callable:
            args = [name for name in (_argument_name(p) for p in element.parameters) if name]
            call = f"{element.name}({', '.join(args)})"
            if element.returns and element.returns != "None":
                call = f"result = {call}"
            return f"from {module} import {element.name}\n\n{call}"
        if self.platform in WEB_PLATFORMS:
            return f"<{element.name} />"
        if element.stateful:
            return f"from {module} import {element.name}\n\n{_instance_name(element.name)} = {element.name}()"
        return f"from {module} import {element.name}"

    def render(self, title: str, blocks: List[DocBlock]) -> str:
        """Render blocks as the markdown written to the documentation area."""
        fence = "python" if self.platform in (None, "python") else ""
        lines = [f"# {title}", ""]
        for block in blocks:
            lines.append(f"## `{block.element}`")
            lines.append("")
            lines.append(block.summary)
            lines.append("")
            if block.parameters is not None:
                lines.append("**Parameters**")
                lines.extend(f"- `{param}`" for param in block.parameters)
                if not block.parameters:
                    lines.append("- none")
                lines.append("")
                lines.append(f"**Returns**: `{block.returns}`")
                lines.append("")
                lines.append("**Raises**")
                lines.extend(f"- `{error}`" for error in block.raises or [])
                if not block.raises:
                    lines.append("- nothing documented")
                lines.append("")
            if block.state_management is not None:
                lines.append(f"**State management**: {block.state_management}")
                lines.append("")
            lines.append("**Integration points**")
            lines.extend(f"- {point}" for point in block.integration_points)
            lines.append("")
            lines.append("**Usage**")
            lines.append("")
            lines.append(f"```{fence}")
            lines.append(block.usage_example)
            lines.append("```")
            lines.append("")
        return "\n".join(lines).rstrip() + "\n"
