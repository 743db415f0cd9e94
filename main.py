"""MCP server exposing the archrun delivery workflow tools."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from mcp.server.fastmcp import FastMCP

from archrun import WorkflowManager
from archrun.config import DEFAULT_STORAGE_DIR, ENV_PROJECT_ROOT, ENV_STORAGE_DIR, Settings
from archrun.indexer import DESIGN_CANDIDATES
from archrun.arch_logging import setup_logging

mcp = FastMCP("archrun")


SERVER_DIR = Path(__file__).resolve().parent


def _search_paths() -> Iterator[Path]:
    """The working directory, its ancestors, then the server's own directory."""
    here = Path.cwd().resolve()
    yield from dict.fromkeys([here, *here.parents, SERVER_DIR])


def _is_workspace(path: Path) -> bool:
    storage = {os.getenv(ENV_STORAGE_DIR) or DEFAULT_STORAGE_DIR, DEFAULT_STORAGE_DIR}
    if any((path / name).is_dir() for name in storage):
        return True
    return any((path / name).is_file() or (path / name.upper()).is_file() for name in DESIGN_CANDIDATES)


def _existing(value: str, source: str) -> Path:
    path = Path(value).expanduser().resolve()
    if not path.exists():
        raise ValueError(f"{source} '{value}' does not exist.")
    return path


def _resolve_root(root: Optional[str]) -> Path:
    """Explicit argument, then ARCHRUN_PROJECT_ROOT, then the nearest workspace on disk."""
    if root:
        return _existing(root, "Provided root")

    env_root = os.getenv(ENV_PROJECT_ROOT)
    if env_root:
        return _existing(env_root, f"{ENV_PROJECT_ROOT} root")

    found = next((path for path in _search_paths() if _is_workspace(path)), None)
    if found is None:
        raise ValueError(
            f"No archrun workspace found from {Path.cwd()}. Pass 'root' to the tool "
            f"or set {ENV_PROJECT_ROOT}."
        )
    return found


def _manager(root: Optional[str]) -> WorkflowManager:
    return WorkflowManager(_resolve_root(root))


def _manager_optional(root: Optional[str]) -> Optional[WorkflowManager]:
    try:
        return _manager(root)
    except ValueError:
        return None


@mcp.tool()
def locate_documents(include_ignored: bool = True, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 1: Find the design artifact, status ledger and readme of the project.
    Files excluded by .gitignore are included unless include_ignored is False."""

    return _manager(root).locate_documents(include_ignored=include_ignored)


@mcp.tool()
def list_components(root: Optional[str] = None) -> Dict[str, Any]:
    """List the components declared in the design artifact with their lifecycle state."""

    return _manager(root).list_components()


@mcp.resource("archrun://components")
def resource_components() -> str:
    """Resource view of the design catalog and component states."""

    manager = _manager_optional(None)
    if not manager:
        return (
            f"No project root detected. Launch tools with a 'root' argument or set {ENV_PROJECT_ROOT}."
        )

    result = manager.list_components()
    if "error" in result:
        return result["message"]
    if not result["components"]:
        return "The design artifact declares no components."

    lines = ["archrun Components"]
    for component in result["components"]:
        lines.append("")
        lines.append(f"- {component['name']}: {component['state']}")
        if component.get("aliases"):
            lines.append(f"  Aliases: {', '.join(component['aliases'])}")
        if component.get("sub_elements"):
            lines.append(f"  Sub-elements: {', '.join(component['sub_elements'])}")

    return "\n".join(lines)


@mcp.tool()
def resolve_component(component_name: str, confirm: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 2: Match a component name against the catalog without planning.
    A non-exact match is only a suggestion: repeat the call with confirm set to the chosen component."""

    return _manager(root).resolve_component(component_name, confirm=confirm)


@mcp.tool()
def preview_plan(component_name: str, confirm: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Show the ordered commits a run would produce, without persisting anything."""

    return _manager(root).preview_plan(component_name, confirm=confirm)


@mcp.tool()
def run(component_name: str, confirm: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 3: Resolve the component, plan its work units, sequence them into commits
    and mark it in progress. Calling run again on an in-progress component resumes it.
    When the result asks for confirmation, call run again with confirm set to a candidate."""

    return _manager(root).run(component_name, confirm=confirm)


@mcp.tool()
def next_unit(component: str, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 4: Retrieve the next unit to implement and the commit it will produce."""

    return _manager(root).next_unit(component)


@mcp.tool()
def complete_unit(
    component: str,
    unit_id: Optional[str] = None,
    files: Optional[List[str]] = None,
    public_elements: Optional[List[Dict[str, Any]]] = None,
    integration_points: Optional[List[str]] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """STEP 4/5: Commit the next unit. For code units pass the files written and the public
    elements introduced (defaults to the surface declared in the design artifact).
    Documentation units are synthesized from the committed code automatically."""

    result: Dict[str, Any] = {}
    if files is not None:
        result["files"] = files
    if public_elements is not None:
        result["public_elements"] = public_elements
    if integration_points is not None:
        result["integration_points"] = integration_points

    return _manager(root).complete_unit(component, unit_id, result or None)


@mcp.tool()
def component_status(component: str, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 6: Return the lifecycle state and delivery progress of a component."""

    return _manager(root).component_status(component)


@mcp.tool()
def get_workflow_guide() -> Dict[str, Any]:
    """Get guidance on the recommended archrun delivery workflow."""

    return WorkflowManager.get_workflow_guide()


if __name__ == "__main__":
    settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_file)
    mcp.run(transport="stdio")
