"""Expand a component into dependency-ordered work units.

Units are grouped into fixed tiers (models, structure, modules, logic,
integration, tests). A sub-element never lands in an earlier tier than
anything it depends on, and within a tier units follow a topological sort of
the declared dependencies with declaration order as the tie-break. Doc units
come after every code unit: one per tier whose sub-elements expose a public
surface.
"""

from __future__ import annotations

import heapq
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import SequencingError
from .models import (
    ComponentSpec,
    KIND_CODE,
    KIND_DOC,
    SubElement,
    TIER_LABELS,
    TIER_STRUCTURE,
    TIER_TESTS,
    WorkUnit,
    slugify,
)
from .arch_logging import log_plan_created


logger = logging.getLogger("archrun.planner")


def code_unit_id(component: str, tier: int, element: str) -> str:
    return f"{slugify(component)}:code:{tier}:{slugify(element)}"


def doc_unit_id(component: str, tier: int) -> str:
    return f"{slugify(component)}:doc:{tier}:{TIER_LABELS.get(tier, tier)}"


def topological_order(names: Sequence[str], edges: Dict[str, List[str]]) -> List[str]:
    """Kahn's algorithm; ``edges`` maps a name to the names it depends on.

    Ready nodes are released in declaration order, so an unconstrained input
    keeps its original order.
    """
    index = {name: position for position, name in enumerate(names)}
    indegree = {name: 0 for name in names}
    dependents: Dict[str, List[str]] = {name: [] for name in names}
    for name in names:
        for dep in edges.get(name, []):
            if dep in index:
                indegree[name] += 1
                dependents[dep].append(name)

    ready = [(index[name], name) for name in names if indegree[name] == 0]
    heapq.heapify(ready)
    ordered: List[str] = []
    while ready:
        _, current = heapq.heappop(ready)
        ordered.append(current)
        for nxt in dependents[current]:
            indegree[nxt] -= 1
            if indegree[nxt] == 0:
                heapq.heappush(ready, (index[nxt], nxt))

    if len(ordered) != len(names):
        stuck = [name for name in names if name not in ordered]
        raise SequencingError(f"Dependency cycle between sub-elements: {', '.join(stuck)}")
    return ordered


class TaskPlanner:
    """Turn a resolved ComponentSpec into an ordered list of WorkUnits."""

    def plan(
        self,
        spec: ComponentSpec,
        *,
        include_tests: bool = True,
        completed: Iterable[str] = (),
    ) -> List[WorkUnit]:
        """Plan every unit for ``spec``, skipping unit ids listed in ``completed``."""
        elements = self._elements(spec, include_tests)
        by_key = {element.name.lower(): element for element in elements}
        names = [element.name.lower() for element in elements]

        edges: Dict[str, List[str]] = {}
        for element in elements:
            deps = []
            for dep in element.depends_on:
                key = dep.lower()
                if key == element.name.lower():
                    continue
                if key not in by_key:
                    logger.warning(
                        f"{spec.name}/{element.name} depends on '{dep}', which is not a sub-element; "
                        "ignored for ordering"
                    )
                    continue
                deps.append(key)
            edges[element.name.lower()] = deps

        order = topological_order(names, edges)

        tiers: Dict[str, int] = {}
        for key in order:
            element = by_key[key]
            tier = max([element.tier] + [tiers[dep] for dep in edges[key]])
            if tier != element.tier:
                logger.info(
                    f"Promoted {spec.name}/{element.name} from tier {element.tier} to {tier} "
                    "to follow its dependencies"
                )
            tiers[key] = tier

        units: List[WorkUnit] = []
        unit_ids: Dict[str, str] = {}
        position = 0
        for tier in sorted(set(tiers.values())):
            members = [key for key in names if tiers[key] == tier]
            member_edges = {key: [dep for dep in edges[key] if tiers[dep] == tier] for key in members}
            for key in topological_order(members, member_edges):
                element = by_key[key]
                unit_id = code_unit_id(spec.name, tier, element.name)
                unit_ids[key] = unit_id
                units.append(WorkUnit(
                    unit_id=unit_id,
                    component=spec.name,
                    kind=KIND_CODE,
                    tier=tier,
                    position=position,
                    element=element.name,
                    depends_on=[unit_ids[dep] for dep in edges[key]],
                    payload=self._code_payload(spec, element, tier),
                ))
                position += 1

        if include_tests and not any(tier == TIER_TESTS for tier in tiers.values()):
            units.append(WorkUnit(
                unit_id=code_unit_id(spec.name, TIER_TESTS, "tests"),
                component=spec.name,
                kind=KIND_CODE,
                tier=TIER_TESTS,
                position=position,
                element="tests",
                depends_on=[unit.unit_id for unit in units],
                payload={
                    "element": "tests",
                    "tier_label": TIER_LABELS[TIER_TESTS],
                    "platform": spec.platform,
                    "summary": f"add tests for {spec.name}",
                    "description": f"Tests covering the sub-elements of {spec.name}.",
                    "covers": [unit.unit_id for unit in units],
                    "exposes": [],
                },
            ))
            position += 1

        for tier in sorted({unit.tier for unit in units if unit.kind == KIND_CODE}):
            if tier == TIER_TESTS:
                continue
            code_units = [unit for unit in units if unit.kind == KIND_CODE and unit.tier == tier]
            if not any(unit.payload.get("exposes") for unit in code_units):
                continue
            label = TIER_LABELS.get(tier, f"tier-{tier}")
            units.append(WorkUnit(
                unit_id=doc_unit_id(spec.name, tier),
                component=spec.name,
                kind=KIND_DOC,
                tier=tier,
                position=position,
                element=None,
                depends_on=[unit.unit_id for unit in code_units],
                payload={
                    "tier_label": label,
                    "platform": spec.platform,
                    "summary": f"document {spec.name} {label}",
                    "covers": [unit.unit_id for unit in code_units],
                    "path": f"{slugify(spec.name)}/{label}.md",
                },
            ))
            position += 1

        units.sort(key=lambda unit: unit.sort_key)

        done = set(completed)
        skipped = [unit.unit_id for unit in units if unit.unit_id in done]
        if skipped:
            units = [unit for unit in units if unit.unit_id not in done]
            logger.info(f"Skipping {len(skipped)} already completed units of {spec.name}")

        log_plan_created(spec.name, len(units), include_tests=include_tests, skipped=len(skipped))
        return units

    # ------------------------------------------------------------------
    # Private helper methods
    # ------------------------------------------------------------------

    def _elements(self, spec: ComponentSpec, include_tests: bool) -> List[SubElement]:
        elements = [
            element for element in spec.sub_elements
            if include_tests or element.tier != TIER_TESTS
        ]
        if elements:
            return elements
        # An undecomposed component, or one whose only sub-elements are tests
        # that were left out, still gets one unit of work.
        return [SubElement(name="core", tier=TIER_STRUCTURE, kind="structure", description=spec.description)]

    @staticmethod
    def _code_payload(spec: ComponentSpec, element: SubElement, tier: int) -> Dict[str, object]:
        label = TIER_LABELS.get(tier, f"tier-{tier}")
        return {
            "element": element.name,
            "kind": element.kind,
            "tier_label": label,
            "platform": spec.platform,
            "summary": f"add {element.name}",
            "description": element.description,
            "component_dependencies": list(spec.dependencies),
            "exposes": [item.to_dict() for item in element.exposes],
        }


def plan(spec: ComponentSpec, *, include_tests: bool = True, completed: Optional[Iterable[str]] = None) -> List[WorkUnit]:
    """Module-level shortcut for ``TaskPlanner().plan``."""
    return TaskPlanner().plan(spec, include_tests=include_tests, completed=completed or ())
