"""
Contract tests for component delivery:
A requested component MUST resolve to exactly one catalog entry (non-exact
matches only after confirmation), expand into dependency-ordered work units,
and be delivered as one commit per unit with every documentation commit after
all code commits of the same component. The status ledger MUST only move
forward and MUST stay unchanged when an update is rejected.
"""

import itertools

import pytest

from archrun.committers import JournalCommitter
from archrun.design import DesignParser
from archrun.errors import AmbiguousMatch, InvalidTransition, SequencingError
from archrun.models import (
    KIND_CODE,
    KIND_DOC,
    STATE_DONE,
    STATE_NOT_STARTED,
    STATES,
    TIER_MODELS,
    WorkUnit,
)
from archrun.planner import plan
from archrun.resolver import ComponentResolver, resolve
from archrun.sequencer import DeliverySequencer, sequence
from archrun.status import LEGAL_TRANSITIONS, StatusLedgerStore
from archrun.workspace import Workspace


VIEWERS = DesignParser().parse(
    "## Component: pdf-viewer\n\n### model\n\n## Component: image-viewer\n\n### model\n"
)

REVERSED_DECLARATION = DesignParser().parse("""
## Component: gallery
### view
Depends on: model
Exposes:
- GalleryView - Grid of thumbnails
### model
Exposes:
- Picture - One image
""")


class TestResolutionContract:
    """Resolution never guesses."""

    def test_scenario_a_exact_name(self, design):
        """
        Given: a catalog with pdf-viewer and chat-panel
        When: "pdf-viewer" is requested
        Then: it resolves exactly and needs no confirmation
        """
        resolution = resolve("pdf-viewer", design)
        assert resolution.exact is True
        assert resolution.requires_confirmation is False
        assert resolution.component is design.get("pdf-viewer")

    def test_scenario_b_ambiguous_name(self, tmp_path, settings):
        """
        Given: a catalog with pdf-viewer and image-viewer
        When: "viewer" is requested
        Then: AmbiguousMatch carries both ranked candidates and nothing is planned
        """
        with pytest.raises(AmbiguousMatch) as excinfo:
            resolve("viewer", VIEWERS)
        assert [c.name for c in excinfo.value.candidates] == ["pdf-viewer", "image-viewer"]
        scores = [c.score for c in excinfo.value.candidates]
        assert scores == sorted(scores, reverse=True)

        (tmp_path / "ARCHITECTURE.md").write_text(
            "## Component: pdf-viewer\n\n### model\n\n## Component: image-viewer\n\n### model\n",
            encoding="utf-8",
        )
        workspace = Workspace(tmp_path, settings=settings, committer=JournalCommitter())
        with pytest.raises(AmbiguousMatch):
            workspace.start_delivery("viewer")
        assert workspace.load_plan("pdf-viewer") is None
        assert workspace.load_plan("image-viewer") is None
        assert workspace.committer.records == []

    @pytest.mark.parametrize("requested", [
        "pdf-viewer", "PDF Viewer", "pdf reader", "viewer", "chat", "chat panel", "panel", "billing", "pdf",
    ])
    def test_non_exact_results_always_need_confirmation(self, design, requested):
        """
        Given: any requested name
        When: it is resolved
        Then: at most one entry matches exactly, and a non-exact result is flagged for confirmation
        """
        exact = [c for c in design.components if c.key == requested.strip().lower()]
        assert len(exact) <= 1
        try:
            resolution = ComponentResolver().resolve(requested, design)
        except LookupError:
            return
        if resolution.exact:
            assert resolution.component is exact[0]
        else:
            assert resolution.requires_confirmation is True


class TestPlanningContract:
    """Foundations before consumers."""

    def test_scenario_c_dependencies_first(self):
        """
        Given: view depends on model and is declared first
        When: the component is planned
        Then: the model unit sits in tier 1 and precedes the view unit
        """
        units = plan(REVERSED_DECLARATION.get("gallery"))
        code = [unit for unit in units if unit.kind == KIND_CODE]
        assert code[0].element == "model"
        assert code[0].tier == TIER_MODELS
        assert code[1].element == "view"
        assert code[1].tier > code[0].tier

    def test_plan_is_idempotent(self, design):
        """
        Given: an unchanged component
        When: it is planned twice
        Then: both unit lists are identical
        """
        for spec in design.components:
            assert plan(spec) == plan(spec)


class TestSequencingContract:
    """One commit per unit, documentation after code."""

    def test_scenario_d_doc_before_code(self):
        """
        Given: a doc unit of gallery ordered before one of its code units
        When: the units are sequenced
        Then: SequencingError names the doc unit and no plan is produced
        """
        units = plan(REVERSED_DECLARATION.get("gallery"), include_tests=False)
        doc = next(unit for unit in units if unit.kind == KIND_DOC)
        reordered = [units[0], doc] + [unit for unit in units[1:] if unit is not doc]

        with pytest.raises(SequencingError) as excinfo:
            DeliverySequencer().sequence(reordered)
        assert excinfo.value.unit_id == doc.unit_id

    def test_rejected_doc_unit_is_never_committed(self, project, settings):
        """
        Given: a delivery that has started
        When: a doc unit is completed before the code it documents
        Then: nothing is committed for it
        """
        committer = JournalCommitter()
        workspace = Workspace(project, settings=settings, committer=committer)
        workspace.start_delivery("pdf-viewer")

        with pytest.raises(SequencingError):
            workspace.complete_unit("pdf-viewer", "pdf-viewer:doc:1:models")
        assert committer.records == []
        assert not (project / "docs").exists()

    def test_code_strictly_before_docs_per_component(self, design):
        """
        Given: the plans of every component delivered back to back
        When: they are sequenced together
        Then: for each component the last code step precedes its first doc step
        """
        units = [unit for spec in design.components for unit in plan(spec)]
        delivery = sequence(units)
        for component in {unit.component for unit in units}:
            code = [s.index for s in delivery.steps if s.unit.component == component and s.unit.kind == KIND_CODE]
            docs = [s.index for s in delivery.steps if s.unit.component == component and s.unit.kind == KIND_DOC]
            assert max(code) < min(docs)

    def test_one_commit_per_unit(self, design):
        delivery = sequence(plan(design.get("pdf-viewer")))
        assert len({commit.unit_id for commit in delivery.commits}) == len(delivery.units)

    def test_unit_cannot_depend_on_a_later_unit(self):
        late = WorkUnit("gallery:code:1:model", "gallery", KIND_CODE, 1, 1, element="model")
        early = WorkUnit("gallery:code:3:view", "gallery", KIND_CODE, 3, 0, element="view",
                         depends_on=["gallery:code:1:model"])
        with pytest.raises(SequencingError):
            sequence([early, late])


class TestStatusContract:
    """The ledger moves forward only."""

    def test_scenario_e_done_cannot_reset(self, tmp_path):
        """
        Given: a ledger recording the component as done
        When: done -> not-started is attempted
        Then: InvalidTransition is raised and the ledger file is byte-for-byte unchanged
        """
        store = StatusLedgerStore(tmp_path / "STATUS.md")
        store.advance("gallery", STATE_NOT_STARTED, "in-progress")
        store.advance("gallery", "in-progress", STATE_DONE)
        before = store.path.read_bytes()

        with pytest.raises(InvalidTransition):
            store.advance("gallery", STATE_DONE, STATE_NOT_STARTED)
        assert store.path.read_bytes() == before
        assert store.state_of("gallery") == STATE_DONE

    @pytest.mark.parametrize("length", [1, 2, 3, 4])
    def test_no_path_returns_to_not_started(self, length):
        """
        Given: any sequence of legal transitions starting at not-started
        When: it is followed
        Then: not-started is never reached again
        """
        for path in itertools.product(STATES, repeat=length):
            state = STATE_NOT_STARTED
            for target in path:
                if (state, target) not in LEGAL_TRANSITIONS:
                    break
                state = target
                assert state != STATE_NOT_STARTED
