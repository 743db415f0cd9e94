"""Unit tests for the archrun workflow manager.

Every operation returns a payload with a suggested next step; failures come
back as error payloads instead of raised exceptions.
"""

import pytest

from archrun.committers import JournalCommitter
from archrun.workflow import WorkflowManager


@pytest.fixture
def manager(project, settings):
    return WorkflowManager(project, settings=settings, committer=JournalCommitter())


class TestCatalogPayloads:
    """Test cases for locate_documents and list_components."""

    def test_locate_documents(self, manager, project):
        result = manager.locate_documents()
        assert result["design_doc"] == str(project.resolve() / "ARCHITECTURE.md")
        assert result["readme"] == str(project.resolve() / "README.md")
        assert result["include_ignored"] is True
        assert result["next_suggested_step"] == "list_components"

    def test_locate_documents_without_design(self, tmp_path, settings):
        result = WorkflowManager(tmp_path, settings=settings).locate_documents()
        assert result["error_kind"] == "missing_design_doc"
        assert result["next_suggested_step"] == "locate_documents"
        assert "ARCHITECTURE.md" in result["suggestion"]

    def test_list_components(self, manager):
        result = manager.list_components()
        assert result["count"] == 2
        assert result["next_suggested_step"] == "run"
        assert "run('pdf-viewer')" in result["workflow_tip"]


class TestResolvePayloads:
    """Test cases for resolve_component, preview_plan and run."""

    def test_exact_resolution(self, manager):
        result = manager.resolve_component("pdf-viewer")
        assert result["resolution"]["exact"] is True
        assert result["component"]["name"] == "pdf-viewer"
        assert result["next_suggested_step"] == "run"

    def test_suggestion_needs_confirmation(self, manager):
        result = manager.resolve_component("pdf reader")
        assert result["error_kind"] == "confirmation_required"
        assert result["candidates"][0]["name"] == "pdf-viewer"
        assert result["next_suggested_step"] == "run"

    def test_confirmed_suggestion(self, manager):
        result = manager.resolve_component("pdf reader", confirm="pdf-viewer")
        assert result["resolution"]["confirmed"] is True
        assert result["message"].endswith("(confirmed)")

    def test_not_found(self, manager):
        result = manager.resolve_component("billing")
        assert result["error_kind"] == "not_found"
        assert result["catalog"] == ["pdf-viewer", "chat-panel"]
        assert result["next_suggested_step"] == "list_components"

    def test_ambiguous(self, project, settings):
        (project / "ARCHITECTURE.md").write_text(
            "## Component: chat panel\n\n## Component: chat pane\n", encoding="utf-8"
        )
        result = WorkflowManager(project, settings=settings).resolve_component("chat")
        assert result["error_kind"] == "ambiguous_match"
        assert [c["name"] for c in result["candidates"]] == ["chat pane", "chat panel"]

    def test_preview_plan(self, manager):
        result = manager.preview_plan("pdf-viewer")
        assert result["commits"][0] == "feat(pdf-viewer): add model"
        assert result["commits"][-1] == "docs(pdf-viewer): document pdf-viewer modules"
        assert manager.component_status("pdf-viewer")["state"] == "not-started"

    def test_run(self, manager):
        result = manager.run("pdf-viewer")
        assert result["state"] == "in-progress"
        assert len(result["commits"]) == 5
        assert result["next_unit"]["unit_id"] == "pdf-viewer:code:1:model"
        assert result["next_suggested_step"] == "next_unit"

    def test_run_with_unconfirmed_suggestion(self, manager):
        result = manager.run("pdf reader")
        assert result["error_kind"] == "confirmation_required"
        assert "confirm" in result["suggestion"]

    def test_run_with_unreadable_ledger(self, project, settings):
        (project / "STATUS.md").write_text("## pdf-viewer\nState: complete\n", encoding="utf-8")
        result = WorkflowManager(project, settings=settings).run("pdf-viewer")
        assert result["error_kind"] == "ledger_error"
        assert "unknown state 'complete'" in result["error"]
        assert "status ledger" in result["suggestion"]

    def test_run_with_empty_name(self, manager):
        result = manager.run("  ")
        assert result["error_kind"] == "unexpected_error"


class TestDeliveryPayloads:
    """Test cases for next_unit, complete_unit and component_status."""

    def test_next_unit_before_run(self, manager):
        result = manager.next_unit("pdf-viewer")
        assert result["error_kind"] == "sequencing_error"
        assert result["next_suggested_step"] == "next_unit"

    def test_next_unit(self, manager):
        manager.run("pdf-viewer")
        result = manager.next_unit("pdf-viewer")
        assert result["unit"]["unit_id"] == "pdf-viewer:code:1:model"
        assert result["commit_message"].startswith("feat(pdf-viewer): add model\n\n")
        assert result["remaining"] == 5
        assert result["next_suggested_step"] == "complete_unit"

    def test_complete_unit_out_of_order(self, manager):
        manager.run("pdf-viewer")
        result = manager.complete_unit("pdf-viewer", "pdf-viewer:code:3:view")
        assert result["error_kind"] == "sequencing_error"
        assert result["unit_id"] == "pdf-viewer:code:3:view"

    def test_complete_all_units(self, manager):
        manager.run("pdf-viewer")
        result = None
        for _ in range(5):
            result = manager.complete_unit("pdf-viewer")
        assert result["state"] == "done"
        assert result["next_suggested_step"] == "component_status"
        assert manager.next_unit("pdf-viewer")["unit"] is None

        status = manager.component_status("pdf-viewer")
        assert status["state"] == "done"
        assert status["next_suggested_step"] == "list_components"

    def test_rerun_done_component(self, manager):
        manager.run("chat-panel")
        for _ in range(5):
            manager.complete_unit("chat-panel")
        result = manager.run("chat-panel")
        assert result["error_kind"] == "invalid_transition"
        assert result["current_state"] == "done"
        assert result["next_suggested_step"] == "component_status"

    def test_status_before_run(self, manager):
        result = manager.component_status("chat-panel")
        assert result["state"] == "not-started"
        assert result["next_suggested_step"] == "run"


class TestWorkflowGuide:
    """Test cases for get_workflow_guide."""

    def test_guide(self):
        guide = WorkflowManager.get_workflow_guide()
        assert guide["steps"]
        assert all("tool" in step or "name" in step for step in guide["steps"])
        assert any("confirm" in tip for tip in guide["tips"])
