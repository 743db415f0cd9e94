"""
Integration tests for delivering a component end to end.

Covers an uninterrupted run, a cancelled run that is resumed later, delivery
into a real git repository, and the same workflow driven through the MCP
server tools.
"""

import json
import os
import shutil

import pytest

from archrun.committers import GitCommitter, JournalCommitter, _run_git
from archrun.delivery import DeliveryRunner
from archrun.errors import ConfirmationRequired, InvalidTransition
from archrun.models import STATE_DONE, STATE_IN_PROGRESS, CodeUnitResult, PublicElement
from archrun.status import parse_ledger
from archrun.workspace import Workspace
from archrun.arch_logging import observability_hooks


HEADERS = [
    "feat(pdf-viewer): add model",
    "feat(pdf-viewer): add view",
    "test(pdf-viewer): add tests for pdf-viewer",
    "docs(pdf-viewer): document pdf-viewer models",
    "docs(pdf-viewer): document pdf-viewer modules",
]

ARCHRUN_VARS = (
    "ARCHRUN_PROJECT_ROOT", "ARCHRUN_STORAGE_DIR", "ARCHRUN_DOCS_DIR", "ARCHRUN_MATCH_THRESHOLD",
    "ARCHRUN_INCLUDE_TESTS", "ARCHRUN_COMMITTER", "ARCHRUN_LOG_LEVEL", "ARCHRUN_LOG_FILE",
)


class FileWritingEmitter:
    """Writes one module per code unit so commits carry real files."""

    def __init__(self, root):
        self.root = root
        self.emitted = []

    def emit(self, unit):
        path = self.root / "pdf_viewer" / f"{unit.element}.py"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f'"""{unit.payload.get("description") or unit.element}"""\n', encoding="utf-8")
        self.emitted.append(unit.unit_id)
        return CodeUnitResult(
            unit_id=unit.unit_id,
            component=unit.component,
            element=unit.element,
            files=[path.relative_to(self.root).as_posix()],
            public_elements=[PublicElement.from_dict(item) for item in unit.payload.get("exposes", [])],
        )


@pytest.fixture
def events():
    seen = []

    def record(**data):
        seen.append(data)

    for event in ("delivery_started", "unit_completed", "delivery_finished", "delivery_cancelled"):
        observability_hooks.register_hook(event, record)
    yield seen
    for event in ("delivery_started", "unit_completed", "delivery_finished", "delivery_cancelled"):
        observability_hooks.unregister_hook(event, record)


class TestDeliveryRunner:
    """Deliver a whole component in process."""

    def test_full_run(self, project, settings, events):
        committer = JournalCommitter()
        workspace = Workspace(project, settings=settings)
        report = DeliveryRunner(workspace, committer=committer).deliver("pdf-viewer")

        assert [item["commit"] for item in report["delivered"]] == HEADERS
        assert report["remaining"] == []
        assert report["cancelled"] is False
        assert report["state"] == STATE_DONE
        assert [record["header"] for record in committer.records] == HEADERS
        assert len(events) == 1 + 5 + 1

        ledger = parse_ledger((project / ".archrun" / "STATUS.md").read_text(encoding="utf-8"))
        assert ledger.state_of("pdf-viewer") == STATE_DONE

        models_doc = (project / "docs" / "components" / "pdf-viewer" / "models.md").read_text(encoding="utf-8")
        assert "## `load_document`" in models_doc
        assert "- `FileNotFoundError`" in models_doc
        modules_doc = (project / "docs" / "components" / "pdf-viewer" / "modules.md").read_text(encoding="utf-8")
        assert "## `render_page`" in modules_doc
        assert "- `IndexError`" in modules_doc

        with pytest.raises(InvalidTransition):
            DeliveryRunner(workspace).deliver("pdf-viewer")

    def test_files_from_the_emitter_are_committed(self, project, settings):
        committer = JournalCommitter()
        emitter = FileWritingEmitter(project)
        workspace = Workspace(project, settings=settings, committer=committer)

        DeliveryRunner(workspace, emitter=emitter).deliver("pdf-viewer")

        assert emitter.emitted == [
            "pdf-viewer:code:1:model",
            "pdf-viewer:code:3:view",
            "pdf-viewer:code:6:tests",
        ]
        assert committer.records[0]["files"] == ["pdf_viewer/model.py"]
        assert "Defined in `pdf_viewer/model.py`" in (
            project / "docs" / "components" / "pdf-viewer" / "models.md"
        ).read_text(encoding="utf-8")

    def test_cancel_then_resume(self, project, settings, events):
        workspace = Workspace(project, settings=settings, committer=JournalCommitter())
        runner = DeliveryRunner(workspace)

        report = runner.deliver("pdf-viewer", should_continue=lambda step: step.unit.kind == "code")
        assert report["cancelled"] is True
        assert [item["kind"] for item in report["delivered"]] == ["code", "code", "code"]
        assert report["remaining"] == ["pdf-viewer:doc:1:models", "pdf-viewer:doc:3:modules"]
        assert report["state"] == STATE_IN_PROGRESS
        assert not (project / "docs").exists()

        resumed = Workspace(project, settings=settings, committer=JournalCommitter())
        report = DeliveryRunner(resumed).deliver("pdf-viewer")
        assert [item["commit"] for item in report["delivered"]] == HEADERS[3:]
        assert report["state"] == STATE_DONE
        assert resumed.load_journal("pdf-viewer")["completed"] == [
            "pdf-viewer:code:1:model",
            "pdf-viewer:code:3:view",
            "pdf-viewer:code:6:tests",
            "pdf-viewer:doc:1:models",
            "pdf-viewer:doc:3:modules",
        ]
        assert [event.get("component") for event in events if "delivered" in event] == ["pdf-viewer", "pdf-viewer"]

    def test_suggestion_needs_a_confirmer(self, project, settings):
        workspace = Workspace(project, settings=settings, committer=JournalCommitter())
        with pytest.raises(ConfirmationRequired):
            DeliveryRunner(workspace).deliver("pdf reader")

        report = DeliveryRunner(workspace).deliver("pdf reader", confirmer=lambda requested, candidates: "pdf-viewer")
        assert report["resolution"]["confirmed"] is True
        assert report["state"] == STATE_DONE


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
class TestGitDelivery:
    """Deliver into a real git repository."""

    @pytest.fixture(autouse=True)
    def git_identity(self, monkeypatch):
        for prefix in ("GIT_AUTHOR", "GIT_COMMITTER"):
            monkeypatch.setenv(f"{prefix}_NAME", "archrun tests")
            monkeypatch.setenv(f"{prefix}_EMAIL", "tests@example.com")
        monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
        monkeypatch.setenv("GIT_CONFIG_GLOBAL", os.devnull)

    def test_history_matches_plan(self, project, settings):
        workspace = Workspace(project, settings=settings)
        DeliveryRunner(workspace, emitter=FileWritingEmitter(project), committer=GitCommitter(project)).deliver(
            "pdf-viewer"
        )

        rc, log, _ = _run_git(project, ["log", "--reverse", "--format=%s"])
        assert rc == 0
        assert log.splitlines() == HEADERS

        rc, files, _ = _run_git(project, ["show", "--name-only", "--format=", "HEAD~1"])
        assert files.splitlines() == ["docs/components/pdf-viewer/models.md"]


class TestMcpServer:
    """Drive the workflow through the MCP tool functions."""

    @pytest.fixture
    def server(self, monkeypatch):
        pytest.importorskip("mcp")
        for name in ARCHRUN_VARS:
            monkeypatch.delenv(name, raising=False)
        import main
        return main

    def test_tool_workflow(self, server, project):
        root = str(project)
        assert server.list_components(root=root)["count"] == 2

        suggestion = server.run("pdf reader", root=root)
        assert suggestion["error_kind"] == "confirmation_required"

        started = server.run("pdf reader", confirm="pdf-viewer", root=root)
        assert started["state"] == STATE_IN_PROGRESS
        assert started["commits"] == HEADERS

        first = server.next_unit("pdf-viewer", root=root)
        done = server.complete_unit(
            "pdf-viewer",
            unit_id=first["unit"]["unit_id"],
            files=["pdf_viewer/model.py"],
            root=root,
        )
        assert done["commit"]["files"] == ["pdf_viewer/model.py"]

        while server.next_unit("pdf-viewer", root=root)["unit"] is not None:
            server.complete_unit("pdf-viewer", root=root)

        status = server.component_status("pdf-viewer", root=root)
        assert status["state"] == STATE_DONE
        assert status["units"] == {"planned": 5, "completed": 5, "remaining": 0}

    def test_root_from_environment(self, server, project, monkeypatch):
        monkeypatch.setenv("ARCHRUN_PROJECT_ROOT", str(project))
        located = server.locate_documents()
        assert located["design_doc"] == str(project.resolve() / "ARCHITECTURE.md")

        text = server.resource_components()
        assert "- pdf-viewer: not-started" in text
        assert "Aliases: pdf reader" in text

    def test_missing_root(self, server, tmp_path):
        with pytest.raises(ValueError, match="does not exist"):
            server.list_components(root=str(tmp_path / "missing"))

    def test_workflow_guide(self, server):
        guide = server.get_workflow_guide()
        assert json.dumps(guide)
        assert guide["steps"][0]["tool"] == "locate_documents"
