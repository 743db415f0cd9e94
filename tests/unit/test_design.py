"""Unit tests for parsing the design artifact."""

import pytest

from archrun.design import DesignParser, load_design, parse_public_element, split_parameters, tier_for
from archrun.errors import DesignDocumentError
from archrun.models import TIER_LOGIC, TIER_MODELS, TIER_MODULES, TIER_STRUCTURE, TIER_TESTS


class TestDesignParser:
    """Test cases for DesignParser."""

    def test_components_in_declaration_order(self, design):
        assert design.names == ["pdf-viewer", "chat-panel"]

    def test_component_metadata(self, design):
        viewer = design.get("pdf-viewer")
        assert viewer.aliases == ("pdf reader",)
        assert viewer.dependencies == ("storage",)
        assert viewer.platform == "python"
        assert viewer.description == "Renders PDF documents."

    def test_sub_elements(self, design):
        viewer = design.get("pdf-viewer")
        view, model = viewer.sub_elements
        assert view.name == "view"
        assert view.depends_on == ("model",)
        assert view.tier == TIER_MODULES
        assert model.tier == TIER_MODELS
        assert [item.name for item in model.exposes] == ["PdfDocument", "load_document"]

    def test_exposed_elements(self, design):
        model = design.get("pdf-viewer").sub_elements[1]
        document, loader = model.exposes
        assert document.stateful
        assert not document.is_callable
        assert loader.parameters == ("path: str",)
        assert loader.returns == "PdfDocument"
        assert loader.raises == ("FileNotFoundError",)

    def test_headings_outside_components_are_ignored(self):
        text = "# Notes\nKind: model\n\n## Component: api\n### handlers\n"
        document = DesignParser().parse(text)
        assert document.names == ["api"]
        assert document.components[0].sub_elements[0].tier == TIER_LOGIC

    def test_same_level_heading_closes_component(self):
        text = "## Component: api\n### handlers\n## Glossary\n### term\n"
        document = DesignParser().parse(text)
        assert [element.name for element in document.get("api").sub_elements] == ["handlers"]

    def test_code_fences_are_skipped(self):
        text = "## Component: api\n```\n### not-an-element\n```\n### service\n"
        document = DesignParser().parse(text)
        assert [element.name for element in document.get("api").sub_elements] == ["service"]

    def test_stateful_flag_marks_all_exposes(self):
        text = "## Component: api\n### store\nStateful: yes\nExposes:\n- Cache\n- Session - Current session\n"
        element = DesignParser().parse(text).get("api").sub_elements[0]
        assert all(item.stateful for item in element.exposes)
        assert element.tier == TIER_STRUCTURE

    def test_none_values_are_empty(self):
        text = "## Component: api\nAliases: (none)\nDepends on: none\n"
        component = DesignParser().parse(text).get("api")
        assert component.aliases == ()
        assert component.dependencies == ()

    def test_duplicate_component_rejected(self):
        text = "## Component: api\n## Component: API\n"
        with pytest.raises(DesignDocumentError, match="more than once"):
            DesignParser().parse(text)

    def test_duplicate_sub_element_rejected(self):
        text = "## Component: api\n### model\n### Model\n"
        with pytest.raises(DesignDocumentError, match="sub-element"):
            DesignParser().parse(text)

    def test_sub_elements_with_the_same_slug_rejected(self):
        text = "## Component: chat\n### message model\nKind: model\n### message_model\nKind: model\n"
        with pytest.raises(DesignDocumentError, match="both become 'message-model'"):
            DesignParser().parse(text)

    def test_components_with_the_same_slug_rejected(self):
        text = "## Component: pdf viewer\n### model\n## Component: pdf-viewer\n### model\n"
        with pytest.raises(DesignDocumentError, match="both become 'pdf-viewer'"):
            DesignParser().parse(text)

    def test_parse_file_records_mtime(self, project):
        document = load_design(project / "ARCHITECTURE.md")
        assert document.source_path == (project / "ARCHITECTURE.md").resolve()
        assert document.mtime is not None
        assert not document.is_stale()


class TestTierFor:
    """Test cases for tier_for."""

    @pytest.mark.parametrize("kind,name,expected", [
        ("model", "", TIER_MODELS),
        ("", "user types", TIER_MODELS),
        ("", "page layout", TIER_STRUCTURE),
        ("handler", "x", TIER_LOGIC),
        ("", "unit tests", TIER_TESTS),
        ("4", "", TIER_LOGIC),
        ("", "something", TIER_MODULES),
    ])
    def test_mapping(self, kind, name, expected):
        assert tier_for(kind, name) == expected

    def test_numeric_out_of_range(self):
        with pytest.raises(DesignDocumentError):
            tier_for("9")


class TestPublicElementParsing:
    """Test cases for parse_public_element."""

    def test_plain_name_with_description(self):
        element = parse_public_element("ChatPanel - Panel listing messages")
        assert element.name == "ChatPanel"
        assert element.description == "Panel listing messages"
        assert element.signature is None

    def test_callable_without_return(self):
        element = parse_public_element("`reset()`")
        assert element.signature == "reset()"
        assert element.parameters == ()
        assert element.returns is None

    def test_nested_parameter_types(self):
        assert split_parameters("(items: Dict[str, int], self, limit: int = 3)") == (
            "items: Dict[str, int]",
            "limit: int = 3",
        )

    def test_unparseable_element(self):
        with pytest.raises(DesignDocumentError):
            parse_public_element("(broken")
