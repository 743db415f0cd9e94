"""Shared fixtures for archrun tests."""

from pathlib import Path

import pytest

from archrun.config import Settings
from archrun.design import DesignParser


DESIGN_TEXT = """# Architecture

Overview of the reader application.

## Component: pdf-viewer
Aliases: pdf reader
Platform: python
Depends on: storage
Description: Renders PDF documents.

### view
Depends on: model
Exposes:
- render_page(document: PdfDocument, page: int) -> bytes raises IndexError - Render one page

### model
Kind: model
Exposes:
- PdfDocument (stateful) - Parsed document with a page cache
- load_document(path: str) -> PdfDocument raises FileNotFoundError - Load a PDF from disk

## Component: chat-panel
Platform: web
Description: Chat side panel.

### message model
Kind: model
Exposes:
- Message - One chat message

### panel view
Depends on: message model
Exposes:
- ChatPanel - Panel listing messages
"""


@pytest.fixture
def design_text():
    return DESIGN_TEXT


@pytest.fixture
def design():
    """Parsed catalog with pdf-viewer and chat-panel."""
    return DesignParser().parse(DESIGN_TEXT)


@pytest.fixture
def settings():
    """Settings independent of the ARCHRUN_* environment."""
    return Settings()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project root holding an ARCHITECTURE.md."""
    (tmp_path / "ARCHITECTURE.md").write_text(DESIGN_TEXT, encoding="utf-8")
    (tmp_path / "README.md").write_text("# Reader\n", encoding="utf-8")
    return tmp_path
