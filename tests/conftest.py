"""Shared test fixtures for the Infographics backend test suite.

All tests use a throwaway SQLite file database. Tables are created once per
session and every row is deleted before each test, so tests are isolated
but can still run several sessions (and threads) against the same file.
"""

import os
import tempfile

# Point the app at the test database before any app imports.
_DB_DIR = tempfile.mkdtemp(prefix="infographics-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["LOG_FORMAT"] = "text"
os.environ["LLM_API_KEY"] = ""
os.environ["ENVIRONMENT"] = "development"

import pytest
from sqlalchemy import text
from fastapi.testclient import TestClient

from infographics.database import get_db, init_db, SessionLocal
from infographics.main import app
from infographics.models.generation_queue import GenerationQueueItem
from infographics.repositories import PageRepository, ProjectRepository
from infographics.services.html_validator import ValidationMessage, ERROR, ORIGIN_MARKUP

init_db()

# Tables to clear between tests (children first for foreign keys).
_CLEAR_TABLES = ["page_history", "generation_queue", "pages", "projects"]


@pytest.fixture(autouse=True)
def _clean_tables():
    """Delete all rows before each test for isolation.

    Runs before the test (not after) so test failures leave data
    available for debugging.
    """
    db = SessionLocal()
    try:
        for table in _CLEAR_TABLES:
            db.execute(text(f"DELETE FROM {table}"))
        db.commit()
    finally:
        db.close()
    yield


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def client(db):
    """FastAPI TestClient with the DB dependency overridden to use the test session."""

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_page(
    db,
    title: str = "Quarterly Results",
    content_markdown: str = "# Q3\n\nRevenue grew 12%.",
    generated_html: str = "",
    last_generation_comment: str = "",
    generation_hints=None,
    project_name: str = "Board Deck",
):
    """Factory for a committed project + page pair. Returns the page."""
    project = ProjectRepository(db).create(
        name=project_name,
        description="Slides for the quarterly board meeting",
        style_description="Dark navy background, amber accents",
    )
    page = PageRepository(db).create(
        project_id=project.id,
        title=title,
        content_markdown=content_markdown,
        generation_hints=generation_hints,
    )
    page.generated_html = generated_html
    page.last_generation_comment = last_generation_comment
    db.commit()
    db.refresh(page)
    return page


def reload_item(item_id: str) -> GenerationQueueItem:
    """Read a queue item through a fresh session."""
    session = SessionLocal()
    try:
        return session.get(GenerationQueueItem, item_id)
    finally:
        session.close()


def markup_error(text: str = "Stray end tag div.", **kwargs) -> ValidationMessage:
    return ValidationMessage(severity=ERROR, text=text, origin=ORIGIN_MARKUP, **kwargs)


class FakeGenerationClient:
    """Stands in for GenerationClient; records every context it was given."""

    def __init__(self, html: str = "<!DOCTYPE html><html><body>v1</body></html>", error=None):
        self.html = html
        self.error = error
        self.contexts = []

    async def generate(self, context):
        self.contexts.append(context)
        if self.error:
            raise self.error
        return self.html


class ScriptedValidator:
    """Returns pre-set message lists, one per call; clean once the script runs out."""

    def __init__(self, *rounds):
        self.rounds = list(rounds)
        self.seen = []

    async def validate(self, html):
        self.seen.append(html)
        if self.rounds:
            return self.rounds.pop(0)
        return []


class ScriptedRepairer:
    """Returns pre-set documents, one per call, or applies a function to the input."""

    def __init__(self, *outputs, transform=None, error=None):
        self.outputs = list(outputs)
        self.transform = transform
        self.error = error
        self.calls = []

    async def repair(self, html, errors):
        self.calls.append((html, list(errors)))
        if self.error:
            raise self.error
        if self.transform:
            return self.transform(html)
        return self.outputs.pop(0)
