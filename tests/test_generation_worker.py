"""Tests for GenerationWorker and the polling scheduler.

The LLM-backed collaborators are replaced with scripted fakes; the database
is the real test SQLite file, so commits, rollbacks and history rows are
exercised for real.
"""

import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from infographics.core.config import ConfigurationError, Settings
from infographics.database import SessionLocal
from infographics.exceptions import MalformedResponseError, PageNotFoundError, ProviderError
from infographics.models import Page
from infographics.models.generation_queue import COMPLETED, FAILED
from infographics.repositories import PageHistoryRepository, PageRepository
from infographics.services.generation_worker import GenerationWorker
from infographics.services.queue_service import QueueService
from infographics.worker import run_forever
from tests.conftest import (
    FakeGenerationClient, ScriptedRepairer, ScriptedValidator, make_page, markup_error, reload_item,
)

V1 = "<!DOCTYPE html><html><body>v1</body></html>"
V2 = "<!DOCTYPE html><html><body>v2</body></html>"


def _worker(generation_client=None, validator=None, repairer=None, max_iterations=5) -> GenerationWorker:
    return GenerationWorker(
        session_factory=SessionLocal,
        generation_client=generation_client or FakeGenerationClient(V1),
        validator=validator or ScriptedValidator(),
        repair_agent=repairer or ScriptedRepairer(),
        max_iterations=max_iterations,
    )


def _reload_page(page_id) -> Page:
    session = SessionLocal()
    try:
        return session.get(Page, page_id)
    finally:
        session.close()


def _history(page_id):
    session = SessionLocal()
    try:
        return PageHistoryRepository(session).get_by_page(page_id)
    finally:
        session.close()


class TestProcessNext:

    def test_empty_queue(self):
        assert asyncio.run(_worker().process_next()) is None

    def test_first_generation_writes_page_without_history(self, db):
        page = make_page(db)
        item, _ = QueueService(db).enqueue(page.id, "user-1")
        client = FakeGenerationClient(V1)

        claimed = asyncio.run(_worker(generation_client=client).process_next())

        assert claimed.id == item.id
        assert reload_item(item.id).status == COMPLETED
        stored = _reload_page(page.id)
        assert stored.generated_html == V1
        assert stored.last_generation_comment == ""
        assert _history(page.id) == []
        assert client.contexts[0].is_regeneration is False

    def test_processes_oldest_first(self, db):
        first = make_page(db, title="First")
        second = make_page(db, title="Second")
        service = QueueService(db)
        a, _ = service.enqueue(first.id, "user-1")
        service.enqueue(second.id, "user-1")

        claimed = asyncio.run(_worker().process_next())

        assert claimed.id == a.id
        assert service.count_in_flight() == 1


class TestFeedbackRegeneration:

    def test_snapshots_previous_html_with_previous_comment(self, db):
        page = make_page(db, generated_html=V1, last_generation_comment="first pass")
        QueueService(db).enqueue(page.id, "alice", "make it blue")
        client = FakeGenerationClient(V2)

        asyncio.run(_worker(generation_client=client).process_next())

        stored = _reload_page(page.id)
        assert stored.generated_html == V2
        assert stored.last_generation_comment == "make it blue"

        history = _history(page.id)
        assert len(history) == 1
        assert history[0].generated_html == V1
        assert history[0].user_comment == "first pass"
        assert history[0].requested_by == "alice"

        context = client.contexts[0]
        assert context.is_regeneration is True
        assert context.previous_html == V1
        assert context.previous_comment == "first pass"
        assert context.user_comment == "make it blue"

    def test_snapshot_labels_uncommented_html_as_initial_generation(self, db):
        page = make_page(db, generated_html=V1, last_generation_comment="")
        QueueService(db).enqueue(page.id, "alice", "bigger charts")

        asyncio.run(_worker(generation_client=FakeGenerationClient(V2)).process_next())

        assert _history(page.id)[0].user_comment == "Initial generation"

    def test_regeneration_without_comment_keeps_no_history(self, db):
        page = make_page(db, generated_html=V1, last_generation_comment="first pass")
        QueueService(db).enqueue(page.id, "alice")

        asyncio.run(_worker(generation_client=FakeGenerationClient(V2)).process_next())

        assert _history(page.id) == []
        assert _reload_page(page.id).generated_html == V2

    def test_history_failure_does_not_abort(self, db):
        page = make_page(db, generated_html=V1, last_generation_comment="first pass")
        item, _ = QueueService(db).enqueue(page.id, "alice", "make it blue")

        with patch.object(PageHistoryRepository, "append", side_effect=OperationalError("INSERT", {}, Exception("disk full"))):
            asyncio.run(_worker(generation_client=FakeGenerationClient(V2)).process_next())

        assert reload_item(item.id).status == COMPLETED
        assert _reload_page(page.id).generated_html == V2
        assert _history(page.id) == []


class TestRepairIntegration:

    def test_repaired_html_is_what_gets_stored(self, db):
        page = make_page(db)
        QueueService(db).enqueue(page.id, "user-1")
        worker = _worker(
            generation_client=FakeGenerationClient(V1),
            validator=ScriptedValidator([markup_error()], []),
            repairer=ScriptedRepairer(V2),
        )

        asyncio.run(worker.process_next())

        assert _reload_page(page.id).generated_html == V2

    def test_exhausted_budget_still_completes_with_best_effort_html(self, db):
        page = make_page(db)
        item, _ = QueueService(db).enqueue(page.id, "user-1")
        worker = _worker(
            validator=ScriptedValidator(*([[markup_error()]] * 10)),
            repairer=ScriptedRepairer(transform=lambda html: html + "<!-- fix -->"),
            max_iterations=2,
        )

        asyncio.run(worker.process_next())

        assert reload_item(item.id).status == COMPLETED
        assert _reload_page(page.id).generated_html == V1 + "<!-- fix --><!-- fix -->"

    def test_repair_provider_failure_keeps_generated_html(self, db):
        page = make_page(db)
        item, _ = QueueService(db).enqueue(page.id, "user-1")
        worker = _worker(
            validator=ScriptedValidator([markup_error()]),
            repairer=ScriptedRepairer(error=ProviderError("repair model down")),
        )

        asyncio.run(worker.process_next())

        assert reload_item(item.id).status == COMPLETED
        assert _reload_page(page.id).generated_html == V1


class TestFailures:

    def test_generation_error_fails_item_and_leaves_page(self, db):
        page = make_page(db, generated_html=V1, last_generation_comment="first pass")
        item, _ = QueueService(db).enqueue(page.id, "alice", "make it blue")
        client = FakeGenerationClient(error=MalformedResponseError("No response content from model"))

        asyncio.run(_worker(generation_client=client).process_next())

        failed = reload_item(item.id)
        assert failed.status == FAILED
        assert failed.error_message == "No response content from model"
        stored = _reload_page(page.id)
        assert stored.generated_html == V1
        assert stored.last_generation_comment == "first pass"

    def test_unexpected_exception_fails_item(self, db):
        page = make_page(db)
        item, _ = QueueService(db).enqueue(page.id, "user-1")
        client = FakeGenerationClient(error=RuntimeError("socket closed"))

        assert asyncio.run(_worker(generation_client=client).process_item(item.id)) == FAILED
        assert reload_item(item.id).error_message == "socket closed"

    def test_page_write_is_all_or_nothing(self, db):
        page = make_page(db, generated_html=V1, last_generation_comment="first pass")
        item, _ = QueueService(db).enqueue(page.id, "alice", "make it blue")

        def half_write(self, page, html, comment):
            page.generated_html = html
            raise OperationalError("UPDATE pages", {}, Exception("database is locked"))

        with patch.object(PageRepository, "update_generated_html", half_write):
            asyncio.run(_worker(generation_client=FakeGenerationClient(V2)).process_next())

        failed = reload_item(item.id)
        assert failed.status == FAILED
        assert failed.error_message.startswith("Failed to save generation result")
        stored = _reload_page(page.id)
        assert stored.generated_html == V1
        assert stored.last_generation_comment == "first pass"

    def test_failed_completion_mark_rolls_back_page_write(self, db):
        page = make_page(db, generated_html=V1, last_generation_comment="first pass")
        item, _ = QueueService(db).enqueue(page.id, "alice", "make it blue")
        transition = QueueService._transition

        def locked_on_complete(self, item_id, status, error_message):
            if status == COMPLETED:
                raise OperationalError("UPDATE generation_queue", {}, Exception("database is locked"))
            return transition(self, item_id, status, error_message)

        with patch.object(QueueService, "_transition", locked_on_complete):
            claimed = asyncio.run(_worker(generation_client=FakeGenerationClient(V2)).process_next())

        assert claimed.id == item.id
        failed = reload_item(item.id)
        assert failed.status == FAILED
        assert failed.error_message.startswith("Failed to save generation result")
        stored = _reload_page(page.id)
        assert stored.generated_html == V1
        assert stored.last_generation_comment == "first pass"

    def test_item_finished_elsewhere_leaves_page_untouched(self, db):
        page = make_page(db, generated_html=V1, last_generation_comment="first pass")
        item, _ = QueueService(db).enqueue(page.id, "alice", "make it blue")

        with patch.object(QueueService, "stage_completed", return_value=False):
            status = asyncio.run(_worker(generation_client=FakeGenerationClient(V2)).process_item(item.id))

        assert status == FAILED
        assert _reload_page(page.id).generated_html == V1

    def test_missing_page_fails_item(self, db):
        page = make_page(db)
        item, _ = QueueService(db).enqueue(page.id, "user-1")

        with patch.object(PageRepository, "get_by_id", side_effect=PageNotFoundError(page.id)):
            status = asyncio.run(_worker().process_item(item.id))

        assert status == FAILED
        failed = reload_item(item.id)
        assert failed.status == FAILED
        assert failed.error_message == f"Page not found: {page.id}"

    def test_completed_item_is_never_reprocessed(self, db):
        page = make_page(db)
        QueueService(db).enqueue(page.id, "user-1")
        worker = _worker()

        asyncio.run(worker.process_next())
        assert asyncio.run(worker.process_next()) is None


class TestFromSettings:

    def test_requires_api_key(self):
        with pytest.raises(ConfigurationError):
            GenerationWorker.from_settings(Settings(llm_api_key=""), SessionLocal)

    def test_wires_models_and_budget(self):
        settings = Settings(
            llm_api_key="sk-test",
            generation_model="openai/o4-mini",
            repair_model="",
            max_html_fix_iter=3,
        )
        worker = GenerationWorker.from_settings(settings, SessionLocal)
        assert worker.generation_client.model == "openai/o4-mini"
        assert worker.repair_agent.model == "openai/o4-mini"
        assert worker.max_iterations == 3


class FakeLoopWorker:
    """Scripted process_next() results for the scheduler; stops when the script ends."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def process_next(self):
        self.calls += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def done(self):
        return not self.results


class TestRunForever:

    def test_sleeps_only_when_idle_and_after_errors(self):
        worker = FakeLoopWorker(object(), object(), None, RuntimeError("db down"), None)
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        with patch("infographics.worker.asyncio.sleep", fake_sleep):
            asyncio.run(run_forever(worker, poll_interval=5, error_backoff=10, should_stop=worker.done))

        assert worker.calls == 5
        assert sleeps == [5, 10, 5]


class TestEndToEnd:

    def test_two_markup_errors_repaired_in_one_round(self, db):
        page = make_page(db)
        item, created = QueueService(db).enqueue(page.id, "user-1")
        assert created is True

        broken = "<!DOCTYPE html><html><body><div><p>Q3</div></span></body></html>"
        fixed = "<!DOCTYPE html><html><body><div><p>Q3</p></div></body></html>"
        errors = [markup_error("End tag div seen, but there were open elements."),
                  markup_error("Stray end tag span.")]
        validator = ScriptedValidator(errors, [])
        repairer = ScriptedRepairer(fixed)
        worker = _worker(generation_client=FakeGenerationClient(broken), validator=validator, repairer=repairer)

        asyncio.run(worker.process_next())

        assert reload_item(item.id).status == COMPLETED
        assert _reload_page(page.id).generated_html == fixed
        assert _history(page.id) == []
        assert repairer.calls == [(broken, errors)]
        assert validator.seen == [broken, fixed]
