"""Unit tests for the call-sheet persistence worker."""

import asyncio

import pytest
from sqlalchemy.exc import IntegrityError

from app.features.ingest.models import ImportStatus
from app.features.ingest.worker import CallSheetWorker, PersistenceJob


def _job(records_factory, key: str = "abc") -> PersistenceJob:
    return PersistenceJob(key=key, records=tuple(records_factory(1)))


class TestCallSheetWorker:
    """Tests for queue handoff and detached persistence."""

    @pytest.mark.asyncio
    async def test_enqueued_job_is_persisted_and_audited(
        self, worker, store_session, audit_logger, records_factory
    ):
        worker.start()
        worker.enqueue(_job(records_factory))
        await worker.join()
        await worker.stop()

        store_session.execute.assert_awaited_once()
        store_session.commit.assert_awaited_once()
        assert audit_logger.outcomes[0].status is ImportStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_store_failure_logged_not_raised(
        self, worker, store_session, audit_logger, records_factory
    ):
        store_session.execute.side_effect = IntegrityError("INSERT", {}, Exception("boom"))

        worker.start()
        worker.enqueue(_job(records_factory, "k1"))
        worker.enqueue(_job(records_factory, "k2"))
        await worker.join()

        # The consumer survives failures and keeps draining
        assert worker.is_running
        assert [o.status for o in audit_logger.outcomes] == [ImportStatus.FAILED] * 2
        await worker.stop()

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_kill_consumer(
        self, worker, audit_logger, records_factory, monkeypatch
    ):
        calls = []

        async def flaky_process(job):
            calls.append(job.key)
            if job.key == "bad":
                raise RuntimeError("unexpected")

        monkeypatch.setattr(worker, "process", flaky_process)

        worker.start()
        worker.enqueue(_job(records_factory, "bad"))
        worker.enqueue(_job(records_factory, "good"))
        await worker.join()
        await worker.stop()

        assert calls == ["bad", "good"]

    @pytest.mark.asyncio
    async def test_queue_full_raises(self, session_maker, audit_logger, records_factory):
        worker = CallSheetWorker(session_maker=session_maker, audit_logger=audit_logger, maxsize=1)
        worker.enqueue(_job(records_factory, "a"))

        with pytest.raises(asyncio.QueueFull):
            worker.enqueue(_job(records_factory, "b"))

    @pytest.mark.asyncio
    async def test_stop_drains_pending_jobs(self, worker, store_session, records_factory):
        for key in ("a", "b", "c"):
            worker.enqueue(_job(records_factory, key))

        worker.start()
        await worker.stop()

        assert worker.pending == 0
        assert store_session.execute.await_count == 3
        assert not worker.is_running

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, worker):
        worker.start()
        worker.start()

        assert worker.is_running
        await worker.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, worker):
        await worker.stop()

        assert not worker.is_running
