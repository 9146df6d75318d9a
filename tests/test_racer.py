"""
Tests for the connection racer
"""

import asyncio
import logging

import pytest

from wally_vibe.errors import SessionConnectError
from wally_vibe.models import SessionSource
from wally_vibe.racer import ConnectionRacer, drop_task, poll_task

from conftest import FakeSession, failing_factory, hanging_factory, session_factory, slow_cancel_factory


async def settle():
    """Let freshly created tasks run to their first await (or completion)."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
class TestResolve:
    """Test picking between the remote and local attempts"""

    async def test_ready_remote_wins_without_waiting_on_local(self):
        """Test a finished remote session is used and the local attempt is cancelled"""
        remote = FakeSession(source=SessionSource.REMOTE)
        local_cancelled = asyncio.Event()
        racer = ConnectionRacer(session_factory(remote), hanging_factory(cancelled=local_cancelled))
        racer.start()
        await settle()

        session = await asyncio.wait_for(racer.resolve(), timeout=1.0)

        assert session is remote
        assert not remote.closed
        await racer.abandon()
        assert local_cancelled.is_set()

    async def test_slow_local_teardown_does_not_delay_resolve(self):
        """Test the losing attempt winds down in abandon(), not in resolve()"""
        remote = FakeSession(source=SessionSource.REMOTE)
        local_finished = asyncio.Event()
        racer = ConnectionRacer(session_factory(remote), slow_cancel_factory(0.5, finished=local_finished))
        racer.start()
        await settle()
        loop = asyncio.get_running_loop()

        began = loop.time()
        session = await racer.resolve()
        elapsed = loop.time() - began

        assert session is remote
        assert elapsed < 0.25
        assert not local_finished.is_set()

        await asyncio.wait_for(racer.abandon(), timeout=2.0)
        assert local_finished.is_set()

    async def test_cancelled_resolve_propagates(self):
        """Test cancelling a resolve() waiting on the local attempt raises and cancels that attempt"""
        local_cancelled = asyncio.Event()
        racer = ConnectionRacer(hanging_factory(), hanging_factory(cancelled=local_cancelled))
        racer.start()
        resolving = asyncio.create_task(racer.resolve())
        await asyncio.sleep(0.05)

        resolving.cancel()

        with pytest.raises(asyncio.CancelledError):
            await resolving
        await racer.abandon()
        assert local_cancelled.is_set()

    async def test_pending_remote_falls_back_to_local(self):
        local = FakeSession(source=SessionSource.LOCAL)
        remote_cancelled = asyncio.Event()
        racer = ConnectionRacer(hanging_factory(cancelled=remote_cancelled), session_factory(local))
        racer.start()
        await settle()

        session = await racer.resolve()

        assert session is local
        await racer.abandon()
        assert remote_cancelled.is_set()

    async def test_remote_is_polled_not_awaited(self):
        """Test a remote attempt still connecting is not waited for, even if the local one is slower"""
        local = FakeSession(source=SessionSource.LOCAL)

        async def slow_local():
            await asyncio.sleep(0.05)
            return local

        racer = ConnectionRacer(hanging_factory(), slow_local)
        racer.start()

        assert await racer.resolve() is local

    async def test_failed_remote_falls_back_to_local(self):
        local = FakeSession(source=SessionSource.LOCAL)
        racer = ConnectionRacer(failing_factory(), session_factory(local))
        racer.start()
        await settle()

        assert await racer.resolve() is local

    async def test_local_failure_raises_connect_error(self):
        racer = ConnectionRacer(failing_factory("no server"), failing_factory("no engine"))
        racer.start()
        await settle()

        with pytest.raises(SessionConnectError, match="no engine") as excinfo:
            await racer.resolve()
        assert isinstance(excinfo.value.__cause__, ConnectionRefusedError)

    async def test_local_connect_error_passes_through(self):
        async def local():
            raise SessionConnectError("couldn't start intiface-engine")

        racer = ConnectionRacer(failing_factory(), local)
        racer.start()

        with pytest.raises(SessionConnectError, match="couldn't start intiface-engine"):
            await racer.resolve()

    async def test_logs_choice(self, caplog):
        racer = ConnectionRacer(session_factory(FakeSession()), hanging_factory())
        racer.start()
        await settle()
        with caplog.at_level(logging.INFO, logger="wally_vibe.racer"):
            await racer.resolve()
        assert "using server" in caplog.text

    async def test_resolve_before_start(self):
        racer = ConnectionRacer(hanging_factory(), hanging_factory())
        with pytest.raises(RuntimeError):
            await racer.resolve()

    async def test_resolve_twice(self):
        racer = ConnectionRacer(session_factory(FakeSession()), hanging_factory())
        racer.start()
        await settle()
        await racer.resolve()
        with pytest.raises(RuntimeError):
            await racer.resolve()

    async def test_start_twice(self):
        racer = ConnectionRacer(hanging_factory(), hanging_factory())
        racer.start()
        with pytest.raises(RuntimeError):
            racer.start()
        await racer.abandon()


@pytest.mark.asyncio
class TestAbandon:
    """Test dropping attempts that were never used"""

    async def test_cancels_pending_attempts(self):
        remote_cancelled = asyncio.Event()
        local_cancelled = asyncio.Event()
        racer = ConnectionRacer(
            hanging_factory(cancelled=remote_cancelled),
            hanging_factory(cancelled=local_cancelled),
        )
        racer.start()
        await settle()

        await asyncio.wait_for(racer.abandon(), timeout=1.0)

        assert remote_cancelled.is_set()
        assert local_cancelled.is_set()

    async def test_closes_finished_sessions(self):
        remote = FakeSession(source=SessionSource.REMOTE)
        local = FakeSession(source=SessionSource.LOCAL)
        racer = ConnectionRacer(session_factory(remote), session_factory(local))
        racer.start()
        await settle()

        await racer.abandon()

        assert remote.closed
        assert local.closed

    async def test_swallows_failed_attempts(self):
        racer = ConnectionRacer(failing_factory(), failing_factory())
        racer.start()
        await settle()
        await racer.abandon()

    async def test_unused_local_session_closed_when_remote_wins(self):
        remote = FakeSession(source=SessionSource.REMOTE)
        local = FakeSession(source=SessionSource.LOCAL)
        racer = ConnectionRacer(session_factory(remote), session_factory(local))
        racer.start()
        await settle()

        assert await racer.resolve() is remote
        await racer.abandon()
        assert local.closed
        assert not remote.closed


@pytest.mark.asyncio
class TestHelpers:
    """Test the task helpers"""

    async def test_poll_pending_task(self):
        task = asyncio.ensure_future(hanging_factory()())
        await settle()
        assert poll_task(task) is None
        await drop_task(task)
        assert task.cancelled()

    async def test_poll_none(self):
        assert poll_task(None) is None
        await drop_task(None)

    async def test_poll_failed_task(self):
        task = asyncio.ensure_future(failing_factory()())
        await settle()
        assert poll_task(task) is None

    async def test_drop_task_keeps_caller_cancellation(self):
        """Test a caller cancelled while a dropped attempt winds down is not silently resumed"""
        attempt = asyncio.ensure_future(slow_cancel_factory(0.5)())
        await settle()
        dropping = asyncio.create_task(drop_task(attempt))
        await asyncio.sleep(0.05)

        dropping.cancel()

        with pytest.raises(asyncio.CancelledError):
            await dropping
        attempt.cancel()
        await asyncio.wait({attempt})

    async def test_drop_task_closes_finished_session(self):
        session = FakeSession()
        task = asyncio.ensure_future(session_factory(session)())
        await settle()
        await drop_task(task)
        assert session.closed
