"""Tests for the in-flight request registry."""

from __future__ import annotations

import asyncio

import pytest

from libraryclient.services.inflight import CancellationToken, InFlightRegistry


async def _pending() -> None:
    await asyncio.Event().wait()


class TestCancellationToken:
    def test_cancel_runs_callbacks_once(self):
        token = CancellationToken()
        calls: list[str] = []
        token.add_callback(lambda: calls.append("a"))

        assert token.cancel("stop") is True
        assert token.cancel("again") is False
        assert token.cancelled
        assert token.reason == "stop"
        assert calls == ["a"]

    def test_detached_callback_not_called(self):
        token = CancellationToken()
        calls: list[str] = []
        detach = token.add_callback(lambda: calls.append("a"))

        detach()
        token.cancel()

        assert calls == []

    def test_callback_added_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls: list[str] = []

        token.add_callback(lambda: calls.append("late"))

        assert calls == ["late"]


class TestInFlightRegistry:
    @pytest.mark.asyncio
    async def test_register_supersedes_pending_request(self):
        registry = InFlightRegistry()
        first_task = asyncio.ensure_future(_pending())
        second_task = asyncio.ensure_future(_pending())

        first = registry.register("/books", first_task)
        second = registry.register("/books", second_task)
        await asyncio.sleep(0)

        assert first.cancelled
        assert first_task.cancelled()
        assert not second.cancelled
        assert registry.get("/books") is second

        second_task.cancel()
        await asyncio.gather(second_task, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_release_of_superseded_handle_keeps_newer_entry(self):
        registry = InFlightRegistry()
        first = registry.register("/books", asyncio.ensure_future(_pending()))
        second = registry.register("/books", asyncio.ensure_future(_pending()))

        registry.release(first)
        assert registry.get("/books") is second

        registry.release(second)
        assert "/books" not in registry
        assert len(registry) == 0

        second.task.cancel()
        await asyncio.gather(first.task, second.task, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_cancel_by_key(self):
        registry = InFlightRegistry()
        handle = registry.register("/course", asyncio.ensure_future(_pending()))

        assert registry.cancel("/course") is True
        assert registry.cancel("/course") is False
        assert handle.cancelled
        assert handle.token.reason == "Request was cancelled"

        await asyncio.gather(handle.task, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_external_signal_cancels_task(self):
        registry = InFlightRegistry()
        signal = CancellationToken()
        handle = registry.register("/course", asyncio.ensure_future(_pending()), signal)

        signal.cancel("user navigated away")
        await asyncio.gather(handle.task, return_exceptions=True)

        assert handle.cancelled
        assert handle.token.reason == "user navigated away"
        assert handle.task.cancelled()

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        registry = InFlightRegistry()
        handles = [
            registry.register(key, asyncio.ensure_future(_pending()))
            for key in ("/a", "/b", "/c")
        ]

        assert registry.cancel_all() == 3
        assert len(registry) == 0

        await asyncio.gather(*(h.task for h in handles), return_exceptions=True)
        assert all(h.task.cancelled() for h in handles)
