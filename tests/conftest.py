"""Pytest configuration and shared fixtures."""
import asyncio
from collections.abc import AsyncIterator

import pytest

from chatsession.backend import GenerationBackend
from chatsession.cancellation import CancellationToken
from chatsession.errors import BackendUnavailableError, GenerationError
from chatsession.history import create_history_store
from chatsession.models import SessionIdentity
from chatsession.session import SessionCoordinator


class FakeBackend(GenerationBackend):
    """Scripted backend yielding canned fragments.

    ``replies`` are consumed one per prompt; the last one repeats. With
    ``hold_after`` set, the stream blocks after that many fragments until
    ``release`` is set, which lets tests observe the Generating state.
    """

    def __init__(
        self,
        replies: list[list[str]] | None = None,
        loaded: bool = True,
        hold_after: int | None = None,
        fail_after: int | None = None,
    ):
        super().__init__()
        self.replies = list(replies or [["Hello", " there"]])
        self.loaded = loaded
        self.hold_after = hold_after
        self.fail_after = fail_after
        self.holding = asyncio.Event()
        self.release = asyncio.Event()
        self.prompts: list[str] = []
        self.cancel_calls = 0
        self.reset_calls = 0
        self.closed_streams = 0

    @property
    def is_loaded(self) -> bool:
        return self.loaded

    @property
    def backend_type(self) -> str:
        return "fake"

    async def load(self, model: str) -> None:
        self.loaded = True

    async def unload(self) -> None:
        self.loaded = False

    async def cancel(self) -> None:
        self.cancel_calls += 1

    async def reset(self) -> None:
        await super().reset()
        self.reset_calls += 1

    def _next_reply(self) -> list[str]:
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]

    async def generate(
        self,
        prompt: str,
        cancellation: CancellationToken | None = None
    ) -> AsyncIterator[str]:
        if not self.loaded:
            raise BackendUnavailableError()
        self.prompts.append(prompt)
        fragments = self._next_reply()
        try:
            for index, fragment in enumerate(fragments):
                if self.hold_after is not None and index == self.hold_after:
                    self.holding.set()
                    await self.release.wait()
                if self.fail_after is not None and index == self.fail_after:
                    raise GenerationError("engine crashed")
                if cancellation is not None and cancellation.cancelled:
                    return
                yield fragment
                await asyncio.sleep(0)
            if self.hold_after is not None and self.hold_after >= len(fragments):
                self.holding.set()
                await self.release.wait()
            if self.fail_after is not None and self.fail_after >= len(fragments):
                raise GenerationError("engine crashed")
        finally:
            self.closed_streams += 1


@pytest.fixture
def identity():
    """Return the default session identity."""
    return SessionIdentity()


@pytest.fixture
def backend():
    """Return a loaded fake backend with a two-fragment reply."""
    return FakeBackend()


@pytest.fixture
def memory_history():
    """Return an empty in-memory history store."""
    return create_history_store("memory")


@pytest.fixture
def history_path(tmp_path):
    """Return a path for a temporary history document."""
    return tmp_path / "data" / "chat_history.json"


@pytest.fixture
def json_history(history_path):
    """Return a JSON history store writing to a temporary directory."""
    return create_history_store("json", path=history_path)


@pytest.fixture
def coordinator(backend, memory_history):
    """Return a coordinator wired to the fake backend and in-memory history."""
    return SessionCoordinator(backend, memory_history)
