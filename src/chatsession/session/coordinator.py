"""Session coordinator: single owner of the active transcript.

This module hides:
- The generation state machine (idle -> generating -> idle)
- Single-flight dispatch and cooperative cancellation
- When transcripts are archived to the history store

All mutations of the transcript and the generation state happen on the event
loop that runs the coordinator. The only suspension point of a generation run
is while waiting for the next fragment from the backend.
"""

import asyncio
import logging
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass

from ..backend.base import GenerationBackend
from ..cancellation import CancellationToken
from ..errors import BackendUnavailableError, OperationCancelledError
from ..history.base import HistoryStore
from ..history.models import ConversationRecord
from ..models import (
    Author,
    GenerationState,
    Message,
    SessionIdentity,
    SessionSnapshot,
)
from .reconcile import PLACEHOLDER_MARKER, ReconciliationBuffer

logger = logging.getLogger(__name__)

Listener = Callable[[SessionSnapshot], None]


@dataclass
class _Generation:
    """Handle of the one live generation run."""

    task: asyncio.Task
    token: CancellationToken
    prompt: str


class SessionCoordinator:
    """Coordinates prompts, backend generation and history for one chat.

    Usage:
        coordinator = SessionCoordinator(backend, history)
        coordinator.subscribe(render)
        task = await coordinator.send("Hello")
        await coordinator.wait()
        await coordinator.start_new_chat()
    """

    def __init__(
        self,
        backend: GenerationBackend,
        history: HistoryStore,
        identity: SessionIdentity | None = None,
        placeholder: str = PLACEHOLDER_MARKER,
        greeting: bool = False,
    ):
        """Initialize the coordinator.

        Args:
            backend: Generation backend producing fragment streams
            history: Store receiving archived conversations
            identity: Display names of user and assistant
            placeholder: Interim marker suppressed during reconciliation
            greeting: Seed new sessions with a welcome message on open()
        """
        self._backend = backend
        self._history = history
        self._identity = identity or SessionIdentity()
        self._placeholder = placeholder
        self._greeting_enabled = greeting

        self._messages: list[Message] = []
        self._generation: _Generation | None = None
        self._listeners: list[Listener] = []
        self._lock = asyncio.Lock()

        # Set when the transcript came from loadChat and has not changed since
        self._loaded_chat: ConversationRecord | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> GenerationState:
        if self._generation is None:
            return GenerationState.IDLE
        return GenerationState.GENERATING

    @property
    def is_generating(self) -> bool:
        return self._generation is not None

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def identity(self) -> SessionIdentity:
        return self._identity

    @property
    def backend(self) -> GenerationBackend:
        return self._backend

    @property
    def snapshot(self) -> SessionSnapshot:
        chat_id = self._loaded_chat.id if self._loaded_chat is not None else None
        return SessionSnapshot(messages=self.messages, state=self.state, chat_id=chat_id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called with a snapshot after every change.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Session listener %r failed", listener)

    def set_identity(self, identity: SessionIdentity) -> None:
        """Change display names for subsequent messages and persistence."""
        self._identity = identity
        self._history.identity = identity

    # ------------------------------------------------------------------
    # Transcript helpers
    # ------------------------------------------------------------------

    def _append(self, message: Message) -> None:
        self._messages.append(message)
        self._loaded_chat = None

    def _replace_last(self, message: Message) -> None:
        if self._messages and self._messages[-1].author == Author.ASSISTANT:
            self._messages[-1] = message
        else:
            self._messages.append(message)
        self._loaded_chat = None

    def _is_incomplete(self, message: Message) -> bool:
        if message.author != Author.ASSISTANT:
            return False
        text = message.text.strip()
        return not text or (bool(self._placeholder) and text.endswith(self._placeholder))

    def _strip_incomplete(self) -> None:
        """Drop the trailing assistant message if it is still a placeholder."""
        if self._messages and self._is_incomplete(self._messages[-1]):
            self._messages.pop()

    def _is_effectively_empty(self) -> bool:
        if not self._messages:
            return True
        if len(self._messages) == 1:
            only = self._messages[0]
            return only.author == Author.ASSISTANT and only.text == self._identity.greeting()
        return False

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def send(self, prompt: str) -> asyncio.Task | None:
        """Dispatch a prompt to the backend.

        Any generation already in flight is cancelled first and awaited until
        it reaches a terminal state.

        Args:
            prompt: The user's prompt; blank prompts are ignored

        Returns:
            The background generation task, or None if nothing was started
        """
        if not prompt or not prompt.strip():
            return None

        async with self._lock:
            if await self._cancel_generation():
                self._strip_incomplete()

            self._append(Message.user(prompt))

            if not self._backend.is_loaded:
                logger.info("Prompt received while no model is loaded")
                self._append(Message.assistant(str(BackendUnavailableError())))
                self._notify()
                return None

            self._append(Message.assistant(""))
            token = CancellationToken()
            task = asyncio.create_task(self._run(prompt, token), name="chatsession-generation")
            self._generation = _Generation(task=task, token=token, prompt=prompt)
            logger.debug("Sending prompt: %s", prompt)
            self._notify()
            return task

    async def _run(self, prompt: str, token: CancellationToken) -> None:
        """Consume the backend stream for one prompt."""
        buffer = ReconciliationBuffer(self._placeholder)
        try:
            async with aclosing(self._backend.generate(prompt, token)) as stream:
                async for fragment in stream:
                    if token.cancelled:
                        break
                    update = buffer.feed(fragment)
                    if update is not None:
                        self._replace_last(Message.assistant(update))
                        self._notify()

            if token.cancelled:
                logger.debug("Generation cancelled for prompt: %s", prompt)
                return

            final = buffer.finalize()
            if final:
                self._replace_last(Message.assistant(final))
            else:
                logger.warning("Backend produced no content for prompt: %s", prompt)
                self._strip_incomplete()
            logger.debug("Response generation completed for prompt: %s", prompt)

        except (asyncio.CancelledError, OperationCancelledError):
            logger.debug("Generation cancelled for prompt: %s", prompt)
            if not token.cancelled:
                raise
        except Exception as e:
            if token.cancelled:
                logger.debug("Ignoring backend error after cancellation: %s", e)
            else:
                logger.exception("Send error for prompt: %s", prompt)
                self._replace_last(Message.assistant(f"Error: {e}"))
        finally:
            current = self._generation
            if current is not None and current.token is token:
                self._generation = None
                self._notify()

    async def _cancel_generation(self) -> bool:
        """Cancel the in-flight generation and wait for it to terminate.

        Returns:
            True if a generation was cancelled
        """
        generation = self._generation
        if generation is None:
            return False

        generation.token.cancel()
        try:
            await self._backend.cancel()
        except Exception:
            logger.exception("Backend cancel failed")

        generation.task.cancel()
        await asyncio.wait({generation.task})

        if self._generation is generation:
            self._generation = None
        return True

    async def wait(self) -> None:
        """Wait for the in-flight generation (if any) to finish."""
        generation = self._generation
        if generation is not None:
            await asyncio.wait({generation.task})

    async def pause(self) -> None:
        """Stop generating and drop the reply if it is still a placeholder.

        Idempotent when no generation is in flight.
        """
        async with self._lock:
            if not await self._cancel_generation():
                return
            self._strip_incomplete()
            logger.debug("Paused and cleaned partial responses")
            self._notify()

    # ------------------------------------------------------------------
    # Conversation lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Start a fresh session, seeding the greeting when enabled."""
        self._messages.clear()
        self._loaded_chat = None
        if self._greeting_enabled:
            self._messages.append(Message.assistant(self._identity.greeting()))
        self._notify()

    async def _archive_current(self) -> ConversationRecord | None:
        if self._is_effectively_empty():
            return None
        if self._loaded_chat is not None and tuple(self._messages) == self._loaded_chat.messages:
            logger.debug("Transcript unchanged since loading chat %s", self._loaded_chat.id)
            return None

        record = await self._history.archive(tuple(self._messages))
        logger.info("Archived chat %s (%d messages)", record.id, len(record.messages))
        return record

    async def start_new_chat(self) -> ConversationRecord | None:
        """Archive the current transcript and start over with a clean context.

        Returns:
            The archived record, or None if nothing was worth archiving
        """
        async with self._lock:
            if await self._cancel_generation():
                self._strip_incomplete()

            record = await self._archive_current()

            self._messages.clear()
            self._loaded_chat = None
            try:
                await self._backend.reset()
            except Exception:
                logger.exception("Backend context reset failed")

            logger.debug("Started new chat with full state reset")
            self._notify()
            return record

    async def load_chat(self, chat_id: str) -> bool:
        """Replace the transcript with an archived conversation.

        Loading while generating is the caller's responsibility to prevent.

        Returns:
            True if the conversation was found
        """
        async with self._lock:
            record = await self._history.get(chat_id)
            if record is None:
                logger.debug("Chat %s not found", chat_id)
                return False

            self._messages = list(record.messages)
            self._loaded_chat = record
            logger.debug("Loaded chat with ID: %s, %d messages", chat_id, len(record.messages))
            self._notify()
            return True

    async def delete_chat(self, chat_id: str) -> bool:
        """Remove an archived conversation permanently.

        Deleting the chat that is currently loaded (and unchanged) also clears
        the transcript, so closing the session cannot archive it again.

        Returns:
            True if a conversation was removed
        """
        async with self._lock:
            removed = await self._history.remove(chat_id)
            if removed and self._loaded_chat is not None and self._loaded_chat.id == chat_id:
                self._messages.clear()
                self._loaded_chat = None
                if self._greeting_enabled:
                    self._messages.append(Message.assistant(self._identity.greeting()))
                logger.debug("Deleted loaded chat %s; transcript cleared", chat_id)
                self._notify()
            return removed

    async def chats(self) -> list[ConversationRecord]:
        """List archived conversations, most recent last."""
        return await self._history.list()

    async def close(self) -> ConversationRecord | None:
        """Tear the session down, archiving the transcript if it has content."""
        async with self._lock:
            if await self._cancel_generation():
                self._strip_incomplete()
            record = await self._archive_current()
            self._messages.clear()
            self._loaded_chat = None
            self._notify()
            return record
