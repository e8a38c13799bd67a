"""Unit tests for the session coordinator."""
import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from chatsession.errors import BackendUnavailableError
from chatsession.history import ConversationRecord, create_history_store
from chatsession.models import Author, GenerationState, Message, SessionIdentity
from chatsession.session import PLACEHOLDER_MARKER, SessionCoordinator

from conftest import FakeBackend


def _texts(coordinator: SessionCoordinator) -> list[tuple[Author, str]]:
    return [(m.author, m.text) for m in coordinator.messages]


class TestSend:
    """Tests for SessionCoordinator.send."""

    @pytest.mark.asyncio
    async def test_fragments_reconciled_into_reply(self, memory_history):
        """Test the Hel/lo/there scenario end to end."""
        backend = FakeBackend(replies=[["Hel", "lo", " there"]])
        coordinator = SessionCoordinator(backend, memory_history)

        task = await coordinator.send("Hi")
        await task

        assert _texts(coordinator) == [(Author.USER, "Hi"), (Author.ASSISTANT, "Hello there")]
        assert coordinator.state == GenerationState.IDLE

    @pytest.mark.asyncio
    async def test_send_enters_generating(self, memory_history):
        """Test the transcript and state while a reply is streaming."""
        backend = FakeBackend(replies=[["Partial"]], hold_after=0)
        coordinator = SessionCoordinator(backend, memory_history)

        task = await coordinator.send("Hi")

        assert coordinator.state == GenerationState.GENERATING
        assert coordinator.is_generating
        assert _texts(coordinator) == [(Author.USER, "Hi"), (Author.ASSISTANT, "")]

        backend.release.set()
        await task
        assert coordinator.state == GenerationState.IDLE
        assert coordinator.messages[-1].text == "Partial"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("prompt", ["", "   ", "\n\t"])
    async def test_blank_prompt_ignored(self, coordinator, backend, prompt):
        """Test that blank prompts are a silent no-op."""
        assert await coordinator.send(prompt) is None

        assert coordinator.messages == ()
        assert coordinator.state == GenerationState.IDLE
        assert backend.prompts == []

    @given(prompt=st.text(min_size=1).filter(lambda s: s.strip()))
    @settings(max_examples=25, deadline=None)
    def test_send_appends_user_and_assistant(self, prompt: str):
        """Property test: one user message and one trailing assistant message."""
        async def scenario():
            backend = FakeBackend(replies=[["Sure"]], hold_after=0)
            coordinator = SessionCoordinator(backend, create_history_store("memory"))

            task = await coordinator.send(prompt)
            assert coordinator.state == GenerationState.GENERATING
            assert _texts(coordinator) == [(Author.USER, prompt), (Author.ASSISTANT, "")]

            backend.release.set()
            await task
            assert _texts(coordinator) == [(Author.USER, prompt), (Author.ASSISTANT, "Sure")]
            assert coordinator.state == GenerationState.IDLE

        asyncio.run(scenario())

    @pytest.mark.asyncio
    async def test_placeholder_never_shown(self, memory_history):
        """Test that the interim marker is not rendered as content."""
        backend = FakeBackend(replies=[[PLACEHOLDER_MARKER, "Real answer"]])
        coordinator = SessionCoordinator(backend, memory_history)
        seen: list[str] = []
        coordinator.subscribe(lambda snap: seen.append(snap.messages[-1].text))

        await (await coordinator.send("Hi"))

        assert coordinator.messages[-1].text == "Real answer"
        assert PLACEHOLDER_MARKER not in seen

    @pytest.mark.asyncio
    async def test_backend_unavailable(self, memory_history):
        """Test the informational reply when no model is loaded."""
        backend = FakeBackend(loaded=False)
        coordinator = SessionCoordinator(backend, memory_history)

        assert await coordinator.send("Hi") is None

        assert _texts(coordinator) == [
            (Author.USER, "Hi"),
            (Author.ASSISTANT, str(BackendUnavailableError())),
        ]
        assert coordinator.state == GenerationState.IDLE
        assert backend.prompts == []

    @pytest.mark.asyncio
    async def test_generation_failure_surfaces_error(self, memory_history):
        """Test that a mid-stream failure replaces the reply with an error."""
        backend = FakeBackend(replies=[["Half", " way"]], fail_after=1)
        coordinator = SessionCoordinator(backend, memory_history)

        await (await coordinator.send("Hi"))

        last = coordinator.messages[-1]
        assert last.author == Author.ASSISTANT
        assert last.text == "Error: engine crashed"
        assert coordinator.state == GenerationState.IDLE

    @pytest.mark.asyncio
    async def test_empty_reply_removes_placeholder(self, memory_history):
        """Test that a reply with no content leaves no empty message."""
        backend = FakeBackend(replies=[["  ", "\n"]])
        coordinator = SessionCoordinator(backend, memory_history)

        await (await coordinator.send("Hi"))

        assert _texts(coordinator) == [(Author.USER, "Hi")]

    @pytest.mark.asyncio
    async def test_new_send_cancels_previous(self, memory_history):
        """Test single-flight: a second send supersedes the first."""
        backend = FakeBackend(replies=[["first"], ["second"]], hold_after=0)
        coordinator = SessionCoordinator(backend, memory_history)

        first = await coordinator.send("one")
        await backend.holding.wait()
        second = await coordinator.send("two")

        assert first.done()
        assert backend.cancel_calls == 1
        assert _texts(coordinator) == [
            (Author.USER, "one"),
            (Author.USER, "two"),
            (Author.ASSISTANT, ""),
        ]

        backend.release.set()
        await second
        assert _texts(coordinator)[-1] == (Author.ASSISTANT, "second")
        assert coordinator.state == GenerationState.IDLE

    @pytest.mark.asyncio
    async def test_cancelled_reply_keeps_completed_text(self, memory_history):
        """Test that cancelling keeps text that is not a placeholder."""
        backend = FakeBackend(replies=[["Partial answer", " more"], ["next"]], hold_after=1)
        coordinator = SessionCoordinator(backend, memory_history)

        await coordinator.send("one")
        await backend.holding.wait()
        await coordinator.pause()

        assert _texts(coordinator) == [(Author.USER, "one"), (Author.ASSISTANT, "Partial answer")]

    @pytest.mark.asyncio
    async def test_wait(self, coordinator):
        """Test waiting for the reply without holding the task."""
        await coordinator.send("Hi")
        await coordinator.wait()

        assert coordinator.messages[-1].text == "Hello there"
        await coordinator.wait()


class TestPause:
    """Tests for SessionCoordinator.pause."""

    @pytest.mark.asyncio
    async def test_pause_strips_placeholder(self, memory_history):
        """Test that pausing removes the empty in-flight reply."""
        backend = FakeBackend(replies=[["never shown"]], hold_after=0)
        coordinator = SessionCoordinator(backend, memory_history)

        task = await coordinator.send("Hi")
        await backend.holding.wait()
        await coordinator.pause()

        assert task.done()
        assert coordinator.state == GenerationState.IDLE
        assert _texts(coordinator) == [(Author.USER, "Hi")]
        assert backend.closed_streams == 1

    @pytest.mark.asyncio
    async def test_pause_never_leaves_marker_suffix(self, memory_history):
        """Test that held-back marker text never remains in the transcript."""
        backend = FakeBackend(replies=[["Thinking", "..."]], hold_after=2)
        coordinator = SessionCoordinator(backend, memory_history)

        await coordinator.send("Hi")
        await backend.holding.wait()
        assert coordinator.messages[-1].text == "Thinking"

        await coordinator.pause()

        assert coordinator.messages[-1].text == "Thinking"
        assert all(
            m.text and not m.text.endswith(PLACEHOLDER_MARKER)
            for m in coordinator.messages
            if m.author == Author.ASSISTANT
        )

    @pytest.mark.asyncio
    async def test_pause_when_idle_is_noop(self, coordinator):
        """Test that pause changes nothing when idle."""
        await (await coordinator.send("Hi"))
        before = coordinator.snapshot
        notified = []
        coordinator.subscribe(notified.append)

        await coordinator.pause()
        await coordinator.pause()

        assert coordinator.snapshot == before
        assert notified == []

    @pytest.mark.asyncio
    async def test_pause_then_send(self, memory_history):
        """Test that a paused session accepts a new prompt."""
        backend = FakeBackend(replies=[["stuck"], ["fine"]], hold_after=0)
        coordinator = SessionCoordinator(backend, memory_history)

        await coordinator.send("one")
        await backend.holding.wait()
        await coordinator.pause()

        backend.hold_after = None
        await (await coordinator.send("two"))

        assert _texts(coordinator) == [
            (Author.USER, "one"),
            (Author.USER, "two"),
            (Author.ASSISTANT, "fine"),
        ]


class TestLifecycle:
    """Tests for archiving, loading and deleting chats."""

    @pytest.mark.asyncio
    async def test_start_new_chat_archives_and_resets(self, coordinator, backend, memory_history):
        """Test that a new chat archives the old one and clears context."""
        await (await coordinator.send("Hi"))

        record = await coordinator.start_new_chat()

        assert record is not None
        assert record.title.startswith("Chat 1 - ")
        assert [m.text for m in record.messages] == ["Hi", "Hello there"]
        assert await memory_history.list() == [record]
        assert coordinator.messages == ()
        assert coordinator.state == GenerationState.IDLE
        assert backend.reset_calls == 1

    @pytest.mark.asyncio
    async def test_titles_are_numbered(self, coordinator):
        """Test that archived titles count up."""
        await (await coordinator.send("one"))
        first = await coordinator.start_new_chat()
        await (await coordinator.send("two"))
        second = await coordinator.start_new_chat()

        assert first.title.startswith("Chat 1 - ")
        assert second.title.startswith("Chat 2 - ")

    @pytest.mark.asyncio
    async def test_empty_transcript_not_archived(self, coordinator, backend, memory_history):
        """Test that an empty chat leaves history untouched."""
        assert await coordinator.start_new_chat() is None

        assert await memory_history.list() == []
        assert backend.reset_calls == 1

    @pytest.mark.asyncio
    async def test_greeting_only_not_archived(self, backend, memory_history):
        """Test that the initial greeting alone is not worth archiving."""
        coordinator = SessionCoordinator(backend, memory_history, greeting=True)
        coordinator.open()

        assert coordinator.messages == (Message.assistant(SessionIdentity().greeting()),)
        assert await coordinator.start_new_chat() is None
        assert await memory_history.list() == []

    @pytest.mark.asyncio
    async def test_start_new_chat_cancels_generation(self, memory_history):
        """Test that starting over stops the running reply first."""
        backend = FakeBackend(replies=[["never"]], hold_after=0)
        coordinator = SessionCoordinator(backend, memory_history)

        task = await coordinator.send("Hi")
        await backend.holding.wait()
        record = await coordinator.start_new_chat()

        assert task.done()
        assert coordinator.state == GenerationState.IDLE
        assert [m.text for m in record.messages] == ["Hi"]

    @pytest.mark.asyncio
    async def test_archive_then_load_round_trip(self, history_path):
        """Test that loading an archived chat reproduces the transcript."""
        identity = SessionIdentity(user_name="Ann", assistant_name="Bot")
        history = create_history_store("json", path=history_path, identity=identity)
        backend = FakeBackend(replies=[["Hello", " Ann"], ["Bot: is my name"]])
        coordinator = SessionCoordinator(backend, history, identity=identity)

        await (await coordinator.send("Hi"))
        await (await coordinator.send("Who are you?"))
        expected = coordinator.messages
        record = await coordinator.start_new_chat()

        reopened = create_history_store("json", path=history_path, identity=identity)
        await reopened.load_all()
        fresh = SessionCoordinator(FakeBackend(), reopened, identity=identity)

        assert await fresh.load_chat(record.id) is True
        assert fresh.messages == expected
        assert fresh.snapshot.chat_id == record.id

    @pytest.mark.asyncio
    async def test_load_missing_chat(self, coordinator):
        """Test that loading an unknown id leaves the transcript alone."""
        await (await coordinator.send("Hi"))
        before = coordinator.messages

        assert await coordinator.load_chat("missing") is False
        assert coordinator.messages == before

    @pytest.mark.asyncio
    async def test_loaded_chat_not_archived_twice(self, coordinator, memory_history):
        """Test that an unchanged loaded chat is not archived again."""
        await (await coordinator.send("Hi"))
        record = await coordinator.start_new_chat()

        await coordinator.load_chat(record.id)
        assert await coordinator.start_new_chat() is None
        assert await memory_history.list() == [record]

    @pytest.mark.asyncio
    async def test_continued_loaded_chat_archived(self, coordinator, memory_history):
        """Test that a loaded chat with new messages is archived as new."""
        await (await coordinator.send("Hi"))
        record = await coordinator.start_new_chat()

        await coordinator.load_chat(record.id)
        await (await coordinator.send("More"))
        continued = await coordinator.start_new_chat()

        assert continued is not None
        assert continued.id != record.id
        assert len(continued.messages) == 4
        assert len(await memory_history.list()) == 2

    @pytest.mark.asyncio
    async def test_delete_chat(self, coordinator, memory_history):
        """Test deleting archived chats."""
        await (await coordinator.send("Hi"))
        record = await coordinator.start_new_chat()

        assert await coordinator.delete_chat("missing") is False
        assert await coordinator.chats() == [record]

        assert await coordinator.delete_chat(record.id) is True
        assert await coordinator.chats() == []

    @pytest.mark.asyncio
    async def test_deleted_loaded_chat_stays_deleted(self, coordinator, memory_history):
        """Test that closing after deleting the loaded chat does not restore it."""
        record = await memory_history.archive((Message.user("hi"), Message.assistant("yo")))
        await coordinator.load_chat(record.id)

        assert await coordinator.delete_chat(record.id) is True

        assert coordinator.messages == ()
        assert coordinator.snapshot.chat_id is None
        assert await coordinator.close() is None
        assert await memory_history.list() == []

    @pytest.mark.asyncio
    async def test_deleted_loaded_chat_new_chat(self, backend, memory_history):
        """Test that starting over after deleting the loaded chat archives nothing."""
        coordinator = SessionCoordinator(backend, memory_history, greeting=True)
        record = await memory_history.archive((Message.user("hi"), Message.assistant("yo")))
        await coordinator.load_chat(record.id)

        await coordinator.delete_chat(record.id)

        assert coordinator.messages == (Message.assistant(SessionIdentity().greeting()),)
        assert await coordinator.start_new_chat() is None
        assert await memory_history.list() == []

    @pytest.mark.asyncio
    async def test_deleting_other_chat_keeps_transcript(self, coordinator, memory_history):
        """Test that deleting a different chat leaves the loaded one alone."""
        kept = await memory_history.archive((Message.user("keep"),))
        other = await memory_history.archive((Message.user("other"),))
        await coordinator.load_chat(kept.id)

        assert await coordinator.delete_chat(other.id) is True

        assert coordinator.messages == kept.messages
        assert coordinator.snapshot.chat_id == kept.id

    @pytest.mark.asyncio
    async def test_close_archives(self, coordinator, backend, memory_history):
        """Test that closing archives without resetting the backend."""
        await (await coordinator.send("Hi"))

        record = await coordinator.close()

        assert isinstance(record, ConversationRecord)
        assert await memory_history.list() == [record]
        assert coordinator.messages == ()
        assert backend.reset_calls == 0


class TestSubscribe:
    """Tests for snapshot notifications."""

    @pytest.mark.asyncio
    async def test_listener_sees_state_changes(self, coordinator):
        """Test that listeners observe generating and idle snapshots."""
        states: list[GenerationState] = []
        unsubscribe = coordinator.subscribe(lambda snap: states.append(snap.state))

        await (await coordinator.send("Hi"))

        assert states[0] == GenerationState.GENERATING
        assert states[-1] == GenerationState.IDLE

        unsubscribe()
        count = len(states)
        await coordinator.start_new_chat()
        assert len(states) == count

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_session(self, coordinator):
        """Test that listener errors are logged and ignored."""
        def broken(snapshot):
            raise RuntimeError("render failed")

        coordinator.subscribe(broken)

        await (await coordinator.send("Hi"))

        assert coordinator.messages[-1].text == "Hello there"

    @pytest.mark.asyncio
    async def test_set_identity_updates_history(self, coordinator, memory_history):
        """Test that renaming participants reaches the history store."""
        identity = SessionIdentity(user_name="Ann", assistant_name="Bot")

        coordinator.set_identity(identity)

        assert coordinator.identity == identity
        assert memory_history.identity == identity
