"""Core data models shared by the session, history and backend modules.

These models describe the transcript the coordinator owns and the read-only
snapshots it publishes. Persistence formats live in the history module.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_USER_NAME = "User"
DEFAULT_ASSISTANT_NAME = "Assistant"


class Author(str, Enum):
    """Who wrote a message."""

    USER = "user"
    ASSISTANT = "assistant"  # Also used for informational and error messages


class GenerationState(str, Enum):
    """Generation lifecycle of a session."""

    IDLE = "idle"
    GENERATING = "generating"


class Message(BaseModel):
    """A single message in the transcript."""

    model_config = ConfigDict(frozen=True)

    author: Author = Field(description="Author of the message")
    text: str = Field(default="", description="Message body without any name prefix")

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(author=Author.USER, text=text)

    @classmethod
    def assistant(cls, text: str = "") -> "Message":
        return cls(author=Author.ASSISTANT, text=text)


class SessionIdentity(BaseModel):
    """Display names of the two participants.

    Names are used for rendering and as the author prefix of the persisted
    history format. Blank names fall back to the defaults.
    """

    model_config = ConfigDict(frozen=True)

    user_name: str = Field(default=DEFAULT_USER_NAME)
    assistant_name: str = Field(default=DEFAULT_ASSISTANT_NAME)

    @field_validator("user_name", mode="before")
    @classmethod
    def _default_user_name(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_USER_NAME
        return value.strip() if isinstance(value, str) else value

    @field_validator("assistant_name", mode="before")
    @classmethod
    def _default_assistant_name(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_ASSISTANT_NAME
        return value.strip() if isinstance(value, str) else value

    def name_for(self, author: Author) -> str:
        """Get the display name for an author."""
        return self.user_name if author == Author.USER else self.assistant_name

    def greeting(self) -> str:
        """Welcome text shown at the top of a fresh session."""
        return (
            f"Hello, {self.user_name}! I'm here to assist you. "
            f"How can I help you today?"
        )


class SessionSnapshot(BaseModel):
    """Immutable view of a session published to subscribers."""

    model_config = ConfigDict(frozen=True)

    messages: tuple[Message, ...] = Field(default=())
    state: GenerationState = Field(default=GenerationState.IDLE)
    chat_id: str | None = Field(
        default=None,
        description="Id of the archived conversation the transcript was loaded from"
    )

    @property
    def is_generating(self) -> bool:
        return self.state == GenerationState.GENERATING
