"""Error kinds recovered at the session boundary."""


class ChatSessionError(Exception):
    """Base class for chat session errors."""


class BackendUnavailableError(ChatSessionError):
    """No model is loaded in the generation backend."""

    def __init__(self, message: str = "No model loaded. Please load a model from Settings."):
        super().__init__(message)


class GenerationError(ChatSessionError):
    """The backend failed while producing fragments."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class PersistenceError(ChatSessionError):
    """Reading or writing the history document failed."""

    def __init__(self, message: str, path: str | None = None):
        msg = message
        if path:
            msg += f" (path: {path})"
        super().__init__(msg)
        self.path = path


class OperationCancelledError(ChatSessionError):
    """Raised when an in-flight generation is aborted via cancellation."""
