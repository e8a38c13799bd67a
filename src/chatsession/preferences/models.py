"""Preference keys and the typed view over them."""

from pydantic import BaseModel, Field

from ..models import DEFAULT_ASSISTANT_NAME, DEFAULT_USER_NAME, SessionIdentity

USER_NAME_KEY = "userName"
ASSISTANT_NAME_KEY = "assistantName"
MODEL_PATH_KEY = "modelPath"
HISTORY_DIR_KEY = "historyDir"
FIRST_LAUNCH_KEY = "isFirstLaunch"

STRING_KEYS = (USER_NAME_KEY, ASSISTANT_NAME_KEY, MODEL_PATH_KEY, HISTORY_DIR_KEY)


class Preferences(BaseModel):
    """User preferences persisted between runs."""

    user_name: str = Field(default=DEFAULT_USER_NAME)
    assistant_name: str = Field(default=DEFAULT_ASSISTANT_NAME)
    model_path: str = Field(default="", description="GGUF path or served model name")
    history_dir: str = Field(default="", description="Directory holding chat_history.json")
    is_first_launch: bool = Field(default=True)

    @property
    def identity(self) -> SessionIdentity:
        return SessionIdentity(user_name=self.user_name, assistant_name=self.assistant_name)
