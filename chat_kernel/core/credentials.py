import os
from pathlib import Path
from typing import Protocol, runtime_checkable

from dotenv import get_key, set_key, unset_key

from chat_kernel.core.errors import ApiKeyMissingError
from chat_kernel.utils.config import get_project_root


API_KEY_ENV = "OPENROUTER_API_KEY"


class KeyNotFoundError(LookupError):
    """No API key has been stored."""


@runtime_checkable
class KeyStore(Protocol):
    def load_key(self) -> str:
        """Return the stored key or raise KeyNotFoundError."""

    def save_key(self, key: str) -> None:
        """Store the key, replacing any previous one."""

    def delete_key(self) -> None:
        """Forget the stored key."""


class DotenvKeyStore:
    """API key kept in a .env file and mirrored into the process environment."""

    def __init__(self, env_path: Path | None = None, variable: str = API_KEY_ENV):
        self.env_path = env_path or get_project_root() / ".env"
        self.variable = variable

    def load_key(self) -> str:
        key = None
        if self.env_path.exists():
            key = get_key(self.env_path, self.variable)
        if not key:
            key = os.getenv(self.variable, "")
        if not key:
            raise KeyNotFoundError(f"{self.variable} is not set")
        return key

    def save_key(self, key: str) -> None:
        self.env_path.touch(exist_ok=True)
        set_key(self.env_path, self.variable, key, quote_mode="never")
        os.environ[self.variable] = key

    def delete_key(self) -> None:
        if self.env_path.exists():
            unset_key(self.env_path, self.variable)
        os.environ.pop(self.variable, None)


def load_api_key(store: KeyStore) -> str:
    """Load a usable key from the store or raise ApiKeyMissingError."""
    try:
        key = store.load_key()
    except KeyNotFoundError as e:
        raise ApiKeyMissingError() from e
    if not key.strip():
        raise ApiKeyMissingError()
    return key
