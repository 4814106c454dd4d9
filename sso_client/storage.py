"""
Local Storage
File-backed key/value store for the backend token, the user marker and the platform session
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)

BACKEND_TOKEN_KEY = "backend_token"
BACKEND_USER_KEY = "backend_user"


class TokenStore:
    """
    JSON file store

    Every write rewrites the whole file through a temporary file and an
    atomic rename. Values are overwritten, never merged.
    """

    def __init__(self, path: str):
        self.path = Path(path).expanduser()

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Local storage unreadable, starting empty", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get(self, key: str) -> Optional[Any]:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    # Backend token helpers
    def get_backend_token(self) -> Optional[str]:
        return self.get(BACKEND_TOKEN_KEY)

    def set_backend_token(self, token: str) -> None:
        self.set(BACKEND_TOKEN_KEY, token)

    def clear_backend_credentials(self) -> None:
        data = self._read()
        data.pop(BACKEND_TOKEN_KEY, None)
        data.pop(BACKEND_USER_KEY, None)
        self._write(data)


class PlatformSessionStorage:
    """Async storage adapter letting the identity platform client persist its session in a TokenStore"""

    PREFIX = "platform:"

    def __init__(self, store: TokenStore):
        self.store = store

    async def get_item(self, key: str) -> Optional[str]:
        return self.store.get(self.PREFIX + key)

    async def set_item(self, key: str, value: str) -> None:
        self.store.set(self.PREFIX + key, value)

    async def remove_item(self, key: str) -> None:
        self.store.remove(self.PREFIX + key)
