import logging
import os
from pathlib import Path
from typing import Optional

from catalog_client.config import settings

logger = logging.getLogger(__name__)


class TokenStore:
    """Durable storage for the session token.

    The token survives process restarts so that a new CLI invocation can
    restore the session without logging in again.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = Path(path or settings.token_file).expanduser()

    def load(self) -> Optional[str]:
        if not self.path.exists():
            return None
        try:
            token = self.path.read_text(encoding="utf-8").strip()
        except OSError as e:
            logger.warning(f"Could not read token file {self.path}: {e}")
            return None
        return token or None

    def save(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(token, encoding="utf-8")
        try:
            os.chmod(self.path, 0o600)
        except OSError:
            logger.debug(f"Could not restrict permissions on {self.path}")

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


class MemoryTokenStore(TokenStore):
    """Token store that only lives as long as the process."""

    def __init__(self, token: Optional[str] = None) -> None:
        self._token = token

    def load(self) -> Optional[str]:
        return self._token

    def save(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None
