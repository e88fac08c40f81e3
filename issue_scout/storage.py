"""Persistent sign-in state: the access token and the signed-in user's profile."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from .config import CONFIG_DIR, TOKEN_FILENAME, USER_FILENAME
from .models import GitHubUser

logger = logging.getLogger(__name__)


class CredentialStore:
    """Load / save / clear the token file and the user JSON file."""

    def __init__(self, base_dir: Path | str | None = None):
        self.base_dir = Path(base_dir) if base_dir else CONFIG_DIR
        self.token_path = self.base_dir / TOKEN_FILENAME
        self.user_path = self.base_dir / USER_FILENAME

    # ── Token ───────────────────────────────────────────────────

    def load_token(self) -> str | None:
        try:
            token = self.token_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Ignoring unreadable token file at %s: %s", self.token_path, e)
            return None
        return token or None

    def save_token(self, token: str) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.token_path.write_text(token.strip() + "\n", encoding="utf-8")
        self.token_path.chmod(0o600)

    # ── User profile ────────────────────────────────────────────

    def load_user(self) -> GitHubUser | None:
        try:
            data = json.loads(self.user_path.read_text(encoding="utf-8"))
            return GitHubUser.from_dict(data)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable user profile at %s: %s", self.user_path, e)
            return None

    def save_user(self, user: GitHubUser) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        with open(self.user_path, "w", encoding="utf-8") as f:
            json.dump(user.to_dict(), f, indent=2)

    # ── Sign-out ────────────────────────────────────────────────

    def clear(self) -> None:
        self.token_path.unlink(missing_ok=True)
        self.user_path.unlink(missing_ok=True)
