"""Configuration constants for Issue Scout."""

import os
import re
from pathlib import Path

# ── Endpoints ────────────────────────────────────────────────
API_BASE_URL = "https://api.github.com"
GRAPHQL_URL = f"{API_BASE_URL}/graphql"
DEVICE_CODE_URL = "https://github.com/login/device/code"
ACCESS_TOKEN_URL = "https://github.com/login/oauth/access_token"
DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"

USER_AGENT = "issue-scout"
API_VERSION = "2022-11-28"
REQUEST_TIMEOUT = 30  # seconds per HTTP call

# ── Issue discovery ──────────────────────────────────────────
DEFAULT_PAGE_SIZE = 100
MAX_ISSUES = 500  # Upper bound on candidates collected per search

# ── Device flow ──────────────────────────────────────────────
OAUTH_SCOPE = "public_repo read:user user:email"
DEFAULT_POLL_INTERVAL = 5  # seconds
SLOW_DOWN_INCREMENT = 5  # seconds added on "slow_down"
DEFAULT_DEVICE_CODE_TTL = 900  # GitHub device codes live 15 minutes

# ── Local storage ────────────────────────────────────────────
CONFIG_DIR = Path(os.environ.get("ISSUE_SCOUT_HOME") or Path.home() / ".issue_scout")
TOKEN_FILENAME = "token"
USER_FILENAME = "user.json"

# GitHub owner/repo path segment
PATH_SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


def get_client_id() -> str:
    """OAuth app client id used for the device flow, empty if unset."""
    return (
        os.environ.get("ISSUE_SCOUT_CLIENT_ID")
        or os.environ.get("GITHUB_CLIENT_ID")
        or ""
    ).strip()


def get_env_token() -> str | None:
    return os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN") or None
