"""Turn user input (URLs or ``owner/repo``) into a :class:`RepoRef`."""

from __future__ import annotations

import re

from .config import PATH_SEGMENT_PATTERN
from .types import RepoRef, RepoValidation

_GITHUB_URL = re.compile(
    r"^(?:https?://)?(?:www\.)?github\.com/(?P<owner>[^/?#\s]+)/(?P<repo>[^/?#\s]+)(?:[/?#].*)?$",
    re.IGNORECASE,
)
_BARE_REF = re.compile(r"^(?P<owner>[^/\s:]+)/(?P<repo>[^/\s:]+)/?$")

INVALID_HINT = "Enter a GitHub URL like https://github.com/owner/repo"


def is_valid_segment(value: str) -> bool:
    return bool(value) and value not in (".", "..") and bool(PATH_SEGMENT_PATTERN.match(value))


def _build(owner: str, repo: str) -> RepoRef | None:
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not (is_valid_segment(owner) and is_valid_segment(repo)):
        return None
    return RepoRef(owner=owner, repo=repo)


def parse_repo_url(value: str) -> RepoRef | None:
    """Return the owner/repo a string points at, or None.

    Accepts ``https://github.com/owner/repo`` (with optional ``www.``, trailing
    slash, ``.git`` suffix, query string or extra path) and bare ``owner/repo``.
    Casing is kept as typed.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None

    match = _GITHUB_URL.match(text)
    if match:
        return _build(match.group("owner"), match.group("repo"))

    # Anything that looks like some other URL is not a bare reference.
    if "://" in text or text.lower().startswith(("github.com", "www.")):
        return None
    match = _BARE_REF.match(text)
    if match and "." not in match.group("owner"):
        return _build(match.group("owner"), match.group("repo"))
    return None


def validate_repo_url(value: str) -> RepoValidation:
    if not isinstance(value, str) or not value.strip():
        return RepoValidation(state="idle")
    ref = parse_repo_url(value)
    if ref is None:
        return RepoValidation(state="invalid", message=INVALID_HINT)
    return RepoValidation(
        state="valid",
        owner=ref.owner,
        repo=ref.repo,
        message=f"Valid repository: {ref.full_name}",
    )
