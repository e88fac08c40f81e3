from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RepoRef:
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class RepoValidation:
    state: str  # idle | valid | invalid
    owner: str | None = None
    repo: str | None = None
    message: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.state == "valid"
