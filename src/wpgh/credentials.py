from __future__ import annotations

import os
from dataclasses import dataclass

TOKEN_ENVIRONMENT_VARIABLES = ("WPGH_GITHUB_TOKEN", "GITHUB_TOKEN")


@dataclass(frozen=True)
class StaticCredentialProvider:
    """Hands out a fixed token (or none)."""

    token: str | None = None

    def get_token(self) -> str | None:
        return self.token or None


class EnvironmentCredentialProvider:
    """Read the hosting API token from the environment on every call."""

    def __init__(self, variables: tuple[str, ...] = TOKEN_ENVIRONMENT_VARIABLES):
        self.variables = variables

    def get_token(self) -> str | None:
        for name in self.variables:
            value = os.environ.get(name, "").strip()
            if value:
                return value
        return None
