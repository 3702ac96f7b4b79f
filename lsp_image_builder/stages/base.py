"""Stage contract and the Dockerfile instruction helpers both stages share."""

from __future__ import annotations

import json
from typing import Protocol

from lsp_image_builder.types import BaseEnvironment


class Stage(Protocol):
    name: str

    def instructions(self) -> list[str]: ...


def from_line(base: BaseEnvironment, alias: str) -> str:
    return f"FROM {base.reference} AS {alias}"


def install_line(base: BaseEnvironment, packages: list[str]) -> str | None:
    """Return the RUN line installing *packages* with the base's package manager."""
    if not packages:
        return None
    names = " ".join(packages)
    if base.manager == "apk":
        return f"RUN apk add --no-cache {names}"
    return (
        "RUN apt-get update"
        f" && apt-get install -y --no-install-recommends {names}"
        " && rm -rf /var/lib/apt/lists/*"
    )


def quote(value: str) -> str:
    """Double-quote *value* for ENV/LABEL lines; Docker expands $VAR inside quotes."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("$", "\\$")
    return f'"{escaped}"'


def env_line(key: str, value: str) -> str:
    if value and all(c.isascii() and (c.isalnum() or c in "._-/:+=,") for c in value):
        return f"ENV {key}={value}"
    return f"ENV {key}={quote(value)}"


def exec_form(argv: list[str]) -> str:
    return json.dumps(argv, ensure_ascii=False)
