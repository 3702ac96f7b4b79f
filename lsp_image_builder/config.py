"""Pipeline configuration: `pipeline.json` -> PipelineSpec.

Every key is optional; anything left out falls back to the defaults baked
into the models, which describe the stock LSP server image.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError

from lsp_image_builder.errors import ConfigError
from lsp_image_builder.types import PipelineSpec
from lsp_image_builder.validator import validate_pipeline

CONFIG_NAME = "pipeline.json"


def default_pipeline() -> PipelineSpec:
    return PipelineSpec()


def parse_pipeline(data: dict) -> PipelineSpec:
    validate_pipeline(data)
    data = {k: v for k, v in data.items() if k != "$schema"}
    try:
        return PipelineSpec.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"pipeline config invalid: {exc}") from exc


def load_pipeline(path: Path | None = None) -> PipelineSpec:
    """Load *path*, or `./pipeline.json` if present, or the defaults."""
    if path is None:
        candidate = Path.cwd() / CONFIG_NAME
        if not candidate.exists():
            return default_pipeline()
        path = candidate
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"config file is not valid JSON: {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config file must hold a JSON object: {path}")
    return parse_pipeline(data)


def write_scaffold(path: Path, force: bool = False) -> Path:
    """Write the default pipeline description to *path* (a file or a directory)."""
    if path.is_dir() or path.suffix != ".json":
        path.mkdir(parents=True, exist_ok=True)
        path = path / CONFIG_NAME
    if path.exists() and not force:
        raise FileExistsError(f"refusing to overwrite {path}")
    data = default_pipeline().model_dump(mode="json")
    validate_pipeline(data)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return path
