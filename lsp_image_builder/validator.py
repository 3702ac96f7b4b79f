"""Schema validation for pipeline descriptions."""

from __future__ import annotations

import json
from importlib import resources

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from lsp_image_builder.errors import ConfigError


def _load_schema(package: str, resource_name: str) -> dict:
    with resources.files(package).joinpath(resource_name).open("r", encoding="utf-8") as f:
        return json.load(f)


def _pipeline_schema() -> dict:
    return _load_schema("lsp_image_builder.schema", "pipeline.schema.json")


def validate_pipeline(data: dict) -> None:
    """Raise ConfigError describing the first schema violation in *data*."""
    try:
        Draft202012Validator(_pipeline_schema()).validate(data)
    except ValidationError as exc:
        where = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        raise ConfigError(f"pipeline config invalid at {where}: {exc.message}") from exc
