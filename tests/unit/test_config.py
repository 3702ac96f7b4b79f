from __future__ import annotations

import json
from pathlib import Path

import pytest

from lsp_image_builder.config import load_pipeline, parse_pipeline, write_scaffold
from lsp_image_builder.errors import ConfigError
from lsp_image_builder.types import PipelineSpec


def test_scaffold_writes_loadable_defaults(tmp_path: Path) -> None:
    path = write_scaffold(tmp_path)
    assert path == tmp_path / "pipeline.json"
    assert load_pipeline(path) == PipelineSpec()

    with pytest.raises(FileExistsError):
        write_scaffold(tmp_path)
    write_scaffold(tmp_path, force=True)


def test_partial_config_keeps_defaults() -> None:
    spec = parse_pipeline(
        {
            "image": "ghcr.io/acme/refact-lsp:1.2.3",
            "build": {"env": {"net_retry": 3}},
            "final": {"identity": {"name": "svc"}},
        }
    )
    assert spec.image == "ghcr.io/acme/refact-lsp:1.2.3"
    assert spec.build.env.to_env()["CARGO_NET_RETRY"] == "3"
    assert spec.build.env.incremental is False
    assert spec.final.identity.name == "svc"
    assert spec.final.base.reference == "alpine:3.19.1"


@pytest.mark.parametrize(
    "data",
    [
        {"final": {"base": {"image": "alpine", "tag": "latest"}}},
        {"final": {"identity": {"name": "root"}}},
        {"build": {"env": {"net_retry": -2}}},
        {"unknown": True},
        {"build": {"sources": {"paths": ["../etc"]}}},
        {"final": {"identity": {"shell": "/sbin/nologin -G wheel"}}},
        {"final": {"identity": {"shell": "/bin/bash"}}},
        {"final": {"entrypoint": {"path": "/usr/local/bin/lsp --debug"}}},
    ],
)
def test_invalid_configs_raise_config_error(data: dict) -> None:
    with pytest.raises(ConfigError):
        parse_pipeline(data)


def test_load_without_file_uses_defaults(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    assert load_pipeline() == PipelineSpec()


def test_load_reports_bad_files(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_pipeline(tmp_path / "missing.json")
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_pipeline(bad)
    arr = tmp_path / "arr.json"
    arr.write_text(json.dumps([1, 2]), encoding="utf-8")
    with pytest.raises(ConfigError):
        load_pipeline(arr)
