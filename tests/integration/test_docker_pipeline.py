from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from lsp_image_builder.conformance.checks import verify_image
from lsp_image_builder.conformance.runner import smoke_run
from lsp_image_builder.core import LOCK_FILE, build_image
from lsp_image_builder.errors import CompileError
from lsp_image_builder.package.docker import DockerCli
from lsp_image_builder.types import PipelineSpec

docker = DockerCli()

pytestmark = [
    pytest.mark.docker,
    pytest.mark.skipif(not docker.available(), reason="docker not available"),
]


@pytest.mark.timeout(1800)
def test_fixture_builds_into_hardened_image(source_tree: Path, tmp_path: Path) -> None:
    spec = PipelineSpec(image="lspib-test/hello-lsp:ok")
    result = build_image(spec, source_tree, docker=docker, outdir=tmp_path)
    try:
        assert (tmp_path / LOCK_FILE).exists()

        report = verify_image(spec, result.image, docker)
        failed = [c for c in report.checks if not (c.passed or c.skipped)]
        assert report.ok, failed

        # exit status belongs to the wrapped executable
        assert smoke_run(result.image, ["--exit-code", "7"], docker=docker) == 7
        assert smoke_run(result.image, docker=docker) == 0
    finally:
        docker.remove(result.image)


@pytest.mark.timeout(1800)
def test_broken_source_produces_no_image(source_tree: Path, tmp_path: Path) -> None:
    broken = tmp_path / "src-tree"
    shutil.copytree(source_tree, broken)
    main = broken / "src" / "main.rs"
    main.write_text(main.read_text(encoding="utf-8") + "\nfn oops( {\n", encoding="utf-8")

    spec = PipelineSpec(image="lspib-test/hello-lsp:broken")
    with pytest.raises(CompileError):
        build_image(spec, broken, docker=docker, outdir=tmp_path / "dist")

    assert not (tmp_path / "dist" / LOCK_FILE).exists()
    with pytest.raises(LookupError):
        docker.inspect(spec.image)
