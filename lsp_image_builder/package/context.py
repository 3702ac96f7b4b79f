"""Build context staging.

Only the declared Source Input paths are copied into a throwaway directory
together with the rendered Dockerfile, so nothing else in the source tree can
leak into the build stage.
"""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from lsp_image_builder.logging import get_logger
from lsp_image_builder.package.dockerfile import render_dockerfile, stages_for
from lsp_image_builder.signing.checks import tree_sha256
from lsp_image_builder.types import PipelineSpec

log = get_logger(__name__)

_DOCKERIGNORE = "**/target\n**/.git\n"


@dataclass
class StagedContext:
    root: Path
    dockerfile: Path
    source_digest: str


@contextmanager
def stage_context(spec: PipelineSpec, source_root: Path) -> Iterator[StagedContext]:
    build, _ = stages_for(spec)
    source_root = source_root.resolve()
    found = build.check_sources(source_root)

    tmp = Path(tempfile.mkdtemp(prefix="lspib-context-"))
    try:
        for src in found:
            rel = src.relative_to(source_root)
            dest = tmp / rel
            dest.parent.mkdir(parents=True, exist_ok=True)
            if src.is_dir():
                shutil.copytree(
                    src, dest, ignore=shutil.ignore_patterns("target", ".git"), symlinks=False
                )
            else:
                shutil.copy2(src, dest)

        digest = tree_sha256(tmp)
        dockerfile = tmp / "Dockerfile"
        dockerfile.write_text(render_dockerfile(spec), encoding="utf-8")
        (tmp / ".dockerignore").write_text(_DOCKERIGNORE, encoding="utf-8")
        log.info("staged build context %s (sources sha256:%s)", tmp, digest)
        yield StagedContext(root=tmp, dockerfile=dockerfile, source_digest=digest)
    finally:
        shutil.rmtree(tmp, ignore_errors=True)
