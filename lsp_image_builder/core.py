"""Pipeline orchestration: build stage -> artifact handoff -> final stage.

The two stages run as two blocking engine builds against the same staged
context. The final stage only starts once the build stage has finished and an
executable has been confirmed at the artifact path, and it copies that
artifact out of the tagged builder image instead of rebuilding the stage.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from lsp_image_builder.errors import (
    ArtifactMissingError,
    PipelineError,
    PipelineStateError,
    classify_failure,
)
from lsp_image_builder.logging import get_logger
from lsp_image_builder.package.context import stage_context
from lsp_image_builder.package.docker import DockerCli
from lsp_image_builder.package.dockerfile import (
    FINAL_DOCKERFILE,
    render_final_dockerfile,
    stages_for,
)
from lsp_image_builder.types import ArtifactRef, PipelineSpec

log = get_logger(__name__)

LOCK_FILE = "image.lock.json"


class PipelineState(str, Enum):
    START = "START"
    BUILD_IN_PROGRESS = "BUILD_IN_PROGRESS"
    BUILD_FAILED = "BUILD_FAILED"
    ARTIFACT_READY = "ARTIFACT_READY"
    FINAL_IN_PROGRESS = "FINAL_IN_PROGRESS"
    FINAL_FAILED = "FINAL_FAILED"
    IMAGE_READY = "IMAGE_READY"


_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.START: {PipelineState.BUILD_IN_PROGRESS},
    PipelineState.BUILD_IN_PROGRESS: {PipelineState.BUILD_FAILED, PipelineState.ARTIFACT_READY},
    PipelineState.ARTIFACT_READY: {PipelineState.FINAL_IN_PROGRESS},
    PipelineState.FINAL_IN_PROGRESS: {PipelineState.FINAL_FAILED, PipelineState.IMAGE_READY},
    PipelineState.BUILD_FAILED: set(),
    PipelineState.FINAL_FAILED: set(),
    PipelineState.IMAGE_READY: set(),
}


@dataclass
class PipelineResult:
    image: str
    image_id: str
    artifact: ArtifactRef
    source_digest: str
    history: list[PipelineState]
    builder_id: str = ""
    lock_path: Path | None = None


@dataclass
class Pipeline:
    spec: PipelineSpec
    source_root: Path
    docker: DockerCli = field(default_factory=DockerCli)
    outdir: Path | None = None
    no_cache: bool = False
    keep_builder: bool = False
    state: PipelineState = PipelineState.START
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.START])
    _builder_tagged: bool = field(default=False, init=False, repr=False)

    def _advance(self, new: PipelineState) -> None:
        if new not in _TRANSITIONS[self.state]:
            raise PipelineStateError(f"illegal transition {self.state.value} -> {new.value}")
        log.info("pipeline %s -> %s", self.state.value, new.value)
        self.state = new
        self.history.append(new)

    def builder_tag(self, source_digest: str) -> str:
        """Tag for the intermediate build stage image, unique per source tree."""
        tag = f"{_repository(self.spec.image)}:{self.spec.build.name}-{source_digest[:12]}"
        if tag == self.spec.image:
            tag += "-stage"
        return tag

    def _confirm_artifact(self, builder_ref: str, artifact: ArtifactRef) -> None:
        proc = self.docker.run(builder_ref, ["-x", artifact.path], entrypoint="test")
        if proc.returncode != 0:
            raise ArtifactMissingError(
                f"{artifact.stage}: no executable at {artifact.path}",
                stage=artifact.stage,
                log=(proc.stdout or "") + (proc.stderr or ""),
            )

    def _build_stage(self, ctx_root: Path, artifact: ArtifactRef, builder_ref: str) -> str:
        self._advance(PipelineState.BUILD_IN_PROGRESS)
        try:
            outcome = self.docker.build(
                ctx_root, target=artifact.stage, tag=builder_ref, no_cache=self.no_cache
            )
            if not outcome.ok:
                raise classify_failure(artifact.stage, outcome.log)
            self._builder_tagged = True
            self._confirm_artifact(builder_ref, artifact)
        except PipelineError:
            self._advance(PipelineState.BUILD_FAILED)
            raise
        self._advance(PipelineState.ARTIFACT_READY)
        return outcome.image_id or ""

    def _final_stage(self, ctx_root: Path, target: str, builder_ref: str) -> str:
        self._advance(PipelineState.FINAL_IN_PROGRESS)
        try:
            # the final build copies from the checked builder image; it never rebuilds it
            (ctx_root / FINAL_DOCKERFILE).write_text(
                render_final_dockerfile(self.spec, builder_ref), encoding="utf-8"
            )
            outcome = self.docker.build(
                ctx_root,
                target=target,
                tag=self.spec.image,
                dockerfile=FINAL_DOCKERFILE,
                no_cache=self.no_cache,
            )
            if not outcome.ok:
                raise classify_failure(target, outcome.log)
        except PipelineError:
            self._advance(PipelineState.FINAL_FAILED)
            raise
        self._advance(PipelineState.IMAGE_READY)
        return outcome.image_id or ""

    def run(self) -> PipelineResult:
        if self.state is not PipelineState.START:
            raise PipelineStateError("a pipeline runs exactly once")

        build, final = stages_for(self.spec)
        artifact = build.artifact()

        with stage_context(self.spec, self.source_root) as ctx:
            builder_ref = self.builder_tag(ctx.source_digest)
            try:
                builder_id = self._build_stage(ctx.root, artifact, builder_ref)
                image_id = self._final_stage(ctx.root, final.name, builder_ref)
            finally:
                if self._builder_tagged and not self.keep_builder:
                    self.docker.remove(builder_ref)

        result = PipelineResult(
            image=self.spec.image,
            image_id=image_id,
            artifact=artifact,
            source_digest=ctx.source_digest,
            history=list(self.history),
            builder_id=builder_id,
        )
        if self.outdir is not None:
            result.lock_path = write_lock(self.outdir, self.spec, result)
        return result


def _repository(image: str) -> str:
    """Strip tag and digest from an image reference."""
    image = image.split("@", 1)[0]
    head, _, last = image.rpartition("/")
    if ":" in last:
        last = last.split(":", 1)[0]
    return f"{head}/{last}" if head else last


def write_lock(outdir: Path, spec: PipelineSpec, result: PipelineResult) -> Path:
    """Record what went into the image so a rebuild can be compared against it."""
    outdir.mkdir(parents=True, exist_ok=True)
    lock = {
        "image": result.image,
        "image_id": result.image_id,
        "built_at": datetime.now(UTC).isoformat(),
        "source_sha256": result.source_digest,
        "bases": {
            spec.build.name: spec.build.base.reference,
            spec.final.name: spec.final.base.reference,
        },
        "build_env": spec.build.env.to_env(),
        "artifact": result.artifact.model_dump(),
        "builder_image_id": result.builder_id,
        "entrypoint": spec.final.entrypoint.exec_form(),
        "user": spec.final.identity.name,
        "states": [s.value for s in result.history],
    }
    path = outdir / LOCK_FILE
    path.write_text(json.dumps(lock, indent=2), encoding="utf-8")
    return path


def build_image(
    spec: PipelineSpec,
    source_root: Path,
    *,
    docker: DockerCli | None = None,
    outdir: Path | None = None,
    no_cache: bool = False,
    keep_builder: bool = False,
) -> PipelineResult:
    """Run the whole pipeline once; raises a `PipelineError` on any failure."""
    pipeline = Pipeline(
        spec=spec,
        source_root=source_root,
        docker=docker or DockerCli(),
        outdir=outdir,
        no_cache=no_cache,
        keep_builder=keep_builder,
    )
    try:
        return pipeline.run()
    except PipelineError:
        log.error("pipeline failed in state %s", pipeline.state.value)
        raise
