"""Render the two-stage Dockerfile for a pipeline spec."""

from __future__ import annotations

from lsp_image_builder.stages.base import Stage
from lsp_image_builder.stages.build import BuildStage
from lsp_image_builder.stages.final import FinalStage
from lsp_image_builder.types import PipelineSpec

FINAL_DOCKERFILE = "Dockerfile.final"

HEADER = """\
# Runs the LSP server as an independent network service in its own container.
# Stage 1 compiles the server with the full toolchain; stage 2 holds only the
# binary, its runtime libraries and an unprivileged user.
# Generated by lsp-image-builder; edit pipeline.json instead.
"""


def stages_for(spec: PipelineSpec) -> tuple[BuildStage, FinalStage]:
    build = BuildStage(spec.build)
    final = FinalStage(spec.final, build.artifact(), labels=spec.labels)
    return build, final


def render_dockerfile(spec: PipelineSpec) -> str:
    stages: tuple[Stage, ...] = stages_for(spec)
    parts = [HEADER]
    for i, stage in enumerate(stages, start=1):
        parts.append(f"# Stage {i}: {stage.name}")
        parts.extend(stage.instructions())
        parts.append("")
    return "\n".join(parts)


def render_final_dockerfile(spec: PipelineSpec, builder_ref: str) -> str:
    """Final stage only, reading the artifact from the already-built *builder_ref*.

    The build stage is not part of this file, so building it can never
    recompile the artifact, with or without the build cache.
    """
    _, final = stages_for(spec)
    parts = [
        HEADER,
        f"# Stage 1: {final.artifact.stage} (prebuilt)",
        f"FROM {builder_ref} AS {final.artifact.stage}",
        "",
        f"# Stage 2: {final.name}",
        *final.instructions(),
        "",
    ]
    return "\n".join(parts)
