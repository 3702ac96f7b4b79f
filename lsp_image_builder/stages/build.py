"""Build stage: toolchain + sources + `cargo install` -> one artifact."""

from __future__ import annotations

import shlex
from pathlib import Path

from lsp_image_builder.errors import SourceInputError
from lsp_image_builder.stages.base import env_line, exec_form, from_line, install_line
from lsp_image_builder.types import ArtifactRef, BuildStageSpec


class BuildStage:
    def __init__(self, spec: BuildStageSpec) -> None:
        self.spec = spec
        self.name = spec.name

    def artifact(self) -> ArtifactRef:
        """The path this stage guarantees an executable at, once it succeeds."""
        return ArtifactRef(stage=self.name, path=self.spec.artifact_path)

    def check_sources(self, root: Path) -> list[Path]:
        """Return the resolved Source Input paths, or raise if any is missing."""
        root = root.resolve()
        found: list[Path] = []
        missing: list[str] = []
        for rel in self.spec.sources.paths:
            p = root / rel
            if p.exists():
                found.append(p)
            else:
                missing.append(rel)
        if missing:
            raise SourceInputError(
                f"source input missing under {root}: {', '.join(missing)}"
            )
        return found

    def instructions(self) -> list[str]:
        spec = self.spec
        lines = [from_line(spec.base, self.name), ""]
        install = install_line(spec.base, spec.toolchain.packages)
        if install:
            lines += [install, ""]
        lines.append(f"WORKDIR {spec.sources.workdir}")
        lines.append("")
        for rel in spec.sources.paths:
            rel = rel.rstrip("/")
            lines.append(f"COPY {exec_form([rel, rel])}")
        lines.append("")
        for key, value in spec.env.to_env().items():
            lines.append(env_line(key, value))
        lines.append(f"RUN {shlex.join(spec.command)}")
        return lines
