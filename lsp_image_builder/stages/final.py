"""Final stage: runtime libraries, unprivileged identity, artifact, entrypoint."""

from __future__ import annotations

from lsp_image_builder.stages.base import exec_form, from_line, install_line, quote
from lsp_image_builder.types import ArtifactRef, FinalStageSpec


class FinalStage:
    def __init__(self, spec: FinalStageSpec, artifact: ArtifactRef, labels: dict | None = None):
        self.spec = spec
        self.name = spec.name
        self.artifact = artifact
        self.labels = labels or {}

    def identity_line(self) -> str:
        ident = self.spec.identity
        if self.spec.base.manager == "apk":
            return f"RUN adduser -D -s {ident.shell} {ident.name}"
        return f"RUN useradd --create-home --shell {ident.shell} {ident.name}"

    def instructions(self) -> list[str]:
        spec = self.spec
        lines = [from_line(spec.base, self.name), ""]
        install = install_line(spec.base, spec.runtime.packages)
        if install:
            lines += [install, ""]
        lines.append(self.identity_line())
        lines.append(f"USER {spec.identity.name}")
        lines.append("")
        for key, value in sorted(self.labels.items()):
            lines.append(f"LABEL {quote(key)}={quote(value)}")
        if self.labels:
            lines.append("")
        lines.append(
            f"COPY --from={self.artifact.stage} {self.artifact.path} {spec.entrypoint.path}"
        )
        lines.append("")
        lines.append(f"ENTRYPOINT {exec_form(spec.entrypoint.exec_form())}")
        return lines
