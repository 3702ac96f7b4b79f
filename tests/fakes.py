from __future__ import annotations

import subprocess
from pathlib import Path

from lsp_image_builder.package.docker import BuildOutcome

FIXTURE_SRC = Path(__file__).resolve().parents[1] / "fixtures" / "hello-lsp"


class FakeDocker:
    """Records engine calls; outcomes are scripted per build target / entrypoint.

    A run key may also be `(entrypoint, text)`; it wins over the plain
    entrypoint key when *text* appears in the joined arguments.
    """

    def __init__(
        self,
        builds: dict[str, BuildOutcome] | None = None,
        runs: dict[str | tuple[str, str] | None, tuple[int, str, str]] | None = None,
        config: dict | None = None,
    ) -> None:
        self.builds = builds or {}
        self.runs = runs or {}
        self.config = config or {}
        self.calls: list[tuple] = []
        self.contexts: list[list[str]] = []
        self.dockerfiles: list[str] = []
        self.removed: list[str] = []
        self.no_cache: list[bool] = []

    def available(self) -> bool:
        return True

    def build(
        self, context, *, target, tag, dockerfile="Dockerfile", no_cache=False, build_args=None
    ):
        self.calls.append(("build", target, tag))
        self.no_cache.append(no_cache)
        self.contexts.append(
            sorted(p.relative_to(context).as_posix() for p in context.rglob("*") if p.is_file())
        )
        self.dockerfiles.append((context / dockerfile).read_text(encoding="utf-8"))
        return self.builds.get(
            target, BuildOutcome(returncode=0, log="done", image_id=f"sha256:{target}")
        )

    def run(self, image, args=(), *, entrypoint=None, publish=(), env=(), capture=True):
        self.calls.append(("run", image, entrypoint, list(args)))
        joined = " ".join(args)
        for key, outcome in self.runs.items():
            if isinstance(key, tuple) and key[0] == entrypoint and key[1] in joined:
                rc, out, err = outcome
                break
        else:
            rc, out, err = self.runs.get(entrypoint, (0, "", ""))
        return subprocess.CompletedProcess(args=[], returncode=rc, stdout=out, stderr=err)

    def inspect(self, image):
        self.calls.append(("inspect", image))
        return {"Config": self.config}

    def remove(self, ref):
        self.removed.append(ref)

    def builds_done(self) -> list[str]:
        return [c[1] for c in self.calls if c[0] == "build"]
