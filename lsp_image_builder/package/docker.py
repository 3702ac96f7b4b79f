"""Container engine driver: a thin wrapper over the `docker` CLI.

Every call is a blocking subprocess. Build output is captured so failures can
be classified, and streamed to the logger at DEBUG.
"""

from __future__ import annotations

import json
import os
import shutil
import subprocess
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from lsp_image_builder.errors import EngineNotFound
from lsp_image_builder.logging import get_logger

log = get_logger(__name__)


@dataclass
class BuildOutcome:
    returncode: int
    log: str
    image_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and bool(self.image_id)


class DockerCli:
    def __init__(self, binary: str | None = None) -> None:
        self.binary = binary or os.environ.get("DOCKER") or "docker"

    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    def _exe(self) -> str:
        path = shutil.which(self.binary)
        if path is None:
            raise EngineNotFound(f"container engine not found on PATH: {self.binary}")
        return path

    def build(
        self,
        context: Path,
        *,
        target: str,
        tag: str,
        dockerfile: str = "Dockerfile",
        no_cache: bool = False,
        build_args: dict[str, str] | None = None,
    ) -> BuildOutcome:
        with tempfile.TemporaryDirectory(prefix="lspib-iid-") as tmp:
            iidfile = Path(tmp) / "iid"
            cmd = [
                self._exe(),
                "build",
                "--progress=plain",
                "--target",
                target,
                "--tag",
                tag,
                "--iidfile",
                str(iidfile),
                "--file",
                str(context / dockerfile),
            ]
            if no_cache:
                cmd.append("--no-cache")
            for key, value in sorted((build_args or {}).items()):
                cmd += ["--build-arg", f"{key}={value}"]
            cmd.append(str(context))

            log.info("docker build --target %s --tag %s", target, tag)
            env = dict(os.environ, DOCKER_BUILDKIT="1")
            proc = subprocess.run(
                cmd, env=env, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True
            )
            for line in proc.stdout.splitlines():
                log.debug("%s", line, extra={"stage": target})
            image_id = None
            if proc.returncode == 0 and iidfile.exists():
                image_id = iidfile.read_text(encoding="utf-8").strip() or None
            return BuildOutcome(returncode=proc.returncode, log=proc.stdout, image_id=image_id)

    def run(
        self,
        image: str,
        args: Sequence[str] = (),
        *,
        entrypoint: str | None = None,
        publish: Sequence[str] = (),
        env: Sequence[str] = (),
        capture: bool = True,
    ) -> subprocess.CompletedProcess:
        cmd = [self._exe(), "run", "--rm"]
        if not capture:
            cmd.append("-i")
        if entrypoint is not None:
            cmd += ["--entrypoint", entrypoint]
        for p in publish:
            cmd += ["--publish", p]
        for kv in env:
            cmd += ["--env", kv]
        cmd.append(image)
        cmd += list(args)
        log.debug("docker %s", " ".join(cmd[1:]))
        if capture:
            return subprocess.run(cmd, capture_output=True, text=True)
        return subprocess.run(cmd)

    def inspect(self, image: str) -> dict:
        proc = subprocess.run(
            [self._exe(), "image", "inspect", image], capture_output=True, text=True
        )
        if proc.returncode != 0:
            raise LookupError(f"image not found: {image}: {proc.stderr.strip()}")
        data = json.loads(proc.stdout)
        return data[0] if data else {}

    def remove(self, ref: str) -> None:
        proc = subprocess.run([self._exe(), "image", "rm", ref], capture_output=True, text=True)
        if proc.returncode != 0:
            log.warning("could not remove %s: %s", ref, proc.stderr.strip())
