"""Smoke-run a built image.

Arguments, published ports and environment are the wrapped server's own
concern; they are passed through untouched and its exit code is returned as
is.
"""

from __future__ import annotations

from collections.abc import Sequence

from lsp_image_builder.logging import get_logger
from lsp_image_builder.package.docker import DockerCli

log = get_logger(__name__)


def _check_env(extra_env: Sequence[str]) -> list[str]:
    env: list[str] = []
    for kv in extra_env:
        if "=" not in kv:
            raise ValueError(f"expected KEY=VAL, got {kv!r}")
        env.append(kv)
    return env


def smoke_run(
    image: str,
    args: Sequence[str] = (),
    *,
    publish: Sequence[str] = (),
    extra_env: Sequence[str] = (),
    docker: DockerCli | None = None,
) -> int:
    docker = docker or DockerCli()
    env = _check_env(extra_env)
    log.info("running %s %s", image, " ".join(args))
    proc = docker.run(image, list(args), publish=publish, env=env, capture=False)
    log.info("%s exited with %d", image, proc.returncode)
    return proc.returncode
