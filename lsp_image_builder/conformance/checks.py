"""Image checks: entrypoint, identity, and absence of build tooling.

Each check runs a throwaway container from the finished image (overriding the
entrypoint where needed) and never needs root inside it.
"""

from __future__ import annotations

from collections.abc import Callable

from lsp_image_builder.package.docker import DockerCli
from lsp_image_builder.types import CheckResult, PipelineSpec, VerifyReport

TOOLCHAIN = ("cargo", "rustc", "cc", "gcc", "clang", "ld.lld")
SYSTEM_PATHS = ("/usr/local/bin", "/etc")
_NOT_EXECUTABLE = {126, 127}


def _config(docker: DockerCli, image: str) -> dict:
    return docker.inspect(image).get("Config") or {}


def check_entrypoint(spec: PipelineSpec, image: str, docker: DockerCli) -> CheckResult:
    cfg = _config(docker, image)
    want = spec.final.entrypoint.exec_form()
    got = cfg.get("Entrypoint")
    cmd = cfg.get("Cmd")
    passed = got == want and not cmd
    return CheckResult(name="entrypoint", passed=passed, detail=f"entrypoint={got} cmd={cmd}")


def check_user(spec: PipelineSpec, image: str, docker: DockerCli) -> CheckResult:
    user = _config(docker, image).get("User") or ""
    want = spec.final.identity.name
    return CheckResult(name="user", passed=user == want, detail=f"configured user={user!r}")


def check_uid(spec: PipelineSpec, image: str, docker: DockerCli) -> CheckResult:
    proc = docker.run(image, ["-u"], entrypoint="id")
    uid = (proc.stdout or "").strip()
    passed = proc.returncode == 0 and uid.isdigit() and uid != "0"
    return CheckResult(name="uid", passed=passed, detail=f"uid={uid or proc.stderr.strip()}")


def check_artifact(spec: PipelineSpec, image: str, docker: DockerCli) -> CheckResult:
    path = spec.final.entrypoint.path
    proc = docker.run(image, ["-x", path], entrypoint="test")
    return CheckResult(name="artifact", passed=proc.returncode == 0, detail=path)


def check_no_toolchain(spec: PipelineSpec, image: str, docker: DockerCli) -> CheckResult:
    script = (
        f"for t in {' '.join(TOOLCHAIN)}; do "
        'if command -v "$t" >/dev/null 2>&1; then echo "$t"; fi; done'
    )
    proc = docker.run(image, ["-c", script], entrypoint="/bin/sh")
    found = (proc.stdout or "").split()
    passed = proc.returncode == 0 and not found
    detail = f"found: {', '.join(found)}" if found else "none found"
    return CheckResult(name="no-toolchain", passed=passed, detail=detail)


def check_system_paths(spec: PipelineSpec, image: str, docker: DockerCli) -> CheckResult:
    script = (
        f"for d in {' '.join(SYSTEM_PATHS)}; do "
        'if touch "$d/.lspib-write-test" 2>/dev/null; then echo "$d"; fi; done'
    )
    proc = docker.run(image, ["-c", script], entrypoint="/bin/sh")
    writable = (proc.stdout or "").split()
    passed = proc.returncode == 0 and not writable
    detail = f"writable: {', '.join(writable)}" if writable else "read-only for runtime user"
    return CheckResult(name="system-paths", passed=passed, detail=detail)


def check_libraries(spec: PipelineSpec, image: str, docker: DockerCli) -> CheckResult:
    proc = docker.run(image, [spec.final.entrypoint.path], entrypoint="ldd")
    if proc.returncode in _NOT_EXECUTABLE:
        return CheckResult(name="libraries", passed=False, skipped=True, detail="ldd unavailable")
    out = (proc.stdout or "") + (proc.stderr or "")
    missing = [line.strip() for line in out.splitlines() if "not found" in line or "Error" in line]
    passed = proc.returncode == 0 and not missing
    return CheckResult(
        name="libraries", passed=passed, detail="; ".join(missing) or "all resolved"
    )


CHECKS: tuple[Callable[[PipelineSpec, str, DockerCli], CheckResult], ...] = (
    check_entrypoint,
    check_user,
    check_uid,
    check_artifact,
    check_no_toolchain,
    check_system_paths,
    check_libraries,
)


def verify_image(spec: PipelineSpec, image: str, docker: DockerCli | None = None) -> VerifyReport:
    docker = docker or DockerCli()
    report = VerifyReport(image=image)
    for check in CHECKS:
        report.checks.append(check(spec, image, docker))
    return report
