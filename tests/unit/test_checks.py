from __future__ import annotations

from lsp_image_builder.conformance.checks import verify_image
from lsp_image_builder.conformance.runner import smoke_run
from lsp_image_builder.types import PipelineSpec
from tests.fakes import FakeDocker

GOOD_CONFIG = {"Entrypoint": ["/usr/local/bin/refact-lsp"], "Cmd": None, "User": "lspuser"}


def _results(report) -> dict[str, bool]:
    return {c.name: c.passed for c in report.checks}


def test_hardened_image_passes_all_checks() -> None:
    docker = FakeDocker(
        config=GOOD_CONFIG,
        runs={
            "id": (0, "1000\n", ""),
            "ldd": (0, "libstdc++.so.6 => /usr/lib/libstdc++.so.6\n", ""),
        },
    )
    report = verify_image(PipelineSpec(), "refact-lsp:local", docker)
    assert report.ok
    assert set(_results(report)) == {
        "entrypoint",
        "user",
        "uid",
        "artifact",
        "no-toolchain",
        "system-paths",
        "libraries",
    }


def test_root_image_with_toolchain_fails() -> None:
    docker = FakeDocker(
        config={"Entrypoint": ["/bin/sh", "-c"], "Cmd": ["refact-lsp"], "User": ""},
        runs={"id": (0, "0\n", ""), "/bin/sh": (0, "cargo\ngcc\n", "")},
    )
    report = verify_image(PipelineSpec(), "bad:1", docker)
    results = _results(report)
    assert not report.ok
    assert results["entrypoint"] is False
    assert results["user"] is False
    assert results["uid"] is False
    assert results["no-toolchain"] is False


def test_missing_library_is_reported() -> None:
    docker = FakeDocker(
        config=GOOD_CONFIG,
        runs={"id": (0, "1000", ""), "ldd": (1, "libstdc++.so.6 => not found\n", "")},
    )
    report = verify_image(PipelineSpec(), "refact-lsp:local", docker)
    libs = next(c for c in report.checks if c.name == "libraries")
    assert not libs.passed and "not found" in libs.detail
    assert not report.ok


def test_absent_ldd_is_skipped_not_failed() -> None:
    docker = FakeDocker(config=GOOD_CONFIG, runs={"id": (0, "1000", ""), "ldd": (127, "", "")})
    report = verify_image(PipelineSpec(), "refact-lsp:local", docker)
    libs = next(c for c in report.checks if c.name == "libraries")
    assert libs.skipped
    assert report.ok


def test_smoke_run_returns_wrapped_exit_code() -> None:
    docker = FakeDocker(runs={None: (3, "", "")})
    code = smoke_run(
        "refact-lsp:local", ["--http-port", "8001"], publish=["8001:8001"], docker=docker
    )
    assert code == 3
    assert docker.calls == [("run", "refact-lsp:local", None, ["--http-port", "8001"])]


def test_writable_system_path_fails_only_that_check() -> None:
    docker = FakeDocker(
        config=GOOD_CONFIG,
        runs={
            "id": (0, "1000\n", ""),
            "ldd": (0, "libstdc++.so.6 => /usr/lib/libstdc++.so.6\n", ""),
            ("/bin/sh", "touch"): (0, "/etc\n", ""),
        },
    )
    report = verify_image(PipelineSpec(), "refact-lsp:local", docker)
    results = _results(report)
    assert results["system-paths"] is False
    assert results["no-toolchain"] is True
    paths = next(c for c in report.checks if c.name == "system-paths")
    assert paths.detail == "writable: /etc"
    assert not report.ok
