"""Shared Pydantic models describing the two-stage image pipeline."""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

_PACKAGE_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9.+_:=~-]*$")
_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_USER_RE = re.compile(r"^[a-z_][a-z0-9_-]{0,31}$")
_PATH_RE = re.compile(r"^/[A-Za-z0-9._/-]+$")
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_ALPINE_TAG_RE = re.compile(r"(^|-)alpine")

# shells that give an interactive login; the runtime user must not get one
INTERACTIVE_SHELLS = frozenset(
    {"sh", "ash", "bash", "dash", "zsh", "ksh", "mksh", "fish", "csh", "tcsh"}
)


class BaseEnvironment(BaseModel):
    """A pinned base image a stage starts from."""

    image: str
    tag: str
    digest: str | None = None
    package_manager: Literal["apk", "apt"] | None = None

    @field_validator("tag")
    @classmethod
    def _pinned(cls, v: str) -> str:
        v = v.strip()
        if not v or v == "latest":
            raise ValueError("base environment must be pinned to an exact version, not 'latest'")
        return v

    @field_validator("digest")
    @classmethod
    def _digest_form(cls, v: str | None) -> str | None:
        if v is not None and not re.fullmatch(r"sha256:[0-9a-f]{64}", v):
            raise ValueError("digest must look like sha256:<64 hex>")
        return v

    @property
    def reference(self) -> str:
        ref = f"{self.image}:{self.tag}"
        return f"{ref}@{self.digest}" if self.digest else ref

    @property
    def manager(self) -> str:
        if self.package_manager:
            return self.package_manager
        repo = self.image.rsplit("/", 1)[-1]
        if repo == "alpine" or _ALPINE_TAG_RE.search(self.tag):
            return "apk"
        return "apt"


class PackageSet(BaseModel):
    packages: list[str] = Field(default_factory=list)

    @field_validator("packages")
    @classmethod
    def _names(cls, v: list[str]) -> list[str]:
        for name in v:
            if not _PACKAGE_RE.match(name):
                raise ValueError(f"invalid package name: {name!r}")
        return v


class ToolchainDependencySet(PackageSet):
    packages: list[str] = Field(
        default_factory=lambda: [
            "git",
            "clang",
            "lld",
            "musl-dev",
            "nodejs",
            "npm",
            "openssl-dev",
            "pkgconfig",
            "g++",
            "protobuf-dev",
        ]
    )


class RuntimeDependencySet(PackageSet):
    packages: list[str] = Field(default_factory=lambda: ["libstdc++"])


class SourceInput(BaseModel):
    paths: list[str] = Field(default_factory=lambda: ["src", "build.rs", "Cargo.toml"])
    workdir: str = "/usr/src/refact-lsp"

    @field_validator("paths")
    @classmethod
    def _relative(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("source input needs at least one path")
        for p in v:
            pp = PurePosixPath(p)
            if pp.is_absolute() or ".." in pp.parts or str(pp) in {"", "."}:
                raise ValueError(f"source path must be relative to the source root: {p!r}")
        return v

    @field_validator("workdir")
    @classmethod
    def _absolute_workdir(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("workdir must be absolute")
        return v


class BuildEnvironment(BaseModel):
    """Compiler/linker knobs for the build stage only."""

    incremental: bool = False
    net_retry: int = Field(default=10, ge=0)
    linker: str | None = "lld"
    crt_static: bool = False
    extra: dict[str, str] = Field(default_factory=dict)

    @field_validator("extra")
    @classmethod
    def _keys(cls, v: dict[str, str]) -> dict[str, str]:
        for key in v:
            if not _ENV_KEY_RE.match(key):
                raise ValueError(f"invalid environment variable name: {key!r}")
            if "\n" in v[key] or "\r" in v[key]:
                raise ValueError(f"environment value for {key} must be a single line")
        return v

    def rustflags(self) -> str:
        flags = []
        if self.linker:
            flags.append(f"-C link-arg=-fuse-ld={self.linker}")
        flags.append(f"-C target-feature={'+' if self.crt_static else '-'}crt-static")
        return " ".join(flags)

    def to_env(self) -> dict[str, str]:
        env = {
            "CARGO_INCREMENTAL": "1" if self.incremental else "0",
            "CARGO_NET_RETRY": str(self.net_retry),
            "RUSTFLAGS": self.rustflags(),
        }
        env.update(self.extra)
        return env


class ArtifactRef(BaseModel):
    """The only thing the final stage knows about the build stage."""

    stage: str
    path: str

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name


class RuntimeIdentity(BaseModel):
    name: str = "lspuser"
    shell: str = "/sbin/nologin"

    @field_validator("name")
    @classmethod
    def _unprivileged(cls, v: str) -> str:
        if v == "root" or not _USER_RE.match(v):
            raise ValueError(f"runtime identity must be an unprivileged user name, got {v!r}")
        return v

    @field_validator("shell")
    @classmethod
    def _no_login_shell(cls, v: str) -> str:
        if not _PATH_RE.match(v) or ".." in v.split("/"):
            raise ValueError(f"shell must be a plain absolute path, got {v!r}")
        if PurePosixPath(v).name in INTERACTIVE_SHELLS:
            raise ValueError(f"runtime identity must not get an interactive shell: {v}")
        return v


class Entrypoint(BaseModel):
    path: str = "/usr/local/bin/refact-lsp"

    @field_validator("path")
    @classmethod
    def _absolute(cls, v: str) -> str:
        if not _PATH_RE.match(v) or v.endswith("/"):
            raise ValueError(f"entrypoint must be a plain absolute file path, got {v!r}")
        return v

    def exec_form(self) -> list[str]:
        return [self.path]


class BuildStageSpec(BaseModel):
    name: str = "builder"
    base: BaseEnvironment = Field(
        default_factory=lambda: BaseEnvironment(image="rust", tag="1.76-alpine")
    )
    toolchain: ToolchainDependencySet = Field(default_factory=ToolchainDependencySet)
    sources: SourceInput = Field(default_factory=SourceInput)
    env: BuildEnvironment = Field(default_factory=BuildEnvironment)
    command: list[str] = Field(default_factory=lambda: ["cargo", "install", "--path", "."])
    install_root: str = "/usr/local/cargo"
    binary: str = "refact-lsp"

    @field_validator("binary")
    @classmethod
    def _binary_name(cls, v: str) -> str:
        if not _NAME_RE.match(v):
            raise ValueError(f"invalid binary name: {v!r}")
        return v

    @field_validator("install_root")
    @classmethod
    def _install_root(cls, v: str) -> str:
        if not _PATH_RE.match(v):
            raise ValueError(f"install_root must be a plain absolute path, got {v!r}")
        return v

    @property
    def artifact_path(self) -> str:
        return str(PurePosixPath(self.install_root) / "bin" / self.binary)


class FinalStageSpec(BaseModel):
    name: str = "final"
    base: BaseEnvironment = Field(
        default_factory=lambda: BaseEnvironment(image="alpine", tag="3.19.1")
    )
    runtime: RuntimeDependencySet = Field(default_factory=RuntimeDependencySet)
    identity: RuntimeIdentity = Field(default_factory=RuntimeIdentity)
    entrypoint: Entrypoint = Field(default_factory=Entrypoint)


class PipelineSpec(BaseModel):
    image: str = "refact-lsp:local"
    labels: dict[str, str] = Field(default_factory=dict)
    build: BuildStageSpec = Field(default_factory=BuildStageSpec)
    final: FinalStageSpec = Field(default_factory=FinalStageSpec)

    @model_validator(mode="after")
    def _distinct_stages(self) -> PipelineSpec:
        if self.build.name == self.final.name:
            raise ValueError("build and final stages need distinct names")
        return self


class CheckResult(BaseModel):
    name: str
    passed: bool
    skipped: bool = False
    detail: str = ""


class VerifyReport(BaseModel):
    image: str
    checks: list[CheckResult] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(c.passed or c.skipped for c in self.checks)
