"""Integrity helpers: SHA-256 of files and of whole source trees."""

from __future__ import annotations

import hashlib
from pathlib import Path


def sha256(path: Path) -> str:
    """Return the hex SHA-256 of *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def tree_sha256(root: Path) -> str:
    """Digest of every regular file under *root*.

    Relative names and contents both feed the hash, in sorted order, so the
    same bytes at the same places always give the same digest regardless of
    timestamps or filesystem walk order.
    """
    root = root.resolve()
    files = [p for p in root.rglob("*") if p.is_file() and not p.is_symlink()]

    h = hashlib.sha256()
    for fp in sorted(files, key=lambda p: p.relative_to(root).as_posix()):
        rel = fp.relative_to(root).as_posix()
        h.update(rel.encode("utf-8") + b"\0")
        h.update(sha256(fp).encode("ascii") + b"\n")
    return h.hexdigest()


def same_digest(got: str, recorded: str) -> bool:
    """Compare hex digests, tolerating a `sha256:` prefix and case on either side."""

    def bare(d: str) -> str:
        return d.strip().removeprefix("sha256:").lower()

    return bool(bare(recorded)) and bare(got) == bare(recorded)
