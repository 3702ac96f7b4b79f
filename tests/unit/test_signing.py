from __future__ import annotations

from pathlib import Path

from lsp_image_builder.signing.checks import same_digest, sha256, tree_sha256


def test_sha256_of_file(tmp_path: Path) -> None:
    f = tmp_path / "refact-lsp"
    f.write_bytes(b"\x7fELF fake binary\n")

    digest = sha256(f)
    assert len(digest) == 64 and all(c in "0123456789abcdef" for c in digest)
    assert sha256(f) == digest


def test_same_digest_tolerates_prefix_and_case() -> None:
    d = "ab" * 32
    assert same_digest(d, f"sha256:{d.upper()}")
    assert same_digest(f"sha256:{d}", d)
    assert not same_digest(d, "0" * 64)
    assert not same_digest(d, "")


def _tree(root: Path, main: str = "fn main() {}\n") -> Path:
    (root / "src").mkdir(parents=True)
    (root / "src" / "main.rs").write_text(main, encoding="utf-8")
    (root / "Cargo.toml").write_text('[package]\nname = "x"\n', encoding="utf-8")
    return root


def test_tree_digest_depends_on_content_not_location(tmp_path: Path) -> None:
    a = tree_sha256(_tree(tmp_path / "a"))
    b = tree_sha256(_tree(tmp_path / "b"))
    assert a == b

    c = tree_sha256(_tree(tmp_path / "c", main="fn main() { panic!() }\n"))
    assert c != a


def test_tree_digest_depends_on_names(tmp_path: Path) -> None:
    root = _tree(tmp_path / "a")
    before = tree_sha256(root)
    (root / "src" / "main.rs").rename(root / "src" / "lib.rs")
    assert tree_sha256(root) != before
