from pathlib import Path

from stubwire.repo.scanner import scan_source_files


def test_scan_source_files_finds_own_package():
    repo_root = Path(__file__).resolve().parents[1]
    files = scan_source_files(repo_root, patterns=["*.py"], max_files=5000)

    target = (repo_root / "src" / "stubwire" / "cli.py").resolve()
    assert any(Path(p).resolve() == target for p in files)


def test_default_patterns_skip_plain_modules():
    repo_root = Path(__file__).resolve().parents[1]
    files = scan_source_files(repo_root / "src")
    assert files == []
