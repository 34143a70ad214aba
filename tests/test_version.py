from pathlib import Path

import suispeedrun


def _project_version() -> str:
    pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
    in_project = False
    for line in pyproject.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if stripped.startswith("[") and stripped.endswith("]"):
            in_project = stripped == "[project]"
            continue
        if in_project and stripped.startswith('version = "'):
            return stripped.split('"', 2)[1]
    raise AssertionError("Could not find [project].version in pyproject.toml")


def test_package_version_matches_pyproject() -> None:
    assert suispeedrun.__version__ == _project_version()


def test_version_reader_ignores_other_tables(tmp_path: Path, monkeypatch) -> None:
    fake_pkg = tmp_path / "pkg" / "suispeedrun"
    fake_pkg.mkdir(parents=True)
    (tmp_path / "pkg" / "pyproject.toml").write_text(
        '[tool.other]\nversion = "9.9.9"\n\n[project]\nname = "suispeedrun"\nversion = "1.2.3"\n',
        encoding="utf-8",
    )
    monkeypatch.setattr(suispeedrun, "__file__", str(fake_pkg / "__init__.py"))
    assert suispeedrun._version_from_pyproject() == "1.2.3"
