import json
import pathlib

import pytest

from protospawn.cli import load_config_from_path, run


@pytest.fixture
def content(tmp_path: pathlib.Path, monkeypatch) -> pathlib.Path:
    monkeypatch.chdir(tmp_path)
    folder = tmp_path / "content"
    folder.mkdir()
    (folder / "camp.yaml").write_text("name: Camp\nchildren: [Tent, Tent]\n")
    (folder / "tent.yaml").write_text("name: Tent\n")
    return folder


def test_validate_succeeds(content: pathlib.Path) -> None:
    with pytest.raises(SystemExit) as exc_info:
        run([str(content), "--validate"])

    assert exc_info.value.code == 0


def test_validate_reports_broken_prototypes(content: pathlib.Path) -> None:
    (content / "ruin.yaml").write_text("name: Ruin\ntemplates: [Castle]\n")

    with pytest.raises(SystemExit) as exc_info:
        run([str(content), "--validate", "-q"])

    assert exc_info.value.code == 1


def test_spawn_and_emit(content: pathlib.Path, tmp_path: pathlib.Path) -> None:
    output = tmp_path / "world.json"

    run([str(content), "-p", "Camp", "-o", str(output)])

    data = json.loads(output.read_text())
    names = sorted(g["name"] for g in data["gameobjects"].values())
    assert names == ["Camp", "Tent", "Tent"]


def test_config_file(content: pathlib.Path, tmp_path: pathlib.Path) -> None:
    config_path = tmp_path / "protospawn.config.yaml"
    config_path.write_text(f"path: {content.as_posix()}\nprototypes: [Tent]\n")

    assert load_config_from_path(str(config_path))["prototypes"] == ["Tent"]

    run(["--no-emit"])

    assert not (tmp_path / "protospawn_world.json").exists()
