import pathlib
import textwrap

import pytest

from protospawn.config import ProtoConfig
from protospawn.content_management import PrototypeLibrary
from protospawn.core.assets import AssetServer
from protospawn.core.schematics import SchematicRegistry
from protospawn.core.templates import TemplateResolver
from protospawn.errors import DuplicateNameError, PrototypeLoadError, TemplateNotFoundError
from protospawn.loaders import (
    FileSystemPrototypeSource,
    load_folder,
    parse_prototype,
    watch_prototypes,
)


def write(root: pathlib.Path, path: str, content: str) -> None:
    file_path = root / path
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(textwrap.dedent(content))


@pytest.fixture
def content(tmp_path: pathlib.Path) -> pathlib.Path:
    write(
        tmp_path,
        "characters/npc.prototype.yaml",
        """
        name: NPC
        children:
          - Shadow
        """,
    )
    write(
        tmp_path,
        "characters/adventurer.prototype.yaml",
        """
        name: Adventurer
        templates: npc, /shared/base.prototype.yaml
        """,
    )
    write(
        tmp_path,
        "shared/base.prototype.yaml",
        """
        name: Base
        """,
    )
    write(tmp_path, "shared/shadow.json", '{"name": "Shadow"}')
    write(tmp_path, "README.md", "Not a prototype")
    return tmp_path


def test_load_folder(content: pathlib.Path) -> None:
    library = PrototypeLibrary()

    loaded = load_folder(library, FileSystemPrototypeSource(content))

    assert sorted(p.name for p in loaded) == ["Adventurer", "Base", "NPC", "Shadow"]
    assert library.get("NPC").path == "characters/npc.prototype.yaml"
    assert library.get_by_path("shared/shadow.json").name == "Shadow"


def test_templates_resolve_by_path(content: pathlib.Path) -> None:
    library = PrototypeLibrary()
    load_folder(library, FileSystemPrototypeSource(content))
    resolver = TemplateResolver(library, SchematicRegistry())

    merged = resolver.resolve(library.get("Adventurer"))

    assert list(merged.prototypes) == ["Adventurer", "NPC", "Base"]


def test_relative_paths_with_parent_segments(tmp_path: pathlib.Path) -> None:
    write(tmp_path, "a/b/leaf.yaml", "name: Leaf\ntemplates: [../../root]\n")
    write(tmp_path, "root.yaml", "name: Root\n")
    library = PrototypeLibrary()
    load_folder(library, FileSystemPrototypeSource(tmp_path))

    leaf = library.get("Leaf")

    assert library.resolve_reference("../../root", leaf).name == "Root"
    assert library.resolve_reference("/root.yaml", leaf).name == "Root"

    with pytest.raises(TemplateNotFoundError):
        library.resolve_reference("../root", leaf)


def test_missing_name(tmp_path: pathlib.Path) -> None:
    write(tmp_path, "nameless.yaml", "templates: [Base]\n")

    with pytest.raises(PrototypeLoadError) as exc_info:
        load_folder(PrototypeLibrary(), FileSystemPrototypeSource(tmp_path))

    assert "missing field, 'name'" in str(exc_info.value)


def test_invalid_yaml(tmp_path: pathlib.Path) -> None:
    write(tmp_path, "broken.yaml", "name: [unclosed\n")

    with pytest.raises(PrototypeLoadError):
        load_folder(PrototypeLibrary(), FileSystemPrototypeSource(tmp_path))


def test_duplicate_names(tmp_path: pathlib.Path) -> None:
    write(tmp_path, "one.yaml", "name: Twin\n")
    write(tmp_path, "two.yaml", "name: Twin\n")

    with pytest.raises(DuplicateNameError) as exc_info:
        load_folder(PrototypeLibrary(), FileSystemPrototypeSource(tmp_path))

    assert exc_info.value.name == "Twin"


def test_custom_template_delimiter() -> None:
    config = ProtoConfig(template_delimiter=";")

    prototype = parse_prototype({"name": "Mix", "templates": "A; B ;C"}, None, config)

    assert prototype.templates == ["A", "B", "C"]


def test_inline_child_keeps_merge_key() -> None:
    prototype = parse_prototype(
        {
            "name": "Owner",
            "children": [
                "Named",
                {"prototype": "Keyed", "merge_key": "slot"},
                {"name": "Inline", "merge_key": "slot", "schematics": None},
            ],
        }
    )

    named, keyed, inline = prototype.children
    assert named.prototype == "Named" and not named.is_inline
    assert keyed.merge_key == "slot"
    assert inline.is_inline and inline.merge_key == "slot"
    assert inline.prototype.name == "Inline"


def test_watch_reloads_changed_files(content: pathlib.Path) -> None:
    library = PrototypeLibrary()
    source = FileSystemPrototypeSource(content)
    load_folder(library, source)
    assets = AssetServer(content)
    watch_prototypes(library, source, assets)
    changes = []
    library.subscribe_changed(changes.append)

    write(content, "shared/base.prototype.yaml", "name: Base\nchildren: [Shadow]\n")
    assets.notify_changed("shared/base.prototype.yaml")

    assert [c.prototype for c in library.get("Base").children] == ["Shadow"]
    assert changes == [["Base"]]


def test_watch_logs_bad_reload(content: pathlib.Path, caplog) -> None:
    library = PrototypeLibrary()
    source = FileSystemPrototypeSource(content)
    load_folder(library, source)
    assets = AssetServer(content)
    watch_prototypes(library, source, assets)

    write(content, "shared/base.prototype.yaml", "templates: []\n")
    assets.notify_changed("shared/base.prototype.yaml")

    assert "Could not reload" in caplog.text
    assert "Base" in library


def test_library_queries(content: pathlib.Path) -> None:
    library = PrototypeLibrary()
    load_folder(library, FileSystemPrototypeSource(content))
    TemplateResolver(library, SchematicRegistry()).resolve(library.get("Adventurer"))

    assert len(library.get_all()) == 4
    assert sorted(p.name for p in library.get_matching("^A", "^B")) == [
        "Adventurer",
        "Base",
    ]
    assert library.get_dependents("NPC") == {"Adventurer"}
    assert library.get_dependents("Adventurer") == set()
