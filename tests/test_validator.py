"""Validator checks against hand-made broken documents."""

import json

from gltf_scene_export import Mesh, export_glb, validate_document, validate_glb_bytes, validate_gltf
from gltf_scene_export.validator import main

from conftest import single_node_asset, triangle


def minimal_gltf():
    return {
        "asset": {"version": "2.0"},
        "scene": 0,
        "scenes": [{"nodes": [0]}],
        "nodes": [{"name": "root"}],
    }


def test_minimal_document_is_valid():
    report = validate_document(minimal_gltf())

    assert report.valid
    assert report.stats["nodes"] == 1


def test_bad_references_are_errors():
    gltf = minimal_gltf()
    gltf["scenes"][0]["nodes"] = [0, 3]
    gltf["nodes"][0]["mesh"] = 0

    report = validate_document(gltf)

    assert not report.valid
    assert "Invalid nodes index 3" in report.errors
    assert "Invalid meshes index 0" in report.errors


def test_mesh_and_children_are_exclusive():
    gltf = minimal_gltf()
    gltf["nodes"] = [{"mesh": 0, "children": [1]}, {}]
    gltf["meshes"] = [{"primitives": []}]

    report = validate_document(gltf)

    assert "Node has both mesh and children" in report.errors


def test_buffer_view_past_buffer_end():
    gltf = minimal_gltf()
    gltf["buffers"] = [{"byteLength": 8, "uri": "data1.bin"}]
    gltf["bufferViews"] = [{"buffer": 0, "byteOffset": 4, "byteLength": 8}]

    report = validate_document(gltf)

    assert any("past buffer length 8" in message for message in report.errors)


def test_image_without_source():
    gltf = minimal_gltf()
    gltf["images"] = [{}]

    assert "Image has no uri or bufferView" in validate_document(gltf).errors


def test_empty_arrays_are_flagged():
    gltf = minimal_gltf()
    gltf["meshes"] = []

    report = validate_document(gltf)

    assert report.valid
    assert report.warning_count == 1


def test_garbage_glb():
    report = validate_glb_bytes(b'not a glb file at all')

    assert not report.valid
    assert report.issues[0].category == "format"


def test_cli_on_exported_file(tmp_path, capsys):
    mesh = Mesh()
    mesh.add_face(*triangle(0))
    path = tmp_path / "tri.glb"
    path.write_bytes(export_glb(single_node_asset(mesh)))

    assert main([str(path), "--json"]) == 0
    output = json.loads(capsys.readouterr().out)
    assert output["valid"] is True
    assert output["stats"]["primitives"] == 1


def test_missing_file():
    report = validate_gltf("/nonexistent/model.glb")

    assert not report.valid
    assert report.issues[0].category == "file"
