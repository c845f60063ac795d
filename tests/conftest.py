"""Shared scene builders and buffer readers for the export tests."""

import asyncio
import base64
import struct

import pytest
from PIL import Image

from gltf_scene_export import (
    ExportOptions,
    GLTFAsset,
    Material,
    Mesh,
    Node,
    PBRMetallicRoughness,
    Scene,
    Texture,
    Vertex,
    build_document,
)
from gltf_scene_export.constants import COMPONENT_FORMATS, DATA_TYPE_SIZES, ComponentType, DataType


def triangle(offset: float = 0.0, color=None):
    """Three vertices of a unit triangle shifted along x"""
    return (
        Vertex(offset, 0.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, color),
        Vertex(offset + 1.0, 0.0, 0.0, 0.0, 0.0, 1.0, 1.0, 0.0, color),
        Vertex(offset, 1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 1.0, color),
    )


def single_node_asset(mesh: Mesh) -> GLTFAsset:
    scene = Scene(name="main")
    scene.add_node(Node("mesh", mesh=mesh))
    return GLTFAsset(scenes=[scene])


def textured_material(image, name=None) -> Material:
    return Material(
        name=name,
        pbr_metallic_roughness=PBRMetallicRoughness(
            base_color_factor=(1.0, 1.0, 1.0, 1.0),
            base_color_texture=Texture(image),
        ),
    )


def build(asset: GLTFAsset, **option_kwargs):
    return asyncio.run(build_document(asset, ExportOptions(**option_kwargs)))


def buffer_bytes(document, buffer_index: int) -> bytes:
    entry = document.buffers[buffer_index]
    uri = entry.get("uri")
    if uri is None:
        return document.bin_chunk
    if uri.startswith("data:"):
        return base64.b64decode(uri.split(",", 1)[1])
    return document.external_files[uri]


def read_accessor(document, accessor_index: int):
    """Decode an accessor into a list of element tuples"""
    accessor = document.accessors[accessor_index]
    view = document.buffer_views[accessor["bufferView"]]
    data = buffer_bytes(document, view["buffer"])

    fmt = '<' + COMPONENT_FORMATS[ComponentType(accessor["componentType"])]
    size = struct.calcsize(fmt)
    width = DATA_TYPE_SIZES[DataType(accessor["type"])]

    start = view["byteOffset"] + accessor["byteOffset"]
    values = [
        struct.unpack_from(fmt, data, start + i * size)[0]
        for i in range(accessor["count"] * width)
    ]
    return [tuple(values[i:i + width]) for i in range(0, len(values), width)]


@pytest.fixture
def red_image():
    return Image.new("RGB", (4, 4), (255, 0, 0))


@pytest.fixture
def blue_image():
    return Image.new("RGBA", (2, 2), (0, 0, 255, 128))
