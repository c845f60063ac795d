"""Material, texture, sampler and image registration."""

import pytest

from gltf_scene_export import (
    AlphaMode,
    GLTFBuilder,
    ImageURI,
    Material,
    PBRMetallicRoughness,
    Texture,
    WrappingMode,
)

from conftest import textured_material


def test_identical_uri_images_share_an_index():
    builder = GLTFBuilder()

    first = builder.add_image(ImageURI("textures/wood.png"))
    second = builder.add_image(ImageURI("textures/wood.png"))
    other = builder.add_image(ImageURI("textures/stone.png"))

    assert first == second == 0
    assert other == 1
    assert builder.document.images == [{"uri": "textures/wood.png"}, {"uri": "textures/stone.png"}]


def test_same_image_handle_is_registered_once(red_image, blue_image):
    builder = GLTFBuilder()

    a = builder.add_image(red_image)
    b = builder.add_image(blue_image)
    again = builder.add_image(red_image)

    assert (a, b, again) == (0, 1, 0)
    assert builder.document.images[0]["uri"].startswith("data:image/png;base64,")


def test_equal_pixels_in_different_handles_are_not_merged(red_image):
    builder = GLTFBuilder()

    assert builder.add_image(red_image) == 0
    assert builder.add_image(red_image.copy()) == 1


def test_dedup_keys_are_not_serialized(red_image):
    builder = GLTFBuilder()
    builder.add_image(red_image)

    assert builder.document.images[0].keys() == {"uri"}
    assert len(builder.document.image_keys) == 1


def test_structurally_equal_samplers_are_shared():
    builder = GLTFBuilder()
    uri = ImageURI("a.png")

    first = builder.add_sampler(Texture(uri, WrappingMode.REPEAT, WrappingMode.REPEAT))
    second = builder.add_sampler(Texture(uri, WrappingMode.REPEAT, WrappingMode.REPEAT))
    mirrored = builder.add_sampler(Texture(uri, WrappingMode.REPEAT, WrappingMode.MIRRORED_REPEAT))
    filtered = builder.add_sampler(Texture(uri, WrappingMode.REPEAT, WrappingMode.REPEAT, mag_filter=9729))

    assert (first, second, mirrored, filtered) == (0, 0, 1, 2)
    assert builder.document.samplers[0] == {"wrapS": 10497, "wrapT": 10497}
    assert builder.document.samplers[2]["magFilter"] == 9729


def test_textures_always_append():
    builder = GLTFBuilder()
    texture = Texture("shared.png")

    assert builder.add_texture(texture) == 0
    assert builder.add_texture(texture) == 1
    assert builder.document.textures == [{"sampler": 0, "source": 0}] * 2


def test_materials_are_not_deduplicated():
    builder = GLTFBuilder()
    material = Material(name="same")

    assert builder.add_materials([material, material]) == [0, 1]


def test_material_fields():
    builder = GLTFBuilder()
    material = textured_material(ImageURI("albedo.png"), name="painted")
    material.alpha_mode = AlphaMode.MASK
    material.alpha_cutoff = 0.25
    material.double_sided = True
    material.pbr_metallic_roughness.metallic_factor = 0.0

    index = builder.add_material(material)

    assert builder.document.materials[index] == {
        "name": "painted",
        "alphaMode": "MASK",
        "alphaCutoff": 0.25,
        "doubleSided": True,
        "pbrMetallicRoughness": {
            "baseColorFactor": [1.0, 1.0, 1.0, 1.0],
            "metallicFactor": 0.0,
            "baseColorTexture": {"index": 0},
        },
    }


def test_default_material_is_minimal():
    builder = GLTFBuilder()
    index = builder.add_material(Material(pbr_metallic_roughness=PBRMetallicRoughness()))

    assert builder.document.materials[index] == {"pbrMetallicRoughness": {}}


@pytest.mark.parametrize("value", [None, "", ImageURI(""), {"uri": ""}])
def test_texture_image_cannot_be_unset(value):
    with pytest.raises(ValueError):
        Texture(value)

    texture = Texture("ok.png")
    with pytest.raises(ValueError):
        texture.image = value
    assert texture.image == ImageURI("ok.png")
