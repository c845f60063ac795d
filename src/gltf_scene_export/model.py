"""
Scene Model

In-memory scene graph consumed by the exporter:
- GLTFAsset -> Scene -> Node (hierarchy with TRS transforms)
- Mesh: unindexed triangle faces with a per-mesh material list
- Material / Texture: PBR parameters and base color textures

Nothing in here knows about buffers or accessors. The builder only reads
transform components, faces and image handles from these objects.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .constants import AlphaMode, MeshMode, VertexColorMode, WrappingMode


@dataclass
class RGBColor:
    """Color with components in [0, 1]"""
    r: float = 0.0
    g: float = 0.0
    b: float = 0.0


@dataclass
class RGBAColor(RGBColor):
    a: float = 1.0


Color = Union[RGBColor, RGBAColor]


@dataclass
class Vertex:
    """Single vertex: position, normal, UV and optional color"""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    normal_x: float = 0.0
    normal_y: float = 0.0
    normal_z: float = 0.0
    u: float = 0.0
    v: float = 0.0
    color: Optional[Color] = None


@dataclass(frozen=True)
class ImageURI:
    """Image that is referenced by URI and passed through untouched"""
    uri: str


class Texture:
    """
    Base color texture: wrapping, optional filters and an image.

    The image is either a raw handle (e.g. a PIL image) that gets encoded
    during export, or an ImageURI that is written as-is.
    """

    def __init__(
        self,
        image: Any,
        wrap_s: WrappingMode = WrappingMode.CLAMP_TO_EDGE,
        wrap_t: WrappingMode = WrappingMode.CLAMP_TO_EDGE,
        mag_filter: Optional[int] = None,
        min_filter: Optional[int] = None,
    ):
        self.wrap_s = wrap_s
        self.wrap_t = wrap_t
        self.mag_filter = mag_filter
        self.min_filter = min_filter
        self._image = None
        self.image = image

    @property
    def image(self) -> Any:
        return self._image

    @image.setter
    def image(self, value: Any):
        if isinstance(value, str):
            value = ImageURI(value)
        elif isinstance(value, dict) and "uri" in value:
            value = ImageURI(value["uri"])

        if value is None or (isinstance(value, ImageURI) and not value.uri):
            raise ValueError("Texture image cannot be set to an empty value")
        self._image = value


@dataclass
class PBRMetallicRoughness:
    base_color_factor: Optional[Tuple[float, float, float, float]] = None
    base_color_texture: Optional[Texture] = None
    metallic_factor: Optional[float] = None
    roughness_factor: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Factors only; the texture is registered separately"""
        result: Dict[str, Any] = {}
        if self.base_color_factor is not None:
            result["baseColorFactor"] = list(self.base_color_factor)
        if self.metallic_factor is not None:
            result["metallicFactor"] = self.metallic_factor
        if self.roughness_factor is not None:
            result["roughnessFactor"] = self.roughness_factor
        return result


@dataclass
class Material:
    name: Optional[str] = None
    pbr_metallic_roughness: Optional[PBRMetallicRoughness] = None
    vertex_color_mode: VertexColorMode = VertexColorMode.NO_COLORS
    alpha_mode: AlphaMode = AlphaMode.OPAQUE
    alpha_cutoff: float = 0.5
    double_sided: bool = False


@dataclass
class Face:
    """Triangle; material_index is None when the face has no material"""
    v1: Vertex
    v2: Vertex
    v3: Vertex
    color: Optional[Color] = None
    material_index: Optional[int] = None


@dataclass
class Mesh:
    mode: MeshMode = MeshMode.TRIANGLES
    materials: List[Material] = field(default_factory=list)
    faces: List[Face] = field(default_factory=list)

    def add_face(
        self,
        v1: Vertex,
        v2: Vertex,
        v3: Vertex,
        color: Optional[Color] = None,
        material_index: Optional[int] = None,
    ) -> Face:
        face = Face(v1, v2, v3, color, material_index)
        self.faces.append(face)
        return face

    def iter_faces(self) -> Iterator[Face]:
        return iter(self.faces)


class Node:
    """
    Scene graph node.

    Holds translation, rotation (quaternion x, y, z, w) and scale, plus
    either a mesh or child nodes. When a mesh is set, children are not
    exported.
    """

    def __init__(self, name: Optional[str] = None, mesh: Optional[Mesh] = None):
        self.name = name
        self.mesh = mesh
        self.children: List["Node"] = []
        self._translation = (0.0, 0.0, 0.0)
        self._rotation = (0.0, 0.0, 0.0, 1.0)
        self._scale = (1.0, 1.0, 1.0)

    def set_translation(self, x: float, y: float, z: float):
        self._translation = (x, y, z)

    def get_translation(self) -> Tuple[float, float, float]:
        return self._translation

    def set_rotation_quaternion(self, x: float, y: float, z: float, w: float):
        self._rotation = (x, y, z, w)

    def set_rotation_radians(self, x: float, y: float, z: float):
        """Set rotation from XYZ Euler angles"""
        c1, c2, c3 = math.cos(x / 2), math.cos(y / 2), math.cos(z / 2)
        s1, s2, s3 = math.sin(x / 2), math.sin(y / 2), math.sin(z / 2)
        self._rotation = (
            s1 * c2 * c3 + c1 * s2 * s3,
            c1 * s2 * c3 - s1 * c2 * s3,
            c1 * c2 * s3 + s1 * s2 * c3,
            c1 * c2 * c3 - s1 * s2 * s3,
        )

    def get_rotation_quaternion(self) -> Tuple[float, float, float, float]:
        return self._rotation

    def set_scale(self, x: float, y: float, z: float):
        self._scale = (x, y, z)

    def get_scale(self) -> Tuple[float, float, float]:
        return self._scale

    def add_node(self, node: "Node") -> "Node":
        self.children.append(node)
        return node

    def iter_nodes(self) -> Iterator["Node"]:
        return iter(self.children)


@dataclass
class Scene:
    name: Optional[str] = None
    nodes: List[Node] = field(default_factory=list)

    def add_node(self, node: Node) -> Node:
        self.nodes.append(node)
        return node

    def iter_nodes(self) -> Iterator[Node]:
        return iter(self.nodes)


@dataclass
class GLTFAsset:
    """Top-level container handed to the exporter"""
    scenes: List[Scene] = field(default_factory=list)
    default_scene: int = 0
    generator: Optional[str] = None
    copyright: Optional[str] = None

    def add_scene(self, scene: Scene) -> Scene:
        self.scenes.append(scene)
        return scene

    def iter_scenes(self) -> Iterator[Scene]:
        return iter(self.scenes)
