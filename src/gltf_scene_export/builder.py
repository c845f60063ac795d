"""
glTF Builder

Walks a GLTFAsset and fills a GLTFDocument.

Pipeline:
1. Scenes and nodes are visited depth-first; each node gets its index
   before its children or mesh are visited
2. Each mesh registers its materials, then streams its faces into
   POSITION / NORMAL / TEXCOORD_0 (and COLOR_0 when a material asks for it)
   buffer views, starting a new primitive whenever the material changes
3. Textures register their sampler and image; samplers and images are
   deduplicated
4. Images are encoded according to the image output type. Encodes that
   run asynchronously are tracked on the document and joined by
   build_document() before the shared GLB buffer is finalized

The walk itself is synchronous. Only image encoding suspends.

Usage:
    document = await build_document(asset, ExportOptions())
    gltf = document.to_dict()
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from .buffer import Buffer, BufferAccessorInfo, BufferView
from .constants import (
    ARRAY_BUFFER,
    IMAGE_MIME_TYPE,
    AlphaMode,
    BufferOutputType,
    ComponentType,
    DataType,
    ImageOutputType,
    MeshMode,
    VertexColorMode,
)
from .document import ExportOptions, GLTFDocument, PendingImage
from .exceptions import UnsupportedMeshModeError
from .imageutils import bytes_to_data_uri
from .model import (
    Color,
    Face,
    GLTFAsset,
    ImageURI,
    Material,
    Mesh,
    Node,
    RGBAColor,
    RGBColor,
    Scene,
    Texture,
)

logger = logging.getLogger("GLTFSceneExport")

IDENTITY_TRANSLATION = (0, 0, 0)
IDENTITY_ROTATION = (0, 0, 0, 1)
IDENTITY_SCALE = (1, 1, 1)
DEFAULT_ALPHA_CUTOFF = 0.5


def quantize_color(color: Optional[Color]) -> List[int]:
    """[0, 1] floats -> RGBA bytes; missing color is black, missing alpha opaque"""
    if color is None:
        color = RGBColor()
    components = [color.r, color.g, color.b]
    components.append(color.a if isinstance(color, RGBAColor) else 1.0)
    return [max(0, min(255, int(c * 255))) for c in components]


def image_dedup_key(image: Any):
    """URI images match by URI string, raw handles by identity"""
    if isinstance(image, ImageURI):
        return ("uri", image.uri)
    return ("handle", id(image))


class MeshPacker:
    """
    Streams one mesh's faces into buffer views, one primitive per run of
    faces sharing a material.
    """

    def __init__(
        self,
        builder: "GLTFBuilder",
        mesh: Mesh,
        buffer: Buffer,
        material_indices: List[int],
    ):
        self.builder = builder
        self.mesh = mesh
        self.buffer = buffer
        self.material_indices = material_indices

        self.position_view = buffer.add_buffer_view(ComponentType.FLOAT, DataType.VEC3, ARRAY_BUFFER)
        self.normal_view = buffer.add_buffer_view(ComponentType.FLOAT, DataType.VEC3, ARRAY_BUFFER)
        self.uv_view = buffer.add_buffer_view(ComponentType.FLOAT, DataType.VEC2, ARRAY_BUFFER)
        self.color_view: Optional[BufferView] = None

        self.primitives: List[Dict[str, Any]] = []

    def _material(self, material_index: Optional[int]) -> Optional[Material]:
        if material_index is None:
            return None
        if material_index < 0:
            raise IndexError(f"Material index {material_index} is negative, use None for no material")
        return self.mesh.materials[material_index]

    @staticmethod
    def _wants_colors(material: Optional[Material]) -> bool:
        return material is not None and material.vertex_color_mode != VertexColorMode.NO_COLORS

    def _ensure_color_view(self) -> BufferView:
        if self.color_view is None:
            self.color_view = self.buffer.add_buffer_view(
                ComponentType.UNSIGNED_BYTE, DataType.VEC4, ARRAY_BUFFER
            )
        return self.color_view

    def _start_primitive(self, material: Optional[Material]):
        self.position_view.start_accessor("POSITION")
        self.normal_view.start_accessor("NORMAL")
        self.uv_view.start_accessor("TEXCOORD_0")
        if self._wants_colors(material):
            self._ensure_color_view().start_accessor("COLOR_0", normalized=True)

    def _complete_primitive(self, material_index: Optional[int]) -> Dict[str, Any]:
        builder = self.builder
        attributes = {
            "POSITION": builder.add_accessor(self.position_view, self.position_view.end_accessor()),
            "NORMAL": builder.add_accessor(self.normal_view, self.normal_view.end_accessor()),
            "TEXCOORD_0": builder.add_accessor(self.uv_view, self.uv_view.end_accessor()),
        }
        primitive: Dict[str, Any] = {
            "attributes": attributes,
            "mode": int(self.mesh.mode),
        }

        material = self._material(material_index)
        if material is not None:
            primitive["material"] = self.material_indices[material_index]
            if self._wants_colors(material):
                attributes["COLOR_0"] = builder.add_accessor(
                    self.color_view, self.color_view.end_accessor()
                )

        logger.debug(
            f"Primitive with {self.builder.document.accessors[attributes['POSITION']]['count']} "
            f"vertices, material {primitive.get('material')}"
        )
        return primitive

    def _push_face(self, face: Face, material: Optional[Material]):
        vertices = (face.v1, face.v2, face.v3)

        for vertex in vertices:
            self.position_view.push(vertex.x)
            self.position_view.push(vertex.y)
            self.position_view.push(vertex.z)

        for vertex in vertices:
            self.normal_view.push(vertex.normal_x)
            self.normal_view.push(vertex.normal_y)
            self.normal_view.push(vertex.normal_z)

        for vertex in vertices:
            self.uv_view.push(vertex.u)
            self.uv_view.push(vertex.v)

        if material is None:
            return

        if material.vertex_color_mode == VertexColorMode.FACE_COLORS:
            colors = [face.color] * 3
        elif material.vertex_color_mode == VertexColorMode.VERTEX_COLORS:
            colors = [vertex.color for vertex in vertices]
        else:
            return

        for color in colors:
            for component in quantize_color(color):
                self.color_view.push(component)

    def pack(self) -> List[Dict[str, Any]]:
        started = False
        last_material_index: Optional[int] = None
        current_material: Optional[Material] = None

        for face in self.mesh.iter_faces():
            material_index = face.material_index
            if not started or material_index != last_material_index:
                if started:
                    self.primitives.append(self._complete_primitive(last_material_index))
                current_material = self._material(material_index)
                self._start_primitive(current_material)
                last_material_index = material_index
                started = True

            self._push_face(face, current_material)

        if started:
            self.primitives.append(self._complete_primitive(last_material_index))

        self.position_view.finalize()
        self.normal_view.finalize()
        self.uv_view.finalize()
        if self.color_view is not None:
            self.color_view.finalize()

        return self.primitives


class GLTFBuilder:
    """
    Converts scene graph objects into document entries.

    Every add_* method appends to the document synchronously and returns
    the new (or deduplicated) index.
    """

    def __init__(self, options: Optional[ExportOptions] = None):
        self.options = options or ExportOptions()
        self.document = GLTFDocument(self.options)
        self.stats: Dict[str, Any] = {}
        self._image_handles: List[Any] = []

    def bin_chunk_buffer(self) -> Buffer:
        """Shared GLB buffer, created on first use"""
        if self.document.bin_chunk_buffer is None:
            self.document.bin_chunk_buffer = Buffer(self.document, binary_chunk=True)
        return self.document.bin_chunk_buffer

    # ------------------------------------------------------------------
    # Scene graph walk
    # ------------------------------------------------------------------

    def add_scenes(self, asset: GLTFAsset):
        document = self.document
        if asset.generator:
            document.asset["generator"] = asset.generator
        if asset.copyright:
            document.asset["copyright"] = asset.copyright

        # Chunk images next to per-mesh buffers keep the chunk at buffer 0;
        # otherwise it is created by its first user
        if (
            self.options.image_output_type == ImageOutputType.GLB
            and self.options.buffer_output_type != BufferOutputType.GLB
        ):
            self.bin_chunk_buffer()

        for scene in asset.iter_scenes():
            self.add_scene(scene)

        if document.scenes:
            document.scene = asset.default_scene

        logger.info(
            f"Walked {len(document.scenes)} scenes: {len(document.nodes)} nodes, "
            f"{len(document.meshes)} meshes, {len(document.images)} images"
        )

    def add_scene(self, scene: Scene) -> int:
        gltf_scene: Dict[str, Any] = {}
        if scene.name:
            gltf_scene["name"] = scene.name

        node_indices = [self.add_node(node) for node in scene.iter_nodes()]
        if node_indices:
            gltf_scene["nodes"] = node_indices

        return self.document.add_scene(gltf_scene)

    def add_node(self, node: Node) -> int:
        gltf_node: Dict[str, Any] = {}
        if node.name:
            gltf_node["name"] = node.name

        translation = tuple(node.get_translation())
        if translation != IDENTITY_TRANSLATION:
            gltf_node["translation"] = list(translation)

        rotation = tuple(node.get_rotation_quaternion())
        if rotation != IDENTITY_ROTATION:
            gltf_node["rotation"] = list(rotation)

        scale = tuple(node.get_scale())
        if scale != IDENTITY_SCALE:
            gltf_node["scale"] = list(scale)

        # Index is fixed before any child is visited
        index = self.document.add_node(gltf_node)

        if node.mesh is not None:
            mesh_index = self.add_mesh(node.mesh)
            if mesh_index is not None:
                gltf_node["mesh"] = mesh_index
        else:
            children = [self.add_node(child) for child in node.iter_nodes()]
            if children:
                gltf_node["children"] = children

        return index

    # ------------------------------------------------------------------
    # Meshes
    # ------------------------------------------------------------------

    def add_buffer(self) -> Buffer:
        return Buffer(self.document)

    def _store_mesh_buffer(self, buffer: Buffer):
        """Give a finalized per-mesh buffer its data URI or external file"""
        data = buffer.finalize()
        entry = self.document.buffers[buffer.index]

        if self.options.buffer_output_type == BufferOutputType.EXTERNAL:
            filename = f"data{buffer.index + 1}.bin"
            self.document.add_external_file(filename, data)
            entry["uri"] = filename
        else:
            entry["uri"] = bytes_to_data_uri(data)

    def add_mesh(self, mesh: Mesh) -> Optional[int]:
        """Register a mesh; a mesh without faces is skipped and gives None"""
        if mesh.mode != MeshMode.TRIANGLES:
            raise UnsupportedMeshModeError(
                f"MeshMode {getattr(mesh.mode, 'name', mesh.mode)} not supported, only TRIANGLES"
            )
        if not mesh.faces:
            logger.warning("Skipping mesh without faces")
            return None

        material_indices = self.add_materials(mesh.materials)

        gltf_mesh: Dict[str, Any] = {"primitives": []}
        index = self.document.add_mesh(gltf_mesh)

        shared = self.options.buffer_output_type == BufferOutputType.GLB
        buffer = self.bin_chunk_buffer() if shared else self.add_buffer()

        packer = MeshPacker(self, mesh, buffer, material_indices)
        gltf_mesh["primitives"] = packer.pack()

        if not shared:
            self._store_mesh_buffer(buffer)

        logger.debug(f"Mesh {index}: {len(gltf_mesh['primitives'])} primitives, {len(mesh.faces)} faces")
        return index

    def add_accessor(self, buffer_view: BufferView, info: BufferAccessorInfo) -> int:
        accessor: Dict[str, Any] = {
            "bufferView": buffer_view.index,
            "byteOffset": info.byte_offset,
            "componentType": int(info.component_type),
            "count": info.count,
            "type": info.data_type.value,
            "min": list(info.min),
            "max": list(info.max),
        }
        if info.normalized:
            accessor["normalized"] = True
        return self.document.add_accessor(accessor)

    # ------------------------------------------------------------------
    # Materials, textures, samplers, images
    # ------------------------------------------------------------------

    def add_materials(self, materials: List[Material]) -> List[int]:
        return [self.add_material(material) for material in materials]

    def add_material(self, material: Material) -> int:
        gltf_material: Dict[str, Any] = {}
        if material.name:
            gltf_material["name"] = material.name
        if material.alpha_mode != AlphaMode.OPAQUE:
            gltf_material["alphaMode"] = material.alpha_mode.value
        if material.alpha_cutoff != DEFAULT_ALPHA_CUTOFF:
            gltf_material["alphaCutoff"] = material.alpha_cutoff
        if material.double_sided:
            gltf_material["doubleSided"] = True

        pbr = material.pbr_metallic_roughness
        if pbr is not None:
            gltf_pbr = pbr.to_dict()
            if pbr.base_color_texture is not None:
                gltf_pbr["baseColorTexture"] = {"index": self.add_texture(pbr.base_color_texture)}
            gltf_material["pbrMetallicRoughness"] = gltf_pbr

        return self.document.add_material(gltf_material)

    def add_texture(self, texture: Texture) -> int:
        gltf_texture = {
            "sampler": self.add_sampler(texture),
            "source": self.add_image(texture.image),
        }
        return self.document.add_texture(gltf_texture)

    def add_sampler(self, texture: Texture) -> int:
        gltf_sampler: Dict[str, Any] = {
            "wrapS": int(texture.wrap_s),
            "wrapT": int(texture.wrap_t),
        }
        if texture.mag_filter is not None:
            gltf_sampler["magFilter"] = texture.mag_filter
        if texture.min_filter is not None:
            gltf_sampler["minFilter"] = texture.min_filter

        for i, existing in enumerate(self.document.samplers):
            if existing == gltf_sampler:
                return i

        return self.document.add_sampler(gltf_sampler)

    def add_image(self, image: Any) -> int:
        if image is None:
            raise ValueError("Cannot register an empty image")

        key = image_dedup_key(image)
        for i, existing in enumerate(self.document.image_keys):
            if existing == key:
                return i

        gltf_image: Dict[str, Any] = {}
        index = self.document.add_image(gltf_image, key)
        # Keep handles alive so their id() stays unique for the whole build
        self._image_handles.append(image)

        if isinstance(image, ImageURI):
            gltf_image["uri"] = image.uri
            return index

        output_type = self.options.image_output_type
        if output_type == ImageOutputType.GLB:
            buffer_view = self.bin_chunk_buffer().add_buffer_view(
                ComponentType.UNSIGNED_BYTE, DataType.SCALAR
            )
            self.document.track(buffer_view.write_async(self._encode(index, image)))
            gltf_image["bufferView"] = buffer_view.index
            gltf_image["mimeType"] = IMAGE_MIME_TYPE

        elif output_type == ImageOutputType.DATA_URI:
            gltf_image["uri"] = self.options.data_uri_encoder(image)

        else:
            pending = PendingImage(index=index, filename=f"img{index + 1}.png")
            pending.future = asyncio.ensure_future(
                write_external_image(
                    self._encode(index, image),
                    pending,
                    self.document.set_image_uri,
                    self.document.add_external_file,
                )
            )
            self.document.pending_images.append(pending)
            self.document.track(pending.future)

        return index

    async def _encode(self, index: int, image: Any) -> bytes:
        try:
            return await self.options.image_encoder(image)
        except Exception as e:
            logger.error(f"Encoding image {index} failed: {str(e)}")
            raise

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def finalize(self) -> GLTFDocument:
        """Seal the shared GLB buffer; call only after all pending writes resolved"""
        document = self.document
        if document.bin_chunk_buffer is not None:
            document.bin_chunk = document.bin_chunk_buffer.finalize()

        self.stats = {
            "scenes": len(document.scenes),
            "nodes": len(document.nodes),
            "meshes": len(document.meshes),
            "primitives": sum(len(m["primitives"]) for m in document.meshes),
            "materials": len(document.materials),
            "images": len(document.images),
            "accessors": len(document.accessors),
            "buffers": len(document.buffers),
        }
        logger.info(f"Document finalized: {self.stats}")
        return document


async def write_external_image(source, pending: PendingImage, set_uri, store_file):
    """Second phase of an external image: store the file, then patch the uri"""
    data = await source
    store_file(pending.filename, data)
    set_uri(pending.index, pending.filename)
    logger.debug(f"Image {pending.index} written as {pending.filename} ({len(data)} bytes)")


async def build_document(asset: GLTFAsset, options: Optional[ExportOptions] = None) -> GLTFDocument:
    """
    Build a complete document from an asset.

    Walks the asset, waits for every dispatched image encode, then seals
    the shared buffer. Any encode failure propagates and no document is
    returned.
    """
    builder = GLTFBuilder(options)
    builder.add_scenes(asset)
    await builder.document.wait_pending()
    return builder.finalize()
