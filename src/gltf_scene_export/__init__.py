"""
glTF Scene Export

Builds glTF 2.0 documents (JSON + binary buffers) from a procedurally
built scene graph.

Features:
- Scene graph: nodes with TRS transforms, nested children, meshes
- Geometry: POSITION, NORMAL, TEXCOORD_0 and optional COLOR_0 per face run
- Materials: PBR factors, alpha modes, base color textures
- Output: GLB container, .gltf with data URIs or external files, zip

Quick Start:
    from gltf_scene_export import GLTFAsset, Scene, Node, Mesh, Vertex, export_glb

    mesh = Mesh()
    mesh.add_face(Vertex(0, 0, 0), Vertex(1, 0, 0), Vertex(0, 1, 0))
    scene = Scene(name="main")
    scene.add_node(Node("triangle", mesh=mesh))
    asset = GLTFAsset(scenes=[scene])

    glb = export_glb(asset)
"""

from .constants import (
    AlphaMode,
    BufferOutputType,
    ComponentType,
    DataType,
    ImageOutputType,
    MeshMode,
    VertexColorMode,
    WrappingMode,
)
from .model import (
    GLTFAsset,
    ImageURI,
    Material,
    Mesh,
    Node,
    PBRMetallicRoughness,
    RGBAColor,
    RGBColor,
    Scene,
    Texture,
    Vertex,
)
from .buffer import Buffer, BufferAccessorInfo, BufferView
from .document import ExportOptions, GLTFDocument, PendingImage
from .builder import GLTFBuilder, build_document
from .exporter import (
    encode_glb,
    export_glb,
    export_glb_async,
    export_gltf,
    export_gltf_async,
    export_gltf_zip,
    export_gltf_zip_async,
    save,
)
from .validator import ValidationReport, validate_document, validate_glb_bytes, validate_gltf
from .exceptions import DocumentNotReadyError, GLTFExportError, UnsupportedMeshModeError

__all__ = [
    # Main entry points
    'build_document',
    'export_gltf',
    'export_glb',
    'export_gltf_zip',
    'export_gltf_async',
    'export_glb_async',
    'export_gltf_zip_async',
    'save',
    'encode_glb',
    # Scene model
    'GLTFAsset',
    'Scene',
    'Node',
    'Mesh',
    'Vertex',
    'Material',
    'PBRMetallicRoughness',
    'Texture',
    'ImageURI',
    'RGBColor',
    'RGBAColor',
    # Settings and enums
    'ExportOptions',
    'BufferOutputType',
    'ImageOutputType',
    'VertexColorMode',
    'AlphaMode',
    'WrappingMode',
    'MeshMode',
    'ComponentType',
    'DataType',
    # Building blocks
    'GLTFBuilder',
    'GLTFDocument',
    'PendingImage',
    'Buffer',
    'BufferView',
    'BufferAccessorInfo',
    # Validation
    'validate_document',
    'validate_glb_bytes',
    'validate_gltf',
    'ValidationReport',
    # Errors
    'GLTFExportError',
    'UnsupportedMeshModeError',
    'DocumentNotReadyError',
]
