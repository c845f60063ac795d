"""
glTF Constants

Enumerations shared by the scene model, the buffer packer and the exporter.
Values are the literal numbers/strings written into the glTF JSON.
"""

from enum import Enum, IntEnum


class ComponentType(IntEnum):
    BYTE = 5120
    UNSIGNED_BYTE = 5121
    SHORT = 5122
    UNSIGNED_SHORT = 5123
    UNSIGNED_INT = 5125
    FLOAT = 5126


# struct format character per component type (little-endian packing)
COMPONENT_FORMATS = {
    ComponentType.BYTE: 'b',
    ComponentType.UNSIGNED_BYTE: 'B',
    ComponentType.SHORT: 'h',
    ComponentType.UNSIGNED_SHORT: 'H',
    ComponentType.UNSIGNED_INT: 'I',
    ComponentType.FLOAT: 'f',
}

COMPONENT_SIZES = {
    ComponentType.BYTE: 1,
    ComponentType.UNSIGNED_BYTE: 1,
    ComponentType.SHORT: 2,
    ComponentType.UNSIGNED_SHORT: 2,
    ComponentType.UNSIGNED_INT: 4,
    ComponentType.FLOAT: 4,
}


class DataType(str, Enum):
    SCALAR = "SCALAR"
    VEC2 = "VEC2"
    VEC3 = "VEC3"
    VEC4 = "VEC4"


# Components per element
DATA_TYPE_SIZES = {
    DataType.SCALAR: 1,
    DataType.VEC2: 2,
    DataType.VEC3: 3,
    DataType.VEC4: 4,
}


class MeshMode(IntEnum):
    POINTS = 0
    LINES = 1
    LINE_LOOP = 2
    LINE_STRIP = 3
    TRIANGLES = 4
    TRIANGLE_STRIP = 5
    TRIANGLE_FAN = 6


class VertexColorMode(Enum):
    """How a material wants COLOR_0 filled"""
    NO_COLORS = "none"
    FACE_COLORS = "face"
    VERTEX_COLORS = "vertex"


class AlphaMode(str, Enum):
    OPAQUE = "OPAQUE"
    MASK = "MASK"
    BLEND = "BLEND"


class WrappingMode(IntEnum):
    CLAMP_TO_EDGE = 33071
    MIRRORED_REPEAT = 33648
    REPEAT = 10497


class BufferOutputType(Enum):
    """Where mesh buffers end up"""
    GLB = "glb"            # shared binary chunk
    DATA_URI = "data_uri"  # one base64 buffer per mesh
    EXTERNAL = "external"  # one .bin file per mesh


class ImageOutputType(Enum):
    """Where encoded images end up"""
    GLB = "glb"
    DATA_URI = "data_uri"
    EXTERNAL = "external"


# Buffer view targets
ARRAY_BUFFER = 34962

IMAGE_MIME_TYPE = "image/png"
