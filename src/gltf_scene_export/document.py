"""
glTF Document

The output aggregate the builder fills in, plus the export settings.

All entity arrays are append-only lists of JSON-ready dicts. An entity's
position in its list is its reference index for the rest of the build, so
entries are reserved first and filled in later where content arrives
asynchronously (buffer views, buffers, external image URIs).
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .constants import BufferOutputType, ImageOutputType
from .exceptions import DocumentNotReadyError
from .imageutils import encode_png, image_to_data_uri

logger = logging.getLogger("GLTFSceneExport.document")

DEFAULT_GENERATOR = "gltf-scene-export"
DEFAULT_JSON_FILENAME = "model.gltf"
GLTF_VERSION = "2.0"

# Top-level arrays in serialization order: (attribute, JSON key)
DOCUMENT_ARRAYS = (
    ("scenes", "scenes"),
    ("nodes", "nodes"),
    ("meshes", "meshes"),
    ("materials", "materials"),
    ("textures", "textures"),
    ("images", "images"),
    ("samplers", "samplers"),
    ("accessors", "accessors"),
    ("buffer_views", "bufferViews"),
    ("buffers", "buffers"),
)


@dataclass
class ExportOptions:
    """Settings for a single export"""
    buffer_output_type: BufferOutputType = BufferOutputType.DATA_URI
    image_output_type: ImageOutputType = ImageOutputType.DATA_URI

    json_filename: str = DEFAULT_JSON_FILENAME
    generator: str = DEFAULT_GENERATOR

    # Image handle -> PNG bytes (async), and image handle -> data URI
    image_encoder: Callable[[Any], Awaitable[bytes]] = encode_png
    data_uri_encoder: Callable[[Any], str] = image_to_data_uri


@dataclass
class PendingImage:
    """Placeholder image entry waiting for its external file"""
    index: int
    filename: str
    future: Optional[asyncio.Future] = None

    @property
    def done(self) -> bool:
        return self.future is not None and self.future.done()


class GLTFDocument:
    """
    In-progress glTF document.

    Serialization (to_dict/to_json) is refused until every tracked async
    completion has resolved and every image has a uri or bufferView.
    """

    def __init__(self, options: Optional[ExportOptions] = None):
        self.options = options or ExportOptions()

        self.scene: Optional[int] = None
        self.asset: Dict[str, Any] = {
            "version": GLTF_VERSION,
            "generator": self.options.generator,
        }

        self.scenes: List[Dict[str, Any]] = []
        self.nodes: List[Dict[str, Any]] = []
        self.meshes: List[Dict[str, Any]] = []
        self.materials: List[Dict[str, Any]] = []
        self.textures: List[Dict[str, Any]] = []
        self.images: List[Dict[str, Any]] = []
        self.samplers: List[Dict[str, Any]] = []
        self.accessors: List[Dict[str, Any]] = []
        self.buffer_views: List[Dict[str, Any]] = []
        self.buffers: List[Dict[str, Any]] = []

        # Parallel to self.images, never serialized
        self.image_keys: List[Any] = []

        self.pending: List[asyncio.Future] = []
        self.pending_images: List[PendingImage] = []

        # Shared GLB buffer (buffer.Buffer) and its final bytes
        self.bin_chunk_buffer = None
        self.bin_chunk: Optional[bytes] = None

        # Side files produced by external output modes: file name -> bytes
        self.external_files: Dict[str, bytes] = {}

    # ------------------------------------------------------------------
    # Index reservation
    # ------------------------------------------------------------------

    @staticmethod
    def _append(array: List[Dict[str, Any]], entry: Dict[str, Any]) -> int:
        array.append(entry)
        return len(array) - 1

    def reserve_buffer(self) -> int:
        return self._append(self.buffers, {})

    def reserve_buffer_view(self, buffer_index: int) -> int:
        return self._append(self.buffer_views, {"buffer": buffer_index})

    def add_scene(self, scene: Dict[str, Any]) -> int:
        return self._append(self.scenes, scene)

    def add_node(self, node: Dict[str, Any]) -> int:
        return self._append(self.nodes, node)

    def add_mesh(self, mesh: Dict[str, Any]) -> int:
        return self._append(self.meshes, mesh)

    def add_material(self, material: Dict[str, Any]) -> int:
        return self._append(self.materials, material)

    def add_texture(self, texture: Dict[str, Any]) -> int:
        return self._append(self.textures, texture)

    def add_sampler(self, sampler: Dict[str, Any]) -> int:
        return self._append(self.samplers, sampler)

    def add_accessor(self, accessor: Dict[str, Any]) -> int:
        return self._append(self.accessors, accessor)

    def add_image(self, image: Dict[str, Any], key: Any) -> int:
        self.image_keys.append(key)
        return self._append(self.images, image)

    # ------------------------------------------------------------------
    # Deferred writes
    # ------------------------------------------------------------------

    def track(self, future: asyncio.Future) -> asyncio.Future:
        """Register a completion that must resolve before serialization"""
        self.pending.append(future)
        return future

    def set_image_uri(self, index: int, uri: str):
        """Patch the uri of an already-inserted image"""
        if not uri:
            raise ValueError(f"Refusing to set an empty uri on image {index}")
        self.images[index]["uri"] = uri

    def add_external_file(self, filename: str, data: bytes):
        self.external_files[filename] = data

    @property
    def has_pending(self) -> bool:
        return any(not future.done() for future in self.pending)

    async def wait_pending(self):
        """Join point: wait for every tracked completion, failing on the first error"""
        if not self.pending:
            return
        logger.info(f"Waiting for {len(self.pending)} pending image writes")
        try:
            await asyncio.gather(*self.pending)
        except Exception:
            # Collect every dispatched write before the error leaves the build
            unfinished = [future for future in self.pending if not future.done()]
            for future in unfinished:
                future.cancel()
            await asyncio.gather(*self.pending, return_exceptions=True)
            logger.error(f"Async write failed, cancelled {len(unfinished)} pending writes")
            raise

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def _check_ready(self):
        if self.has_pending:
            raise DocumentNotReadyError(
                f"{sum(1 for f in self.pending if not f.done())} async writes still pending"
            )
        for future in self.pending:
            if future.cancelled() or future.exception() is not None:
                raise DocumentNotReadyError("An async write failed or was cancelled")
        for i, image in enumerate(self.images):
            if "uri" not in image and "bufferView" not in image:
                raise DocumentNotReadyError(f"Image {i} has no uri or bufferView yet")
        for i, buffer in enumerate(self.buffers):
            if "byteLength" not in buffer:
                raise DocumentNotReadyError(f"Buffer {i} is not finalized")

    def to_dict(self) -> Dict[str, Any]:
        """JSON tree of the finished document; empty arrays are left out"""
        self._check_ready()

        result: Dict[str, Any] = {"asset": dict(self.asset)}
        if self.scene is not None:
            result["scene"] = self.scene
        for attr, key in DOCUMENT_ARRAYS:
            entries = getattr(self, attr)
            if entries:
                result[key] = [dict(entry) for entry in entries]
        return result

    def to_json(self, indent: Optional[int] = None) -> str:
        separators = (',', ':') if indent is None else None
        return json.dumps(self.to_dict(), indent=indent, separators=separators)
