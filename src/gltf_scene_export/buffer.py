"""
Buffer Packing

Buffer / BufferView / accessor segment bookkeeping for the exporter.

A BufferView is a typed, growable byte region. Components are pushed one
at a time; start_accessor()/end_accessor() carve runs of pushed elements
into accessors and track per-component min/max while doing so.

A Buffer owns its views in creation order. Document indices for views are
reserved when a view is created, byte offsets are assigned when the buffer
is finalized. Views filled by an async producer (write_async) can therefore
complete in any order without moving each other.
"""

import asyncio
import logging
import struct
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, List, Optional

from .constants import (
    COMPONENT_FORMATS,
    COMPONENT_SIZES,
    DATA_TYPE_SIZES,
    ComponentType,
    DataType,
)
from .exceptions import GLTFExportError

if TYPE_CHECKING:
    from .document import GLTFDocument

logger = logging.getLogger("GLTFSceneExport.buffer")

# Every view starts on a 4-byte boundary so FLOAT accessors stay aligned
VIEW_ALIGNMENT = 4


def align(value: int, bound: int = VIEW_ALIGNMENT) -> int:
    """Round value up to the next multiple of bound"""
    return (value + bound - 1) // bound * bound


@dataclass
class BufferAccessorInfo:
    """Everything needed to register a document accessor for one segment"""
    name: str
    component_type: ComponentType
    data_type: DataType
    byte_offset: int
    count: int
    min: List[Any] = field(default_factory=list)
    max: List[Any] = field(default_factory=list)
    normalized: bool = False


@dataclass
class _AccessorSegment:
    name: str
    start_component: int
    normalized: bool = False
    components: int = 0
    min: List[Any] = field(default_factory=list)
    max: List[Any] = field(default_factory=list)


class BufferView:
    """Typed byte region inside a Buffer"""

    def __init__(
        self,
        buffer: "Buffer",
        index: int,
        component_type: ComponentType,
        data_type: DataType,
        target: Optional[int] = None,
    ):
        self.buffer = buffer
        self.index = index
        self.component_type = ComponentType(component_type)
        self.data_type = DataType(data_type)
        self.target = target

        self.byte_offset: Optional[int] = None
        self.finalized = False

        self._format = '<' + COMPONENT_FORMATS[self.component_type]
        self._stride = DATA_TYPE_SIZES[self.data_type]
        self._data = bytearray()
        self._components = 0
        self._segment: Optional[_AccessorSegment] = None
        self._pending: Optional[asyncio.Future] = None

    @property
    def byte_length(self) -> int:
        return len(self._data)

    @property
    def data(self) -> bytes:
        return bytes(self._data)

    @property
    def element_size(self) -> int:
        return COMPONENT_SIZES[self.component_type] * self._stride

    def _check_open(self):
        if self.finalized:
            raise RuntimeError(f"Buffer view {self.index} is finalized")

    def start_accessor(self, name: str, normalized: bool = False):
        """Begin a new accessor at the current element boundary"""
        self._check_open()
        if self._segment is not None:
            raise RuntimeError(
                f"Accessor '{self._segment.name}' still open on buffer view {self.index}"
            )
        if self._components % self._stride:
            raise RuntimeError(f"Buffer view {self.index} ends with a partial element")
        self._segment = _AccessorSegment(
            name=name,
            start_component=self._components,
            normalized=normalized,
        )

    def push(self, value):
        """Append one component"""
        self._check_open()
        if self.component_type == ComponentType.FLOAT:
            packed = struct.pack(self._format, float(value))
            # Bounds must describe what is actually stored
            value = struct.unpack(self._format, packed)[0]
        else:
            value = int(value)
            packed = struct.pack(self._format, value)
        self._data.extend(packed)

        segment = self._segment
        if segment is not None:
            slot = segment.components % self._stride
            if segment.components < self._stride:
                segment.min.append(value)
                segment.max.append(value)
            else:
                if value < segment.min[slot]:
                    segment.min[slot] = value
                if value > segment.max[slot]:
                    segment.max[slot] = value
            segment.components += 1
        self._components += 1

    def end_accessor(self) -> BufferAccessorInfo:
        """Close the open accessor and return its description"""
        segment = self._segment
        if segment is None:
            raise RuntimeError(f"No accessor open on buffer view {self.index}")
        if segment.components % self._stride:
            raise RuntimeError(
                f"Accessor '{segment.name}' has {segment.components} components, "
                f"not a multiple of {self._stride}"
            )
        self._segment = None

        component_size = COMPONENT_SIZES[self.component_type]
        return BufferAccessorInfo(
            name=segment.name,
            component_type=self.component_type,
            data_type=self.data_type,
            byte_offset=segment.start_component * component_size,
            count=segment.components // self._stride,
            min=segment.min,
            max=segment.max,
            normalized=segment.normalized,
        )

    def write(self, data: bytes):
        """Append raw bytes (images and other opaque payloads)"""
        self._check_open()
        self._data.extend(data)
        self._components += len(data) // COMPONENT_SIZES[self.component_type]

    def write_async(self, source: Awaitable[bytes]) -> asyncio.Future:
        """
        Fill the view from an async producer.

        The view keeps its place in the buffer; it is finalized once the
        producer completes. Must be called with a running event loop.
        """
        self._check_open()
        if self._pending is not None:
            raise RuntimeError(f"Buffer view {self.index} already has a pending write")

        async def _fill():
            data = await source
            self.write(data)
            self.finalize()
            logger.debug(f"Buffer view {self.index} filled with {len(data)} bytes")

        self._pending = asyncio.ensure_future(_fill())
        return self._pending

    def finalize(self):
        """Seal the view; no more pushes or writes"""
        if self.finalized:
            return
        if self._segment is not None:
            raise RuntimeError(
                f"Accessor '{self._segment.name}' still open on buffer view {self.index}"
            )
        self.finalized = True


class Buffer:
    """
    Growable byte buffer made of BufferViews.

    Creating a Buffer reserves its slot in document.buffers; creating a view
    reserves its slot in document.buffer_views. Offsets and lengths are
    filled in by finalize().
    """

    def __init__(self, document: "GLTFDocument", binary_chunk: bool = False):
        self.document = document
        self.binary_chunk = binary_chunk
        self.views: List[BufferView] = []
        self.finalized = False
        self._data: Optional[bytes] = None
        self.index = document.reserve_buffer()

    def add_buffer_view(
        self,
        component_type: ComponentType,
        data_type: DataType,
        target: Optional[int] = None,
    ) -> BufferView:
        if self.finalized:
            raise RuntimeError(f"Buffer {self.index} is finalized")
        index = self.document.reserve_buffer_view(self.index)
        view = BufferView(self, index, component_type, data_type, target)
        self.views.append(view)
        return view

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise GLTFExportError(f"Buffer {self.index} is not finalized")
        return self._data

    @property
    def byte_length(self) -> int:
        return len(self.data)

    def finalize(self) -> bytes:
        """
        Lay out all views in creation order and fix the buffer length.

        Every view must be finalized first, including the ones filled by
        write_async(). A binary chunk buffer is padded to 4 bytes.
        """
        if self.finalized:
            return self.data

        unfinished = [view.index for view in self.views if not view.finalized]
        if unfinished:
            raise GLTFExportError(
                f"Buffer {self.index} has unfinished buffer views: {unfinished}"
            )

        data = bytearray()
        for view in self.views:
            offset = align(len(data))
            data.extend(b'\x00' * (offset - len(data)))
            view.byte_offset = offset
            data.extend(view.data)

            entry = self.document.buffer_views[view.index]
            entry["byteOffset"] = offset
            entry["byteLength"] = view.byte_length
            if view.target is not None:
                entry["target"] = view.target

        if self.binary_chunk:
            data.extend(b'\x00' * (align(len(data)) - len(data)))

        self._data = bytes(data)
        self.finalized = True
        self.document.buffers[self.index]["byteLength"] = len(self._data)

        logger.debug(
            f"Buffer {self.index} finalized: {len(self.views)} views, {len(self._data)} bytes"
        )
        return self._data
