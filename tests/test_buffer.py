"""Buffer views, accessor segments and buffer layout."""

import asyncio
import struct

import pytest

from gltf_scene_export import Buffer, ComponentType, DataType, GLTFDocument, GLTFExportError
from gltf_scene_export.buffer import align


def test_segment_bounds_and_count():
    document = GLTFDocument()
    view = Buffer(document).add_buffer_view(ComponentType.FLOAT, DataType.VEC3)

    view.start_accessor("POSITION")
    for component in (1.0, -2.0, 3.0, -4.0, 5.0, 0.5, 2.0, 2.0, -6.0):
        view.push(component)
    info = view.end_accessor()

    assert info.count == 3
    assert info.min == [-4.0, -2.0, -6.0]
    assert info.max == [2.0, 5.0, 3.0]
    assert info.byte_offset == 0
    assert info.data_type == DataType.VEC3


def test_second_segment_starts_after_first():
    document = GLTFDocument()
    view = Buffer(document).add_buffer_view(ComponentType.FLOAT, DataType.VEC2)

    view.start_accessor("TEXCOORD_0")
    for component in (0.0, 0.0, 1.0, 1.0):
        view.push(component)
    view.end_accessor()

    view.start_accessor("TEXCOORD_0")
    view.push(9.0)
    view.push(-9.0)
    info = view.end_accessor()

    # Bounds cover only the second segment
    assert info.byte_offset == 16
    assert info.count == 1
    assert info.min == [9.0, -9.0]
    assert info.max == [9.0, -9.0]


def test_float_bounds_use_stored_precision():
    document = GLTFDocument()
    view = Buffer(document).add_buffer_view(ComponentType.FLOAT, DataType.SCALAR)

    view.start_accessor("x")
    view.push(0.1)
    info = view.end_accessor()

    assert info.min[0] == struct.unpack('<f', struct.pack('<f', 0.1))[0]
    assert info.min[0] == pytest.approx(0.1)


def test_component_packing():
    document = GLTFDocument()
    buffer = Buffer(document)
    floats = buffer.add_buffer_view(ComponentType.FLOAT, DataType.SCALAR)
    colors = buffer.add_buffer_view(ComponentType.UNSIGNED_BYTE, DataType.VEC4)

    floats.push(1.5)
    for component in (127, 255, 0, 255):
        colors.push(component)

    assert floats.data == struct.pack('<f', 1.5)
    assert colors.data == bytes([127, 255, 0, 255])


def test_push_after_finalize_raises():
    document = GLTFDocument()
    view = Buffer(document).add_buffer_view(ComponentType.FLOAT, DataType.VEC3)
    view.finalize()

    with pytest.raises(RuntimeError):
        view.push(1.0)


def test_partial_element_is_rejected():
    document = GLTFDocument()
    view = Buffer(document).add_buffer_view(ComponentType.FLOAT, DataType.VEC3)

    view.start_accessor("POSITION")
    view.push(1.0)
    with pytest.raises(RuntimeError):
        view.end_accessor()


def test_view_indices_are_reserved_at_creation():
    document = GLTFDocument()
    first = Buffer(document)
    second = Buffer(document)

    a = first.add_buffer_view(ComponentType.FLOAT, DataType.VEC3)
    b = second.add_buffer_view(ComponentType.FLOAT, DataType.VEC3)
    c = first.add_buffer_view(ComponentType.FLOAT, DataType.VEC2)

    assert (first.index, second.index) == (0, 1)
    assert (a.index, b.index, c.index) == (0, 1, 2)
    assert document.buffer_views[2] == {"buffer": 0}


def test_offsets_follow_creation_order_not_completion_order():
    completed = []

    async def produce(name, payload, delay):
        await asyncio.sleep(delay)
        completed.append(name)
        return payload

    async def run():
        document = GLTFDocument()
        buffer = Buffer(document, binary_chunk=True)
        slow = buffer.add_buffer_view(ComponentType.UNSIGNED_BYTE, DataType.SCALAR)
        fast = buffer.add_buffer_view(ComponentType.UNSIGNED_BYTE, DataType.SCALAR)
        tail = buffer.add_buffer_view(ComponentType.FLOAT, DataType.SCALAR)

        document.track(slow.write_async(produce("slow", b'\x01' * 5, 0.05)))
        document.track(fast.write_async(produce("fast", b'\x02' * 3, 0.0)))
        tail.push(2.0)
        tail.finalize()

        with pytest.raises(GLTFExportError):
            buffer.finalize()

        await document.wait_pending()
        return document, buffer.finalize()

    document, data = asyncio.run(run())

    assert completed == ["fast", "slow"]
    views = document.buffer_views
    assert (views[0]["byteOffset"], views[0]["byteLength"]) == (0, 5)
    assert (views[1]["byteOffset"], views[1]["byteLength"]) == (8, 3)
    assert (views[2]["byteOffset"], views[2]["byteLength"]) == (12, 4)
    assert data[:5] == b'\x01' * 5
    assert data[8:11] == b'\x02' * 3
    assert len(data) % 4 == 0
    assert document.buffers[0]["byteLength"] == len(data)


def test_binary_chunk_is_padded():
    document = GLTFDocument()
    buffer = Buffer(document, binary_chunk=True)
    view = buffer.add_buffer_view(ComponentType.UNSIGNED_BYTE, DataType.SCALAR)
    view.write(b'abcde')
    view.finalize()

    data = buffer.finalize()

    assert len(data) == align(5) == 8
    assert document.buffer_views[0]["byteLength"] == 5


def test_plain_buffer_is_not_padded_at_end():
    document = GLTFDocument()
    buffer = Buffer(document)
    view = buffer.add_buffer_view(ComponentType.UNSIGNED_BYTE, DataType.SCALAR)
    view.write(b'abc')
    view.finalize()

    assert len(buffer.finalize()) == 3
