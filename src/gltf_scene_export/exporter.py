"""
glTF Exporter

Turns a GLTFAsset into files:
- export_gltf: .gltf JSON plus side files (data{n}.bin, img{n}.png)
- export_glb: single GLB container (JSON chunk + BIN chunk)
- export_gltf_zip: the export_gltf file set in one zip archive
- save: write any of the above to disk, picked by file extension

Every export has an *_async twin for callers already running an event loop.

Usage:
    from gltf_scene_export import export_glb, save

    glb_bytes = export_glb(asset)
    save(asset, "out/model.gltf")
"""

import asyncio
import io
import json
import logging
import struct
import zipfile
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .builder import build_document
from .constants import BufferOutputType, ImageOutputType
from .document import ExportOptions
from .model import GLTFAsset

logger = logging.getLogger("GLTFSceneExport.exporter")

GLB_MAGIC = b'glTF'
GLB_VERSION = 2
GLB_HEADER_SIZE = 12
CHUNK_HEADER_SIZE = 8
CHUNK_JSON = b'JSON'
CHUNK_BIN = b'BIN\x00'

FileSet = Dict[str, Union[str, bytes]]


def encode_glb(gltf: Dict[str, Any], binary_data: Optional[bytes] = None) -> bytes:
    """Pack a glTF JSON tree and its binary chunk into a GLB container"""
    json_bytes = json.dumps(gltf, separators=(',', ':')).encode('utf-8')

    # Pad JSON to 4-byte alignment with spaces
    json_bytes += b' ' * ((4 - len(json_bytes) % 4) % 4)

    chunks = [(CHUNK_JSON, json_bytes)]
    if binary_data is not None:
        # Pad binary to 4-byte alignment with zeros
        binary_data = binary_data + b'\x00' * ((4 - len(binary_data) % 4) % 4)
        chunks.append((CHUNK_BIN, binary_data))

    total_length = GLB_HEADER_SIZE + sum(CHUNK_HEADER_SIZE + len(data) for _, data in chunks)

    out = io.BytesIO()
    out.write(GLB_MAGIC)
    out.write(struct.pack('<I', GLB_VERSION))
    out.write(struct.pack('<I', total_length))
    for chunk_type, data in chunks:
        out.write(struct.pack('<I', len(data)))
        out.write(chunk_type)
        out.write(data)

    return out.getvalue()


def _gltf_options(options: Optional[ExportOptions]) -> ExportOptions:
    """A .gltf file set has no binary chunk; GLB outputs become external files"""
    options = replace(options) if options else ExportOptions()
    if options.buffer_output_type == BufferOutputType.GLB:
        logger.warning("GLB buffer output not possible for .gltf, writing external .bin files")
        options.buffer_output_type = BufferOutputType.EXTERNAL
    if options.image_output_type == ImageOutputType.GLB:
        logger.warning("GLB image output not possible for .gltf, writing external image files")
        options.image_output_type = ImageOutputType.EXTERNAL
    return options


def _glb_options(options: Optional[ExportOptions]) -> ExportOptions:
    """A GLB is a single file: meshes always go to the BIN chunk, external images too"""
    if options is None:
        return ExportOptions(
            buffer_output_type=BufferOutputType.GLB,
            image_output_type=ImageOutputType.GLB,
        )
    options = replace(options, buffer_output_type=BufferOutputType.GLB)
    if options.image_output_type == ImageOutputType.EXTERNAL:
        options.image_output_type = ImageOutputType.GLB
    return options


async def export_gltf_async(asset: GLTFAsset, options: Optional[ExportOptions] = None) -> FileSet:
    options = _gltf_options(options)
    document = await build_document(asset, options)

    files: FileSet = {options.json_filename: document.to_json(indent=2)}
    files.update(document.external_files)

    logger.info(f"Exported {options.json_filename} with {len(files) - 1} side files")
    return files


async def export_glb_async(asset: GLTFAsset, options: Optional[ExportOptions] = None) -> bytes:
    options = _glb_options(options)
    document = await build_document(asset, options)

    data = encode_glb(document.to_dict(), document.bin_chunk)
    logger.info(f"Exported GLB: {len(data)} bytes")
    return data


async def export_gltf_zip_async(asset: GLTFAsset, options: Optional[ExportOptions] = None) -> bytes:
    files = await export_gltf_async(asset, options)

    stream = io.BytesIO()
    with zipfile.ZipFile(stream, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return stream.getvalue()


def export_gltf(asset: GLTFAsset, options: Optional[ExportOptions] = None) -> FileSet:
    """
    Export as a .gltf file set.

    Returns:
        Dict mapping file names to content (str for the JSON, bytes otherwise)
    """
    return asyncio.run(export_gltf_async(asset, options))


def export_glb(asset: GLTFAsset, options: Optional[ExportOptions] = None) -> bytes:
    """Export as a single GLB container"""
    return asyncio.run(export_glb_async(asset, options))


def export_gltf_zip(asset: GLTFAsset, options: Optional[ExportOptions] = None) -> bytes:
    """Export the .gltf file set as zip archive bytes"""
    return asyncio.run(export_gltf_zip_async(asset, options))


def write_files(files: FileSet, directory: Union[str, Path]) -> Path:
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    for name, content in files.items():
        path = directory / name
        if isinstance(content, str):
            path.write_text(content, encoding='utf-8')
        else:
            path.write_bytes(content)
    return directory


def save(
    asset: GLTFAsset,
    output_path: Union[str, Path],
    options: Optional[ExportOptions] = None,
) -> str:
    """
    Export and write to disk.

    .glb writes a container, .zip an archive, anything else a .gltf file
    set (side files land next to the JSON).

    Returns:
        Path to the written file
    """
    output_path = Path(output_path)
    suffix = output_path.suffix.lower()

    if suffix == '.glb':
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(export_glb(asset, options))
    elif suffix == '.zip':
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(export_gltf_zip(asset, options))
    else:
        options = replace(options) if options else ExportOptions()
        options.json_filename = output_path.name
        write_files(export_gltf(asset, options), output_path.parent)

    logger.info(f"Saved {output_path}")
    return str(output_path)
