"""
glTF Validator

Checks exported documents for structural problems before they reach a
renderer. Works on an in-memory JSON tree, on GLB bytes, or on files.

Validation Checks:
- Structure: asset block, default scene, index references
- Nodes: mesh and children are mutually exclusive
- Geometry: POSITION is a bounded VEC3, accessors fit their buffer views
- Buffers: buffer views inside buffer bounds, 4-byte aligned BIN chunk
- Materials / textures: alpha modes, image sources
"""

import json
import logging
import struct
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .constants import COMPONENT_SIZES, DATA_TYPE_SIZES, ComponentType, DataType

logger = logging.getLogger("GLTFSceneExport.validator")


class Severity(Enum):
    ERROR = "error"      # Document is broken
    WARNING = "warning"  # Loads, but probably not as intended
    INFO = "info"


@dataclass
class ValidationIssue:
    severity: Severity
    category: str
    message: str
    path: Optional[str] = None  # JSON path, e.g. meshes[0].primitives[1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "category": self.category,
            "message": self.message,
            "path": self.path,
        }


@dataclass
class ValidationReport:
    source: str = "<memory>"
    valid: bool = True
    issues: List[ValidationIssue] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)

    def add(self, severity: Severity, category: str, message: str, path: str = None):
        self.issues.append(ValidationIssue(severity, category, message, path))
        if severity == Severity.ERROR:
            self.valid = False

    def error(self, category: str, message: str, path: str = None):
        self.add(Severity.ERROR, category, message, path)

    def warning(self, category: str, message: str, path: str = None):
        self.add(Severity.WARNING, category, message, path)

    def _count(self, severity: Severity) -> int:
        return sum(1 for issue in self.issues if issue.severity == severity)

    @property
    def error_count(self) -> int:
        return self._count(Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return self._count(Severity.WARNING)

    @property
    def errors(self) -> List[str]:
        return [i.message for i in self.issues if i.severity == Severity.ERROR]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "valid": self.valid,
            "error_count": self.error_count,
            "warning_count": self.warning_count,
            "issues": [i.to_dict() for i in self.issues],
            "stats": self.stats,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def summary(self) -> str:
        lines = [
            f"Validation Report: {self.source}",
            f"Status: {'VALID' if self.valid else 'INVALID'}",
            f"Errors: {self.error_count}, Warnings: {self.warning_count}",
        ]
        if self.stats:
            lines.append(f"Stats: {self.stats}")
        for issue in self.issues:
            lines.append(f"  [{issue.severity.value}] [{issue.category}] {issue.message}")
            if issue.path:
                lines.append(f"      at {issue.path}")
        return "\n".join(lines)


def parse_glb(data: bytes) -> Tuple[Dict[str, Any], Optional[bytes]]:
    """Split GLB bytes into the JSON tree and the BIN chunk"""
    if len(data) < 20 or data[:4] != b'glTF':
        raise ValueError("Invalid GLB magic bytes")

    version, total_length = struct.unpack_from('<II', data, 4)
    if version != 2:
        raise ValueError(f"Unsupported GLB version: {version}")
    if total_length != len(data):
        raise ValueError(f"GLB length {total_length} does not match data size {len(data)}")

    offset = 12
    gltf = None
    binary = None
    while offset < total_length:
        chunk_length, chunk_type = struct.unpack_from('<I4s', data, offset)
        chunk = data[offset + 8:offset + 8 + chunk_length]
        if chunk_type == b'JSON':
            gltf = json.loads(chunk.decode('utf-8'))
        elif chunk_type == b'BIN\x00':
            binary = chunk
        offset += 8 + chunk_length

    if gltf is None:
        raise ValueError("GLB has no JSON chunk")
    return gltf, binary


class GLTFValidator:
    """Validates one glTF JSON tree (plus an optional BIN chunk)"""

    def __init__(self, gltf: Dict[str, Any], binary: Optional[bytes] = None, source: str = "<memory>"):
        self.gltf = gltf
        self.binary = binary
        self.report = ValidationReport(source=source)

    def validate(self) -> ValidationReport:
        self._validate_structure()
        self._validate_nodes()
        self._validate_meshes()
        self._validate_accessors()
        self._validate_buffers()
        self._validate_materials()
        self._validate_textures()
        self._gather_stats()
        return self.report

    def _array(self, name: str) -> List[Dict[str, Any]]:
        return self.gltf.get(name, [])

    def _check_index(self, idx: Any, target_array: str, path: str):
        if not isinstance(idx, int) or not (0 <= idx < len(self._array(target_array))):
            self.report.error("reference", f"Invalid {target_array} index {idx}", path)

    def _validate_structure(self):
        asset = self.gltf.get("asset")
        if asset is None:
            self.report.error("structure", "Missing required 'asset' property")
        elif asset.get("version") != "2.0":
            self.report.error("structure", f"Unexpected asset.version: {asset.get('version')}")

        for name in ("scenes", "nodes", "meshes", "materials", "textures", "images",
                     "samplers", "accessors", "bufferViews", "buffers"):
            if name in self.gltf and not self.gltf[name]:
                self.report.warning("structure", f"Empty '{name}' array should be omitted")

        if "scene" in self.gltf:
            self._check_index(self.gltf["scene"], "scenes", "scene")

        for i, scene in enumerate(self._array("scenes")):
            for j, idx in enumerate(scene.get("nodes", [])):
                self._check_index(idx, "nodes", f"scenes[{i}].nodes[{j}]")

    def _validate_nodes(self):
        for i, node in enumerate(self._array("nodes")):
            path = f"nodes[{i}]"
            if "mesh" in node:
                self._check_index(node["mesh"], "meshes", f"{path}.mesh")
                if node.get("children"):
                    self.report.error("node", "Node has both mesh and children", path)
            for j, idx in enumerate(node.get("children", [])):
                self._check_index(idx, "nodes", f"{path}.children[{j}]")
                if idx == i:
                    self.report.error("node", "Node is its own child", path)

            for key, size in (("translation", 3), ("rotation", 4), ("scale", 3)):
                if key in node and len(node[key]) != size:
                    self.report.error("node", f"{key} must have {size} components", path)

    def _validate_meshes(self):
        accessors = self._array("accessors")
        for i, mesh in enumerate(self._array("meshes")):
            primitives = mesh.get("primitives", [])
            if not primitives:
                self.report.warning("mesh", "Mesh has no primitives", f"meshes[{i}]")

            for j, prim in enumerate(primitives):
                path = f"meshes[{i}].primitives[{j}]"
                attributes = prim.get("attributes", {})

                for name, idx in attributes.items():
                    self._check_index(idx, "accessors", f"{path}.attributes.{name}")

                if "material" in prim:
                    self._check_index(prim["material"], "materials", f"{path}.material")

                pos_idx = attributes.get("POSITION")
                if pos_idx is None:
                    self.report.error("mesh", "Missing POSITION attribute", path)
                elif isinstance(pos_idx, int) and pos_idx < len(accessors):
                    accessor = accessors[pos_idx]
                    if accessor.get("type") != "VEC3":
                        self.report.error("mesh", "POSITION must be VEC3", path)
                    if "min" not in accessor or "max" not in accessor:
                        self.report.error("mesh", "POSITION accessor requires min and max", path)

                counts = {
                    accessors[idx].get("count")
                    for idx in attributes.values()
                    if isinstance(idx, int) and idx < len(accessors)
                }
                if len(counts) > 1:
                    self.report.error("mesh", f"Attribute counts differ: {sorted(counts)}", path)

                mode = prim.get("mode", 4)
                if mode not in range(7):
                    self.report.error("mesh", f"Invalid primitive mode: {mode}", path)

    def _validate_accessors(self):
        buffer_views = self._array("bufferViews")
        for i, accessor in enumerate(self._array("accessors")):
            path = f"accessors[{i}]"
            view_idx = accessor.get("bufferView")
            self._check_index(view_idx, "bufferViews", f"{path}.bufferView")
            if not isinstance(view_idx, int) or not (0 <= view_idx < len(buffer_views)):
                continue

            try:
                component_size = COMPONENT_SIZES[ComponentType(accessor["componentType"])]
                components = DATA_TYPE_SIZES[DataType(accessor["type"])]
            except (KeyError, ValueError):
                self.report.error("accessor", "Invalid componentType or type", path)
                continue

            offset = accessor.get("byteOffset", 0)
            if offset % component_size:
                self.report.error("accessor", f"byteOffset {offset} not aligned to component size", path)

            end = offset + accessor.get("count", 0) * component_size * components
            view_length = buffer_views[view_idx].get("byteLength", 0)
            if end > view_length:
                self.report.error(
                    "accessor",
                    f"Accessor ends at byte {end}, past bufferView length {view_length}",
                    path,
                )

            if len(accessor.get("min", [])) not in (0, components):
                self.report.error("accessor", "min has wrong component count", path)
            if len(accessor.get("max", [])) not in (0, components):
                self.report.error("accessor", "max has wrong component count", path)

    def _validate_buffers(self):
        buffers = self._array("buffers")
        for i, view in enumerate(self._array("bufferViews")):
            path = f"bufferViews[{i}]"
            buffer_idx = view.get("buffer")
            self._check_index(buffer_idx, "buffers", f"{path}.buffer")
            if not isinstance(buffer_idx, int) or not (0 <= buffer_idx < len(buffers)):
                continue

            end = view.get("byteOffset", 0) + view.get("byteLength", 0)
            buffer_length = buffers[buffer_idx].get("byteLength", 0)
            if end > buffer_length:
                self.report.error(
                    "buffer",
                    f"bufferView ends at byte {end}, past buffer length {buffer_length}",
                    path,
                )

        for i, buffer in enumerate(buffers):
            path = f"buffers[{i}]"
            if buffer.get("byteLength", 0) < 1:
                self.report.warning("buffer", "Buffer is empty", path)
            if "uri" not in buffer:
                if self.binary is None:
                    self.report.error("buffer", "Buffer has no uri and there is no BIN chunk", path)
                elif i != 0:
                    self.report.error("buffer", "Only buffers[0] may reference the BIN chunk", path)
                else:
                    if len(self.binary) % 4:
                        self.report.error("buffer", "BIN chunk is not 4-byte aligned", path)
                    if buffer.get("byteLength", 0) > len(self.binary):
                        self.report.error("buffer", "Buffer is longer than the BIN chunk", path)

    def _validate_materials(self):
        for i, mat in enumerate(self._array("materials")):
            path = f"materials[{i}]"
            pbr = mat.get("pbrMetallicRoughness", {})

            base_color = pbr.get("baseColorFactor", [1, 1, 1, 1])
            if len(base_color) != 4:
                self.report.error("material", "baseColorFactor must have 4 components", path)
            elif any(c < 0 or c > 1 for c in base_color):
                self.report.warning("material", "baseColorFactor values should be 0-1", path)

            tex_info = pbr.get("baseColorTexture")
            if tex_info is not None:
                self._check_index(tex_info.get("index"), "textures", f"{path}.baseColorTexture")

            alpha_mode = mat.get("alphaMode", "OPAQUE")
            if alpha_mode not in ("OPAQUE", "MASK", "BLEND"):
                self.report.error("material", f"Invalid alphaMode: {alpha_mode}", path)

    def _validate_textures(self):
        for i, tex in enumerate(self._array("textures")):
            path = f"textures[{i}]"
            if "source" in tex:
                self._check_index(tex["source"], "images", f"{path}.source")
            if "sampler" in tex:
                self._check_index(tex["sampler"], "samplers", f"{path}.sampler")

        for i, image in enumerate(self._array("images")):
            path = f"images[{i}]"
            if "uri" in image:
                if not image["uri"]:
                    self.report.error("image", "Image has an empty uri", path)
            elif "bufferView" in image:
                self._check_index(image["bufferView"], "bufferViews", f"{path}.bufferView")
                if "mimeType" not in image:
                    self.report.error("image", "bufferView image requires mimeType", path)
            else:
                self.report.error("image", "Image has no uri or bufferView", path)

    def _gather_stats(self):
        stats = {name: len(self._array(name)) for name in (
            "scenes", "nodes", "meshes", "materials", "textures", "images",
            "accessors", "bufferViews", "buffers",
        )}
        stats["primitives"] = sum(len(m.get("primitives", [])) for m in self._array("meshes"))
        stats["generator"] = self.gltf.get("asset", {}).get("generator", "Unknown")
        self.report.stats = stats


def validate_document(gltf: Dict[str, Any], binary: Optional[bytes] = None, source: str = "<memory>") -> ValidationReport:
    """Validate a glTF JSON tree and its optional BIN chunk"""
    return GLTFValidator(gltf, binary, source).validate()


def validate_glb_bytes(data: bytes, source: str = "<memory>") -> ValidationReport:
    try:
        gltf, binary = parse_glb(data)
    except (ValueError, struct.error, json.JSONDecodeError) as e:
        report = ValidationReport(source=source)
        report.error("format", f"Failed to parse GLB: {e}")
        return report
    return validate_document(gltf, binary, source)


def validate_gltf(filepath: str) -> ValidationReport:
    """
    Validate a .gltf or .glb file.

    Args:
        filepath: Path to the file

    Returns:
        ValidationReport with all issues
    """
    path = Path(filepath)
    if not path.exists():
        report = ValidationReport(source=str(filepath))
        report.error("file", f"File not found: {filepath}")
        return report

    if path.suffix.lower() == '.glb':
        return validate_glb_bytes(path.read_bytes(), str(filepath))

    try:
        gltf = json.loads(path.read_text(encoding='utf-8'))
    except (OSError, json.JSONDecodeError) as e:
        report = ValidationReport(source=str(filepath))
        report.error("parse", f"Failed to parse file: {e}")
        return report
    return validate_document(gltf, None, str(filepath))


# ============================================================================
# CLI
# ============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Validate GLTF/GLB files")
    parser.add_argument("filepath", help="Path to GLTF/GLB file")
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    parser.add_argument("--strict", action="store_true", help="Treat warnings as errors")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    report = validate_gltf(args.filepath)
    if args.strict and report.warning_count > 0:
        report.valid = False

    print(report.to_json() if args.json else report.summary())
    return 0 if report.valid else 1


if __name__ == "__main__":
    sys.exit(main())
