"""Errors that abort a glTF build."""


class GLTFExportError(RuntimeError):
    """Base class for fatal export errors"""


class UnsupportedMeshModeError(GLTFExportError):
    """Raised for meshes that are not unindexed triangle lists"""


class DocumentNotReadyError(GLTFExportError):
    """Raised when a document is serialized before its pending writes resolved"""
