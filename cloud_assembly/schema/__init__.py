from cloud_assembly.schema.errors import (
    VERSION_MISMATCH,
    ForbiddenFieldError,
    InvalidVersionError,
    ManifestError,
    ManifestParseError,
    SchemaValidationError,
    VersionMismatchError,
    is_version_mismatch,
)
from cloud_assembly.schema.manifest import Manifest
from cloud_assembly.schema.validation import LoadManifestOptions, StructuralValidator

__all__ = [
    "VERSION_MISMATCH",
    "ForbiddenFieldError",
    "InvalidVersionError",
    "LoadManifestOptions",
    "Manifest",
    "ManifestError",
    "ManifestParseError",
    "SchemaValidationError",
    "StructuralValidator",
    "VersionMismatchError",
    "is_version_mismatch",
]
