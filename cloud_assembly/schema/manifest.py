from __future__ import annotations

import json
import logging
import warnings
from collections.abc import Callable
from functools import lru_cache
from pathlib import Path
from typing import Any

from cloud_assembly.runtime import atomic_write_text
from cloud_assembly.schema.errors import ManifestParseError
from cloud_assembly.schema.stack_tags import patch_stack_tags_on_read, patch_stack_tags_on_write
from cloud_assembly.schema.validation import LoadManifestOptions, validate

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "data"

ASSEMBLY_SCHEMA_FILE = "cloud-assembly.schema.json"
ASSETS_SCHEMA_FILE = "assets.schema.json"
INTEG_SCHEMA_FILE = "integ.schema.json"

Patch = Callable[[dict[str, Any]], dict[str, Any]]


@lru_cache(maxsize=None)
def _read_data(name: str) -> dict[str, Any]:
    return json.loads((DATA_DIR / name).read_text(encoding="utf-8"))


def load_schema(name: str) -> dict[str, Any]:
    return _read_data(name)


class Manifest:
    """Reads, writes and validates the manifests exchanged between synthesis and deployment."""

    @staticmethod
    def version() -> str:
        return f"{_read_data('version.json')['revision']}.0.0"

    @staticmethod
    def cli_version() -> str | None:
        version = _read_data("cli-version.json").get("version")
        return version or None

    @classmethod
    def save_assembly_manifest(cls, manifest: dict[str, Any], file_path: str | Path) -> None:
        cls._save_manifest(manifest, file_path, load_schema(ASSEMBLY_SCHEMA_FILE), patch_stack_tags_on_write)

    @classmethod
    def load_assembly_manifest(
        cls,
        file_path: str | Path,
        options: LoadManifestOptions | None = None,
    ) -> dict[str, Any]:
        return cls._load_manifest(file_path, load_schema(ASSEMBLY_SCHEMA_FILE), patch_stack_tags_on_read, options)

    @classmethod
    def save_asset_manifest(cls, manifest: dict[str, Any], file_path: str | Path) -> None:
        cls._save_manifest(manifest, file_path, load_schema(ASSETS_SCHEMA_FILE), patch_stack_tags_on_read)

    @classmethod
    def load_asset_manifest(
        cls,
        file_path: str | Path,
        options: LoadManifestOptions | None = None,
    ) -> dict[str, Any]:
        return cls._load_manifest(file_path, load_schema(ASSETS_SCHEMA_FILE), patch_stack_tags_on_read, options)

    @classmethod
    def save_integ_manifest(cls, manifest: dict[str, Any], file_path: str | Path) -> None:
        cls._save_manifest(manifest, file_path, load_schema(INTEG_SCHEMA_FILE))

    @classmethod
    def load_integ_manifest(
        cls,
        file_path: str | Path,
        options: LoadManifestOptions | None = None,
    ) -> dict[str, Any]:
        manifest = cls._load_manifest(file_path, load_schema(INTEG_SCHEMA_FILE), options=options)
        # The schema keeps testCases optional for compatibility; readers always get one.
        test_cases = manifest.get("testCases")
        return {**manifest, "testCases": test_cases if test_cases is not None else []}

    @classmethod
    def save(cls, manifest: dict[str, Any], file_path: str | Path) -> None:
        warnings.warn("Manifest.save() is deprecated, use save_assembly_manifest()", DeprecationWarning, stacklevel=2)
        cls.save_assembly_manifest(manifest, file_path)

    @classmethod
    def load(cls, file_path: str | Path) -> dict[str, Any]:
        warnings.warn("Manifest.load() is deprecated, use load_assembly_manifest()", DeprecationWarning, stacklevel=2)
        return cls.load_assembly_manifest(file_path)

    @classmethod
    def validate(
        cls,
        manifest: Any,
        schema: dict[str, Any],
        options: LoadManifestOptions | None = None,
    ) -> None:
        validate(manifest, schema, cls.version(), options)

    @classmethod
    def _save_manifest(
        cls,
        manifest: dict[str, Any],
        file_path: str | Path,
        schema: dict[str, Any],
        preprocess: Patch | None = None,
    ) -> None:
        with_version = {**manifest, "version": cls.version()}
        cli_version = cls.cli_version()
        if cli_version:
            with_version["minimumCliVersion"] = cli_version
        else:
            with_version.pop("minimumCliVersion", None)

        cls.validate(with_version, schema)
        if preprocess is not None:
            with_version = preprocess(with_version)

        path = Path(file_path)
        atomic_write_text(path, json.dumps(with_version, indent=2))
        logger.debug("Wrote manifest version %s to %s", with_version["version"], path)

    @classmethod
    def _load_manifest(
        cls,
        file_path: str | Path,
        schema: dict[str, Any],
        preprocess: Patch | None = None,
        options: LoadManifestOptions | None = None,
    ) -> dict[str, Any]:
        path = Path(file_path)
        contents = path.read_text(encoding="utf-8")
        try:
            obj = json.loads(contents)
        except json.JSONDecodeError as exc:
            raise ManifestParseError(reason=str(exc), contents=contents, path=str(path)) from exc

        if preprocess is not None and isinstance(obj, dict):
            obj = preprocess(obj)
        cls.validate(obj, schema, options)
        logger.debug("Loaded manifest %s (version %s)", path, obj.get("version"))
        return obj
