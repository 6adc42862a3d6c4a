from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from jsonschema import Draft7Validator, ValidationError, validators

from cloud_assembly.schema.errors import (
    ForbiddenFieldError,
    InvalidVersionError,
    SchemaValidationError,
    VersionMismatchError,
)

logger = logging.getLogger(__name__)

_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)

ASSUME_ROLE_ADDITIONAL_OPTIONS = "assumeRoleAdditionalOptions"
_FORBIDDEN_ASSUME_ROLE_KEYS = ("RoleArn", "ExternalId")

PropertyHook = Callable[[dict[str, Any], str, Any], None]


@dataclass(frozen=True)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: str | None = None
    build: str | None = None

    def __str__(self) -> str:
        version = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            version += f"-{self.prerelease}"
        if self.build:
            version += f"+{self.build}"
        return version


@dataclass(frozen=True)
class LoadManifestOptions:
    """Options for reading a manifest.

    ``skip_version_check`` lets a reader accept a manifest written for a newer
    major schema version. ``skip_enum_check`` accepts enum values this version
    does not know about yet, so callers must check the values they act on.
    ``topo_sort`` is only honoured by assembly readers that sort artifacts; it
    is kept here for compatibility.
    """

    skip_version_check: bool = False
    skip_enum_check: bool = False
    topo_sort: bool = True


def parse_version(version: Any) -> SemVer:
    if not isinstance(version, str):
        raise InvalidVersionError(version)
    match = _SEMVER_RE.match(version.strip())
    if not match:
        raise InvalidVersionError(version)
    major, minor, patch, prerelease, build = match.groups()
    return SemVer(int(major), int(minor), int(patch), prerelease, build)


def validate_assume_role_additional_options(instance: dict[str, Any], key: str, _schema: Any) -> None:
    # Matched on the property name alone, wherever it sits in the document.
    if key != ASSUME_ROLE_ADDITIONAL_OPTIONS:
        return
    options = instance.get(key)
    if not isinstance(options, dict):
        return
    for forbidden in _FORBIDDEN_ASSUME_ROLE_KEYS:
        if options.get(forbidden):
            raise ForbiddenFieldError(field=forbidden, container=key)


def _unexpected_message(extras: list[str]) -> str:
    verb = "was" if len(extras) == 1 else "were"
    return f"Additional properties are not allowed ({', '.join(repr(item) for item in extras)} {verb} unexpected)"


def _build_validator_class(hook: PropertyHook) -> type:
    base_properties = Draft7Validator.VALIDATORS["properties"]
    base_additional = Draft7Validator.VALIDATORS["additionalProperties"]

    def properties(validator, properties, instance, schema):
        if validator.is_type(instance, "object"):
            for key in list(instance):
                hook(instance, key, properties.get(key))
            if "additionalProperties" not in schema and "patternProperties" not in schema:
                extras = sorted(key for key in instance if key not in properties)
                if extras:
                    yield ValidationError(_unexpected_message(extras))
        yield from base_properties(validator, properties, instance, schema)

    def additional_properties(validator, additional, instance, schema):
        if validator.is_type(instance, "object") and "properties" not in schema:
            for key in list(instance):
                hook(instance, key, additional)
        yield from base_additional(validator, additional, instance, schema)

    return validators.extend(
        Draft7Validator,
        {"properties": properties, "additionalProperties": additional_properties},
    )


def _only_enum_failures(error: ValidationError) -> bool:
    if error.validator == "enum":
        return True
    if error.validator in ("anyOf", "oneOf") and error.context:
        branches: dict[Any, list[ValidationError]] = {}
        for sub in error.context:
            branch = sub.relative_schema_path[0] if sub.relative_schema_path else None
            branches.setdefault(branch, []).append(sub)
        return any(all(_only_enum_failures(sub) for sub in subs) for subs in branches.values())
    return False


def _collect(errors: Iterable[ValidationError], skip_enum: bool) -> list[ValidationError]:
    collected: list[ValidationError] = []
    for error in errors:
        if skip_enum and _only_enum_failures(error):
            continue
        collected.append(error)
        collected.extend(_collect(error.context or [], skip_enum))
    return collected


def format_error(error: ValidationError) -> str:
    return f"{error.json_path}: {error.message}"


class StructuralValidator:
    """JSON-schema stage of manifest validation.

    Unknown properties are rejected for every object schema that lists its
    ``properties`` without saying anything about extra ones, and
    ``property_hook`` is called for every property of every object that is
    checked against ``properties`` or ``additionalProperties``.
    """

    def __init__(self, property_hook: PropertyHook = validate_assume_role_additional_options) -> None:
        self.property_hook = property_hook
        self._validator_class = _build_validator_class(property_hook)

    def errors(self, instance: Any, schema: dict[str, Any], *, skip_enum: bool = False) -> list[str]:
        validator = self._validator_class(schema)
        return [format_error(error) for error in _collect(validator.iter_errors(instance), skip_enum)]


_DEFAULT_STRUCTURAL = StructuralValidator()


def check_version(candidate: Any, local_version: str, options: LoadManifestOptions | None = None) -> None:
    options = options or LoadManifestOptions()
    max_supported = parse_version(local_version).major
    version = candidate.get("version") if isinstance(candidate, dict) else None
    actual = parse_version(version)

    # Anything up to the major version we know about is fine.
    if max_supported < actual.major and not options.skip_version_check:
        raise VersionMismatchError(
            max_supported=max_supported,
            found=str(actual),
            minimum_cli_version=candidate.get("minimumCliVersion"),
        )


def validate(
    candidate: Any,
    schema: dict[str, Any],
    local_version: str,
    options: LoadManifestOptions | None = None,
    *,
    structural: StructuralValidator | None = None,
) -> None:
    options = options or LoadManifestOptions()
    check_version(candidate, local_version, options)

    structural = structural or _DEFAULT_STRUCTURAL
    errors = structural.errors(candidate, schema, skip_enum=options.skip_enum_check)
    if errors:
        logger.debug("Manifest failed validation with %d error(s)", len(errors))
        raise SchemaValidationError(errors)
