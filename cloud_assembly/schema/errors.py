from __future__ import annotations

from typing import Any


# The CLI matches this prefix to tell the user to upgrade. Never change it.
VERSION_MISMATCH = "Cloud assembly schema version mismatch"


class ManifestError(Exception):
    """Base class for everything that can go wrong reading or writing a manifest."""


class InvalidVersionError(ManifestError):
    def __init__(self, version: Any) -> None:
        self.version = version
        super().__init__(f'Invalid semver string: "{version}"')


class VersionMismatchError(ManifestError):
    def __init__(self, *, max_supported: int, found: str, minimum_cli_version: str | None = None) -> None:
        self.max_supported = max_supported
        self.found = found
        self.minimum_cli_version = minimum_cli_version
        cli_warning = ""
        if minimum_cli_version:
            cli_warning = f". You need at least CLI version {minimum_cli_version} to read this manifest."
        super().__init__(
            f"{VERSION_MISMATCH}: Maximum schema version supported is {max_supported}.x.x, "
            f"but found {found}{cli_warning}"
        )


class SchemaValidationError(ManifestError):
    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("Invalid assembly manifest:\n" + "\n".join(errors))


class ManifestParseError(ManifestError):
    def __init__(self, *, reason: str, contents: str, path: str | None = None) -> None:
        self.reason = reason
        self.contents = contents
        self.path = path
        super().__init__(f"{reason}, while parsing {contents!r}")


class ForbiddenFieldError(ManifestError):
    def __init__(self, *, field: str, container: str) -> None:
        self.field = field
        self.container = container
        super().__init__(f"{field} is not allowed inside '{container}'")


def is_version_mismatch(error: BaseException) -> bool:
    return str(error).startswith(VERSION_MISMATCH)
