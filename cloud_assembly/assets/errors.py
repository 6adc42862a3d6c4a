from __future__ import annotations


class AssetPublishingError(Exception):
    """Base class for failures while building or publishing an asset."""


class RepositoryMissingError(AssetPublishingError):
    def __init__(self, *, repository_name: str, account: str | None) -> None:
        self.repository_name = repository_name
        self.account = account
        super().__init__(
            f"No registry repository named '{repository_name}' in account {account}. "
            "Is this account bootstrapped?"
        )


class AssetSourceError(AssetPublishingError):
    pass


class DockerError(AssetPublishingError):
    pass


class RegistryError(Exception):
    """A registry lookup failed. ``code`` is the registry error code, if any."""

    def __init__(self, message: str, *, code: str | None = None, status_code: int | None = None) -> None:
        self.code = code
        self.status_code = status_code
        super().__init__(message)


class ImageNotFoundError(RegistryError):
    pass


class RepositoryNotFoundError(RegistryError):
    pass
