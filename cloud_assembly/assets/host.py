"""What an asset handler needs from the outside world.

The handler never talks to a registry, the Docker daemon or the process
table directly; it goes through the collaborators bundled in
:class:`HandlerHost`, which makes it easy to drive with fakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from cloud_assembly.assets.models import DockerImageDestination
from cloud_assembly.assets.progress import EventEmitter, EventType


class CancellationToken:
    """Level-triggered abort flag, shared by reference and polled by handlers."""

    def __init__(self) -> None:
        self._aborted = False

    def abort(self) -> None:
        self._aborted = True

    @property
    def aborted(self) -> bool:
        return self._aborted


class RegistryClient(Protocol):
    async def describe_images(self, repository_name: str, image_ids: list[dict[str, str]]) -> dict[str, Any]:
        ...

    async def describe_repositories(self, repository_names: list[str]) -> dict[str, Any]:
        ...


class RegistryProvider(Protocol):
    async def resolve_destination(self, destination: DockerImageDestination) -> DockerImageDestination:
        ...

    async def registry_client(self, destination: DockerImageDestination, *, quiet: bool = False) -> RegistryClient:
        ...

    async def discover_current_account(self) -> Optional[str]:
        ...


class DockerEngine(Protocol):
    async def build(self, options: Any) -> None:
        ...

    async def exists(self, tag: str) -> bool:
        ...

    async def tag(self, source_tag: str, target_tag: str) -> None:
        ...

    async def push(self, tag: str) -> None:
        ...


class DockerFactory(Protocol):
    async def for_build(
        self,
        *,
        repo_uri: str,
        registry: RegistryClient,
        event_emitter: EventEmitter,
        subprocess_output_destination: str,
    ) -> DockerEngine:
        ...

    async def for_registry_push(
        self,
        *,
        repo_uri: str,
        registry: RegistryClient,
        event_emitter: EventEmitter,
        subprocess_output_destination: str,
    ) -> DockerEngine:
        ...


def _discard(_event: EventType, _message: str) -> None:
    return None


@dataclass
class HandlerHost:
    registry: RegistryProvider
    docker_factory: DockerFactory
    emit_message: EventEmitter = _discard
    cancellation: CancellationToken = field(default_factory=CancellationToken)

    @property
    def aborted(self) -> bool:
        return self.cancellation.aborted


@dataclass(frozen=True)
class HandlerOptions:
    subprocess_output_destination: str = "stdio"
