from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from cloud_assembly.assets.docker import DockerClientFactory
from cloud_assembly.assets.errors import AssetPublishingError, RegistryError
from cloud_assembly.assets.handlers.container_images import ContainerImageAssetHandler
from cloud_assembly.assets.host import CancellationToken, HandlerHost, HandlerOptions
from cloud_assembly.assets.models import docker_image_entries, file_asset_ids
from cloud_assembly.assets.progress import EventType, logging_emitter
from cloud_assembly.assets.registry import ConfiguredRegistryProvider
from cloud_assembly.config import PublishingConfig
from cloud_assembly.runtime import ShellCommandError
from cloud_assembly.schema import LoadManifestOptions, Manifest, ManifestError, is_version_mismatch

logger = logging.getLogger("cloud_assembly")

CommandHandler = Callable[[argparse.Namespace], int]

PAYLOAD_SCHEMA_VERSION = "1.0"

LOADERS = {
    "assembly": Manifest.load_assembly_manifest,
    "assets": Manifest.load_asset_manifest,
    "integ": Manifest.load_integ_manifest,
}

UPGRADE_GUIDANCE = "This manifest was written by a newer toolchain. Upgrade the CLI to read it."


def _add_json_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print a machine-readable JSON result to stdout; human output goes to stderr.",
    )


def _error_type(exc: BaseException) -> str:
    if is_version_mismatch(exc):
        return "version_mismatch"
    if isinstance(exc, ManifestError):
        return "manifest_error"
    if isinstance(exc, RegistryError):
        return "registry_error"
    if isinstance(exc, ShellCommandError):
        return "shell_command_error"
    if isinstance(exc, OSError):
        return "file_error"
    return "asset_publishing_error"


def _error_payload(command: str, exc: BaseException) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "schema_version": PAYLOAD_SCHEMA_VERSION,
        "status": "fail",
        "command": command,
        "error_type": _error_type(exc),
        "detail": str(exc),
    }
    if is_version_mismatch(exc):
        payload["guidance"] = UPGRADE_GUIDANCE
    return payload


def _report_error(args: argparse.Namespace, exc: BaseException) -> int:
    payload = _error_payload(args.command, exc)
    if getattr(args, "json", False):
        print(json.dumps(payload, indent=2, sort_keys=True))
    else:
        print(f"[cloud-assembly] {args.command} failed", file=sys.stderr)
        print(f"detail: {payload['detail']}", file=sys.stderr)
        if "guidance" in payload:
            print(f"guidance: {payload['guidance']}", file=sys.stderr)
    return 1


def run_version(args: argparse.Namespace) -> int:
    version = Manifest.version()
    cli_version = Manifest.cli_version()
    if args.json:
        print(json.dumps({"schema_version": version, "minimum_cli_version": cli_version}, indent=2, sort_keys=True))
    else:
        print(version)
        if cli_version:
            print(f"minimum CLI version: {cli_version}")
    return 0


def run_validate(args: argparse.Namespace) -> int:
    options = LoadManifestOptions(
        skip_version_check=args.skip_version_check,
        skip_enum_check=args.skip_enum_check,
    )
    path = Path(args.path)
    try:
        manifest = LOADERS[args.kind](path, options)
    except (ManifestError, OSError) as exc:
        return _report_error(args, exc)

    if args.json:
        payload = {
            "schema_version": PAYLOAD_SCHEMA_VERSION,
            "status": "pass",
            "command": "validate",
            "kind": args.kind,
            "path": str(path),
            "version": manifest.get("version"),
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
    else:
        print(f"[cloud-assembly] {path}: valid {args.kind} manifest (version {manifest.get('version')})", file=sys.stderr)
    return 0


async def _publish_entries(
    *,
    work_dir: Path,
    manifest: dict[str, Any],
    selection: list[str] | None,
    host: HandlerHost,
    options: HandlerOptions,
    check_only: bool,
    build_only: bool,
) -> list[dict[str, Any]]:
    results: list[dict[str, Any]] = []
    for asset_id in file_asset_ids(manifest):
        if not selection or asset_id in selection:
            results.append({"asset": asset_id, "status": "skipped", "reason": "file assets are not handled"})

    for entry in docker_image_entries(manifest, selection):
        if host.aborted:
            results.append({"asset": str(entry.id), "status": "aborted"})
            continue

        handler = ContainerImageAssetHandler(work_dir, entry, host, options)
        host.emit_message(EventType.START, f"Publishing {entry.label}")
        if await handler.is_published():
            host.emit_message(EventType.SUCCESS, f"Already published {entry.label}")
            results.append({"asset": str(entry.id), "status": "published"})
            continue
        if check_only:
            results.append({"asset": str(entry.id), "status": "missing"})
            continue

        try:
            await handler.build()
            if not build_only:
                await handler.publish()
        except (AssetPublishingError, RegistryError, ShellCommandError) as exc:
            host.emit_message(EventType.FAIL, f"{entry.label}: {exc}")
            results.append({"asset": str(entry.id), "status": "fail", "error_type": _error_type(exc), "detail": str(exc)})
            continue

        if host.aborted:
            results.append({"asset": str(entry.id), "status": "aborted"})
            continue
        host.emit_message(EventType.SUCCESS, f"{'Built' if build_only else 'Published'} {entry.label}")
        results.append({"asset": str(entry.id), "status": "built" if build_only else "published"})
    return results


def _build_host(config: PublishingConfig, cancellation: CancellationToken) -> HandlerHost:
    return HandlerHost(
        registry=ConfiguredRegistryProvider(config),
        docker_factory=DockerClientFactory(),
        emit_message=logging_emitter(logger),
        cancellation=cancellation,
    )


def run_publish(args: argparse.Namespace) -> int:
    manifest_path = Path(args.asset_manifest)
    try:
        manifest = Manifest.load_asset_manifest(manifest_path)
        config = PublishingConfig.from_env(
            registry=args.registry,
            account=args.account,
            region=args.region,
            insecure_registry=True if args.insecure_registry else None,
        )
    except (ManifestError, OSError) as exc:
        return _report_error(args, exc)

    cancellation = CancellationToken()
    host = _build_host(config, cancellation)
    options = HandlerOptions(subprocess_output_destination=config.subprocess_output_destination)

    def _on_sigint(_signum, _frame) -> None:
        logger.warning("Interrupted, stopping after the current step")
        cancellation.abort()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        results = asyncio.run(
            _publish_entries(
                work_dir=manifest_path.resolve().parent,
                manifest=manifest,
                selection=args.asset or None,
                host=host,
                options=options,
                check_only=args.check_only,
                build_only=args.build_only,
            )
        )
    finally:
        signal.signal(signal.SIGINT, previous)

    failed = any(item["status"] in ("fail", "aborted") for item in results)
    if args.check_only:
        failed = failed or any(item["status"] == "missing" for item in results)

    if args.json:
        payload = {
            "schema_version": PAYLOAD_SCHEMA_VERSION,
            "status": "fail" if failed else "pass",
            "command": "publish",
            "manifest": str(manifest_path),
            "assets": results,
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
    else:
        for item in results:
            line = f"{item['asset']}: {item['status']}"
            if item.get("detail"):
                line += f" ({item['detail']})"
            print(line, file=sys.stderr)
    return 1 if failed else 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cloud-assembly",
        description="Cloud assembly manifest and container image asset tooling",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    version_parser = subparsers.add_parser("version", help="Print the manifest schema version")
    _add_json_arg(version_parser)

    validate_parser = subparsers.add_parser("validate", help="Load and validate a manifest file")
    validate_parser.add_argument("path", help="Path to the manifest JSON file")
    validate_parser.add_argument(
        "--kind",
        choices=sorted(LOADERS),
        default="assembly",
        help="Manifest kind (default: assembly)",
    )
    validate_parser.add_argument(
        "--skip-version-check",
        action="store_true",
        help="Accept manifests written for a newer major schema version.",
    )
    validate_parser.add_argument(
        "--skip-enum-check",
        action="store_true",
        help="Accept enum values this version does not know about.",
    )
    _add_json_arg(validate_parser)

    publish_parser = subparsers.add_parser("publish", help="Build and publish container image assets")
    publish_parser.add_argument("asset_manifest", help="Path to the asset manifest JSON file")
    publish_parser.add_argument(
        "--asset",
        action="append",
        default=[],
        help="Asset id or assetId:destinationId to publish. Repeat flag for multiple assets.",
    )
    mode = publish_parser.add_mutually_exclusive_group()
    mode.add_argument("--check-only", action="store_true", help="Only report whether images are published.")
    mode.add_argument("--build-only", action="store_true", help="Build and tag images without pushing.")
    publish_parser.add_argument("--registry", required=False, help="Registry host (overrides CLOUD_ASSEMBLY_REGISTRY)")
    publish_parser.add_argument("--account", required=False, help="Account id (overrides CLOUD_ASSEMBLY_ACCOUNT)")
    publish_parser.add_argument("--region", required=False, help="Default region (overrides CLOUD_ASSEMBLY_REGION)")
    publish_parser.add_argument(
        "--insecure-registry",
        action="store_true",
        help="Talk plain http to the registry.",
    )
    _add_json_arg(publish_parser)

    return parser


def _build_handlers() -> dict[str, CommandHandler]:
    return {
        "version": run_version,
        "validate": run_validate,
        "publish": run_publish,
    }


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    handler = _build_handlers().get(args.command)
    if handler is None:
        parser.error(f"No handler wired for command '{args.command}'")
    return handler(args)
