"""Command-line interface for Atelier.

Runs generation requests against the configured providers and prints the
stored artifact reference.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
import sys
from typing import Any

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from atelier.core.api.http.errors import ApiError
from atelier.core.config.loader import load_app_config
from atelier.core.config.models import AppConfig
from atelier.core.generation.credentials import ProviderRegistry
from atelier.core.generation.errors import GenerationError, describe_error
from atelier.core.generation.models import GenerationKind, GenerationRequest, ProviderFamily
from atelier.core.generation.orchestrator import GenerationOrchestrator
from atelier.core.utils.logging import configure_logging

console = Console()
logger = logging.getLogger(__name__)


def build_request(args: argparse.Namespace) -> GenerationRequest:
    """Build a GenerationRequest from ``--request`` JSON plus individual flags.

    Flags given on the command line override fields from the request file.
    """
    data: dict[str, Any] = {}
    if args.request:
        data.update(json.loads(Path(args.request).read_text(encoding="utf-8")))

    flags = {
        "kind": args.kind,
        "prompt": args.prompt,
        "negative_prompt": args.negative_prompt,
        "base_media": args.image or None,
        "mask": args.mask,
        "strength": args.strength,
        "duration": args.duration,
        "aspect_ratio": args.aspect_ratio,
        "direction": args.direction,
        "expansion_amount": args.expansion,
        "camera_motion": args.camera_motion,
        "effect": args.effect,
        "style": args.style,
        "text": args.text,
        "owner_id": args.owner,
    }
    data.update({k: v for k, v in flags.items() if v is not None})
    return GenerationRequest.model_validate(data)


def _load_config(args: argparse.Namespace) -> AppConfig:
    config = load_app_config(args.config)
    level = args.log_level or config.logging.level
    configure_logging(
        level=level,
        format_string=config.logging.format,
        filename=config.logging.filename,
        structured=config.logging.structured,
    )
    return config


def _print_result(payload: dict[str, Any], as_json: bool) -> None:
    if as_json:
        console.print_json(json.dumps(payload, default=str))
        return
    for key, value in payload.items():
        if value is None:
            continue
        text = value if isinstance(value, str) else json.dumps(value, default=str)
        if len(text) > 200:
            text = text[:200] + "..."
        console.print(f"[bold]{key}:[/bold] {text}")


def _print_error(exc: BaseException, as_json: bool) -> None:
    info = describe_error(exc)
    if as_json:
        console.print_json(info.model_dump_json())
    else:
        console.print(f"[red]ERROR ({info.code}): {info.message}[/red]")


async def run_generate(args: argparse.Namespace) -> int:
    """Run one request to completion.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    config = _load_config(args)
    orchestrator = GenerationOrchestrator.from_config(config)
    request = build_request(args)
    try:
        ref = await orchestrator.generate(
            request, family=args.family, use_fallback=args.fallback
        )
    except (GenerationError, ApiError) as e:
        _print_error(e, args.json)
        return 1
    _print_result(ref.model_dump(mode="json"), args.json)
    return 0


async def run_start(args: argparse.Namespace) -> int:
    """Start a request; async jobs return a handle for ``atelier check``."""
    config = _load_config(args)
    orchestrator = GenerationOrchestrator.from_config(config)
    request = build_request(args)
    try:
        response = await orchestrator.start(
            request, family=args.family, use_fallback=args.fallback
        )
    except (GenerationError, ApiError) as e:
        _print_error(e, args.json)
        return 1
    _print_result(response.model_dump(mode="json", by_alias=True), args.json)
    return 0


async def run_check(args: argparse.Namespace) -> int:
    """Poll a retained handle once."""
    config = _load_config(args)
    orchestrator = GenerationOrchestrator.from_config(config)
    raw = args.handle
    if raw.startswith("@"):
        raw = Path(raw[1:]).read_text(encoding="utf-8")
    try:
        response = await orchestrator.check(raw, owner_id=args.owner)
    except (GenerationError, ApiError) as e:
        _print_error(e, args.json)
        return 1
    _print_result(response.model_dump(mode="json", by_alias=True), args.json)
    return 0 if response.error is None else 1


def run_providers(args: argparse.Namespace) -> int:
    """Print which provider families have credentials."""
    config = _load_config(args)
    statuses = ProviderRegistry.from_config(config).status()
    if args.json:
        console.print_json(json.dumps([s.model_dump(mode="json") for s in statuses]))
        return 0

    table = Table(title="Provider families")
    table.add_column("Family")
    table.add_column("Available")
    table.add_column("Credentials")
    table.add_column("Endpoints / reason")
    for s in statuses:
        detail = (
            ", ".join(f"{m.value}: {'/'.join(labels)}" for m, labels in s.endpoints.items())
            if s.available
            else s.reason or ""
        )
        table.add_row(
            s.family.value,
            "[green]yes[/green]" if s.available else "[red]no[/red]",
            ", ".join(s.credential_ids),
            detail,
        )
    console.print(table)
    return 0


def _add_request_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument("--request", help="Path to a JSON request body")
    p.add_argument(
        "--kind",
        help=f"Generation kind ({', '.join(k.value for k in GenerationKind)})",
    )
    p.add_argument("--prompt", help="Prompt text")
    p.add_argument("--negative-prompt", help="Things to avoid")
    p.add_argument(
        "--image",
        action="append",
        help="Base media URL or data URI (repeat for several)",
    )
    p.add_argument("--mask", help="Mask URL or data URI")
    p.add_argument("--strength", type=float)
    p.add_argument("--duration", type=float, help="Duration in seconds")
    p.add_argument("--aspect-ratio", help="e.g. 16:9")
    p.add_argument("--direction", help="Outpaint direction")
    p.add_argument("--expansion", type=float, help="Outpaint expansion percent")
    p.add_argument("--camera-motion", help="Camera motion for video")
    p.add_argument("--effect", help="Video effect (camera-motion, loop, depth, ...)")
    p.add_argument("--style", help="Style description")
    p.add_argument("--text", help="Text to speak")
    p.add_argument("--owner", help="Owner scope for stored artifacts")
    p.add_argument(
        "--family",
        choices=[f.value for f in ProviderFamily],
        help="Route to this provider family instead of the default",
    )
    p.add_argument(
        "--fallback",
        action="store_true",
        help="Use the first available fallback target",
    )


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for CLI."""
    p = argparse.ArgumentParser(
        prog="atelier",
        description="Atelier - multi-provider media generation",
    )
    p.add_argument(
        "--config",
        default=None,
        help="Path to app config (.yaml/.json, default: atelier.yaml if present)",
    )
    p.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level",
    )
    p.add_argument("--json", action="store_true", help="Print machine-readable JSON")
    sub = p.add_subparsers(dest="cmd", required=True)

    generate = sub.add_parser("generate", help="Run a request to completion")
    _add_request_arguments(generate)

    start = sub.add_parser("start", help="Start a request and return a job handle")
    _add_request_arguments(start)

    check = sub.add_parser("check", help="Check a job handle once")
    check.add_argument("handle", help="Handle JSON, or @path to a file containing it")
    check.add_argument("--owner", help="Owner scope for stored artifacts")

    sub.add_parser("providers", help="Show configured provider families")

    return p


def main(argv: list[str] | None = None) -> None:
    """Main entry point for CLI."""
    p = build_arg_parser()
    args = p.parse_args(argv)

    try:
        if args.cmd == "generate":
            exit_code = asyncio.run(run_generate(args))
        elif args.cmd == "start":
            exit_code = asyncio.run(run_start(args))
        elif args.cmd == "check":
            exit_code = asyncio.run(run_check(args))
        else:
            exit_code = run_providers(args)
    except (FileNotFoundError, ValidationError, ValueError) as e:
        console.print(f"[red]ERROR: {e}[/red]")
        exit_code = 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        exit_code = 130

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
