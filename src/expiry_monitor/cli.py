"""
Command-line interface for the expiry monitor.

This module provides the main CLI entry point with commands for:
- serve: Run the scheduler and the web API
- check: Run one refresh cycle
- recalculate: Recompute day-counts from the cache
- status: Show the cached status list
- whois: Show the WHOIS record for one domain
- config: Configuration management
"""

import argparse
import asyncio
import json
import os
import socket
import sys
from typing import Optional

from dotenv import load_dotenv

from . import __version__
from .audit_logger import AuditLogger
from .config import AppConfig
from .config_store import ENV_NTFY_TOKEN, ConfigStore, StoragePaths, resolve_paths
from .exceptions import ConfigError, ValidationError, WhoisLookupError
from .models import DomainStatus, RefreshReport
from .service import MonitorService
from .status_cache import StatusCacheStore


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000
DEFAULT_PORT_ATTEMPTS = 10


def create_logger(config: AppConfig, verbose: bool = False) -> AuditLogger:
    """Create the audit logger from configuration; --verbose forces debug."""
    level = "debug" if verbose else config.logging.level
    return AuditLogger.from_config(level, config.logging.output_format)


def create_service(
    paths: StoragePaths,
    simulation_mode: bool = False,
    verbose: bool = False,
) -> MonitorService:
    """
    Build a MonitorService for the given storage locations.

    Raises:
        ConfigError: If the configuration cannot be loaded
    """
    ntfy_token = os.getenv(ENV_NTFY_TOKEN)
    config, _ = ConfigStore(paths, ntfy_token=ntfy_token).load()
    logger = create_logger(config, verbose)

    return MonitorService(
        config_store=ConfigStore(paths, ntfy_token=ntfy_token, logger=logger),
        cache_store=StatusCacheStore(paths.cache_file, logger=logger),
        simulation_mode=simulation_mode,
        logger=logger,
    )


def find_available_port(host: str, start_port: int, max_attempts: int) -> int:
    """
    Return the first port in [start_port, start_port + max_attempts) that
    can be bound.

    Raises:
        OSError: If every port in the range is in use
    """
    for port in range(start_port, start_port + max_attempts):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            try:
                sock.bind((host, port))
            except OSError:
                print(f"Port {port} is in use, trying next port...", file=sys.stderr)
                continue
        return port
    raise OSError(
        f"No free port in range {start_port}-{start_port + max_attempts - 1}"
    )


def format_status_line(status: DomainStatus) -> str:
    label = status.domain
    if status.description:
        label = f"{label} ({status.description})"

    if status.error is not None:
        return f"  ✗ {label}: {status.error}"

    expires = (
        status.expiration_date.date().isoformat()
        if status.expiration_date is not None
        else "unknown"
    )
    marker = "⚠" if status.needs_warning else "✓"
    return f"  {marker} {label}: {status.days_until_expiration} days ({expires})"


def print_report(report: RefreshReport) -> None:
    for status in report.statuses:
        print(format_status_line(status))

    print(
        f"\nSummary: {len(report.statuses)} domain(s), "
        f"{report.lookups} lookup(s), {report.cache_hits} from cache, "
        f"{report.errors} error(s)"
    )
    if report.notifications > 0:
        print(f"📨 Notifications sent: {report.notifications}")


def _load_service(args: argparse.Namespace) -> Optional[MonitorService]:
    try:
        return create_service(
            resolve_paths(args.config_dir),
            simulation_mode=args.dry_run,
            verbose=args.verbose,
        )
    except ConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return None


def cmd_serve(args: argparse.Namespace) -> int:
    """Handle the 'serve' command."""
    import uvicorn

    from .web import create_app

    service = _load_service(args)
    if service is None:
        return 1

    try:
        port = find_available_port(args.host, args.port, args.port_attempts)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.dry_run:
        print("Simulation mode enabled: no WHOIS or ntfy requests are made")
    print(f"Web interface running at http://{args.host}:{port}")

    uvicorn.run(create_app(service), host=args.host, port=port, log_level="warning")
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Handle the 'check' command."""
    service = _load_service(args)
    if service is None:
        return 1

    if args.dry_run:
        print("Simulation mode enabled: no WHOIS or ntfy requests are made")

    try:
        report = asyncio.run(service.run_refresh())
    except ConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    print_report(report)
    return 0


def cmd_recalculate(args: argparse.Namespace) -> int:
    """Handle the 'recalculate' command."""
    service = _load_service(args)
    if service is None:
        return 1

    try:
        report = asyncio.run(service.run_recalculation())
    except ConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    print_report(report)
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Handle the 'status' command."""
    paths = resolve_paths(args.config_dir)
    statuses = StatusCacheStore(paths.cache_file).load()

    if args.json:
        print(json.dumps([s.to_dict() for s in statuses], indent=2, ensure_ascii=False))
        return 0

    if not statuses:
        print(f"No cached status found at: {paths.cache_file}")
        print("Run 'check' to look up the configured domains.")
        return 0

    for status in statuses:
        print(format_status_line(status))
    return 0


def cmd_whois(args: argparse.Namespace) -> int:
    """Handle the 'whois' command."""
    service = _load_service(args)
    if service is None:
        return 1

    try:
        record = asyncio.run(service.lookup_whois(args.domain))
    except (ValidationError, WhoisLookupError, ConfigError) as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    print(json.dumps(record, indent=2, ensure_ascii=False))
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    paths = resolve_paths(args.config_dir)
    store = ConfigStore(paths, ntfy_token=os.getenv(ENV_NTFY_TOKEN))

    if args.action == "show":
        if not paths.config_file.exists():
            print(f"No configuration found at: {paths.config_file}")
            print("Use 'config init' to create a default configuration.")
            return 1
        try:
            config, domains = store.load()
        except ConfigError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return 1

        print(f"Configuration from: {paths.config_dir}")
        print(f"  Warning days: {config.warning_days}")
        print(f"  Check interval: {config.check_interval}")
        print(f"  Recalculate interval: {config.recalculate_interval or 'disabled'}")
        print(f"  Use cache: {config.use_cache}")
        print(f"  Recalculate after save: {config.recalculate_after_save}")
        print(f"  Notify policy: {config.notify_policy.value}")
        print(f"  ntfy: {config.ntfy.url if config.ntfy.is_configured else 'not configured'}")
        print(f"  Log level: {config.logging.level}")
        print(f"  Cache file: {paths.cache_file}")
        print(f"  Domains ({len(domains)}):")
        for spec in domains:
            suffix = f" - {spec.description}" if spec.description else ""
            print(f"    {spec.domain}{suffix}")
        return 0

    elif args.action == "init":
        if paths.config_file.exists() and not args.force:
            print(f"Configuration already exists at: {paths.config_file}")
            print("Use --force to overwrite.")
            return 1
        try:
            store.save(AppConfig(), [])
        except ConfigError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return 1
        print(f"Configuration created at: {paths.config_dir}")
        return 0

    elif args.action == "validate":
        try:
            _, domains = store.load()
        except ConfigError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return 1
        print(f"Configuration at {paths.config_dir} is valid ({len(domains)} domain(s)).")
        return 0

    return 1


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config-dir", "-c",
        help="Directory holding config.json and domains.json",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulation mode - no real network requests",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="expiry-monitor",
        description="Domain expiration monitor with WHOIS lookups and ntfy alerts",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'serve' command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run scheduled checks and the web API",
    )
    serve_parser.add_argument(
        "--host",
        default=DEFAULT_HOST,
        help=f"Interface to bind (default: {DEFAULT_HOST})",
    )
    serve_parser.add_argument(
        "--port", "-p",
        type=int,
        default=DEFAULT_PORT,
        help=f"First port to try (default: {DEFAULT_PORT})",
    )
    serve_parser.add_argument(
        "--port-attempts",
        type=int,
        default=DEFAULT_PORT_ATTEMPTS,
        help="Number of consecutive ports to try",
    )
    _add_common_arguments(serve_parser)
    serve_parser.set_defaults(func=cmd_serve)

    # 'check' command
    check_parser = subparsers.add_parser(
        "check",
        help="Check all configured domains once",
    )
    _add_common_arguments(check_parser)
    check_parser.set_defaults(func=cmd_check)

    # 'recalculate' command
    recalculate_parser = subparsers.add_parser(
        "recalculate",
        help="Recompute day-counts from the cache without WHOIS lookups",
    )
    _add_common_arguments(recalculate_parser)
    recalculate_parser.set_defaults(func=cmd_recalculate)

    # 'status' command
    status_parser = subparsers.add_parser(
        "status",
        help="Show the cached domain status",
    )
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the raw status list as JSON",
    )
    _add_common_arguments(status_parser)
    status_parser.set_defaults(func=cmd_status)

    # 'whois' command
    whois_parser = subparsers.add_parser(
        "whois",
        help="Show the WHOIS record for a domain",
    )
    whois_parser.add_argument(
        "domain",
        help="Domain to look up (e.g., example.com)",
    )
    _add_common_arguments(whois_parser)
    whois_parser.set_defaults(func=cmd_whois)

    # 'config' command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    _add_common_arguments(config_parser)
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    load_dotenv()

    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
