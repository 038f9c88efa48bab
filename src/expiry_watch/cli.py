"""
Command-line interface for the expiry watch system.

This module provides the main CLI entry point with commands for:
- run: Execute one batch check-and-alert run
- check: Probe a single domain without storing it
- add / recheck: On-demand paths against the local state store
- account: Register an account's email, plan and webhook
- test-webhook: Send a synthetic alert to a webhook URL
- watch: Re-run the batch on a cron schedule
- serve: Start the HTTP interface
- config: Configuration management
"""

import argparse
import asyncio
import json
import signal
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from . import __version__
from .config import (
    DEFAULT_CONFIG_FILE,
    AppConfig,
    config_from_env,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
)
from .domain_validator import validate_domain
from .enums import PlanId
from .exceptions import ExpiryWatchError
from .i18n import SUPPORTED_LANGUAGES, get_message
from .models import Account, NotificationPreference
from .scheduler import Scheduler
from .service import ExpiryWatchService
from .state_store import StateStore


def resolve_config(args: argparse.Namespace) -> AppConfig:
    """
    Build the effective configuration: file, then environment, then flags.

    Raises:
        ExpiryWatchError: If the configuration file is malformed
    """
    config_path = Path(args.config) if args.config else DEFAULT_CONFIG_FILE
    config = load_config_from_file(config_path) or create_default_config()
    config = config_from_env(config)

    if args.dry_run:
        config.simulation_mode = True
    if args.language:
        config.language = args.language
    if args.verbose:
        config.logging.level = "debug"
    return config


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def _run_batch(service: ExpiryWatchService, as_json: bool) -> int:
    result = await service.run_batch()
    language = service.config.language
    if as_json:
        _print_json(result.to_dict())
    else:
        for line in result.log:
            print(line)
        if result.success:
            print(get_message("cli.run_summary", language, checked=result.checked, alerts=result.alerts_sent))
        else:
            print(get_message("cli.run_failed", language, error=result.error), file=sys.stderr)
    return 0 if result.success else 1


def cmd_run(args: argparse.Namespace, config: AppConfig) -> int:
    """Handle the 'run' command."""
    service = ExpiryWatchService.from_config(config)
    return asyncio.run(_run_batch(service, args.json))


def cmd_check(args: argparse.Namespace, config: AppConfig) -> int:
    """Handle the 'check' command."""
    service = ExpiryWatchService.from_config(config)
    domain = validate_domain(args.domain)
    probe = asyncio.run(service.prober.probe(domain))
    _print_json({
        "domain": domain,
        "ssl": probe.cert.to_dict(),
        "domain_whois": probe.registration.to_dict(),
    })
    return 0


def cmd_add(args: argparse.Namespace, config: AppConfig) -> int:
    """Handle the 'add' command."""
    service = ExpiryWatchService.from_config(config)
    outcome = asyncio.run(service.checker.add_domain(args.account, args.domain))
    print(get_message("cli.domain_added", config.language, domain=outcome.domain.domain_name, id=outcome.domain.id))
    _print_json(outcome.to_dict())
    return 0


def cmd_recheck(args: argparse.Namespace, config: AppConfig) -> int:
    """Handle the 'recheck' command."""
    service = ExpiryWatchService.from_config(config)
    outcome = asyncio.run(service.checker.recheck(args.account, args.domain_id))
    _print_json(outcome.to_dict())
    return 0


def cmd_account(args: argparse.Namespace, config: AppConfig) -> int:
    """
    Handle the 'account' command.

    Only the options given on the command line change; anything omitted
    keeps its stored value (a new account starts on the free plan).
    """
    store = StateStore(
        config.persistence.state_file_path,
        config.persistence.hmac_secret,
        history_limit=config.persistence.history_per_domain,
    )
    existing = asyncio.run(store.get_account(args.account_id)) or Account(id=args.account_id)
    store.upsert_account(
        replace(
            existing,
            email=args.email if args.email is not None else existing.email,
            plan=PlanId(args.plan) if args.plan is not None else existing.plan,
        )
    )

    if args.webhook is not None or args.no_webhook:
        preference = asyncio.run(store.get_notification_preference(args.account_id))
        webhook_url = args.webhook if args.webhook is not None else (
            preference.webhook_url if preference else None
        )
        store.upsert_notification_preference(
            NotificationPreference(
                account_id=args.account_id,
                webhook_url=webhook_url,
                webhook_enabled=bool(webhook_url) and not args.no_webhook,
            )
        )
    print(f"Account {args.account_id} saved")
    return 0


def cmd_test_webhook(args: argparse.Namespace, config: AppConfig) -> int:
    """Handle the 'test-webhook' command."""
    service = ExpiryWatchService.from_config(config)
    result = asyncio.run(service.send_test_webhook(args.url))
    if result.success:
        print(get_message("webhook.test_ok", config.language))
        return 0
    print(get_message("webhook.test_failed", config.language, error=result.error), file=sys.stderr)
    return 1


async def _watch(service: ExpiryWatchService, cron_expression: str) -> None:
    scheduler = Scheduler(logger=service.logger)

    async def batch_job() -> None:
        await _run_batch(service, as_json=False)

    schedule = scheduler.schedule("check-all-domains", cron_expression, batch_job)
    print(f"Watching with schedule '{schedule.expression}'")

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.stop)
        except NotImplementedError:
            # Not available on Windows event loops
            pass
    await scheduler.run()


def cmd_watch(args: argparse.Namespace, config: AppConfig) -> int:
    """Handle the 'watch' command."""
    service = ExpiryWatchService.from_config(config)
    asyncio.run(_watch(service, args.cron))
    return 0


def cmd_serve(args: argparse.Namespace, config: AppConfig) -> int:
    """Handle the 'serve' command."""
    import uvicorn

    from .api import create_app

    service = ExpiryWatchService.from_config(config)
    uvicorn.run(create_app(service), host=args.host, port=args.port, log_level="info")
    return 0


def cmd_config(args: argparse.Namespace, config: Optional[AppConfig] = None) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.config) if args.config else DEFAULT_CONFIG_FILE
    language = args.language or "en"

    if args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1
        save_config_to_file(create_default_config(language=language), config_path)
        print(get_message("cli.config_created", language, path=config_path))
        return 0

    loaded = load_config_from_file(config_path)
    if args.action == "validate":
        if loaded is None:
            print(get_message("cli.config_missing", language, path=config_path), file=sys.stderr)
            return 1
        print(get_message("cli.config_valid", language))
        return 0

    # show
    if loaded is None:
        print(get_message("cli.config_missing", language, path=config_path))
    effective = config_from_env(loaded or create_default_config())
    print(f"Configuration from: {config_path}")
    print(f"  Language: {effective.language}")
    print(f"  Simulation mode: {effective.simulation_mode}")
    print(f"  State file: {effective.persistence.state_file_path}")
    print(f"  SMTP host: {effective.smtp.host if effective.smtp else '-'}")
    print(f"  Max concurrency: {effective.batch.max_concurrency}")
    print(f"  TLS/WHOIS timeout: {effective.probe.tls_timeout_seconds}s/{effective.probe.whois_timeout_seconds}s")
    print(f"  Log level: {effective.logging.level}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="expiry-watch",
        description="TLS certificate and domain registration expiry monitor",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", "-c", help="Path to configuration file")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulation mode - no real network requests",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--language", "-l",
        choices=sorted(SUPPORTED_LANGUAGES),
        help="Notification and output language",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run one batch check over all domains")
    run_parser.add_argument("--json", action="store_true", help="Print the run summary as JSON")
    run_parser.set_defaults(func=cmd_run)

    check_parser = subparsers.add_parser("check", help="Probe one domain without storing it")
    check_parser.add_argument("domain", help="Domain to check (e.g., example.com)")
    check_parser.set_defaults(func=cmd_check)

    add_parser = subparsers.add_parser("add", help="Add a domain to an account")
    add_parser.add_argument("domain", help="Domain to monitor")
    add_parser.add_argument("--account", "-a", required=True, help="Owning account id")
    add_parser.set_defaults(func=cmd_add)

    recheck_parser = subparsers.add_parser("recheck", help="Re-probe a stored domain")
    recheck_parser.add_argument("domain_id", help="Stored domain id")
    recheck_parser.add_argument("--account", "-a", required=True, help="Owning account id")
    recheck_parser.set_defaults(func=cmd_recheck)

    account_parser = subparsers.add_parser("account", help="Create or update an account")
    account_parser.add_argument("account_id", help="Account id")
    account_parser.add_argument("--email", "-e", help="Alert recipient address")
    account_parser.add_argument(
        "--plan",
        choices=[plan.value for plan in PlanId],
        help="Subscription plan (new accounts default to free)",
    )
    account_parser.add_argument("--webhook", help="Webhook URL for alerts")
    account_parser.add_argument("--no-webhook", action="store_true", help="Disable the webhook")
    account_parser.set_defaults(func=cmd_account)

    webhook_parser = subparsers.add_parser("test-webhook", help="Send a test alert to a webhook")
    webhook_parser.add_argument("url", help="Webhook URL")
    webhook_parser.set_defaults(func=cmd_test_webhook)

    watch_parser = subparsers.add_parser("watch", help="Run batches on a cron schedule")
    watch_parser.add_argument(
        "--cron",
        default="0 * * * *",
        help="Cron expression (default: hourly)",
    )
    watch_parser.set_defaults(func=cmd_watch)

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8080, help="Bind port")
    serve_parser.set_defaults(func=cmd_serve)

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_parser.add_argument("action", choices=["show", "init", "validate"], help="Configuration action")
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
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
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "config":
            return cmd_config(args)
        return args.func(args, resolve_config(args))
    except ExpiryWatchError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
