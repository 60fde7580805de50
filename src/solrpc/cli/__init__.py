"""CLI package for solrpc."""

from __future__ import annotations

import json
import logging
import queue
from importlib import metadata
from pathlib import Path
from typing import Any, Callable, Optional

import typer
from rich.markup import escape

from solrpc.core import DEFAULT_CONFIG_DIR, ConfigManager, ConfigurationError, LogBuffer, SolRPCConfig
from solrpc.solana import (
    TOPICS,
    SolanaRPCClient,
    SolanaRPCError,
    UnknownSubscriptionError,
    WebsocketMethodsWrapper,
    create_method_name,
)
from solrpc.solana.websocket_methods import LOGS_FILTERS

from .branding import SEVERITY_STYLES, render_notification, themed_console

app = typer.Typer(help="Solana JSON-RPC client", no_args_is_help=True)
config_app = typer.Typer(help="Show or edit solrpc configuration", no_args_is_help=True)
app.add_typer(config_app, name="config")

CLI_CONSOLE = themed_console()

TARGET_TOPICS = {"account", "program", "signature"}

# Queued by the transport close listener to end the notification loop.
_STREAM_CLOSED = object()

ConfigDirOption = typer.Option(DEFAULT_CONFIG_DIR, "--config-dir", help="Directory holding config.toml.")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")


def styled_echo(message: str = "", *, nl: bool = True) -> None:
    """Print using the solrpc themed console."""
    CLI_CONSOLE.print(message, end="" if not nl else "\n")


def _configure_logging(verbose: bool) -> None:
    root_logger = logging.getLogger()
    if verbose:
        if not root_logger.handlers:
            logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        root_logger.setLevel(logging.DEBUG)
    else:
        if root_logger.handlers:
            root_logger.setLevel(logging.WARNING)
        else:
            logging.basicConfig(level=logging.WARNING, format="%(message)s")


def _load_settings(config_dir: Path) -> SolRPCConfig:
    try:
        return ConfigManager(config_dir).install()
    except ConfigurationError as exc:
        styled_echo(f"❌ {escape(str(exc))}")
        raise typer.Exit(code=1)


def _parse_params(raw: str | None) -> list[Any]:
    if not raw:
        return []
    try:
        params = json.loads(raw)
    except json.JSONDecodeError as exc:
        styled_echo(f"❌ PARAMS must be a JSON array: {escape(str(exc))}")
        raise typer.Exit(code=2)
    if not isinstance(params, list):
        styled_echo("❌ PARAMS must be a JSON array.")
        raise typer.Exit(code=2)
    return params


def _start_subscription(
    wrapper: WebsocketMethodsWrapper,
    topic: str,
    target: str | None,
    callback: Callable[[Any], None],
    *,
    commitment: str | None,
    encoding: str | None,
) -> int:
    if topic in TARGET_TOPICS and not target:
        raise ValueError(f"The {topic} topic needs a TARGET argument")
    if topic == "account":
        return wrapper.account_subscribe(target, callback, commitment=commitment, encoding=encoding)
    if topic == "program":
        return wrapper.program_subscribe(target, callback, commitment=commitment, encoding=encoding)
    if topic == "signature":
        return wrapper.signature_subscribe(target, callback, commitment=commitment)
    if topic == "block":
        return wrapper.block_subscribe(target or "all", callback, commitment=commitment, encoding=encoding)
    if topic == "logs":
        logs_filter: Any = target if target in LOGS_FILTERS else [target] if target else "all"
        return wrapper.logs_subscribe(logs_filter, callback, commitment=commitment)
    return wrapper.subscriptions.subscribe(topic, [], callback)


@app.command()
def version() -> None:
    """Show CLI version."""
    try:
        pkg_version = metadata.version("solrpc")
    except metadata.PackageNotFoundError:
        pkg_version = "0.0.0"
    styled_echo(f"solrpc version {pkg_version}")


@app.command()
def call(
    method: str = typer.Argument(..., help="JSON-RPC method name, e.g. getSlot."),
    params: Optional[str] = typer.Argument(None, help="JSON array of positional params."),
    cluster: Optional[str] = typer.Option(None, "--cluster", help="HTTP endpoint overriding the configured cluster."),
    config_dir: Path = ConfigDirOption,
    verbose: bool = VerboseOption,
) -> None:
    """Send one request over HTTP and print its result."""
    _configure_logging(verbose)
    settings = _load_settings(config_dir)
    parsed = _parse_params(params)
    try:
        client = SolanaRPCClient(endpoint=cluster, config=settings)
        result = client.call(method, parsed)
    except (ConfigurationError, SolanaRPCError) as exc:
        styled_echo(f"❌ {escape(str(exc))}")
        raise typer.Exit(code=1)
    CLI_CONSOLE.print_json(data=result)


@app.command()
def subscribe(
    topic: str = typer.Argument(..., help="account, block, logs, program, signature, slot, slots-updates, root or vote."),
    target: Optional[str] = typer.Argument(None, help="Pubkey, signature or filter for topics that take one."),
    commitment: Optional[str] = typer.Option(None, "--commitment", help="processed, confirmed or finalized."),
    encoding: Optional[str] = typer.Option(None, "--encoding", help="Account data encoding."),
    count: int = typer.Option(0, "--count", "-n", min=0, help="Stop after N notifications (0 runs until interrupted)."),
    confirm_timeout: float = typer.Option(30.0, "--confirm-timeout", help="Seconds to wait for the subscription id."),
    ws_cluster: Optional[str] = typer.Option(None, "--ws-cluster", help="Websocket endpoint overriding the configured one."),
    config_dir: Path = ConfigDirOption,
    verbose: bool = VerboseOption,
) -> None:
    """Stream notifications for one subscription topic."""
    _configure_logging(verbose)
    topic_name = create_method_name(topic.replace("-", "_"))
    if topic_name not in TOPICS:
        styled_echo(f"❌ Unknown topic '{topic}'. Choose from: {', '.join(TOPICS)}")
        raise typer.Exit(code=2)
    settings = _load_settings(config_dir)

    log_buffer = LogBuffer()
    notifications: queue.Queue[Any] = queue.Queue()
    try:
        wrapper = WebsocketMethodsWrapper(ws_cluster, config=settings, log_buffer=log_buffer)
    except ConfigurationError as exc:
        styled_echo(f"❌ {escape(str(exc))}")
        raise typer.Exit(code=1)
    wrapper.transport.add_close_listener(lambda _error, _connection_id: notifications.put(_STREAM_CLOSED))

    with wrapper:
        try:
            request_id = _start_subscription(
                wrapper,
                topic_name,
                target,
                notifications.put,
                commitment=commitment,
                encoding=encoding,
            )
        except ValueError as exc:
            styled_echo(f"❌ {escape(str(exc))}")
            raise typer.Exit(code=2)
        except SolanaRPCError as exc:
            styled_echo(f"❌ {escape(str(exc))}")
            raise typer.Exit(code=1)

        subscription_id = wrapper.wait_for_subscription(request_id, timeout=confirm_timeout)
        if subscription_id is None:
            styled_echo(f"❌ {topic_name}Subscribe was not confirmed.")
            _print_events(log_buffer)
            raise typer.Exit(code=1)
        styled_echo(f"[solrpc.text.secondary]Subscribed to {topic_name} (subscription {subscription_id})[/]")

        received = 0
        dropped = False
        try:
            while count == 0 or received < count:
                payload = notifications.get()
                if payload is _STREAM_CLOSED:
                    dropped = True
                    break
                received += 1
                render_notification(CLI_CONSOLE, topic_name, received, payload)
                if wrapper.subscriptions.get(subscription_id) is None:
                    # One-shot topics retire themselves after the final notification.
                    dropped = not TOPICS[topic_name].one_shot
                    break
        except KeyboardInterrupt:
            styled_echo()

        if dropped:
            styled_echo(f"[solrpc.log.error]❌ Connection closed; {topic_name} subscription {subscription_id} ended.[/]")
            _print_events(log_buffer)
            raise typer.Exit(code=1)

        try:
            wrapper.subscriptions.unsubscribe(subscription_id)
        except UnknownSubscriptionError:
            # One-shot topics are already retired.
            pass
        except SolanaRPCError as exc:
            styled_echo(f"[solrpc.log.warn]⚠️  Unable to unsubscribe: {escape(str(exc))}[/]")

    if verbose:
        _print_events(log_buffer)


def _print_events(log_buffer: LogBuffer) -> None:
    for entry in log_buffer.recent(limit=20):
        style = SEVERITY_STYLES.get(entry.severity, "solrpc.log.info")
        styled_echo(f"[{style}]{entry.category}[/] {escape(entry.message)}")


@config_app.command("show")
def config_show(config_dir: Path = ConfigDirOption) -> None:
    """Print the effective configuration."""
    settings = _load_settings(config_dir)
    CLI_CONSOLE.print_json(data=settings.model_dump())


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Configuration key, e.g. ws_cluster."),
    value: str = typer.Argument(...),
    config_dir: Path = ConfigDirOption,
) -> None:
    """Persist one configuration value to config.toml."""
    manager = ConfigManager(config_dir)
    try:
        manager.update(**{key: value})
    except ConfigurationError as exc:
        styled_echo(f"❌ {escape(str(exc))}")
        raise typer.Exit(code=1)
    styled_echo(f"✅ {key} saved to {manager.config_path}")


def main() -> None:
    app()


__all__ = ["app", "main"]
