from __future__ import annotations

import asyncio
import contextlib
import importlib
import json
import logging
import signal
from pathlib import Path
from typing import Any, Optional

import click

from .config import BroncoConfig
from .executor.control import ControlState
from .main import configure_logging

logger = logging.getLogger("mcp.bronco.cli")

DEFAULT_HOST_FACTORY = "mcp_servers.bronco.executor.memory_host:MemoryHost"


def load_factory(spec: str) -> Any:
    """Resolve `module:attr` to a callable."""
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise click.BadParameter(f"expected module:attr, got {spec!r}", param_hint="--host-factory")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise click.BadParameter(f"cannot import {module_name}: {exc}", param_hint="--host-factory") from exc
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise click.BadParameter(f"{spec} is not callable", param_hint="--host-factory")
    return factory


def _parse_pages(pages: tuple[str, ...]) -> dict[str, str]:
    out: dict[str, str] = {}
    for item in pages:
        url, sep, path = item.partition("=")
        if not sep or not url or not path:
            raise click.BadParameter(f"expected URL=FILE, got {item!r}", param_hint="--page")
        try:
            out[url] = Path(path).expanduser().read_text(encoding="utf-8")
        except OSError as exc:
            raise click.BadParameter(f"cannot read {path}: {exc}", param_hint="--page") from exc
    return out


@click.group()
@click.option("--log-level", default=None, help="Logging level (default INFO or BRONCO_LOG_LEVEL).")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]) -> None:
    """Bronco browser bridge: MCP server, browser agent and control switch."""
    configure_logging(log_level)
    ctx.obj = BroncoConfig.from_env()


@cli.command()
@click.pass_obj
def serve(config: BroncoConfig) -> None:
    """Run the MCP stdio server and the bridge listener."""
    from .main import McpServer, run_stdio

    run_stdio(McpServer(config))


@cli.command()
@click.option("--url", default=None, help="Bridge URL (default ws://BRONCO_HOST:BRONCO_PORT).")
@click.option("--host-factory", default=DEFAULT_HOST_FACTORY, show_default=True, help="Host automation factory.")
@click.option("--page", "pages", multiple=True, help="Preload URL=FILE into the in-memory host (repeatable).")
@click.option("--enable-control", is_flag=True, help="Turn browser control on before connecting.")
@click.pass_obj
def agent(
    config: BroncoConfig,
    url: Optional[str],
    host_factory: str,
    pages: tuple[str, ...],
    enable_control: bool,
) -> None:
    """Run the browser-side agent: connect to the bridge and execute commands."""
    from .agent import ExecutorAgent
    from .executor.executor import CommandExecutor

    factory = load_factory(host_factory)
    host = factory(_parse_pages(pages)) if pages else factory()
    executor = CommandExecutor(host, config=config)
    if enable_control:
        executor.set_control_enabled(True)
    runner = ExecutorAgent(executor, config, url=url)

    async def _main() -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, stop.set)
        logger.info("agent starting url=%s host=%s", runner.url, host_factory)
        await runner.run(stop)

    asyncio.run(_main())


@cli.command()
@click.argument("state", type=click.Choice(["on", "off", "status"]))
@click.pass_obj
def control(config: BroncoConfig, state: str) -> None:
    """Turn browser control on or off (persisted), or show it.

    A running agent watches the same state file and applies the change.
    """
    ctl = ControlState(state_file=config.state_file)
    if state != "status":
        ctl.set_control_enabled(state == "on")
    click.echo(json.dumps({"controlEnabled": ctl.control_enabled, "stateFile": config.state_file}))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
