"""
nanobot - Main Entry Point
==========================

Commands:
    nanobot                   Interactive shell (same as `nanobot shell`)
    nanobot shell             Chat with the agent in the terminal
    nanobot agent "message"   Ask one question and print the answer
    nanobot serve             Run the configured channels (e.g. Slack) until stopped
    nanobot version           Print the version

Run with:
    python -m nanobot.main

Or after installing:
    nanobot
"""

import asyncio
import signal
import sys

import click

from nanobot import __version__
from nanobot.utils.config import get_config
from nanobot.utils.logger import Logger

main_logger = Logger("Main")


@click.group(invoke_without_command=True)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """nanobot - a small tool-calling agent runtime."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(shell)


@cli.command()
def shell() -> None:
    """Chat with the agent in the terminal."""
    _run(_shell())


@cli.command()
@click.argument("message")
@click.option("--session", default="cli:direct", show_default=True, help="Session key")
def agent(message: str, session: str) -> None:
    """Ask the agent one question and print the answer."""
    _run(_single_shot(message, session))


@cli.command()
def serve() -> None:
    """Run the configured channels until interrupted."""
    _run(_serve())


@cli.command()
def version() -> None:
    """Show the version."""
    click.echo(f"nanobot v{__version__}")


# ==============================================================================
# Async entry points
# ==============================================================================

def _build():
    from nanobot.runtime import build_runtime

    main_logger.info("Loading configuration...")
    return build_runtime(get_config())


async def _shell() -> None:
    from nanobot.channels.cli import CLIChannel

    runtime = _build()
    cli_channel = CLIChannel(runtime.bus, runtime)
    runtime.add_channel(cli_channel)

    await runtime.start()
    try:
        await cli_channel.run()
    finally:
        await runtime.stop()


async def _single_shot(message: str, session: str) -> None:
    runtime = _build()
    await runtime.start()
    try:
        answer = await runtime.agent.process(session, message)
        click.echo(answer)
    finally:
        await runtime.stop()


async def _serve() -> None:
    runtime = _build()
    if not runtime.channels:
        main_logger.warning("No channels configured. Set SLACK_BOT_TOKEN and SLACK_APP_TOKEN in .env")
        return

    stopped = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stopped.set)

    await runtime.start()
    main_logger.info("nanobot is running! Press Ctrl+C to stop.")
    try:
        await stopped.wait()
    finally:
        await runtime.stop()


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        main_logger.info("Received interrupt signal")
    except ValueError as e:
        # Configuration problems, e.g. a missing API key
        main_logger.error(str(e))
        sys.exit(1)


def run() -> None:
    """
    Synchronous entry point.

    This is called when running with the `nanobot` command.
    """
    cli()


if __name__ == "__main__":
    run()
