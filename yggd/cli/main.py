"""yggd CLI: run the worker daemon and manage its workers."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console

from yggd.config import settings
from yggd.log import setup_logging

console = Console()

app = typer.Typer(
    name="yggd",
    help="yggd -- supervise the protocol workers of the host agent.",
    no_args_is_help=True,
)


@app.command("run")
def run(
    log_level: str = typer.Option(None, "--log-level", "-l", help="trace, debug, info, warning or error"),
):
    """Supervise every worker in the workers directory until interrupted."""
    from yggd.daemon import WorkerDaemon

    try:
        setup_logging(log_level or settings.log_level)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level") from e

    async def _run():
        await WorkerDaemon(settings).run()

    asyncio.run(_run())


@app.command("stop-workers")
def stop_workers():
    """Stop every worker that has a PID record."""
    from yggd.workers.supervisor import WorkerSupervisor

    setup_logging(settings.log_level)
    failures = WorkerSupervisor(settings).stop_all()
    if not failures:
        console.print("[green]All workers stopped.[/green]")
        return
    for directive, err in sorted(failures.items()):
        console.print(f"[red]{directive}[/red]: {err}")
    raise typer.Exit(code=1)


@app.command("version")
def version():
    """Show the yggd version."""
    from yggd import __version__
    console.print(f"yggd v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
