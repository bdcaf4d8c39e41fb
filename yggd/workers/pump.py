"""Drain a worker's stdout and stderr into the log."""

from __future__ import annotations

import asyncio
import logging

from yggd.log import TRACE
from yggd.workers.process import CHUNK_SIZE, ProcessHandle

_logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_ERRORS = 16


async def pump_output(
    program: str,
    name: str,
    reader: asyncio.StreamReader,
    chunk_size: int = CHUNK_SIZE,
    max_errors: int = MAX_CONSECUTIVE_ERRORS,
) -> None:
    """Forward chunks from ``reader`` to the log until EOF.

    Read errors are logged and retried. After ``max_errors`` failures in a
    row the pump gives up instead of spinning on a broken stream.
    """
    errors = 0
    while True:
        try:
            chunk = await reader.read(chunk_size)
        except Exception as e:
            errors += 1
            _logger.error("Cannot read from %s of %s: %s", name, program, e)
            if errors >= max_errors:
                _logger.error("Giving up on %s of %s after %d errors", name, program, errors)
                return
            await asyncio.sleep(0.05 * errors)
            continue

        if not chunk:
            _logger.debug("%s %s reached EOF", program, name)
            return
        errors = 0
        text = chunk.decode("utf-8", errors="replace").rstrip("\n\x00")
        if text:
            _logger.log(TRACE, "[%s] %s", program, text)


def start_pumps(program: str, handle: ProcessHandle) -> list[asyncio.Task]:
    return [
        asyncio.create_task(pump_output(program, "stdout", handle.stdout)),
        asyncio.create_task(pump_output(program, "stderr", handle.stderr)),
    ]
