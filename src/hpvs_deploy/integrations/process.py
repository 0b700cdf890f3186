"""
hpvs_deploy.integrations.process - Bounded Subprocess Execution
=================================================================

Runs an external CLI (docker, gpg) with a timeout, optional stdin and extra
environment, and returns a CommandResult. The process is killed when the
timeout expires or the calling task is cancelled, so no command outlives
the pipeline step that started it.
"""

from __future__ import annotations

import asyncio
import os
from typing import Optional, Sequence

import structlog

from hpvs_deploy.core.exceptions import ConfigurationError, TransientError
from hpvs_deploy.core.models import CommandResult


logger = structlog.get_logger()


async def run_command(
    args: Sequence[str],
    *,
    timeout: float,
    env: Optional[dict[str, str]] = None,
    stdin: Optional[bytes] = None,
) -> CommandResult:
    """Run `args` and capture its output.

    Args:
        args: Argument vector. Must not contain secrets.
        timeout: Seconds before the process is killed.
        env: Variables added on top of the current environment.
        stdin: Bytes written to the process's standard input.

    Returns:
        CommandResult with the exit status, decoded output and the raw
        stdout bytes.

    Raises:
        ConfigurationError: If the executable does not exist.
        TransientError: If the command did not finish within `timeout`.
    """
    argv = list(args)
    full_env = None
    if env:
        full_env = {**os.environ, **env}

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=full_env,
        )
    except FileNotFoundError as e:
        raise ConfigurationError(
            message=f"Executable '{argv[0]}' was not found on this host",
            error_code="EXECUTABLE_NOT_FOUND",
            details={"executable": argv[0]},
        ) from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(stdin), timeout=timeout)
    except asyncio.TimeoutError as e:
        await _kill(proc)
        logger.warning("command_timed_out", command=argv[:3], timeout=timeout)
        raise TransientError(
            message=f"'{' '.join(argv[:3])}' did not finish within {timeout:g}s",
            error_code="COMMAND_TIMEOUT",
            details={"command": argv[:3], "timeout": timeout},
        ) from e
    except asyncio.CancelledError:
        await _kill(proc)
        raise

    return CommandResult(
        args=argv,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
        raw_stdout=stdout,
    )


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()
