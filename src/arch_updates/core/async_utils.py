"""
Async helpers for external commands and file access.

Every suspension point of the engine that touches a subprocess or a file goes
through here so the event loop is never blocked by pacman, git or disk I/O.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional

import aiofiles

from src.arch_updates.core.errors import CheckTimeoutError, TransportError
from src.i18n import _

logger = logging.getLogger(__name__)


@dataclass
class AsyncProcessResult:
    """Result from async subprocess execution, mimics subprocess.CompletedProcess."""

    returncode: int
    stdout: str
    stderr: str


def command_environment(extra_env: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Environment for tool invocations; forces the C locale so output parses."""
    env = os.environ.copy()
    env["LC_ALL"] = "C"
    if extra_env:
        env.update(extra_env)
    return env


async def run_command_async(
    cmd: List[str],
    timeout: Optional[float] = 30.0,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> AsyncProcessResult:
    """
    Run a command without blocking the event loop.

    Args:
        cmd: Command and arguments
        timeout: Timeout in seconds, or None to wait indefinitely
        cwd: Working directory for the command
        env: Environment variables for the command

    Returns:
        AsyncProcessResult with returncode, stdout, stderr

    Raises:
        asyncio.TimeoutError: If command times out
        OSError: If the executable cannot be started
    """
    process = await _create_async_process(cmd, cwd=cwd, env=env)
    try:
        return await _collect_process_output(process, timeout=timeout)
    except (asyncio.TimeoutError, asyncio.CancelledError):
        _kill_quietly(process)
        await process.wait()
        raise


async def _create_async_process(
    cmd: List[str],
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> asyncio.subprocess.Process:
    """Start cmd with stdout and stderr piped."""
    return await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
        env=env,
    )


async def _collect_process_output(
    process: asyncio.subprocess.Process,
    timeout: Optional[float] = None,
) -> AsyncProcessResult:
    """Wait for process to exit and decode its output."""
    if timeout is not None:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    else:
        stdout_bytes, stderr_bytes = await process.communicate()

    stdout = stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else ""
    stderr = stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else ""

    return AsyncProcessResult(
        returncode=process.returncode,
        stdout=stdout,
        stderr=stderr,
    )


def _kill_quietly(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass  # already exited


async def run_tool(
    cmd: List[str],
    timeout: Optional[float] = 30.0,
    extra_env: Optional[Dict[str, str]] = None,
) -> AsyncProcessResult:
    """
    Run an external tool and translate launch failures into engine errors.

    A missing executable or an OS-level failure becomes TransportError and an
    expired timeout becomes CheckTimeoutError. Non-zero exit codes are left to
    the caller, since several tools (pacman -Qm) use them for "no results".
    """
    logger.debug("Running command: %s", " ".join(cmd))
    try:
        return await run_command_async(
            cmd, timeout=timeout, env=command_environment(extra_env)
        )
    except asyncio.TimeoutError as error:
        raise CheckTimeoutError(
            _("Command timed out after %s seconds: %s") % (timeout, cmd[0])
        ) from error
    except OSError as error:
        raise TransportError(
            _("Unable to run %s: %s") % (cmd[0], error)
        ) from error


async def read_file_async(filepath: str, encoding: str = "utf-8") -> str:
    """Read a whole text file without blocking the event loop."""
    async with aiofiles.open(
        filepath, mode="r", encoding=encoding, errors="replace"
    ) as file_handle:
        return await file_handle.read()


async def write_file_atomic(
    filepath: str, content: str, encoding: str = "utf-8"
) -> None:
    """
    Replace a file's content atomically.

    Content is written to a sibling temporary file which is then renamed over
    the target, so concurrent readers see either the old or the new content.
    """
    temp_path = f"{filepath}.{os.getpid()}.tmp"
    async with aiofiles.open(temp_path, mode="w", encoding=encoding) as file_handle:
        await file_handle.write(content)
        await file_handle.flush()
    os.replace(temp_path, filepath)
