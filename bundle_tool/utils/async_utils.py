# bundle_tool/utils/async_utils.py
"""Asynchronous operation utilities"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import (Any, Callable, Coroutine, Dict, Iterable, List, Optional,
                    Sequence, TypeVar)

from ..api.exceptions import SpawnError

T = TypeVar('T')
R = TypeVar('R')

logger = logging.getLogger(__name__)


async def map_concurrent(items: Iterable[T],
                         processor: Callable[[T], Coroutine[Any, Any, R]],
                         concurrency: Optional[int] = None,
                         return_exceptions: bool = False) -> List[Any]:
    """
    Process items concurrently with an optional bound, keeping input order

    Args:
        items: Items to process
        processor: Async processor function
        concurrency: Maximum number of items in flight (None for unbounded)
        return_exceptions: Collect exceptions as results instead of failing fast

    Returns:
        List of results in item order

    Raises:
        The first failure, after every other in-flight item has been cancelled
    """
    items = list(items)
    if not items:
        return []

    semaphore = asyncio.Semaphore(concurrency) if concurrency else None

    async def run(item):
        if semaphore is None:
            return await processor(item)
        async with semaphore:
            return await processor(item)

    tasks = [asyncio.ensure_future(run(item)) for item in items]

    if return_exceptions:
        return await asyncio.gather(*tasks, return_exceptions=True)

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        await cancel_tasks(tasks)
        raise

    if pending:
        await cancel_tasks(pending)

    for task in tasks:
        if task.done() and not task.cancelled() and task.exception() is not None:
            raise task.exception()

    return [task.result() for task in tasks]


async def cancel_tasks(tasks: Iterable[asyncio.Future]) -> None:
    """Cancel tasks and wait until every one of them has finished"""
    tasks = list(tasks)
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


@dataclass
class ProcessResult:
    """Captured output of a finished external process"""
    exit_code: int
    stdout: str
    stderr: str


async def terminate_process(process: asyncio.subprocess.Process) -> None:
    """Send SIGTERM and wait for the process to exit"""
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    await process.wait()


async def spawn_process(command: str,
                        args: Sequence[str],
                        cwd: Optional[os.PathLike] = None,
                        env: Optional[Dict[str, str]] = None,
                        input: Optional[bytes] = None,
                        check: bool = True) -> ProcessResult:
    """
    Run an external process without limits on captured output

    Args:
        command: Executable
        args: Arguments
        cwd: Working directory
        env: Extra environment variables merged over os.environ
        input: Bytes written to stdin
        check: Raise SpawnError on a non-zero exit code

    Returns:
        ProcessResult with decoded stdout/stderr

    Raises:
        SpawnError: Command missing or exited non-zero
    """
    args = [str(a) for a in args]
    logger.debug(f"Running {command} {' '.join(args)} (cwd={cwd})")

    process_env = None
    if env:
        process_env = dict(os.environ)
        process_env.update(env)

    try:
        process = await asyncio.create_subprocess_exec(
            command, *args,
            cwd=str(cwd) if cwd else None,
            env=process_env,
            stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise SpawnError(f"Command not found: {command}", exit_code=127) from e

    try:
        stdout, stderr = await process.communicate(input)
    except asyncio.CancelledError:
        await terminate_process(process)
        raise

    result = ProcessResult(
        exit_code=process.returncode,
        stdout=stdout.decode('utf-8', errors='replace'),
        stderr=stderr.decode('utf-8', errors='replace'),
    )

    if check and result.exit_code != 0:
        raise SpawnError(
            f"{command} {' '.join(args)} failed with exit code {result.exit_code}",
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    return result


async def spawn_shell(command: str,
                      cwd: Optional[os.PathLike] = None,
                      env: Optional[Dict[str, str]] = None) -> ProcessResult:
    """
    Run a shell command line, raising SpawnError on failure

    Args:
        command: Shell command line
        cwd: Working directory
        env: Extra environment variables

    Returns:
        ProcessResult
    """
    logger.debug(f"Running script: {command} (cwd={cwd})")

    process_env = dict(os.environ)
    if env:
        process_env.update(env)

    process = await asyncio.create_subprocess_shell(
        command,
        cwd=str(cwd) if cwd else None,
        env=process_env,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout, stderr = await process.communicate()
    except asyncio.CancelledError:
        await terminate_process(process)
        raise

    result = ProcessResult(
        exit_code=process.returncode,
        stdout=stdout.decode('utf-8', errors='replace'),
        stderr=stderr.decode('utf-8', errors='replace'),
    )
    if result.exit_code != 0:
        raise SpawnError(
            f"Script '{command}' failed with exit code {result.exit_code}",
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
        )
    return result
