"""
Command Tools - Shell execution
================================
- run_command: Execute a shell command behind the Safety Gate

The command text is checked against the destructive-pattern denylist before
anything is spawned. A running command is bounded by a wall-clock timeout and
a combined stdout+stderr ceiling; exceeding either kills the whole process
group.
"""

import asyncio
import logging
import os
import signal
from functools import partial
from typing import Any, Dict, List, Optional

import aiofiles.os

from openagent.core.agents.errors import CapabilityError, ErrorKind
from openagent.core.agents.permission_gate import PermissionGate

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
MAX_OUTPUT_BYTES = 5 * 1024 * 1024
_READ_CHUNK = 64 * 1024


class _OutputLimitExceeded(Exception):
    pass


class _OutputCollector:
    """Accumulates stdout/stderr under one shared byte ceiling"""

    def __init__(self, limit: int):
        self.limit = limit
        self.total = 0
        self.buffers = {"stdout": bytearray(), "stderr": bytearray()}

    async def pump(self, stream: asyncio.StreamReader, name: str):
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                return
            self.total += len(chunk)
            if self.total > self.limit:
                raise _OutputLimitExceeded()
            self.buffers[name].extend(chunk)

    def text(self, name: str) -> str:
        return self.buffers[name].decode("utf-8", errors="replace")


def _kill_process_group(process: asyncio.subprocess.Process):
    if process.returncode is not None:
        return
    try:
        if hasattr(os, "killpg"):
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass


async def run_command(
    command: str,
    cwd: Optional[str] = None,
    *,
    gate: PermissionGate,
    timeout: float = DEFAULT_TIMEOUT,
    max_output_bytes: int = MAX_OUTPUT_BYTES,
    default_cwd: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Execute a shell command.

    Returns ``stdout``, ``stderr`` and ``exitCode``. A non-zero exit status
    is reported as ``execution_failed`` with the captured output attached.
    """
    gate.check_command(command)

    if cwd:
        workdir = gate.check_path(cwd, mutating=False, capability="run_command")
    else:
        workdir = default_cwd or os.path.expanduser("~")
    if not await aiofiles.os.path.isdir(workdir):
        raise CapabilityError(ErrorKind.NOT_FOUND, f"Working directory not found: {workdir}", cwd=workdir)

    try:
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=workdir,
            env={**os.environ, "TERM": "dumb"},
            start_new_session=True,
        )
    except OSError as e:
        raise CapabilityError(
            ErrorKind.EXECUTION_FAILED, f"Failed to start command: {e.strerror or e}", command=command,
        )

    collector = _OutputCollector(max_output_bytes)
    readers = [
        asyncio.ensure_future(collector.pump(process.stdout, "stdout")),
        asyncio.ensure_future(collector.pump(process.stderr, "stderr")),
    ]

    try:
        await asyncio.wait_for(asyncio.gather(*readers, process.wait()), timeout=timeout)
    except asyncio.TimeoutError:
        _kill_process_group(process)
        await process.wait()
        logger.warning(f"[run_command] Timed out after {timeout}s: {command[:100]}")
        raise CapabilityError(
            ErrorKind.TIMEOUT,
            f"Command timed out after {timeout:g}s",
            command=command,
            stdout=collector.text("stdout"),
            stderr=collector.text("stderr"),
        )
    except _OutputLimitExceeded:
        _kill_process_group(process)
        await process.wait()
        logger.warning(f"[run_command] Output exceeded {max_output_bytes} bytes: {command[:100]}")
        raise CapabilityError(
            ErrorKind.OUTPUT_TOO_LARGE,
            f"Command output exceeded {max_output_bytes} bytes",
            command=command,
        )
    finally:
        for reader in readers:
            if not reader.done():
                reader.cancel()

    stdout = collector.text("stdout").strip()
    stderr = collector.text("stderr").strip()

    if process.returncode != 0:
        raise CapabilityError(
            ErrorKind.EXECUTION_FAILED,
            f"Command failed with exit code {process.returncode}",
            command=command,
            stdout=stdout,
            stderr=stderr,
            exitCode=process.returncode,
        )

    return {
        "command": command,
        "cwd": workdir,
        "stdout": stdout,
        "stderr": stderr,
        "exitCode": 0,
    }


def command_tool_definitions(
    gate: PermissionGate,
    timeout: float = DEFAULT_TIMEOUT,
    max_output_bytes: int = MAX_OUTPUT_BYTES,
    default_cwd: Optional[str] = None,
) -> List[Dict]:
    return [
        {
            "name": "run_command",
            "description": "Execute a shell command and return its output",
            "handler": partial(
                run_command,
                gate=gate,
                timeout=timeout,
                max_output_bytes=max_output_bytes,
                default_cwd=default_cwd,
            ),
            "category": "command",
            "parameters": {
                "type": "object",
                "properties": {
                    "command": {"type": "string", "description": "Shell command to execute"},
                    "cwd": {"type": "string", "description": "Working directory (optional)"},
                },
                "required": ["command"],
            },
        },
    ]
