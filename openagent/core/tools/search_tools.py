"""
Search Tools - Content search
==============================
- grep_search: Search file contents with a regex using system grep
"""

import asyncio
import re
from functools import partial
from typing import Any, Dict, List

import aiofiles.os

from openagent.core.agents.errors import CapabilityError, ErrorKind
from openagent.core.agents.permission_gate import PermissionGate

GREP_TIMEOUT = 30.0
DEFAULT_MAX_RESULTS = 50

_GREP_LINE = re.compile(r"^(.+?):(\d+):(.*)$")


def _parse_grep_output(output: str, max_results: int) -> List[Dict[str, Any]]:
    matches = []
    for line in output.splitlines():
        if len(matches) >= max_results:
            break
        if not line:
            continue
        m = _GREP_LINE.match(line)
        if m:
            matches.append({
                "file": m.group(1),
                "line": int(m.group(2)),
                "content": m.group(3).strip(),
            })
        else:
            matches.append({"raw": line})
    return matches


async def grep_search(
    pattern: str,
    directory: str,
    ignore_case: bool = False,
    file_pattern: str = "*",
    max_results: int = DEFAULT_MAX_RESULTS,
    *,
    gate: PermissionGate,
) -> Dict[str, Any]:
    """
    Search file contents recursively.

    grep exit status 1 means "no matches" and is a success with an empty
    list; anything above 1 is reported as ``execution_failed``.
    """
    resolved = gate.check_path(directory, mutating=False, capability="grep_search")
    if not await aiofiles.os.path.isdir(resolved):
        raise CapabilityError(ErrorKind.NOT_FOUND, f"Directory not found: {resolved}", path=resolved)
    if max_results <= 0:
        raise CapabilityError(ErrorKind.INVALID_ARGUMENT, "max_results must be positive")

    args = ["grep", "-rn", f"--include={file_pattern or '*'}", "-m", str(max_results)]
    if ignore_case:
        args.append("-i")
    args += ["-e", pattern, resolved]

    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        raise CapabilityError(ErrorKind.EXECUTION_FAILED, "grep is not available on this system")

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=GREP_TIMEOUT)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise CapabilityError(
            ErrorKind.TIMEOUT, f"Search timed out after {GREP_TIMEOUT:g}s", pattern=pattern,
        )

    if process.returncode == 1:
        return {
            "pattern": pattern,
            "directory": resolved,
            "matches": [],
            "count": 0,
            "message": f'No matches found for "{pattern}" in {resolved}',
        }
    if process.returncode != 0:
        raise CapabilityError(
            ErrorKind.EXECUTION_FAILED,
            f"grep failed: {stderr.decode('utf-8', errors='replace').strip()}",
            pattern=pattern,
        )

    matches = _parse_grep_output(stdout.decode("utf-8", errors="replace"), max_results)
    return {
        "pattern": pattern,
        "directory": resolved,
        "matches": matches,
        "count": len(matches),
    }


def search_tool_definitions(gate: PermissionGate) -> List[Dict]:
    return [
        {
            "name": "grep_search",
            "description": "Search for text patterns in files using grep",
            "handler": partial(grep_search, gate=gate),
            "category": "search",
            "parameters": {
                "type": "object",
                "properties": {
                    "pattern": {"type": "string", "description": "Text or regex pattern to search for"},
                    "directory": {"type": "string", "description": "Directory to search in"},
                    "ignore_case": {"type": "boolean", "description": "Case-insensitive search"},
                    "file_pattern": {"type": "string", "description": "File glob to include (e.g., \"*.py\")"},
                    "max_results": {"type": "integer", "description": "Maximum matches (default 50)"},
                },
                "required": ["pattern", "directory"],
            },
        },
    ]
