"""
File Tools - Read, Write, Edit, List, Create, Delete, Info, Search
===================================================================
Filesystem capabilities. Every path goes through the PermissionGate, which
resolves it to an absolute canonical path and refuses protected trees:
- read_file: Read a file (size ceiling)
- write_file: Create or overwrite a file, creating parent directories
- edit_file: Replace the first occurrence of a string
- list_directory / create_directory / delete_file / get_file_info
- search_files: Find files whose name matches a glob pattern
"""

import asyncio
import fnmatch
import os
from datetime import datetime
from functools import partial
from typing import Any, Dict, List

import aiofiles
import aiofiles.os

from openagent.core.agents.errors import CapabilityError, ErrorKind
from openagent.core.agents.permission_gate import PermissionGate

MAX_READ_BYTES = 1024 * 1024
MAX_SEARCH_DEPTH = 5
MAX_SEARCH_RESULTS = 50


async def _require_file(path: str) -> os.stat_result:
    if not await aiofiles.os.path.exists(path):
        raise CapabilityError(ErrorKind.NOT_FOUND, f"File not found: {path}", path=path)
    if await aiofiles.os.path.isdir(path):
        raise CapabilityError(ErrorKind.INVALID_ARGUMENT, f"Not a file: {path}", path=path)
    return await aiofiles.os.stat(path)


async def _require_dir(path: str) -> None:
    if not await aiofiles.os.path.exists(path):
        raise CapabilityError(ErrorKind.NOT_FOUND, f"Directory not found: {path}", path=path)
    if not await aiofiles.os.path.isdir(path):
        raise CapabilityError(ErrorKind.INVALID_ARGUMENT, f"Not a directory: {path}", path=path)


def _check_size(path: str, size: int, max_bytes: int) -> None:
    if size > max_bytes:
        raise CapabilityError(
            ErrorKind.FILE_TOO_LARGE,
            f"File too large ({size} bytes > {max_bytes} bytes)",
            path=path,
            size=size,
        )


async def read_file(
    path: str,
    *,
    gate: PermissionGate,
    max_bytes: int = MAX_READ_BYTES,
) -> Dict[str, Any]:
    """Read a text file's contents"""
    resolved = gate.check_path(path, mutating=False, capability="read_file")
    stat = await _require_file(resolved)
    _check_size(resolved, stat.st_size, max_bytes)

    async with aiofiles.open(resolved, "r", encoding="utf-8", errors="replace") as f:
        content = await f.read()

    return {"path": resolved, "content": content, "size": stat.st_size}


async def write_file(
    path: str,
    content: str,
    *,
    gate: PermissionGate,
) -> Dict[str, Any]:
    """Create or overwrite a file; parent directories are created"""
    resolved = gate.check_path(path, mutating=True, capability="write_file")
    parent = os.path.dirname(resolved)

    try:
        await aiofiles.os.makedirs(parent, exist_ok=True)
    except OSError as e:
        raise CapabilityError(
            ErrorKind.EXECUTION_FAILED,
            f"Cannot create parent directory {parent}: {e.strerror or e}",
            path=resolved,
        )

    if await aiofiles.os.path.isdir(resolved):
        raise CapabilityError(ErrorKind.INVALID_ARGUMENT, f"Is a directory: {resolved}", path=resolved)

    try:
        async with aiofiles.open(resolved, "w", encoding="utf-8") as f:
            await f.write(content)
    except OSError as e:
        raise CapabilityError(
            ErrorKind.EXECUTION_FAILED, f"Failed to write file: {e.strerror or e}", path=resolved,
        )

    return {
        "path": resolved,
        "bytesWritten": len(content.encode("utf-8")),
        "message": f"File written to {resolved}",
    }


async def edit_file(
    path: str,
    old_str: str,
    new_str: str,
    *,
    gate: PermissionGate,
    max_bytes: int = MAX_READ_BYTES,
) -> Dict[str, Any]:
    """Replace the first occurrence of ``old_str`` with ``new_str``"""
    resolved = gate.check_path(path, mutating=True, capability="edit_file")
    stat = await _require_file(resolved)
    _check_size(resolved, stat.st_size, max_bytes)

    try:
        async with aiofiles.open(resolved, "r", encoding="utf-8") as f:
            content = await f.read()
    except UnicodeDecodeError:
        raise CapabilityError(
            ErrorKind.INVALID_ARGUMENT, f"File is not valid UTF-8 text: {resolved}", path=resolved,
        )

    count = content.count(old_str) if old_str else 0
    if count == 0:
        raise CapabilityError(
            ErrorKind.INVALID_ARGUMENT,
            "Search content not found in file. Make sure the search string matches exactly.",
            path=resolved,
        )

    async with aiofiles.open(resolved, "w", encoding="utf-8") as f:
        await f.write(content.replace(old_str, new_str, 1))

    return {
        "path": resolved,
        "replacements": count,
        "message": f"File edited successfully: {resolved}",
    }


async def list_directory(path: str, *, gate: PermissionGate) -> Dict[str, Any]:
    """List the entries of a directory"""
    resolved = gate.check_path(path, mutating=False, capability="list_directory")
    await _require_dir(resolved)

    items: List[Dict[str, str]] = []
    for name in sorted(await aiofiles.os.listdir(resolved)):
        full_path = os.path.join(resolved, name)
        is_dir = await aiofiles.os.path.isdir(full_path)
        items.append({
            "name": name,
            "type": "directory" if is_dir else "file",
            "path": full_path,
        })

    return {"path": resolved, "items": items, "count": len(items)}


async def create_directory(path: str, *, gate: PermissionGate) -> Dict[str, Any]:
    """Create a directory (and any missing parents)"""
    resolved = gate.check_path(path, mutating=True, capability="create_directory")
    try:
        await aiofiles.os.makedirs(resolved, exist_ok=True)
    except OSError as e:
        raise CapabilityError(
            ErrorKind.EXECUTION_FAILED,
            f"Cannot create directory {resolved}: {e.strerror or e}",
            path=resolved,
        )
    return {"path": resolved, "message": f"Directory created: {resolved}"}


async def delete_file(path: str, *, gate: PermissionGate) -> Dict[str, Any]:
    """Delete a single file"""
    resolved = gate.check_path(path, mutating=True, capability="delete_file")
    await _require_file(resolved)
    await aiofiles.os.remove(resolved)
    return {"path": resolved, "message": f"Deleted {resolved}"}


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts).isoformat()


async def get_file_info(path: str, *, gate: PermissionGate) -> Dict[str, Any]:
    """Size, type and timestamps of a path"""
    resolved = gate.check_path(path, mutating=False, capability="get_file_info")
    if not await aiofiles.os.path.exists(resolved):
        raise CapabilityError(ErrorKind.NOT_FOUND, f"Path not found: {resolved}", path=resolved)

    stats = await aiofiles.os.stat(resolved)
    created = getattr(stats, "st_birthtime", stats.st_ctime)
    return {
        "info": {
            "path": resolved,
            "size": stats.st_size,
            "isDirectory": os.path.isdir(resolved),
            "isFile": os.path.isfile(resolved),
            "created": _iso(created),
            "modified": _iso(stats.st_mtime),
            "accessed": _iso(stats.st_atime),
        }
    }


def _walk_matches(root: str, pattern: str, max_depth: int, limit: int) -> List[str]:
    matches: List[str] = []

    def _search(directory: str, depth: int):
        if depth > max_depth or len(matches) >= limit:
            return
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError:
            return
        for entry in entries:
            if len(matches) >= limit:
                return
            if entry.is_dir(follow_symlinks=False):
                if not entry.name.startswith("."):
                    _search(entry.path, depth + 1)
            elif entry.is_file() and fnmatch.fnmatch(entry.name, pattern):
                matches.append(entry.path)

    _search(root, 0)
    return matches


async def search_files(
    directory: str,
    pattern: str,
    *,
    gate: PermissionGate,
) -> Dict[str, Any]:
    """Find files whose name matches a glob pattern (e.g. ``*.py``)"""
    resolved = gate.check_path(directory, mutating=False, capability="search_files")
    await _require_dir(resolved)

    matches = await asyncio.to_thread(
        _walk_matches, resolved, pattern, MAX_SEARCH_DEPTH, MAX_SEARCH_RESULTS,
    )
    return {
        "directory": resolved,
        "pattern": pattern,
        "matches": matches,
        "count": len(matches),
    }


def file_tool_definitions(gate: PermissionGate, max_read_bytes: int = MAX_READ_BYTES) -> List[Dict]:
    """Tool definitions for registration, with the gate and limits bound"""
    return [
        {
            "name": "read_file",
            "description": "Read the contents of a file from the filesystem",
            "handler": partial(read_file, gate=gate, max_bytes=max_read_bytes),
            "category": "file_read",
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Absolute or relative path to the file"},
                },
                "required": ["path"],
            },
        },
        {
            "name": "write_file",
            "description": "Write content to a file on the filesystem, creating parent directories",
            "handler": partial(write_file, gate=gate),
            "category": "file_write",
            "mutating": True,
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Path to the file to write"},
                    "content": {"type": "string", "description": "Content to write to the file"},
                },
                "required": ["path", "content"],
            },
        },
        {
            "name": "edit_file",
            "description": "Edit a file by replacing the first occurrence of a string",
            "handler": partial(edit_file, gate=gate, max_bytes=max_read_bytes),
            "category": "file_write",
            "mutating": True,
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Path to the file"},
                    "old_str": {"type": "string", "description": "Exact content to search for"},
                    "new_str": {"type": "string", "description": "Replacement content"},
                },
                "required": ["path", "old_str", "new_str"],
            },
        },
        {
            "name": "list_directory",
            "description": "List contents of a directory",
            "handler": partial(list_directory, gate=gate),
            "category": "file_read",
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Path to the directory to list"},
                },
                "required": ["path"],
            },
        },
        {
            "name": "create_directory",
            "description": "Create a directory, including missing parents",
            "handler": partial(create_directory, gate=gate),
            "category": "file_write",
            "mutating": True,
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Directory to create"},
                },
                "required": ["path"],
            },
        },
        {
            "name": "delete_file",
            "description": "Delete a file",
            "handler": partial(delete_file, gate=gate),
            "category": "file_write",
            "mutating": True,
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "File to delete"},
                },
                "required": ["path"],
            },
        },
        {
            "name": "get_file_info",
            "description": "Get size, type and timestamps of a file or directory",
            "handler": partial(get_file_info, gate=gate),
            "category": "file_read",
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "File or directory path"},
                },
                "required": ["path"],
            },
        },
        {
            "name": "search_files",
            "description": "Search for files matching a pattern in a directory",
            "handler": partial(search_files, gate=gate),
            "category": "search",
            "parameters": {
                "type": "object",
                "properties": {
                    "directory": {"type": "string", "description": "Directory to search in"},
                    "pattern": {"type": "string", "description": "Glob pattern to match (e.g., \"*.js\")"},
                },
                "required": ["directory", "pattern"],
            },
        },
    ]
