"""
Tests for the filesystem capabilities, invoked through the dispatcher.
"""

import os

import pytest

from openagent.core.agents.errors import CapabilityError, ErrorKind
from openagent.core.tools.file_tools import read_file


class TestReadWrite:
    """Test read_file and write_file."""

    @pytest.mark.asyncio
    async def test_write_then_read(self, dispatcher, tmp_path):
        target = tmp_path / "notes.txt"

        written = await dispatcher.invoke("write_file", {"path": str(target), "content": "héllo"})
        read = await dispatcher.invoke("read_file", {"path": str(target)})

        assert written.succeeded
        assert written.payload["bytesWritten"] == len("héllo".encode("utf-8"))
        assert read.succeeded
        assert read.payload["content"] == "héllo"
        assert read.payload["path"] == os.path.realpath(str(target))

    @pytest.mark.asyncio
    async def test_write_is_idempotent(self, dispatcher, tmp_path):
        target = tmp_path / "same.txt"

        for _ in range(2):
            result = await dispatcher.invoke("write_file", {"path": str(target), "content": "v1"})
            assert result.succeeded

        assert target.read_text() == "v1"

    @pytest.mark.asyncio
    async def test_write_creates_parent_directories(self, dispatcher, tmp_path):
        target = tmp_path / "a" / "b" / "c.txt"

        result = await dispatcher.invoke("write_file", {"path": str(target), "content": "deep"})

        assert result.succeeded
        assert target.read_text() == "deep"

    @pytest.mark.asyncio
    async def test_write_under_regular_file_fails(self, dispatcher, tmp_path):
        blocker = tmp_path / "file.txt"
        blocker.write_text("x")

        result = await dispatcher.invoke("write_file", {
            "path": str(blocker / "child.txt"), "content": "nested",
        })

        assert not result.succeeded
        assert result.error_kind == ErrorKind.EXECUTION_FAILED
        assert blocker.read_text() == "x"

    @pytest.mark.asyncio
    async def test_write_to_system_path_blocked(self, dispatcher, gate):
        result = await dispatcher.invoke("write_file", {"path": "/etc/openagent-test.conf", "content": "x"})

        assert result.error_kind == ErrorKind.SAFETY_BLOCKED
        assert gate.get_audit_log()[-1]["capability"] == "write_file"

    @pytest.mark.asyncio
    async def test_read_missing_file(self, dispatcher, tmp_path):
        result = await dispatcher.invoke("read_file", {"path": str(tmp_path / "nope.txt")})

        assert result.error_kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_read_directory_is_invalid(self, dispatcher, tmp_path):
        result = await dispatcher.invoke("read_file", {"path": str(tmp_path)})

        assert result.error_kind == ErrorKind.INVALID_ARGUMENT

    @pytest.mark.asyncio
    async def test_read_over_ceiling(self, gate, tmp_path):
        target = tmp_path / "big.txt"
        target.write_text("x" * 100)

        with pytest.raises(CapabilityError) as exc_info:
            await read_file(str(target), gate=gate, max_bytes=10)

        assert exc_info.value.kind == ErrorKind.FILE_TOO_LARGE
        assert exc_info.value.payload["size"] == 100


class TestEdit:
    """Test edit_file."""

    @pytest.mark.asyncio
    async def test_replaces_first_occurrence_only(self, dispatcher, tmp_path):
        target = tmp_path / "code.py"
        target.write_text("a = 1\na = 1\n")

        result = await dispatcher.invoke("edit_file", {
            "path": str(target), "old_str": "a = 1", "new_str": "a = 2",
        })

        assert result.succeeded
        assert result.payload["replacements"] == 2
        assert target.read_text() == "a = 2\na = 1\n"

    @pytest.mark.asyncio
    async def test_absent_search_string(self, dispatcher, tmp_path):
        target = tmp_path / "code.py"
        target.write_text("x = 1\n")

        result = await dispatcher.invoke("edit_file", {
            "path": str(target), "old_str": "y = 2", "new_str": "y = 3",
        })

        assert result.error_kind == ErrorKind.INVALID_ARGUMENT
        assert target.read_text() == "x = 1\n"

    @pytest.mark.asyncio
    async def test_binary_file_is_invalid(self, dispatcher, tmp_path):
        target = tmp_path / "blob.bin"
        target.write_bytes(b"\xff\xfe\x00bad")

        result = await dispatcher.invoke("edit_file", {
            "path": str(target), "old_str": "bad", "new_str": "good",
        })

        assert result.error_kind == ErrorKind.INVALID_ARGUMENT
        assert "UTF-8" in result.error
        assert target.read_bytes() == b"\xff\xfe\x00bad"


class TestDirectories:
    """Test list, create, delete, info and search."""

    @pytest.mark.asyncio
    async def test_list_directory(self, dispatcher, tmp_path):
        (tmp_path / "b.txt").write_text("b")
        (tmp_path / "a_dir").mkdir()

        result = await dispatcher.invoke("list_directory", {"path": str(tmp_path)})

        assert result.succeeded
        assert result.payload["count"] == 2
        assert [(i["name"], i["type"]) for i in result.payload["items"]] == [
            ("a_dir", "directory"), ("b.txt", "file"),
        ]

    @pytest.mark.asyncio
    async def test_list_missing_directory(self, dispatcher, tmp_path):
        result = await dispatcher.invoke("list_directory", {"path": str(tmp_path / "missing")})

        assert result.error_kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_create_directory(self, dispatcher, tmp_path):
        target = tmp_path / "x" / "y"

        result = await dispatcher.invoke("create_directory", {"path": str(target)})

        assert result.succeeded
        assert target.is_dir()

    @pytest.mark.asyncio
    async def test_delete_file(self, dispatcher, tmp_path):
        target = tmp_path / "gone.txt"
        target.write_text("bye")

        result = await dispatcher.invoke("delete_file", {"path": str(target)})
        again = await dispatcher.invoke("delete_file", {"path": str(target)})

        assert result.succeeded
        assert not target.exists()
        assert again.error_kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_get_file_info(self, dispatcher, tmp_path):
        target = tmp_path / "info.txt"
        target.write_text("12345")

        result = await dispatcher.invoke("get_file_info", {"path": str(target)})

        info = result.payload["info"]
        assert info["size"] == 5
        assert info["isFile"] is True
        assert info["isDirectory"] is False
        assert "modified" in info

    @pytest.mark.asyncio
    async def test_search_files(self, dispatcher, tmp_path):
        (tmp_path / "one.py").write_text("")
        (tmp_path / "two.txt").write_text("")
        (tmp_path / "pkg").mkdir()
        (tmp_path / "pkg" / "three.py").write_text("")
        (tmp_path / ".hidden").mkdir()
        (tmp_path / ".hidden" / "four.py").write_text("")

        result = await dispatcher.invoke("search_files", {"directory": str(tmp_path), "pattern": "*.py"})

        names = sorted(os.path.basename(m) for m in result.payload["matches"])
        assert names == ["one.py", "three.py"]
        assert result.payload["count"] == 2
