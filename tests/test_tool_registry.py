"""
Unit tests for the Tool Registry and the capability result envelope.
"""

import pytest

from openagent.core.agents.errors import ErrorKind, RegistryError
from openagent.core.agents.tool_registry import CapabilityResult, ToolCategory, ToolRegistry


BUILTIN_NAMES = {
    "read_file", "write_file", "edit_file", "list_directory", "create_directory",
    "delete_file", "get_file_info", "search_files", "grep_search", "run_command",
    "web_search", "read_url",
}


async def _echo(text: str):
    return {"text": text}


def _sync_handler(text: str):
    return {"text": text}


def _params(**properties):
    return {"type": "object", "properties": properties, "required": list(properties)}


class TestRegistration:
    """Test registering capabilities."""

    def test_register_and_lookup(self):
        registry = ToolRegistry()
        registry.register("echo", "Echo text", _params(text={"type": "string"}), _echo)

        assert "echo" in registry
        assert len(registry) == 1
        assert registry.get("echo").category == ToolCategory.COMMAND
        assert registry.get("missing") is None

    def test_duplicate_name_rejected(self):
        registry = ToolRegistry()
        registry.register("echo", "Echo text", _params(text={"type": "string"}), _echo)

        with pytest.raises(RegistryError):
            registry.register("echo", "Again", _params(text={"type": "string"}), _echo)

    def test_register_all_reads_definition_dicts(self):
        registry = ToolRegistry()
        registry.register_all([
            {
                "name": "echo",
                "description": "Echo text",
                "handler": _echo,
                "category": "file_write",
                "mutating": True,
                "parameters": _params(text={"type": "string"}),
            },
        ])

        tool = registry.get("echo")
        assert tool.category == ToolCategory.FILE_WRITE
        assert tool.mutating is True


class TestCatalog:
    """Test the catalog handed to the model."""

    def test_builtin_catalog(self, registry):
        catalog = registry.get_catalog()

        assert {entry["name"] for entry in catalog} == BUILTIN_NAMES
        for entry in catalog:
            assert set(entry) == {"name", "description", "parameters"}
            assert entry["parameters"]["type"] == "object"

    def test_catalog_restricted_to_names(self, registry):
        catalog = registry.get_catalog(["read_file", "nope"])

        assert [entry["name"] for entry in catalog] == ["read_file"]

    def test_builtin_registry_is_consistent(self, registry):
        registry.validate(registry.get_catalog())


class TestValidation:
    """Test the startup consistency check."""

    def test_sync_handler_rejected(self):
        registry = ToolRegistry()
        registry.register("echo", "Echo", _params(text={"type": "string"}), _sync_handler)

        with pytest.raises(RegistryError, match="coroutine"):
            registry.validate()

    def test_required_key_must_be_declared(self):
        registry = ToolRegistry()
        registry.register(
            "echo", "Echo",
            {"type": "object", "properties": {}, "required": ["text"]},
            _echo,
        )

        with pytest.raises(RegistryError, match="required keys not declared"):
            registry.validate()

    def test_advertised_without_handler(self):
        registry = ToolRegistry()
        registry.register("echo", "Echo", _params(text={"type": "string"}), _echo)
        catalog = registry.get_catalog() + [
            {"name": "ghost", "description": "", "parameters": {"type": "object", "properties": {}}},
        ]

        with pytest.raises(RegistryError, match="ghost"):
            registry.validate(catalog)

    def test_registered_but_not_advertised(self):
        registry = ToolRegistry()
        registry.register("echo", "Echo", _params(text={"type": "string"}), _echo)

        with pytest.raises(RegistryError, match="not advertised"):
            registry.validate([])

    def test_schema_drift_detected(self):
        registry = ToolRegistry()
        registry.register("echo", "Echo", _params(text={"type": "string"}), _echo)
        catalog = [{"name": "echo", "description": "Echo", "parameters": _params(text={"type": "integer"})}]

        with pytest.raises(RegistryError, match="differs"):
            registry.validate(catalog)


class TestStats:
    """Test per-capability usage statistics."""

    def test_record_call(self):
        registry = ToolRegistry()
        registry.register("echo", "Echo", _params(text={"type": "string"}), _echo)

        registry.record_call("echo", 10)
        registry.record_call("echo", 30, error=True)
        registry.record_call("unknown", 5)

        stats = registry.get_stats()
        assert stats == {"echo": {"calls": 2, "errors": 1, "avg_ms": 20.0, "total_ms": 40.0}}


class TestCapabilityResult:
    """Test the result envelope."""

    def test_success_envelope(self):
        result = CapabilityResult(succeeded=True, payload={"content": "hi"}, elapsed_ms=4)

        assert result.to_envelope() == {"success": True, "content": "hi", "executionTime": 4}

    def test_failure_envelope(self):
        result = CapabilityResult(
            succeeded=False,
            payload={"stdout": "x"},
            error="boom",
            elapsed_ms=2,
            error_kind=ErrorKind.EXECUTION_FAILED,
        )

        assert result.to_envelope() == {
            "success": False,
            "stdout": "x",
            "error": "boom",
            "errorKind": "execution_failed",
            "executionTime": 2,
        }

    def test_payload_cannot_override_reserved_keys(self):
        result = CapabilityResult(succeeded=True, payload={"success": False, "executionTime": 99})

        envelope = result.to_envelope()
        assert envelope["success"] is True
        assert envelope["executionTime"] == 0
