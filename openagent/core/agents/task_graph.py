"""
Task Graph — Decomposed work units for the swarm
=================================================
A request is decomposed by the planner model into a JSON array of tasks:

    [
      {"id": 1, "description": "List /tmp", "tool": "list_directory",
       "args": {"path": "/tmp"}, "depends_on": []},
      {"id": 2, "description": "Write summary", "tool": "write_file",
       "args": {...}, "depends_on": [1]}
    ]

``parse_task_graph`` extracts that array from free model text and checks the
graph is well formed. Cycles are *not* rejected here: the scheduler reports
tasks that can never become ready as unresolved.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import DecompositionError, ErrorKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Task:
    """Immutable unit of work: one capability invocation"""
    id: int
    description: str
    capability: str
    args: Dict[str, Any] = field(default_factory=dict, hash=False)
    depends_on: FrozenSet[int] = frozenset()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "tool": self.capability,
            "args": self.args,
            "dependsOn": sorted(self.depends_on),
        }


@dataclass(frozen=True)
class TaskResult:
    """Outcome of a dispatched task, written once by its worker"""
    task_id: int
    succeeded: bool
    value: Dict[str, Any] = field(default_factory=dict, hash=False)
    error: Optional[str] = None
    elapsed_ms: int = 0
    error_kind: Optional[ErrorKind] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "taskId": self.task_id,
            "succeeded": self.succeeded,
            "value": self.value,
            "error": self.error,
            "elapsedMs": self.elapsed_ms,
        }
        if self.error_kind is not None:
            data["errorKind"] = self.error_kind.value
        return data


@dataclass
class AgentRecord:
    """An in-flight worker, visible only while its task runs"""
    id: str
    task_id: int
    description: str
    status: str = "running"  # running | done

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "taskId": self.task_id,
            "task": self.description,
            "status": self.status,
        }


class TaskSpec(BaseModel):
    """Shape of one task as produced by the planner model"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    description: str = ""
    task: str = Field(default="", description="Alternate key for the description")
    tool: Optional[str] = None
    capability: Optional[str] = None
    args: Dict[str, Any] = Field(default_factory=dict)
    depends_on: List[int] = Field(default_factory=list, alias="dependsOn")

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            for key in ("dependsOn", "depends_on"):
                if data.get(key) is None and key in data:
                    data[key] = []
            if data.get("args") is None and "args" in data:
                data["args"] = {}
        return data

    @property
    def capability_name(self) -> str:
        return self.tool or self.capability or ""


_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_ARRAY = re.compile(r"\[.*\]", re.DOTALL)


def extract_json_array(text: str) -> Optional[str]:
    """Best-effort extraction of the first JSON array in model output"""
    if not text:
        return None
    for block in _FENCE.findall(text):
        match = _ARRAY.search(block)
        if match:
            return match.group(0)
    match = _ARRAY.search(text)
    return match.group(0) if match else None


def parse_task_graph(text: str) -> List[Task]:
    """
    Parse the planner's reply into tasks.

    Raises DecompositionError when the reply holds no JSON array, the array
    is empty, an entry is malformed, ids repeat, a task depends on itself, or
    a dependency names an id that is not in the graph.
    """
    raw = extract_json_array(text)
    if raw is None:
        raise DecompositionError("Planner reply contains no JSON task array")

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise DecompositionError(f"Planner reply is not valid JSON: {e.msg}")

    if not isinstance(data, list) or not data:
        raise DecompositionError("Planner returned an empty task list")

    specs: List[TaskSpec] = []
    for i, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise DecompositionError(f"Task #{i} is not an object")
        try:
            specs.append(TaskSpec.model_validate(entry))
        except ValidationError as e:
            raise DecompositionError(f"Task #{i} is malformed: {e.errors()[0].get('msg')}")

    ids = [s.id for s in specs]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise DecompositionError(f"Duplicate task ids: {duplicates}")

    known = set(ids)
    tasks: List[Task] = []
    for spec in specs:
        if not spec.capability_name:
            raise DecompositionError(f"Task {spec.id} names no capability")
        deps = frozenset(spec.depends_on)
        if spec.id in deps:
            raise DecompositionError(f"Task {spec.id} depends on itself")
        undefined = sorted(deps - known)
        if undefined:
            raise DecompositionError(f"Task {spec.id} depends on undefined task(s) {undefined}")
        tasks.append(Task(
            id=spec.id,
            description=spec.description or spec.task or spec.capability_name,
            capability=spec.capability_name,
            args=dict(spec.args),
            depends_on=deps,
        ))

    logger.info(f"[TaskGraph] Parsed {len(tasks)} tasks")
    return tasks
