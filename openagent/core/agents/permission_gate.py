"""
Permission Gate — Safety checks for filesystem and shell capabilities
=====================================================================
Pure predicates that classify a path or command as forbidden before any
handler runs, plus a small policy object that bundles the configured
prefixes and keeps an audit log of refusals.

Destructive-command detection is regex based and therefore incomplete. It is
an advisory gate in front of the shell, not a security boundary.
"""

import logging
import os
import re
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import CapabilityError, ErrorKind

logger = logging.getLogger(__name__)


# Start of an absolute or home-relative target, optionally quoted
_ROOTED_TARGET = r"[\"']?(?:/|~|\$\{?HOME\b)"

# Case-sensitive, matched against the literal command text
BLOCKED_PATTERNS = [
    # Recursive delete of anything under / or ~ : rm -rf /usr , rm -fr ~/Documents , rm -r -f $HOME
    r"\brm\s+(?:--?[\w-]+\s+)*?-[a-zA-Z]*[rR][a-zA-Z]*\s+(?:--?[\w-]+\s+)*" + _ROOTED_TARGET,
    r"\brm\s+(?:-\S+\s+)*--recursive\s+(?:-\S+\s+)*" + _ROOTED_TARGET,
    r"\bsudo\s+rm\b",
    # Raw device writes
    r"\bdd\s+if=",
    r">\s*/dev/(?:sd|hd|nvme|disk|mmcblk)\w*",
    # Filesystem format
    r"\bmkfs(?:\.\w+)?\b",
    # Recursive permission/ownership change of anything under /
    r"\bch(?:mod|own)\s+(?:-\S+\s+)*(?:-[a-zA-Z]*R[a-zA-Z]*|--recursive)\s+(?:\S+\s+)?[\"']?/",
    # Fork bomb
    r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:",
]

_BLOCKED_COMPILED = [re.compile(p) for p in BLOCKED_PATTERNS]

# Write/delete targets are refused under these prefixes
SYSTEM_PATH_PREFIXES = (
    "/bin", "/boot", "/dev", "/etc", "/lib", "/lib32", "/lib64", "/proc",
    "/sbin", "/sys", "/usr", "/var/lib", "/System", "/Library",
)

# Reads are refused only under pseudo-filesystems
PSEUDO_FS_PREFIXES = ("/dev", "/proc", "/sys")


def match_blocked_pattern(command: str, extra: Sequence[re.Pattern] = ()) -> Optional[str]:
    """Return the first destructive pattern matching ``command``, if any"""
    for pattern in list(_BLOCKED_COMPILED) + list(extra):
        if pattern.search(command):
            return pattern.pattern
    return None


def is_dangerous_command(command: str) -> bool:
    return match_blocked_pattern(command) is not None


def resolve_path(path: str, base_dir: Optional[str] = None) -> str:
    """Absolute canonical path (``~`` expanded, symlinks resolved)"""
    expanded = os.path.expanduser(path)
    if not os.path.isabs(expanded) and base_dir:
        expanded = os.path.join(base_dir, expanded)
    return os.path.realpath(os.path.abspath(expanded))


def is_under_prefix(resolved: str, prefixes: Iterable[str]) -> bool:
    """True when ``resolved`` equals or lies inside one of ``prefixes``"""
    for prefix in prefixes:
        prefix = prefix.rstrip("/") or "/"
        if prefix == "/":
            return True
        if resolved == prefix or resolved.startswith(prefix + "/"):
            return True
    return False


@dataclass
class PermissionDecision:
    """Record of a refusal"""
    subject: str
    reason: str
    capability: str = ""
    timestamp: float = field(default_factory=time.time)


class PermissionGate:
    """
    Configured Safety Gate.

    Usage:
        gate = PermissionGate()
        gate.check_command("rm -rf /")        # raises CapabilityError(SAFETY_BLOCKED)
        path = gate.check_path("~/notes.txt", mutating=True)
    """

    MAX_AUDIT_ENTRIES = 200

    def __init__(
        self,
        system_prefixes: Optional[Sequence[str]] = None,
        allow_system_paths: bool = False,
        blocked_patterns: Optional[List[str]] = None,
    ):
        self.system_prefixes = tuple(system_prefixes or SYSTEM_PATH_PREFIXES)
        self.allow_system_paths = allow_system_paths
        self._extra_blocked = [re.compile(p) for p in (blocked_patterns or [])]
        self._decisions: List[PermissionDecision] = []

    def check_command(self, command: str, capability: str = "run_command") -> None:
        """Refuse destructive commands before anything is spawned"""
        pattern = match_blocked_pattern(command, self._extra_blocked)
        if pattern is None:
            return
        logger.warning(f"[PermissionGate] BLOCKED: {command[:100]}")
        self._record(PermissionDecision(command[:200], f"matched {pattern}", capability))
        raise CapabilityError(
            ErrorKind.SAFETY_BLOCKED,
            "SAFETY GATE: This command appears dangerous and has been blocked. "
            "Destructive commands require explicit user approval.",
            command=command,
        )

    def check_path(
        self,
        path: str,
        mutating: bool = False,
        capability: str = "",
        base_dir: Optional[str] = None,
    ) -> str:
        """Resolve ``path`` and refuse it when it points into a protected tree"""
        if not isinstance(path, str) or not path.strip():
            raise CapabilityError(ErrorKind.INVALID_ARGUMENT, "Path must be a non-empty string")
        resolved = resolve_path(path, base_dir)
        if self.allow_system_paths:
            return resolved
        prefixes = self.system_prefixes if mutating else PSEUDO_FS_PREFIXES
        if is_under_prefix(resolved, prefixes):
            logger.warning(f"[PermissionGate] BLOCKED path: {resolved}")
            self._record(PermissionDecision(resolved, "system path", capability))
            raise CapabilityError(
                ErrorKind.SAFETY_BLOCKED,
                f"SAFETY GATE: Access to system path {resolved} is not allowed.",
                path=resolved,
            )
        return resolved

    def _record(self, decision: PermissionDecision):
        self._decisions.append(decision)
        if len(self._decisions) > self.MAX_AUDIT_ENTRIES:
            del self._decisions[: len(self._decisions) - self.MAX_AUDIT_ENTRIES]

    def get_audit_log(self) -> List[Dict]:
        """Refusals, oldest first"""
        return [
            {
                "subject": d.subject,
                "reason": d.reason,
                "capability": d.capability,
                "timestamp": d.timestamp,
            }
            for d in self._decisions
        ]
