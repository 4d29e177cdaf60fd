"""
Conversation model and in-memory store.

Messages are append-only; an assistant message keeps every capability
invocation made while producing it.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .tool_registry import CapabilityResult

DEFAULT_TITLE = "New Chat"
TITLE_MAX_CHARS = 50


def _now() -> str:
    return datetime.now().isoformat()


@dataclass
class CapabilityInvocation:
    name: str
    args: Any
    result: CapabilityResult
    call_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "args": self.args,
            "callId": self.call_id,
            "result": self.result.to_envelope(),
        }


@dataclass
class ConversationMessage:
    role: str  # user | assistant | tool | system
    content: str
    invocations: Optional[List[CapabilityInvocation]] = None
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.invocations:
            data["toolCalls"] = [inv.to_dict() for inv in self.invocations]
        return data


@dataclass
class Conversation:
    id: str
    title: str = DEFAULT_TITLE
    messages: List[ConversationMessage] = field(default_factory=list)
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def add_message(
        self,
        role: str,
        content: str,
        invocations: Optional[List[CapabilityInvocation]] = None,
    ) -> ConversationMessage:
        message = ConversationMessage(role=role, content=content, invocations=invocations or None)
        self.messages.append(message)
        if role == "user" and self.title == DEFAULT_TITLE:
            self.title = content[:TITLE_MAX_CHARS] + ("..." if len(content) > TITLE_MAX_CHARS else "")
        self.updated_at = message.timestamp
        return message

    def history(self) -> List[Dict[str, str]]:
        """Prior user/assistant turns in chat-message form"""
        return [
            {"role": m.role, "content": m.content}
            for m in self.messages
            if m.role in ("user", "assistant")
        ]

    def to_dict(self, include_messages: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "messageCount": len(self.messages),
        }
        if include_messages:
            data["messages"] = [m.to_dict() for m in self.messages]
        return data


class ConversationStore:
    """Process-local conversation store"""

    def __init__(self):
        self._conversations: Dict[str, Conversation] = {}

    @staticmethod
    def new_id() -> str:
        return f"conv_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"

    def create(self, conversation_id: Optional[str] = None, title: Optional[str] = None) -> Conversation:
        conv = Conversation(id=conversation_id or self.new_id())
        if title:
            conv.title = title
        self._conversations[conv.id] = conv
        return conv

    def get(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def get_or_create(self, conversation_id: Optional[str] = None) -> Conversation:
        if conversation_id and conversation_id in self._conversations:
            return self._conversations[conversation_id]
        return self.create(conversation_id)

    def list(self) -> List[Conversation]:
        return sorted(self._conversations.values(), key=lambda c: c.updated_at, reverse=True)

    def delete(self, conversation_id: str) -> bool:
        return self._conversations.pop(conversation_id, None) is not None

    def __len__(self) -> int:
        return len(self._conversations)
