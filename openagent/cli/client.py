import aiohttp
import argparse
import asyncio
import json
import os
import sys
from typing import Dict, Any, List, Optional, AsyncGenerator


class OpenAgentClient:
    """OpenAgent API 客户端"""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')
        self.session = None

    async def __aenter__(self):
        # SSE streams stay open for the whole turn
        self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None, sock_connect=10))
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "Accept": "text/event-stream"}

    async def _stream(self, path: str, payload: Dict[str, Any]) -> AsyncGenerator[Dict[str, Any], None]:
        async with self.session.post(
            f"{self.base_url}{path}",
            json=payload,
            headers=self._headers()
        ) as response:
            if response.status != 200:
                error = await response.text()
                raise Exception(f"Request failed ({response.status}): {error}")
            async for raw in response.content:
                line = raw.decode("utf-8", errors="replace").strip()
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if not data:
                    continue
                try:
                    yield json.loads(data)
                except json.JSONDecodeError:
                    continue

    def chat(
        self,
        message: str,
        conversation_id: Optional[str] = None,
        model: Optional[str] = None,
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """单 Agent 对话（SSE 事件流）"""
        payload: Dict[str, Any] = {"message": message}
        if conversation_id:
            payload["conversationId"] = conversation_id
        if model:
            payload["model"] = model
        return self._stream("/api/chat", payload)

    def swarm(self, message: str, model: Optional[str] = None) -> AsyncGenerator[Dict[str, Any], None]:
        """Swarm 多 Agent 执行（SSE 事件流）"""
        payload: Dict[str, Any] = {"message": message}
        if model:
            payload["model"] = model
        return self._stream("/api/swarm", payload)

    async def list_tools(self) -> List[Dict[str, Any]]:
        """工具目录"""
        async with self.session.get(f"{self.base_url}/api/tools") as response:
            if response.status != 200:
                error = await response.text()
                raise Exception(f"Failed to list tools: {error}")
            data = await response.json()
            return data["tools"]


def render_event(event: Dict[str, Any], out=sys.stdout) -> None:
    """Print one progress event in a terminal-friendly form"""
    etype = event.get("type")
    if etype == "token":
        out.write(event.get("content", ""))
        out.flush()
    elif etype == "thinking":
        out.write(f"… {event.get('status', '')}\n")
    elif etype == "tool_start":
        out.write(f"→ {event.get('tool')} {json.dumps(event.get('args'), ensure_ascii=False)}\n")
    elif etype == "tool_complete":
        mark = "✓" if event.get("success") else "✗"
        out.write(f"{mark} {event.get('tool')} ({event.get('executionTime', 0)}ms)\n")
    elif etype == "tasks":
        for task in event.get("tasks", []):
            deps = task.get("dependsOn") or []
            suffix = f" after {deps}" if deps else ""
            out.write(f"  [{task.get('id')}] {task.get('description')} ({task.get('tool')}){suffix}\n")
    elif etype == "agent_start":
        out.write(f"▶ {event.get('agentId')}: {event.get('task')}\n")
    elif etype == "agent_complete":
        out.write(f"✓ {event.get('agentId')}\n")
    elif etype == "agent_error":
        out.write(f"✗ {event.get('agentId')}: {event.get('error')}\n")
    elif etype == "phase":
        if event.get("phase") == "fallback":
            out.write(f"! falling back to single agent: {event.get('reason')}\n")
    elif etype == "message" and event.get("role") == "assistant" and "toolCalls" not in event:
        out.write(f"\n{event.get('content', '')}\n")
    elif etype == "complete":
        unresolved = event.get("unresolved")
        if unresolved:
            out.write(f"\nUnresolved tasks: {unresolved}\n")
        out.write("\n")
    elif etype == "error":
        out.write(f"\nError: {event.get('message')}\n")


async def _main(args: argparse.Namespace) -> int:
    async with OpenAgentClient(args.url) as client:
        if args.command == "tools":
            for tool in await client.list_tools():
                print(f"{tool['name']:<18} {tool['description']}")
            return 0

        if args.command == "chat":
            events = client.chat(args.message, conversation_id=args.conversation, model=args.model)
        else:
            events = client.swarm(args.message, model=args.model)

        status = 0
        async for event in events:
            render_event(event)
            if event.get("type") == "error":
                status = 1
        return status


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="openagent-cli", description="OpenAgent command line client")
    parser.add_argument("--url", default=os.environ.get("OPENAGENT_URL", "http://127.0.0.1:3001"))
    sub = parser.add_subparsers(dest="command", required=True)

    chat_p = sub.add_parser("chat", help="single-agent tool-calling turn")
    chat_p.add_argument("message")
    chat_p.add_argument("--conversation", default=None)
    chat_p.add_argument("--model", default=None)

    swarm_p = sub.add_parser("swarm", help="decompose and run as a task swarm")
    swarm_p.add_argument("message")
    swarm_p.add_argument("--model", default=None)

    sub.add_parser("tools", help="list available tools")

    args = parser.parse_args(argv)
    try:
        return asyncio.run(_main(args))
    except aiohttp.ClientError as e:
        print(f"Connection failed: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
