"""
Web Tools - Search and fetch
=============================
- web_search: DuckDuckGo Instant Answer lookup
- read_url: Fetch a page and reduce HTML to text

Both run with a short total timeout and map transport failures onto the
capability error kinds (``timeout``, ``transient``, ``not_found``).
"""

import asyncio
import logging
import re
from functools import partial
from typing import Any, Dict, List
from urllib.parse import urlparse

import aiohttp

from openagent.core.agents.errors import CapabilityError, ErrorKind

logger = logging.getLogger(__name__)

USER_AGENT = "OpenAgent/1.0 (AI Assistant)"
SEARCH_URL = "https://api.duckduckgo.com/"
FETCH_TIMEOUT = 10.0
MAX_FETCH_BYTES = 1024 * 1024
MAX_CONTENT_CHARS = 50000
_READ_CHUNK = 64 * 1024


def html_to_text(html: str) -> str:
    """Strip scripts, styles, comments and tags; decode common entities"""
    text = re.sub(r"<script[^>]*>.*?</script>", "", html, flags=re.DOTALL | re.IGNORECASE)
    text = re.sub(r"<style[^>]*>.*?</style>", "", text, flags=re.DOTALL | re.IGNORECASE)
    text = re.sub(r"<!--.*?-->", "", text, flags=re.DOTALL)
    text = re.sub(r"</?(p|div|br|h[1-6]|li|tr)[^>]*>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", " ", text)
    for entity, char in (("&nbsp;", " "), ("&lt;", "<"), ("&gt;", ">"),
                         ("&quot;", '"'), ("&#39;", "'"), ("&amp;", "&")):
        text = text.replace(entity, char)
    text = re.sub(r"[ \t\r\f\v]+", " ", text)
    text = re.sub(r"\n\s*", "\n", text)
    return text.strip()


def _search_results(data: Dict[str, Any], num_results: int) -> List[Dict[str, str]]:
    results: List[Dict[str, str]] = []

    if data.get("Abstract"):
        results.append({
            "title": data.get("Heading") or "Overview",
            "url": data.get("AbstractURL") or "",
            "snippet": data["Abstract"],
            "source": data.get("AbstractSource") or "DuckDuckGo",
        })

    for topic in data.get("RelatedTopics") or []:
        if len(results) >= num_results:
            break
        text, url = topic.get("Text"), topic.get("FirstURL")
        if text and url:
            results.append({
                "title": text.split(" - ")[0],
                "url": url,
                "snippet": text,
                "source": "DuckDuckGo",
            })

    infobox = data.get("Infobox") or {}
    if isinstance(infobox, dict) and infobox.get("content") and len(results) < num_results:
        facts = "\n".join(
            f"{item.get('label')}: {item.get('value')}" for item in infobox["content"]
        )
        if facts:
            results.append({
                "title": "Quick Facts",
                "url": data.get("AbstractURL") or "",
                "snippet": facts,
                "source": "DuckDuckGo Infobox",
            })

    return results[:num_results]


async def web_search(
    query: str,
    num_results: int = 5,
    *,
    timeout: float = FETCH_TIMEOUT,
) -> Dict[str, Any]:
    """Search the web (DuckDuckGo Instant Answer API)"""
    num_results = max(1, min(num_results, 10))
    params = {"q": query, "format": "json", "no_html": "1", "skip_disambig": "1"}

    try:
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout),
            headers={"User-Agent": USER_AGENT},
        ) as session:
            async with session.get(SEARCH_URL, params=params) as resp:
                if resp.status != 200:
                    raise CapabilityError(
                        ErrorKind.TRANSIENT, f"Search request failed: HTTP {resp.status}", query=query,
                    )
                data = await resp.json(content_type=None)
    except asyncio.TimeoutError:
        raise CapabilityError(ErrorKind.TIMEOUT, "Search request timed out", query=query)
    except aiohttp.ClientError as e:
        raise CapabilityError(ErrorKind.TRANSIENT, f"Search request failed: {e}", query=query)
    except ValueError as e:
        raise CapabilityError(
            ErrorKind.EXECUTION_FAILED, f"Failed to parse search results: {e}", query=query,
        )

    results = _search_results(data if isinstance(data, dict) else {}, num_results)
    response: Dict[str, Any] = {"query": query, "results": results}
    if not results:
        response["message"] = f'No instant results found for "{query}". Try a more specific search term.'
    return response


async def read_url(
    url: str,
    *,
    timeout: float = FETCH_TIMEOUT,
    max_bytes: int = MAX_FETCH_BYTES,
    max_chars: int = MAX_CONTENT_CHARS,
) -> Dict[str, Any]:
    """Fetch a URL; HTML responses are reduced to plain text"""
    if urlparse(url).scheme not in ("http", "https"):
        raise CapabilityError(ErrorKind.INVALID_ARGUMENT, f"Only http(s) URLs are supported: {url}", url=url)

    try:
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout),
            headers={
                "User-Agent": USER_AGENT,
                "Accept": "text/html,application/json,text/plain,*/*",
            },
        ) as session:
            async with session.get(url) as resp:
                if resp.status in (404, 410):
                    raise CapabilityError(ErrorKind.NOT_FOUND, f"HTTP {resp.status}: {resp.reason}", url=url)
                if resp.status >= 400:
                    raise CapabilityError(
                        ErrorKind.EXECUTION_FAILED,
                        f"HTTP {resp.status}: {resp.reason}",
                        url=url,
                        statusCode=resp.status,
                    )

                body = bytearray()
                async for chunk in resp.content.iter_chunked(_READ_CHUNK):
                    body.extend(chunk)
                    if len(body) > max_bytes:
                        raise CapabilityError(ErrorKind.OUTPUT_TOO_LARGE, "Response too large", url=url)

                status = resp.status
                content_type = resp.headers.get("Content-Type", "")
                charset = resp.charset or "utf-8"
    except asyncio.TimeoutError:
        raise CapabilityError(ErrorKind.TIMEOUT, "Request timed out", url=url)
    except aiohttp.ClientError as e:
        raise CapabilityError(ErrorKind.TRANSIENT, f"Fetch failed: {e}", url=url)

    try:
        text = body.decode(charset, errors="replace")
    except LookupError:
        text = body.decode("utf-8", errors="replace")
    if "text/html" in content_type:
        text = html_to_text(text)

    return {
        "url": url,
        "statusCode": status,
        "contentType": content_type,
        "content": text[:max_chars],
        "truncated": len(text) > max_chars,
    }


def web_tool_definitions(
    timeout: float = FETCH_TIMEOUT,
    max_bytes: int = MAX_FETCH_BYTES,
    max_chars: int = MAX_CONTENT_CHARS,
) -> List[Dict]:
    return [
        {
            "name": "web_search",
            "description": "Search the web for information",
            "handler": partial(web_search, timeout=timeout),
            "category": "web",
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search query"},
                    "num_results": {"type": "integer", "description": "Number of results (max 10, default 5)"},
                },
                "required": ["query"],
            },
        },
        {
            "name": "read_url",
            "description": "Fetch and read content from a URL",
            "handler": partial(read_url, timeout=timeout, max_bytes=max_bytes, max_chars=max_chars),
            "category": "web",
            "parameters": {
                "type": "object",
                "properties": {
                    "url": {"type": "string", "description": "URL to fetch"},
                },
                "required": ["url"],
            },
        },
    ]
