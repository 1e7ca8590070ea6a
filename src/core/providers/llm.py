"""LLM matching agent over OpenAI-compatible chat completions.

The agent is given a system prompt, the anime as a JSON user message and a
set of tools. It loops over chat completions, executing catalog tool calls and
feeding their results back, until the model calls ``submit`` or answers with
plain text. A plain JSON answer is accepted as the result as well.
"""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import aiohttp
from limiter import Limiter

from src import __version__, log
from src.config.settings import MatchingConfig
from src.core.providers.base import MatchCandidate, MatchQuery
from src.exceptions import (
    ProviderError,
    ProviderSystemicError,
    ProviderUnavailableError,
)
from src.models.enums import Platform, Provider

__all__ = ["LLMMatchProvider", "Tool", "parse_match_result", "submit_tool"]

completion_limiter = Limiter(rate=5, capacity=10, jitter=False)

SUBMIT_TOOL_NAME = "submit"

_JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


@dataclass(frozen=True)
class Tool:
    """A function the model may call, with its JSON schema and handler."""

    name: str
    description: str
    parameters: dict[str, Any]
    handler: Callable[..., Awaitable[Any]] | None = None

    def definition(self) -> dict[str, Any]:
        """Tool declaration in the chat completions ``tools`` format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def submit_tool(platform: Platform) -> Tool:
    """The terminal tool the model calls with its final answer."""
    properties: dict[str, Any] = {
        "id": {"type": "number", "description": "The id of the anime"},
        "name": {"type": "string", "description": "The name of the anime"},
        "confidence_score": {
            "type": "number",
            "description": "The confidence score of the match, from 0 to 100",
        },
    }
    if platform.has_seasons:
        properties["season"] = {
            "type": "number",
            "description": "The season number of the anime",
        }
    return Tool(
        name=SUBMIT_TOOL_NAME,
        description="Submit the match result",
        parameters={
            "type": "object",
            "properties": properties,
            "required": ["confidence_score"],
        },
    )


def _coerce_id(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _coerce_int(value: Any) -> int | None:
    try:
        return None if value is None else int(value)
    except (TypeError, ValueError):
        return None


def _parse_arguments(raw: Any) -> dict[str, Any]:
    """Decode tool call arguments; anything but a JSON object yields ``{}``."""
    if isinstance(raw, dict):
        return raw
    try:
        arguments = json.loads(raw or "{}")
    except (TypeError, json.JSONDecodeError):
        return {}
    return arguments if isinstance(arguments, dict) else {}


def _candidate_from(
    result: dict[str, Any], platform: Platform
) -> MatchCandidate | None:
    external_id = _coerce_id(result.get("id"))
    if external_id is None:
        return None
    try:
        score = float(result.get("confidence_score") or 0)
    except (TypeError, ValueError):
        score = 0.0
    season = _coerce_int(result.get("season")) if platform.has_seasons else None
    return MatchCandidate(
        id=external_id,
        score=min(max(score, 0.0), 100.0),
        name=result.get("name"),
        season_number=season,
    )


def parse_match_result(text: str | None, platform: Platform) -> MatchCandidate | None:
    """Parse a plain-text answer holding the submit payload as JSON.

    Code fences and prose around the object are ignored.

    Raises:
        ProviderError: If the text contains no JSON object.
    """
    if not text:
        raise ProviderError("The model answered without a result")

    match = _JSON_OBJECT_PATTERN.search(text)
    if match is None:
        raise ProviderError(f"The model answer is not JSON: {text[:200]}")
    try:
        result = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ProviderError(f"The model answer is not valid JSON: {e}") from e
    if not isinstance(result, dict):
        raise ProviderError("The model answer is not a JSON object")
    return _candidate_from(result, platform)


class LLMMatchProvider:
    """Match provider backed by one LLM endpoint and a set of catalog tools."""

    def __init__(
        self,
        *,
        provider: Provider,
        model: str,
        platform: Platform,
        base_url: str,
        api_key: str | None,
        system_prompt: str,
        tools: Sequence[Tool],
        matching: MatchingConfig,
        catalogs: Sequence[Any] = (),
    ) -> None:
        """Initialize the agent.

        Args:
            provider (Provider): Provider name, used in logs and errors.
            model (str): Model identifier sent with every completion.
            platform (Platform): Platform the proposed ids belong to.
            base_url (str): OpenAI-compatible API root.
            api_key (str | None): Bearer token; None fails every match.
            system_prompt (str): Instructions for the agent.
            tools (Sequence[Tool]): Catalog tools; ``submit`` is added.
            matching (MatchingConfig): Turn budget and sampling settings.
            catalogs (Sequence[Any]): Catalog clients closed with the provider.
        """
        self.provider = provider
        self.model = model
        self.platform = platform
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.system_prompt = system_prompt
        self.matching = matching
        self.tools = {tool.name: tool for tool in (*tools, submit_tool(platform))}
        self._catalogs = list(catalogs)
        self._session: aiohttp.ClientSession | None = None

    def __repr__(self) -> str:
        return (
            f"<LLMMatchProvider(provider={self.provider}, model={self.model}, "
            f"platform={self.platform})>"
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "User-Agent": f"AnimeMatcher/{__version__}",
                }
            )
        return self._session

    async def close(self) -> None:
        """Close the completion session and the catalog clients."""
        if self._session and not self._session.closed:
            await self._session.close()
        for catalog in self._catalogs:
            await catalog.close()

    @completion_limiter()
    async def _complete(
        self, messages: list[dict[str, Any]], retry_count: int = 0
    ) -> dict[str, Any]:
        """Request one chat completion.

        Raises:
            ProviderSystemicError: If the endpoint rejects the credentials.
            ProviderUnavailableError: If the endpoint cannot be reached.
            ProviderError: For any other failed request.
        """
        if retry_count >= 3:
            raise ProviderError(f"{self.provider}: rate limited after 3 tries")

        session = await self._get_session()
        payload = {
            "model": self.model,
            "messages": messages,
            "tools": [tool.definition() for tool in self.tools.values()],
            "temperature": self.matching.temperature,
            "max_tokens": self.matching.max_tokens,
        }
        try:
            async with session.post(
                f"{self.base_url}/chat/completions", json=payload
            ) as response:
                if response.status == 429:
                    retry_after = int(response.headers.get("Retry-After", 10))
                    log.warning(
                        f"{self.provider} rate limit exceeded, waiting {retry_after}s"
                    )
                    await asyncio.sleep(retry_after + 1)
                    return await self._complete(messages, retry_count + 1)
                if response.status in (401, 403):
                    raise ProviderSystemicError(
                        f"{self.provider} rejected the API key "
                        f"(HTTP {response.status})"
                    )
                if response.status == 404:
                    raise ProviderSystemicError(
                        f"{self.provider} does not serve model '{self.model}'"
                    )
                if response.status >= 400:
                    body = await response.text()
                    raise ProviderError(
                        f"{self.provider} returned HTTP {response.status}: "
                        f"{body[:200]}"
                    )
                return await response.json(content_type=None)
        except aiohttp.ClientConnectionError as e:
            raise ProviderUnavailableError(
                f"{self.provider} is unreachable: {e}"
            ) from e
        except (aiohttp.ClientError, ValueError) as e:
            raise ProviderError(f"{self.provider} request failed: {e}") from e

    async def _call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        """Run a catalog tool and render its result for the model.

        Failed lookups are reported to the model so it can try another query;
        systemic failures propagate.
        """
        tool = self.tools.get(name)
        if tool is None or tool.handler is None:
            return json.dumps({"error": f"Unknown tool '{name}'"})
        try:
            result = await tool.handler(**arguments)
        except ProviderSystemicError:
            raise
        except ProviderError as e:
            log.debug(f"Tool $$'{name}'$$ failed: {e}")
            return json.dumps({"error": str(e)}, ensure_ascii=False)
        except TypeError as e:
            return json.dumps({"error": f"Invalid arguments: {e}"})
        return json.dumps(result, ensure_ascii=False, default=str)

    async def propose_match(self, query: MatchQuery) -> MatchCandidate | None:
        """Run the agent loop for one anime.

        Returns:
            MatchCandidate | None: The submitted match, or None for no match.

        Raises:
            ProviderSystemicError: If the provider cannot be used at all.
            ProviderError: If this attempt failed or ran out of turns.
        """
        if not self.api_key:
            raise ProviderSystemicError(f"No api_key configured for {self.provider}")

        messages: list[dict[str, Any]] = [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": query.to_prompt()},
        ]

        for turn in range(1, self.matching.max_turns + 1):
            response = await self._complete(messages)
            try:
                message = response["choices"][0]["message"]
            except (KeyError, IndexError, TypeError) as e:
                raise ProviderError(
                    f"{self.provider} returned an unexpected payload"
                ) from e
            if not isinstance(message, dict):
                raise ProviderError(f"{self.provider} returned a malformed message")

            tool_calls = message.get("tool_calls") or []
            if not isinstance(tool_calls, list):
                raise ProviderError(f"{self.provider} returned malformed tool calls")
            if not tool_calls:
                return parse_match_result(message.get("content"), self.platform)

            messages.append(
                {
                    "role": "assistant",
                    "content": message.get("content"),
                    "tool_calls": tool_calls,
                }
            )
            for call in tool_calls:
                if not isinstance(call, dict):
                    continue
                function = call.get("function")
                if not isinstance(function, dict):
                    function = {}
                name = function.get("name", "")
                arguments = _parse_arguments(function.get("arguments"))

                if name == SUBMIT_TOOL_NAME:
                    log.debug(
                        f"Anime $${{anilist_id: {query.anilist_id}}}$$ submitted "
                        f"after {turn} turn(s): {arguments}"
                    )
                    return _candidate_from(arguments, self.platform)

                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.get("id"),
                        "content": await self._call_tool(name, arguments),
                    }
                )

        raise ProviderError(
            f"No result after {self.matching.max_turns} turns for anime "
            f"{query.anilist_id}"
        )
