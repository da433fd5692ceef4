"""LLM assistant over an OpenAI-compatible endpoint.

Uses LangChain's ChatOpenAI against a vLLM (or any OpenAI-compatible)
server and asks for a JSON object with branch_name, title and body.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

import httpx
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import ValidationError

from src.workhub.errors import AssistantError
from src.workhub.models import AssistantMetadata
from src.workhub.parsing import Parsed, ParseFailure, ParseResult

logger = logging.getLogger(__name__)


METADATA_SYSTEM_PROMPT = """You name pull requests. From a task description, produce a git branch name, a pull request title and a short body.

Answer with one JSON object and nothing else, using these keys:
- "branch_name": TYPE/short-kebab-description, e.g. "feat/add-dark-mode"
- "title": "TYPE: description", at most 72 characters, e.g. "feat: add dark mode toggle"
- "body": 2-4 sentences describing what will be done"""

# Models sometimes wrap the object in a ``` or ```json fence.
_FENCED = re.compile(r"^```(?:json)?\s*(?P<inner>.*?)\s*```$", re.DOTALL)


def _build_metadata_prompt(task_description: str, guidelines: Optional[str]) -> str:
    prompt = f"Task description:\n{task_description}\n"
    if guidelines:
        prompt += f"\nProject guidelines:\n{guidelines}\n"
    return prompt + "\nProvide the metadata as JSON."


def parse_metadata_answer(text: str) -> "ParseResult[Dict[str, Any]]":
    """Decode the model's answer into a dict, unwrapping a code fence."""
    candidate = text.strip()
    fenced = _FENCED.match(candidate)
    if fenced:
        candidate = fenced.group("inner")
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        return ParseFailure(f"invalid JSON: {exc}", raw=text[:200])
    if not isinstance(data, dict):
        return ParseFailure("expected a JSON object", raw=text[:200])
    return Parsed(data)


class LLMAssistant:
    """AssistantPort backed by a chat completion endpoint.

    Attributes:
        llm_url: Base URL of the OpenAI-compatible endpoint.
        model_name: Model served by the endpoint.
        timeout: Request timeout in seconds.
        temperature: Sampling temperature.
    """

    def __init__(
        self,
        llm_url: str,
        model_name: str,
        timeout: float = 30.0,
        temperature: float = 0.1,
    ):
        self.llm_url = llm_url
        self.model_name = model_name
        self.timeout = timeout
        self.temperature = temperature
        self._llm: Optional[ChatOpenAI] = None

    @property
    def llm(self) -> ChatOpenAI:
        # Built on first use so constructing the hub never touches the network.
        if self._llm is None:
            self._llm = ChatOpenAI(
                base_url=self.llm_url,
                model=self.model_name,
                temperature=self.temperature,
                timeout=self.timeout,
                api_key="not-needed",
            )
        return self._llm

    async def generate_metadata(
        self, task_description: str, guidelines: Optional[str] = None
    ) -> AssistantMetadata:
        """Ask the model for branch, title and body.

        Raises:
            AssistantError: If the call fails or the answer is not usable.
        """
        prompt = [
            SystemMessage(content=METADATA_SYSTEM_PROMPT),
            HumanMessage(content=_build_metadata_prompt(task_description, guidelines)),
        ]
        try:
            answer = await self.llm.ainvoke(prompt)
        except Exception as exc:
            raise AssistantError(f"LLM invocation failed: {exc}") from exc

        if not isinstance(answer.content, str):
            raise AssistantError(f"Unexpected LLM content type: {type(answer.content).__name__}")

        parsed = parse_metadata_answer(answer.content)
        if isinstance(parsed, ParseFailure):
            logger.warning(
                "Unusable LLM answer",
                extra={"reason": parsed.reason, "response_preview": parsed.raw},
            )
            raise AssistantError(f"Unusable LLM answer: {parsed.reason}")

        fields = parsed.value
        try:
            return AssistantMetadata(
                branch_name=str(fields.get("branch_name", "")).strip(),
                title=str(fields.get("title", "")).strip()[:72],
                body=str(fields.get("body", "")).strip(),
            )
        except ValidationError as exc:
            raise AssistantError(f"Incomplete metadata from LLM: {exc}") from exc

    async def is_available(self) -> bool:
        """True when the endpoint answers its model listing."""
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                listing = await client.get(f"{self.llm_url.rstrip('/')}/models")
        except httpx.HTTPError as exc:
            logger.debug("LLM endpoint unavailable", extra={"error": str(exc)})
            return False
        return listing.status_code == 200
