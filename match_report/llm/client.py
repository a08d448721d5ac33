"""
Completion service for report generation.

The orchestrator depends only on the ``CompletionService`` protocol:
``invoke`` returns a validated pydantic model, ``complete_text`` returns free
text (used by chat). ``OpenAICompletionService`` implements it over the
OpenAI chat completions API with JSON-object responses.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Protocol, TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from ..config import LLMConfig
from ..errors import CompletionError, MalformedOutputError
from ..logging import logger

SchemaT = TypeVar("SchemaT", bound=BaseModel)


@dataclass(frozen=True)
class CompletionPrompt:
    """A rendered prompt: system + user messages and an output budget."""

    system: str
    user: str
    max_tokens: int | None = None
    name: str = "completion"


class CompletionService(Protocol):
    async def invoke(self, prompt: CompletionPrompt, schema: type[SchemaT]) -> SchemaT: ...

    async def complete_text(self, prompt: CompletionPrompt) -> str: ...


class OpenAICompletionService:
    """OpenAI-backed completion service.

    Malformed JSON and schema mismatches are retried up to
    ``config.max_retries`` times; API failures are retried the same way since
    they are usually transient. When the last attempt produced unparseable
    or off-schema output the error is ``MalformedOutputError``; any other
    last error is raised as ``CompletionError``.
    """

    def __init__(self, config: LLMConfig, api_key: str | None, client: AsyncOpenAI | None = None) -> None:
        self.config = config
        self.model = config.model
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise CompletionError("OPENAI_API_KEY is not configured")
            self._client = AsyncOpenAI(api_key=self._api_key)
            logger.info("openai_client_initialized", model=self.model)
        return self._client

    def _token_params(self, max_tokens: int | None) -> dict:
        budget = max_tokens or self.config.max_tokens
        # gpt-5 models reject max_tokens and custom temperatures.
        if self.model.lower().startswith("gpt-5"):
            return {"max_completion_tokens": budget}
        return {"max_tokens": budget, "temperature": self.config.temperature}

    async def _create(self, prompt: CompletionPrompt, *, json_mode: bool) -> str:
        kwargs = self._token_params(prompt.max_tokens)
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await self._get_client().chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": prompt.system},
                {"role": "user", "content": prompt.user},
            ],
            **kwargs,
        )
        content = response.choices[0].message.content
        if not content:
            raise ValueError("OpenAI returned empty response")
        logger.debug("openai_response", prompt=prompt.name, length=len(content))
        return content

    async def invoke(self, prompt: CompletionPrompt, schema: type[SchemaT]) -> SchemaT:
        attempts = max(1, self.config.max_retries)
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                content = await self._create(prompt, json_mode=True)
                result = schema.model_validate(json.loads(content))
                if attempt > 1:
                    logger.info("openai_succeeded_after_retry", prompt=prompt.name, attempt=attempt)
                return result
            except (json.JSONDecodeError, SchemaValidationError) as exc:
                last_error = exc
                logger.warning(
                    "openai_malformed_output",
                    prompt=prompt.name,
                    attempt=attempt,
                    max_attempts=attempts,
                    error=str(exc),
                )
            except CompletionError:
                raise
            except Exception as exc:
                last_error = exc
                logger.error(
                    "openai_request_failed",
                    prompt=prompt.name,
                    attempt=attempt,
                    max_attempts=attempts,
                    error=str(exc),
                )

        error_cls = (
            MalformedOutputError
            if isinstance(last_error, (json.JSONDecodeError, SchemaValidationError))
            else CompletionError
        )
        raise error_cls(
            f"Completion '{prompt.name}' failed after {attempts} attempts: {last_error}",
            endpoint="chat.completions",
        ) from last_error

    async def complete_text(self, prompt: CompletionPrompt) -> str:
        try:
            return await self._create(prompt, json_mode=False)
        except CompletionError:
            raise
        except Exception as exc:
            logger.error("openai_request_failed", prompt=prompt.name, error=str(exc))
            raise CompletionError(f"Completion '{prompt.name}' failed: {exc}", endpoint="chat.completions") from exc
