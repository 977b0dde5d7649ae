"""Client wrapper for streaming chat-completions requests."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional

import requests
from fastapi.concurrency import iterate_in_threadpool, run_in_threadpool

from .config import ChatLLMConfig

logger = logging.getLogger(__name__)


class ChatLLMClient:
    """Thin wrapper around an OpenAI-compatible chat-completions endpoint."""

    def __init__(self, config: ChatLLMConfig) -> None:
        self.config = config

    def _headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def open_stream(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        *,
        model_kwargs: Optional[Dict[str, object]] = None,
    ) -> requests.Response:
        """Start a streaming completion and return the open response.

        HTTP failures raise here, before any fragment is read.
        """
        payload: Dict[str, object] = {
            "model": model,
            "messages": messages,
            "stream": True,
        }
        if model_kwargs:
            payload.update(model_kwargs)

        logger.info("Streaming chat completion from %s using model %s", self.config.endpoint, model)
        response = requests.post(
            self.config.endpoint,
            json=payload,
            headers=self._headers(),
            stream=True,
            timeout=self.config.request_timeout,
        )
        response.raise_for_status()
        return response

    def iter_fragments(self, response: requests.Response) -> Iterator[str]:
        """Yield text fragments from an open server-sent-events response."""
        try:
            for raw_line in response.iter_lines():
                if not raw_line:
                    continue
                line = raw_line.decode("utf-8").strip()
                if line.startswith("data:"):
                    line = line[5:].strip()
                if not line or line == "[DONE]":
                    continue

                try:
                    payload = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("Skipping non-JSON stream line: %s", line)
                    continue

                if isinstance(payload, dict) and payload.get("error"):
                    raise RuntimeError(f"Generation failed mid-stream: {payload['error']}")

                token = self._extract_delta(payload)
                if token:
                    yield token
        finally:
            response.close()

    async def astream(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        *,
        model_kwargs: Optional[Dict[str, object]] = None,
    ) -> AsyncIterator[str]:
        """Open the stream in the threadpool and return an async fragment iterator."""
        response = await run_in_threadpool(self.open_stream, messages, model, model_kwargs=model_kwargs)
        return iterate_in_threadpool(self.iter_fragments(response))

    @staticmethod
    def _extract_delta(payload: Dict[str, object]) -> str:
        try:
            choices = payload.get("choices") or []
            if not choices:
                return ""
            delta = choices[0].get("delta") or {}
            content = delta.get("content") or ""
            return str(content)
        except Exception:
            logger.debug("Failed to parse stream payload: %s", payload, exc_info=True)
            return ""
