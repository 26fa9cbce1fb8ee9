"""Adapter from correction requests to a chat provider."""

from __future__ import annotations

import asyncio
import json
import logging
import re

from pydantic import ValidationError

from guard_core.errors import GuardError
from guard_core.schemas import CorrectionRequest, PatchResponse

from .base import BaseLLMProvider
from .prompts import CorrectionPromptTemplate

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*\n(.*?)\n?```", re.DOTALL)


class PatchParseError(GuardError):
    pass


def parse_patch_response(text: str) -> PatchResponse:
    """Parse a JSON patch reply, optionally wrapped in a ```json fence."""
    fenced = _FENCE.search(text)
    payload = fenced.group(1) if fenced else text.strip()
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise PatchParseError(f"Patch response is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise PatchParseError("Patch response must be a JSON object")
    if not isinstance(data.get("edits"), list):
        data["edits"] = []
    try:
        return PatchResponse.from_dict(data)
    except ValidationError as exc:
        raise PatchParseError(f"Patch response has an invalid shape: {exc}") from exc


class LLMPatchGenerator:
    def __init__(
        self,
        provider: BaseLLMProvider,
        prompts: CorrectionPromptTemplate | None = None,
        temperature: float = 0.2,
        max_tokens: int = 4096,
    ) -> None:
        self.provider = provider
        self.prompts = prompts or CorrectionPromptTemplate()
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate_patch(self, request: CorrectionRequest) -> PatchResponse:
        messages = self.prompts.messages(request)
        kind = "retry" if request.failed_edits else "error-fix"
        logger.info(f"Requesting {kind} patch for unit {request.unit_id}")
        response = await asyncio.to_thread(
            self.provider.generate,
            messages,
            self.temperature,
            self.max_tokens,
        )
        patch = parse_patch_response(response.text)
        logger.info(
            f"Received {len(patch.edits)} edit(s) for unit {request.unit_id} "
            f"in {response.latency_ms:.0f}ms"
        )
        return patch
