from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from openai import APIError, APITimeoutError, AsyncOpenAI, RateLimitError

logger = logging.getLogger(__name__)


class OpenAIServiceError(RuntimeError):
    pass


COMPARISON_SYSTEM_PROMPT = (
    "Ты медицинский ассистент, который сравнивает два набора данных о здоровье одного человека. "
    "Опиши на русском языке, что изменилось от предыдущих данных к последним: "
    "какие показатели выросли, какие снизились, какие остались прежними. "
    "Не ставь диагнозов и не выдумывай значения, которых нет в данных. "
    "Если данные несопоставимы, так и скажи."
)


class OpenAIService:
    def __init__(self, api_key: str, model: str) -> None:
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model

    async def _responses_create_with_retry(self, **kwargs: Any) -> Any:
        delay = 1.0
        last_error: Exception | None = None

        for attempt in range(5):
            try:
                return await self.client.responses.create(**kwargs)
            except (RateLimitError, APITimeoutError) as exc:
                last_error = exc
                logger.warning(
                    "OpenAI transient error (%s), retry %s/5",
                    exc.__class__.__name__,
                    attempt + 1,
                )
                if attempt == 4:
                    break
                await asyncio.sleep(delay)
                delay *= 2
            except APIError as exc:
                last_error = exc
                retriable = getattr(exc, "status_code", 500) >= 500
                if not retriable or attempt == 4:
                    break
                logger.warning("OpenAI APIError retry %s/5: %s", attempt + 1, exc)
                await asyncio.sleep(delay)
                delay *= 2

        raise OpenAIServiceError(f"OpenAI request failed after retries: {last_error}")

    @staticmethod
    def _extract_text(response: Any) -> str:
        output_text = getattr(response, "output_text", None)
        if isinstance(output_text, str) and output_text.strip():
            return output_text.strip()

        parts: list[str] = []
        output = getattr(response, "output", None)
        if output:
            for item in output:
                for content in getattr(item, "content", []) or []:
                    text = getattr(content, "text", None)
                    if isinstance(text, str) and text.strip():
                        parts.append(text.strip())
                        continue

                    if isinstance(content, dict):
                        maybe_text = content.get("text")
                        if isinstance(maybe_text, str) and maybe_text.strip():
                            parts.append(maybe_text.strip())

        return "\n".join(parts)

    async def compare(self, latest: str, previous: str) -> str:
        """Narrative of the changes from ``previous`` to ``latest``."""
        user_prompt = {
            "previous": previous,
            "latest": latest,
            "instructions": [
                "Сравни данные: последние (latest) против предыдущих (previous).",
                "Описывай изменения в направлении от previous к latest.",
                "Пиши кратко, списком, только на русском языке.",
            ],
        }

        response = await self._responses_create_with_retry(
            model=self.model,
            input=[
                {
                    "role": "system",
                    "content": [{"type": "input_text", "text": COMPARISON_SYSTEM_PROMPT}],
                },
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": json.dumps(user_prompt, ensure_ascii=False)}],
                },
            ],
            temperature=0.2,
        )

        narrative = self._extract_text(response)
        if not narrative:
            raise OpenAIServiceError("Model returned an empty comparison")
        return narrative
