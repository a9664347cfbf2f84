"""AI summary of survey answers, generated with the OpenAI chat API.

Answers are condensed per question before they are sent:

  single_choice / multi_select — option counts
  likert                       — average, min, max and count
  short_text / long_text       — up to ``MAX_TEXT_ANSWERS`` answers longer
                                 than ``MIN_TEXT_LENGTH`` characters

The prompt asks for a Markdown analysis of what respondents said, not of
completion rates.  The OpenAI client is synchronous, so the call runs in a
worker thread to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import Counter
from typing import Any, Iterable

import openai
from openai import OpenAI

from survey_flow.errors import TransientError
from survey_flow.models.question import CHOICE_TYPES, QuestionDef

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
MAX_TEXT_ANSWERS = 60
MIN_TEXT_LENGTH = 3

SYSTEM_PROMPT = (
    "You are an expert data analyst that provides deep, actionable content summaries."
)

USER_PROMPT = """\
You are an expert qualitative and quantitative data analyst.
I have aggregated the collected answers from a recent survey.

Here is the data, grouped by survey question:
{data}

Write a deep, detailed analytical summary of the SURVEY CONTENT.
Do not discuss completion rates or drop-offs. Focus on what the
respondents actually answered.

Focus on:
1. Key themes, recurring sentiments and significant insights in the answers.
2. Actionable patterns and what they mean for the organization.
3. Concrete follow-up actions participants and stakeholders can take together.

Format the summary as clean Markdown with headers, bullet points and bold
text for emphasis.
"""


def condense_answers(
    questions: list[QuestionDef],
    answers: Iterable[tuple[str, Any]],
) -> list[dict[str, Any]]:
    """Group raw ``(question_code, value)`` pairs into per-question digests.

    Questions nobody answered are left out; blank values are ignored.
    """
    by_code = {q.question_code: q for q in questions}
    collected: dict[str, list[Any]] = {}
    for code, value in answers:
        if code not in by_code or value in (None, "", []):
            continue
        collected.setdefault(code, []).append(value)

    digests = []
    for q in sorted(questions, key=lambda q: q.sort_order):
        values = collected.get(q.question_code)
        if not values:
            continue
        if q.question_type in CHOICE_TYPES:
            counts: Counter[str] = Counter()
            for v in values:
                for item in v if isinstance(v, list) else [v]:
                    counts[str(item)] += 1
            data: Any = dict(counts)
        elif q.question_type == "likert":
            nums = []
            for v in values:
                try:
                    nums.append(float(v))
                except (TypeError, ValueError):
                    continue
            if not nums:
                continue
            data = {
                "average": round(sum(nums) / len(nums), 2),
                "min": min(nums),
                "max": max(nums),
                "count": len(nums),
            }
        else:
            texts = [str(v).strip() for v in values]
            data = [t for t in texts if len(t) > MIN_TEXT_LENGTH][:MAX_TEXT_ANSWERS]
        digests.append({"question": q.prompt, "type": q.question_type, "data": data})
    return digests


def build_messages(digests: list[dict[str, Any]]) -> list[dict[str, str]]:
    data = json.dumps(digests, ensure_ascii=False, indent=2)
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": USER_PROMPT.format(data=data)},
    ]


class SummaryGenerator:
    """Turns condensed survey answers into a Markdown summary.

    Args:
        api_key: OpenAI API key
        model: chat model to use
        max_tokens: upper bound on the summary length
        temperature: response randomness (0-2)
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 1500,
        temperature: float = 0.7,
    ) -> None:
        self.client = OpenAI(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    def _call_api(self, messages: list[dict[str, str]]):
        return self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

    async def generate(self, digests: list[dict[str, Any]]) -> str:
        """Return the summary text; upstream failures become ``TransientError``."""
        messages = build_messages(digests)
        try:
            response = await asyncio.to_thread(self._call_api, messages)
        except openai.OpenAIError as exc:
            logger.error("Summary generation failed: %s", exc)
            raise TransientError(
                "The summary could not be generated. Please try again.",
                detail=f"OpenAI: {exc}",
            ) from exc

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.info(
                "Summary generated with %s (%s prompt / %s completion tokens)",
                self.model, usage.prompt_tokens, usage.completion_tokens,
            )
        content = response.choices[0].message.content if response.choices else None
        return content or "No summary generated."
