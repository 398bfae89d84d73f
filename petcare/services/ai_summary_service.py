"""
AI Summary Service
Asks OpenAI for a structured summary of a pet's records and falls back to
the rule-based local builders whenever that is not possible.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from petcare.schemas.summary import AssistantSummary, PetContext, SummarySource, SummaryTask
from petcare.services.local_summary_service import build_local_summary
from petcare.utils.dates import to_datetime, utc_now

logger = logging.getLogger(__name__)

LOCAL_FALLBACK_MARKER = 'Local fallback'

# Records of each kind included in the prompt
PROMPT_RECORD_LIMIT = 20

TASK_INSTRUCTIONS = {
    SummaryTask.HEALTH_SUMMARY: (
        "Summarize the health logs of the last 14 days. Point out recurring symptom tags "
        "and quote the most relevant recent notes."
    ),
    SummaryTask.VET_SUMMARY: (
        "Prepare a short briefing for an upcoming vet visit: latest weight, active and "
        "upcoming reminders, recent health notes."
    ),
    SummaryTask.REMINDER_HELPER: (
        "Turn the user's request into suggested reminder fields: title, type (vaccine, "
        "medication or vetVisit), repeat (none, weekly, monthly, yearly or customDays) "
        "and a suggested date and time."
    ),
    SummaryTask.RISK_ANALYSIS: (
        "Look for risk signals: weight loss over 90 days, a long gap since the last vet "
        "record, overdue vaccines and expense spikes. Set severity to low, medium or high "
        "and fill shareText with a plain-text report for the vet."
    ),
}

SYSTEM_PROMPT = """You are a careful pet-care assistant. You only use the records you are given.
Answer with a single JSON object of this shape and nothing else:
{"title": string, "meta": string, "highlights": [string], "sections": [{"title": string, "items": [string]}],
 "severity": string (optional), "shareText": string (optional)}
Keep highlights short. Never give a diagnosis; recommend a vet when something looks concerning."""


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    moment = to_datetime(value)
    return moment.isoformat() if moment else str(value)


def build_prompt_payload(task: SummaryTask, context: PetContext, prompt: str, now: datetime) -> Dict[str, Any]:
    return _jsonable({
        'task': task.value,
        'now': now,
        'request': prompt,
        'pet': context.pet,
        'healthLogs': context.logs[:PROMPT_RECORD_LIMIT],
        'reminders': context.reminders[:PROMPT_RECORD_LIMIT],
        'weights': context.weights[:PROMPT_RECORD_LIMIT],
        'expenses': context.expenses[:PROMPT_RECORD_LIMIT],
    })


def mark_local_fallback(summary: AssistantSummary) -> AssistantSummary:
    meta = f"{summary.meta} • {LOCAL_FALLBACK_MARKER}" if summary.meta else LOCAL_FALLBACK_MARKER
    highlights = list(dict.fromkeys([*summary.highlights, LOCAL_FALLBACK_MARKER]))
    return summary.model_copy(update={'meta': meta, 'highlights': highlights})


class AISummaryService:
    """OpenAI backed pet summaries with a deterministic local fallback"""

    def __init__(self, client: Optional[OpenAI] = None, model: str = 'gpt-4o-mini',
                 temperature: float = 0.3, max_tokens: int = 900,
                 timezone_name: Optional[str] = None):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timezone_name = timezone_name

    @classmethod
    def from_config(cls, config) -> 'AISummaryService':
        api_key = config.get('OPENAI_API_KEY')
        client = None
        if api_key:
            client = OpenAI(api_key=api_key, timeout=config.get('OPENAI_TIMEOUT_SECONDS', 20), max_retries=1)
        else:
            logger.warning("⚠️  OPENAI_API_KEY not set, AI summaries will use the local builders")

        return cls(
            client=client,
            model=config.get('OPENAI_CHAT_MODEL', 'gpt-4o-mini'),
            temperature=config.get('OPENAI_TEMPERATURE', 0.3),
            max_tokens=config.get('OPENAI_MAX_TOKENS', 900),
            timezone_name=config.get('NOTIFICATION_TIMEZONE'),
        )

    def _request_summary(self, task: SummaryTask, context: PetContext, prompt: str,
                         now: datetime) -> AssistantSummary:
        """Call OpenAI and validate the reply; raises on any failure"""
        payload = build_prompt_payload(task, context, prompt, now)
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": f"{SYSTEM_PROMPT}\n\nTask: {TASK_INSTRUCTIONS[task]}"},
                {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
            ],
            response_format={"type": "json_object"},
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ValueError('empty completion')
        return AssistantSummary.model_validate(json.loads(content))

    def generate(self, task: SummaryTask, context: PetContext, prompt: str = '',
                 now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Return the summary as a response dict tagged with its ``source``.

        Missing credentials, transport errors, timeouts, malformed JSON and
        replies of the wrong shape all end in the local builders.
        """
        now = now or utc_now()
        task = SummaryTask(task)

        if self.client is not None:
            try:
                summary = self._request_summary(task, context, prompt, now)
                logger.info(f"🤖 OpenAI summary generated: task={task.value}, pet={context.pet.get('id')}")
                return summary.to_response(SummarySource.OPENAI)
            except (OpenAIError, json.JSONDecodeError, ValidationError, ValueError) as e:
                logger.warning(f"OpenAI summary failed for task {task.value}, using local fallback: {str(e)}")

        summary = build_local_summary(task, context, prompt, now, self.timezone_name)
        return mark_local_fallback(summary).to_response(SummarySource.LOCAL)
