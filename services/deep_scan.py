"""
Deep scan: batched sensitive-data classification through the OpenAI API.

Messages of a useful length are grouped in batches of ten and sent one
request at a time. A failing batch is logged and skipped; the scan only
refuses to start when no API key is available. The scanner never touches
the conversations it reads, it returns verdicts keyed by
(conversation id, message id) for the store to merge.
"""
import json
import logging
import os
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from openai import OpenAI

from errors import BatchClassificationError, MissingCredentialError
from pii_detection import SensitivityVerdict

logger = logging.getLogger(__name__)

BATCH_SIZE = 10
MIN_LENGTH = 50
MAX_LENGTH = 2000
EXCERPT_LENGTH = 500
PROGRESS_EVERY = 50
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_SCAN_TIMEOUT = 300.0
FALLBACK_REASON = "Sensitive content detected"

SYSTEM_PROMPT = """Analyze these messages for sensitive personal information that the user might not want to share publicly.

Detect:
- Personal Identifiable Information (PII): full names, email addresses, phone numbers, physical addresses, SSN, passport/ID numbers, birth dates
- Financial information: bank accounts, credit cards, salary details
- Medical/health information: conditions, medications, treatments
- Intimate/private content: sexual discussions, relationships, infidelity, affairs, private family matters
- Personal problems: mental health struggles, personal conflicts, embarrassing situations
- Confidential work information: trade secrets, internal company information
- Precise locations that could identify someone's home or workplace

Respond with a JSON array containing exactly one object per message, in message order:
[
  {"index": 1, "hasSensitiveData": true/false, "reason": "brief description or null"},
  ...
]

Ignore:
- First names only
- Generic/public information
- Code/technical variables
- General discussions without personal details"""

MessageKey = Tuple[str, str]


@dataclass
class ScanCandidate:
    conversation_id: str
    message_id: str
    text: str

    @property
    def key(self) -> MessageKey:
        return (self.conversation_id, self.message_id)


@dataclass
class ScanResult:
    """Merge-ready outcome of one deep scan"""
    verdicts: Dict[MessageKey, SensitivityVerdict] = field(default_factory=dict)
    submitted: int = 0
    batches_total: int = 0
    batches_failed: int = 0
    timed_out: bool = False

    def summary(self) -> Dict[str, Any]:
        return {
            "submitted": self.submitted,
            "batches_total": self.batches_total,
            "batches_failed": self.batches_failed,
            "verdicts": len(self.verdicts),
            "flagged": sum(1 for v in self.verdicts.values() if v.has_sensitive_data),
            "timed_out": self.timed_out,
        }


def resolve_api_key(api_key: Optional[str] = None) -> str:
    """Caller-supplied key first, then OPENAI_API_KEY from the environment."""
    key = (api_key or "").strip() or os.environ.get("OPENAI_API_KEY", "").strip()
    if not key:
        raise MissingCredentialError("OpenAI API key missing")
    return key


def is_eligible(text: str) -> bool:
    return MIN_LENGTH <= len(text) < MAX_LENGTH


def select_candidates(conversations: Iterable[Any]) -> List[ScanCandidate]:
    """Collect the messages worth sending, in conversation order."""
    candidates = []
    for conv in conversations:
        for msg in conv.messages:
            if is_eligible(msg.content):
                candidates.append(ScanCandidate(conv.id, msg.id, msg.content))
    return candidates


def build_batches(candidates: List[ScanCandidate], size: int = BATCH_SIZE) -> List[List[ScanCandidate]]:
    return [candidates[i:i + size] for i in range(0, len(candidates), size)]


def build_batch_prompt(batch: List[ScanCandidate]) -> str:
    return "\n\n".join(
        f"[Message {idx}]:\n{candidate.text[:EXCERPT_LENGTH]}"
        for idx, candidate in enumerate(batch, start=1)
    )


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    cleaned = re.sub(r"^```(?:json)?\s*", "", cleaned, count=1, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s*```$", "", cleaned, count=1)
    return cleaned


def parse_verdicts(text: str, batch_size: int) -> Dict[int, SensitivityVerdict]:
    """
    Parse the model's JSON array into verdicts keyed by 1-based position.

    Raises ValueError when the payload is not a JSON array. Individual
    entries without a usable index or flag are dropped, which leaves the
    corresponding message untouched.
    """
    parsed = json.loads(strip_code_fences(text))
    if not isinstance(parsed, list):
        raise ValueError(f"Expected a JSON array, got {type(parsed).__name__}")

    verdicts: Dict[int, SensitivityVerdict] = {}
    for item in parsed:
        if not isinstance(item, dict):
            continue
        index = item.get("index")
        flag = item.get("hasSensitiveData")
        if isinstance(index, bool) or not isinstance(index, int):
            continue
        if not 1 <= index <= batch_size or index in verdicts:
            continue
        if not isinstance(flag, bool):
            continue

        reason = item.get("reason")
        if not isinstance(reason, str) or not reason.strip():
            reason = None
        if flag:
            verdicts[index] = SensitivityVerdict(True, reason.strip() if reason else FALLBACK_REASON)
        else:
            verdicts[index] = SensitivityVerdict(False, None)
    return verdicts


class DeepScanner:
    """
    Runs the batched classification.

    `client` may be any object exposing `chat.completions.create` the way
    the OpenAI client does; one is built from the API key when omitted.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Any = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        batch_size: int = BATCH_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api_key = api_key
        self.client = client
        self.model = model or os.environ.get("OPENAI_MODEL", DEFAULT_MODEL)
        if timeout is None:
            timeout = float(os.environ.get("DEEP_SCAN_TIMEOUT_SECONDS", DEFAULT_SCAN_TIMEOUT))
        self.timeout = timeout
        self.batch_size = batch_size
        self.clock = clock

    def _get_client(self, key: str) -> Any:
        if self.client is None:
            request_timeout = float(os.environ.get("OPENAI_TIMEOUT_SECONDS", DEFAULT_REQUEST_TIMEOUT))
            self.client = OpenAI(api_key=key, timeout=request_timeout)
        return self.client

    def scan(self, candidates: List[ScanCandidate]) -> ScanResult:
        """Classify candidates batch by batch, strictly one request at a time."""
        key = resolve_api_key(self.api_key)
        client = self._get_client(key)

        batches = build_batches(candidates, self.batch_size)
        result = ScanResult(submitted=len(candidates), batches_total=len(batches))
        logger.info(f"Deep scan: {len(candidates)} messages in {len(batches)} batches")

        started = self.clock()
        analyzed = 0
        for number, batch in enumerate(batches, start=1):
            if self.timeout is not None and self.clock() - started >= self.timeout:
                logger.warning(f"Deep scan timed out after {number - 1}/{len(batches)} batches")
                result.timed_out = True
                break

            try:
                batch_verdicts = self._classify_batch(client, batch, number)
            except BatchClassificationError as e:
                logger.exception(f"Batch analysis error: {e}")
                result.batches_failed += 1
            else:
                for index, verdict in batch_verdicts.items():
                    result.verdicts[batch[index - 1].key] = verdict

            analyzed += len(batch)
            if analyzed % PROGRESS_EVERY == 0 or analyzed == len(candidates):
                logger.info(f"Analyzed {analyzed}/{len(candidates)} messages")

        logger.info(f"Deep scan finished: {result.summary()}")
        return result

    def _classify_batch(self, client: Any, batch: List[ScanCandidate], number: int) -> Dict[int, SensitivityVerdict]:
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_batch_prompt(batch)},
                ],
                temperature=0.3,
                max_tokens=500,
            )
            content = response.choices[0].message.content or "[]"
            return parse_verdicts(content, len(batch))
        except Exception as e:
            raise BatchClassificationError(number, str(e)) from e
