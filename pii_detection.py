"""
Local sensitive-data detection using regex patterns.

Rules are checked in order and the first match wins, so the list order
is the priority between patterns that match the same text.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple


@dataclass(frozen=True)
class SensitivityVerdict:
    """Outcome of either detector for one message"""
    has_sensitive_data: bool
    reason: Optional[str] = None


NOT_SENSITIVE = SensitivityVerdict(False, None)

PATTERNS: List[Tuple[Pattern, str]] = [
    (
        re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b'),
        'Email address detected',
    ),
    (
        re.compile(r'\b(?:\+?1[-.]?)?\(?([0-9]{3})\)?[-.]?([0-9]{3})[-.]?([0-9]{4})\b'),
        'Phone number detected',
    ),
    (
        re.compile(r'\b\d{3}-\d{2}-\d{4}\b'),
        'SSN-like number detected',
    ),
    (
        re.compile(r'\b(?:\d{4}[-\s]?){3}\d{4}\b'),
        'Credit card number detected',
    ),
    (
        re.compile(
            r'\b\d{1,5}\s+\w+\s+(Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Lane|Ln|Drive|Dr|Court|Ct|Circle|Cir)\b',
            re.IGNORECASE,
        ),
        'Physical address detected',
    ),
    (
        re.compile(r'\b(?:19|20)\d{2}[-/](0[1-9]|1[0-2])[-/](0[1-9]|[12]\d|3[01])\b'),
        'Full date detected (potential DOB)',
    ),
    (
        re.compile(r'\b[A-Z]{2}\d{6,9}\b'),
        'Passport-like number detected',
    ),
]


def detect_sensitive_data_locally(text: str) -> SensitivityVerdict:
    """Classify a single message's text with the ordered pattern rules"""
    if not text:
        return NOT_SENSITIVE

    for regex, reason in PATTERNS:
        if regex.search(text):
            return SensitivityVerdict(True, reason)

    return NOT_SENSITIVE
