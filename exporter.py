"""
Plain-text export of the curated conversations.
"""
import time
from typing import Iterable, List, Optional

from parser import DELIMITER, Conversation

BANNER = f"{DELIMITER}\nCHATGPT CONVERSATIONS EXPORT - FILTERED\n{DELIMITER}\n\n"


def filter_conversations(conversations: Iterable[Conversation]) -> List[Conversation]:
    """
    Drop messages marked for deletion, then conversations left empty.

    Returns new Conversation objects; the originals are not modified.
    """
    filtered = []
    for conv in conversations:
        kept = [m for m in conv.messages if not m.is_marked_for_deletion]
        if kept:
            filtered.append(Conversation(id=conv.id, title=conv.title, messages=kept))
    return filtered


def render_export(conversations: Iterable[Conversation]) -> str:
    output = [BANNER]
    for idx, conv in enumerate(filter_conversations(conversations), start=1):
        output.append(conv.to_text(idx))
    return "".join(output)


def export_filename(timestamp_ms: Optional[int] = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"chatgpt_export_filtered_{timestamp_ms}.txt"
