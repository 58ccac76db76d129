"""
In-memory conversation state and the operations the UI triggers on it.

Content, ids and roles are never modified after import; only the per-message
flags (deletion mark, sensitivity) and the conversation list change.
"""
import logging
import threading
from typing import Any, Dict, Iterable, List

from errors import (
    ConfirmationRequiredError,
    ConversationNotFoundError,
    ConvoScrubError,
    GenericOperationError,
    ScanInProgressError,
)
from exporter import render_export
from parser import Conversation, Message
from pii_detection import detect_sensitive_data_locally
from services.deep_scan import DeepScanner, ScanResult, select_candidates

logger = logging.getLogger(__name__)


class ConversationStore:
    """Loaded conversations plus their derived flags"""

    def __init__(self, conversations: Iterable[Conversation]):
        self.conversations: List[Conversation] = list(conversations)
        self._lock = threading.RLock()
        self._scan_lock = threading.Lock()

    @property
    def scan_in_progress(self) -> bool:
        return self._scan_lock.locked()

    def get_conversation(self, conversation_id: str) -> Conversation:
        for conv in self.conversations:
            if conv.id == conversation_id:
                return conv
        raise ConversationNotFoundError(f"Conversation {conversation_id} not found")

    def get_message(self, conversation_id: str, message_id: str) -> Message:
        msg = self.get_conversation(conversation_id).find_message(message_id)
        if msg is None:
            raise ConversationNotFoundError(f"Message {message_id} not found in conversation {conversation_id}")
        return msg

    def toggle_expand(self, conversation_id: str) -> Conversation:
        with self._lock:
            conv = self.get_conversation(conversation_id)
            conv.is_expanded = not conv.is_expanded
            return conv

    def delete_conversation(self, conversation_id: str, confirmed: bool = False) -> None:
        """Remove a conversation and all its messages. Irreversible."""
        if not confirmed:
            raise ConfirmationRequiredError("Deleting a conversation must be confirmed")
        with self._lock:
            conv = self.get_conversation(conversation_id)
            self.conversations.remove(conv)
        logger.info(f"Deleted conversation {conversation_id} ({len(conv.messages)} messages)")

    def toggle_message_deletion(self, conversation_id: str, message_id: str) -> Message:
        with self._lock:
            msg = self.get_message(conversation_id, message_id)
            msg.is_marked_for_deletion = not msg.is_marked_for_deletion
            return msg

    def apply_local_detection(self) -> int:
        """Run the pattern detector on every message that has no verdict yet."""
        annotated = 0
        with self._lock:
            for conv in self.conversations:
                for msg in conv.messages:
                    if msg.has_sensitive_data is not None:
                        continue
                    verdict = detect_sensitive_data_locally(msg.content)
                    msg.has_sensitive_data = verdict.has_sensitive_data
                    msg.sensitive_reason = verdict.reason
                    annotated += 1
        logger.info(f"Local detection annotated {annotated} messages")
        return annotated

    def apply_remote_detection(self, result: ScanResult) -> int:
        """
        Merge deep scan verdicts into the messages that still exist.

        Only the sensitivity flags are written; deletion marks and messages
        removed while the scan ran are left as they are.
        """
        applied = 0
        with self._lock:
            by_id = {conv.id: conv for conv in self.conversations}
            for (conversation_id, message_id), verdict in result.verdicts.items():
                conv = by_id.get(conversation_id)
                msg = conv.find_message(message_id) if conv else None
                if msg is None:
                    continue
                msg.has_sensitive_data = verdict.has_sensitive_data
                msg.sensitive_reason = verdict.reason if verdict.has_sensitive_data else None
                applied += 1
        logger.info(f"Applied {applied}/{len(result.verdicts)} remote verdicts")
        return applied

    def run_deep_scan(self, scanner: DeepScanner) -> Dict[str, Any]:
        """Single-flight deep scan: snapshot, classify, merge."""
        if not self._scan_lock.acquire(blocking=False):
            raise ScanInProgressError("A deep scan is already running")
        try:
            with self._lock:
                candidates = select_candidates(self.conversations)
            result = scanner.scan(candidates)
            summary = result.summary()
            summary["applied"] = self.apply_remote_detection(result)
            return summary
        except ConvoScrubError:
            raise
        except Exception as e:
            logger.exception(f"Deep scan failed: {e}")
            raise GenericOperationError(str(e) or type(e).__name__) from e
        finally:
            self._scan_lock.release()

    def compute_stats(self) -> Dict[str, int]:
        with self._lock:
            messages = [m for c in self.conversations for m in c.messages]
        return {
            "total": len(messages),
            "marked_for_deletion": sum(1 for m in messages if m.is_marked_for_deletion),
            "sensitive": sum(1 for m in messages if m.has_sensitive_data),
        }

    def sensitive_messages(self) -> List[Dict[str, Any]]:
        """Sensitive messages still waiting for review (not marked for deletion)"""
        with self._lock:
            return [
                {
                    "conversationId": conv.id,
                    "conversationTitle": conv.title,
                    "messageId": msg.id,
                    "message": msg.to_dict(),
                }
                for conv in self.conversations
                for msg in conv.messages
                if msg.has_sensitive_data and not msg.is_marked_for_deletion
            ]

    def mark_all_sensitive_for_deletion(self, confirmed: bool = False) -> int:
        if not confirmed:
            raise ConfirmationRequiredError("Deleting all sensitive messages must be confirmed")
        marked = 0
        with self._lock:
            for conv in self.conversations:
                for msg in conv.messages:
                    if msg.has_sensitive_data and not msg.is_marked_for_deletion:
                        msg.is_marked_for_deletion = True
                        marked += 1
        logger.info(f"Marked {marked} sensitive messages for deletion")
        return marked

    def export_text(self) -> str:
        with self._lock:
            return render_export(self.conversations)

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "conversations": [c.to_dict() for c in self.conversations],
                "stats": self.compute_stats(),
                "scanInProgress": self.scan_in_progress,
            }
