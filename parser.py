"""
ChatGPT Export Parser
Rebuilds each conversation's linear message order from the node mapping
in conversations.json
"""

import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from errors import ImportParseError

logger = logging.getLogger(__name__)

ROLES = ("user", "assistant")
NO_CONVERSATIONS_MESSAGE = "No conversations found in file. Please check the format."
DELIMITER = "=" * 80
MESSAGE_DELIMITER = "-" * 80


@dataclass
class Message:
    """Represents a single message in a conversation"""
    id: str
    role: str  # 'user' or 'assistant'
    content: str
    is_marked_for_deletion: bool = False
    has_sensitive_data: Optional[bool] = None  # None until a detector has run
    sensitive_reason: Optional[str] = None

    def to_text(self) -> str:
        return f"[{self.role.upper()}]:\n{self.content}\n\n{MESSAGE_DELIMITER}\n\n"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "isMarkedForDeletion": self.is_marked_for_deletion,
            "hasSensitiveData": self.has_sensitive_data,
            "sensitiveReason": self.sensitive_reason,
        }


@dataclass
class Conversation:
    """Represents a ChatGPT conversation"""
    id: str
    title: str
    messages: List[Message] = field(default_factory=list)
    is_expanded: bool = False

    def to_text(self, index: int) -> str:
        lines = [f"\n{DELIMITER}\n", f"CONVERSATION {index}: {self.title}\n", f"{DELIMITER}\n\n"]
        for msg in self.messages:
            lines.append(msg.to_text())
        return "".join(lines)

    def get_preview(self, max_length: int = 200) -> str:
        """Get a preview of the conversation content"""
        for msg in self.messages:
            if msg.role == 'user':
                if len(msg.content) > max_length:
                    return msg.content[:max_length] + "..."
                return msg.content
        return "No preview available"

    def find_message(self, message_id: str) -> Optional[Message]:
        for msg in self.messages:
            if msg.id == message_id:
                return msg
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "isExpanded": self.is_expanded,
            "preview": self.get_preview(),
            "messages": [m.to_dict() for m in self.messages],
        }


def new_message_id() -> str:
    return f"msg-{uuid.uuid4().hex[:12]}"


def extract_message_from_node(node: Any, node_id: Optional[str] = None) -> Optional[Message]:
    """
    Turn a mapping node into a Message, or None if it carries no usable text.

    The message id is the node's own id, then its mapping key, then a
    generated one.
    """
    if not isinstance(node, dict):
        return None

    message = node.get("message")
    if not isinstance(message, dict):
        return None

    content = message.get("content")
    if not isinstance(content, dict):
        return None

    parts = content.get("parts")
    if not isinstance(parts, list) or not parts:
        return None

    text = parts[0]
    if not isinstance(text, str) or not text.strip():
        return None

    author = message.get("author")
    role = author.get("role") if isinstance(author, dict) else None
    if role not in ROLES:
        return None

    msg_id = node.get("id") or node_id
    return Message(
        id=str(msg_id) if msg_id not in (None, "") else new_message_id(),
        role=role,
        content=text.strip(),
    )


def find_root_id(mapping: Dict[str, Any]) -> Optional[str]:
    """
    Return the id of the single node without a parent.

    No root, or more than one, means the tree can't be walked.
    """
    roots = [
        node_id for node_id, node in mapping.items()
        if not (isinstance(node, dict) and node.get("parent"))
    ]
    if len(roots) != 1:
        return None
    return roots[0]


def reconstruct_conversation_order(mapping: Dict[str, Any]) -> List[Message]:
    """
    Walk from the root following the first child of every node.

    Alternate branches (regenerations, edits) are not visited. Nodes with
    no usable message are skipped but the walk continues through them.
    """
    root_id = find_root_id(mapping)
    if root_id is None:
        return []

    messages: List[Message] = []
    visited = set()
    message_ids = set()
    current_id = root_id

    while current_id is not None and current_id not in visited:
        visited.add(current_id)
        node = mapping.get(current_id)
        if node is None:
            break

        msg = extract_message_from_node(node, current_id)
        if msg:
            # Message ids key the deep scan merge, so they must be unique
            while msg.id in message_ids:
                logger.warning(f"Duplicate message id {msg.id}, assigning a new one")
                msg.id = new_message_id()
            message_ids.add(msg.id)
            messages.append(msg)

        children = node.get("children") if isinstance(node, dict) else None
        if not children:
            break
        current_id = children[0]

    return messages


class ChatGPTParser:
    """Parser for ChatGPT data export"""

    def __init__(self, export_path: str = None):
        self.export_path = export_path
        self.conversations: List[Conversation] = []

    def parse(self) -> None:
        """Parse the ChatGPT export from file path"""
        if not self.export_path:
            raise ValueError("No export path provided")

        with open(self.export_path, 'r', encoding='utf-8') as f:
            self.parse_from_text(f.read())

    def parse_from_text(self, text: str) -> None:
        """Parse a raw conversations.json document"""
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, TypeError) as e:
            logger.error(f"Archive is not valid JSON: {e}")
            raise ImportParseError(NO_CONVERSATIONS_MESSAGE) from e
        self.parse_from_json(data)

    def parse_from_json(self, data: Any) -> None:
        """Parse directly from JSON data (list of conversations)"""
        self.conversations = self._parse_data(data)
        if not self.conversations:
            raise ImportParseError(NO_CONVERSATIONS_MESSAGE)

    def _parse_data(self, data: Any) -> List[Conversation]:
        """
        Build conversations from the archive.

        A structural problem anywhere in the archive discards the whole
        result instead of returning a partial set.
        """
        if not isinstance(data, list):
            logger.warning(f"Expected list of conversations, got {type(data).__name__}")
            return []

        logger.info(f"Starting to parse {len(data)} conversation entries")

        conversations: List[Conversation] = []
        conversation_ids = set()
        try:
            for idx, conv_data in enumerate(data):
                conversation = self._parse_conversation(conv_data, len(conversations))
                if conversation.messages:
                    base_id, suffix = conversation.id, 2
                    while conversation.id in conversation_ids:
                        conversation.id = f"{base_id}-{suffix}"
                        suffix += 1
                    if conversation.id != base_id:
                        logger.warning(f"Duplicate conversation id {base_id}, renamed to {conversation.id}")
                    conversation_ids.add(conversation.id)
                    conversations.append(conversation)
                else:
                    logger.debug(f"Conversation {idx} ({conversation.id}) has no messages, skipping")
        except (TypeError, AttributeError, KeyError, IndexError) as e:
            logger.exception(f"Malformed archive, discarding all conversations: {e}")
            return []

        logger.info(f"Successfully parsed {len(conversations)} conversations with messages")
        return conversations

    def _parse_conversation(self, data: Dict[str, Any], position: int) -> Conversation:
        """Parse a single conversation from the export data"""
        if not isinstance(data, dict):
            raise TypeError(f"Conversation entry is not a dict (got {type(data).__name__})")

        mapping = data.get("mapping") or {}
        if not isinstance(mapping, dict):
            raise TypeError(f"Mapping is not a dict (got {type(mapping).__name__})")

        conv_id = data.get("id") or f"conv-{position}"
        title = data.get("title") or f"Conversation {position + 1}"

        return Conversation(
            id=str(conv_id),
            title=str(title),
            messages=reconstruct_conversation_order(mapping),
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the parsed data"""
        messages = [m for c in self.conversations for m in c.messages]
        return {
            "total_conversations": len(self.conversations),
            "total_messages": len(messages),
            "user_messages": sum(1 for m in messages if m.role == 'user'),
            "assistant_messages": sum(1 for m in messages if m.role == 'assistant'),
        }


def main():
    """CLI entry point"""
    import sys

    from dotenv import load_dotenv

    from errors import ConvoScrubError
    from exporter import export_filename
    from services.deep_scan import DeepScanner
    from services.process_export import load_export
    from store import ConversationStore

    if len(sys.argv) < 2:
        print("Usage: python parser.py <conversations.json|export.zip>")
        print("       python parser.py <conversations.json|export.zip> --deep-scan --export <output_file>")
        sys.exit(1)

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format='%(asctime)s [%(levelname)s] %(message)s')

    export_path = sys.argv[1]
    print(f"📂 Parsing ChatGPT export from: {export_path}")

    try:
        store = ConversationStore(load_export(export_path))
        store.apply_local_detection()

        if "--deep-scan" in sys.argv:
            print("\n🔎 Running deep scan...")
            summary = store.run_deep_scan(DeepScanner())
            print(f"   Submitted: {summary['submitted']} messages in {summary['batches_total']} batches")
            print(f"   Failed batches: {summary['batches_failed']}")
    except ConvoScrubError as e:
        print(f"❌ {e}")
        sys.exit(1)

    stats = store.compute_stats()
    print("\n📊 Statistics:")
    print(f"   Total Conversations: {len(store.conversations)}")
    print(f"   Total Messages: {stats['total']}")
    print(f"   Sensitive Messages: {stats['sensitive']}")

    for item in store.sensitive_messages():
        print(f"   ⚠️  {item['conversationTitle']} / {item['messageId']}: {item['message']['sensitiveReason']}")

    if "--export" in sys.argv:
        export_idx = sys.argv.index("--export")
        if export_idx + 1 < len(sys.argv):
            output_file = sys.argv[export_idx + 1]
        else:
            output_file = os.path.join(os.path.dirname(os.path.abspath(export_path)), export_filename())

        print(f"\n📝 Exporting filtered transcript: {output_file}")
        with open(output_file, 'w', encoding='utf-8') as f:
            f.write(store.export_text())
        print("✅ Export complete!")


if __name__ == "__main__":
    main()
