"""
Service module for loading ChatGPT export files.

This module turns an uploaded export (conversations.json or the export ZIP
that contains it) into parsed conversations. It is used by both the upload
endpoint and the command line.
"""
import json
import logging
import zipfile
from io import BytesIO
from typing import Any, BinaryIO, List, Union

from errors import ImportParseError
from parser import NO_CONVERSATIONS_MESSAGE, ChatGPTParser, Conversation

logger = logging.getLogger(__name__)


def load_export(
    file_handle_or_bytes: Union[str, BinaryIO, bytes],
    *,
    filename: str = None
) -> List[Conversation]:
    """
    Load a ChatGPT export and return its reconstructed conversations.

    Args:
        file_handle_or_bytes: Can be:
            - File path (str) to a local file
            - File-like object (BinaryIO) with read() method
            - bytes object containing file data
        filename: Original filename, used to tell ZIP from JSON. Defaults
            to the path when a path is given.

    Returns:
        Conversations that have at least one message, in archive order.

    Raises:
        ImportParseError: If the file is not a readable export or no
            conversation survives reconstruction.
    """
    if filename is None and isinstance(file_handle_or_bytes, str):
        filename = file_handle_or_bytes
    filename_lower = (filename or '').lower()

    logger.info(f"Loading export {filename or '<upload>'}")

    try:
        if isinstance(file_handle_or_bytes, str):
            with open(file_handle_or_bytes, 'rb') as f:
                raw = f.read()
        elif isinstance(file_handle_or_bytes, bytes):
            raw = file_handle_or_bytes
        elif hasattr(file_handle_or_bytes, 'read'):
            raw = file_handle_or_bytes.read()
        else:
            raise ImportParseError(f"Unsupported file input type: {type(file_handle_or_bytes).__name__}")

        data = _extract_data(raw, filename_lower)
    except (OSError, zipfile.BadZipFile, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"Could not read export {filename}: {e}")
        raise ImportParseError(NO_CONVERSATIONS_MESSAGE) from e

    parser = ChatGPTParser()
    parser.parse_from_json(_normalize_data_structure(data))

    stats = parser.get_stats()
    logger.info(f"Loaded {stats['total_conversations']} conversations, {stats['total_messages']} messages")
    return parser.conversations


def _extract_data(raw: bytes, filename_lower: str) -> Any:
    """Decode JSON, pulling conversations.json out of a ZIP when needed."""
    if filename_lower.endswith('.zip') or raw[:4] == b'PK\x03\x04':
        with zipfile.ZipFile(BytesIO(raw), 'r') as zip_ref:
            conversations_json = None
            for name in zip_ref.namelist():
                if name.endswith('conversations.json'):
                    conversations_json = name
                    break

            if not conversations_json:
                raise ImportParseError("No conversations.json found in ZIP file")

            with zip_ref.open(conversations_json) as f:
                return json.load(f)

    if isinstance(raw, bytes):
        raw = raw.decode('utf-8-sig')
    return json.loads(raw)


def _normalize_data_structure(data: Any) -> Any:
    """
    Normalize ChatGPT export data structure to a list of conversations.

    Handles a direct list, or a dict with a 'conversations' or 'data' key.
    Anything else is handed to the parser unchanged and rejected there.
    """
    if isinstance(data, dict):
        if "conversations" in data:
            return data["conversations"]
        elif "data" in data:
            return data["data"]
    return data
