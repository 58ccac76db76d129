"""
Pytest configuration and shared fixtures.
"""
import re
from types import SimpleNamespace

import pytest

from parser import Conversation, Message


def _node(node_id, role, text, parent, children):
    message = None
    if role is not None:
        message = {
            "id": node_id,
            "author": {"role": role},
            "content": {"content_type": "text", "parts": [text]},
        }
    return {"id": node_id, "message": message, "parent": parent, "children": children}


def build_chain(turns, prefix="n"):
    """Linear mapping: an empty root followed by one node per (role, text)."""
    ids = [f"{prefix}{i}" for i in range(len(turns))]
    mapping = {
        "root": {"id": "root", "message": None, "parent": None, "children": ids[:1]},
    }
    for i, (role, text) in enumerate(turns):
        parent = ids[i - 1] if i else "root"
        children = [ids[i + 1]] if i + 1 < len(ids) else []
        mapping[ids[i]] = _node(ids[i], role, text, parent, children)
    return mapping


@pytest.fixture
def make_chain():
    return build_chain


@pytest.fixture
def sample_archive():
    """Three conversations: one branching, one plain, one without messages."""
    branching = build_chain([
        ("system", "You are ChatGPT."),
        ("user", "  Hi, my email is jane.doe@example.com, please remember it.  "),
        ("assistant", "Thanks, I have noted your email address."),
    ])
    branching["n1"]["children"] = ["n2", "alt"]
    branching["alt"] = _node("alt", "assistant", "An alternate reply that was regenerated.", "n1", [])

    return [
        {"id": "conv-1", "title": "Contact details", "mapping": branching},
        {
            "id": "conv-2",
            "title": "Trip planning",
            "mapping": build_chain([
                ("user", "What should I pack for a week in Lisbon during the spring season?"),
                ("assistant", "Light layers, a rain jacket, and comfortable walking shoes for the hills."),
            ], prefix="t"),
        },
        {"id": "conv-3", "title": "Empty", "mapping": {}},
    ]


@pytest.fixture
def make_conversation():
    def _make(conv_id, texts, role="user"):
        return Conversation(
            id=conv_id,
            title=f"Title {conv_id}",
            messages=[Message(id=f"{conv_id}-m{i}", role=role, content=text) for i, text in enumerate(texts)],
        )
    return _make


class FakeCompletions:
    """Stands in for client.chat.completions; `responder(call_number, batch_size)` returns text or raises."""

    def __init__(self, responder):
        self.responder = responder
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        user_content = kwargs["messages"][1]["content"]
        batch_size = len(re.findall(r"^\[Message \d+\]:", user_content, flags=re.MULTILINE))
        content = self.responder(len(self.calls), batch_size)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeOpenAI:
    def __init__(self, responder):
        self.chat = SimpleNamespace(completions=FakeCompletions(responder))

    @property
    def calls(self):
        return self.chat.completions.calls


def all_sensitive(call_number, batch_size):
    items = ", ".join(
        f'{{"index": {i}, "hasSensitiveData": true, "reason": "Medical details"}}'
        for i in range(1, batch_size + 1)
    )
    return f"```json\n[{items}]\n```"


@pytest.fixture
def fake_openai():
    """Factory for fake clients; defaults to flagging every message."""
    def _make(responder=all_sensitive):
        return FakeOpenAI(responder)
    return _make
