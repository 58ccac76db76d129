import re

from exporter import export_filename, render_export
from parser import Conversation, Message


def _conversations():
    return [
        Conversation(id="a", title="All gone", messages=[
            Message(id="a1", role="user", content="delete me", is_marked_for_deletion=True),
        ]),
        Conversation(id="b", title="Kept", messages=[
            Message(id="b1", role="user", content="Question?"),
            Message(id="b2", role="assistant", content="Secret answer", is_marked_for_deletion=True),
            Message(id="b3", role="assistant", content="Answer with jane@example.com",
                    has_sensitive_data=True, sensitive_reason="Email address detected"),
        ]),
    ]


def test_export_layout():
    bar = "=" * 80
    dash = "-" * 80
    expected = (
        f"{bar}\nCHATGPT CONVERSATIONS EXPORT - FILTERED\n{bar}\n\n"
        f"\n{bar}\nCONVERSATION 1: Kept\n{bar}\n\n"
        f"[USER]:\nQuestion?\n\n{dash}\n\n"
        f"[ASSISTANT]:\nAnswer with jane@example.com\n\n{dash}\n\n"
    )

    assert render_export(_conversations()) == expected


def test_export_does_not_modify_conversations():
    conversations = _conversations()
    render_export(conversations)
    assert len(conversations[0].messages) == 1
    assert len(conversations[1].messages) == 3


def test_export_with_nothing_left():
    text = render_export([])
    assert "CONVERSATION" not in text.replace("CONVERSATIONS EXPORT", "")


def test_long_content_is_not_truncated():
    content = "word " * 1000
    text = render_export([Conversation(id="x", title="Long", messages=[Message(id="1", role="user", content=content)])])
    assert content in text


def test_export_filename():
    assert export_filename(1700000000000) == "chatgpt_export_filtered_1700000000000.txt"
    assert re.fullmatch(r"chatgpt_export_filtered_\d{13}\.txt", export_filename())
