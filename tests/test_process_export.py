import io
import json
import zipfile

import pytest

from errors import ImportParseError
from services.process_export import load_export


def _zip_bytes(files):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


def test_load_json_bytes(sample_archive):
    conversations = load_export(json.dumps(sample_archive).encode("utf-8"), filename="conversations.json")
    assert [c.id for c in conversations] == ["conv-1", "conv-2"]


def test_load_zip_export(sample_archive):
    data = _zip_bytes({
        "chat.html": "<html></html>",
        "export/conversations.json": json.dumps(sample_archive),
    })

    conversations = load_export(io.BytesIO(data), filename="chatgpt-export.zip")

    assert len(conversations) == 2


def test_zip_without_conversations(sample_archive):
    with pytest.raises(ImportParseError, match="No conversations.json"):
        load_export(_zip_bytes({"user.json": "{}"}), filename="export.zip")


def test_wrapped_archive_is_normalized(sample_archive):
    payload = json.dumps({"conversations": sample_archive}).encode("utf-8")
    assert len(load_export(payload, filename="conversations.json")) == 2


def test_load_from_path(tmp_path, sample_archive):
    path = tmp_path / "conversations.json"
    path.write_text(json.dumps(sample_archive), encoding="utf-8")
    assert len(load_export(str(path))) == 2


@pytest.mark.parametrize("payload", [b"not json at all", b"\xff\xfe\x00", b"[]", b'{"title": "x"}'])
def test_unreadable_input_is_one_import_error(payload):
    with pytest.raises(ImportParseError, match="No conversations found"):
        load_export(payload, filename="conversations.json")


def test_missing_file(tmp_path):
    with pytest.raises(ImportParseError):
        load_export(str(tmp_path / "nope.json"))
