import pytest

from pii_detection import SensitivityVerdict, detect_sensitive_data_locally


def test_email_is_detected():
    verdict = detect_sensitive_data_locally("Contact me at a@b.com")
    assert verdict.has_sensitive_data is True
    assert "Email" in verdict.reason


def test_plain_text_is_clean():
    assert detect_sensitive_data_locally("hello world") == SensitivityVerdict(False, None)


def test_empty_text_is_clean():
    assert detect_sensitive_data_locally("") == SensitivityVerdict(False, None)


def test_first_matching_rule_wins():
    verdict = detect_sensitive_data_locally("Email me at jane@example.com or call 555-123-4567")
    assert verdict.reason == "Email address detected"


@pytest.mark.parametrize("text,reason", [
    ("Call me on 555-123-4567 tonight", "Phone number detected"),
    ("My SSN is 123-45-6789", "SSN-like number detected"),
    ("Card: 4111 1111 1111 1111", "Credit card number detected"),
    ("I moved to 42 Main Street last year", "Physical address detected"),
    ("I was born on 1990-05-12", "Full date detected (potential DOB)"),
    ("Passport AB1234567 expires soon", "Passport-like number detected"),
])
def test_each_rule(text, reason):
    verdict = detect_sensitive_data_locally(text)
    assert verdict.has_sensitive_data is True
    assert verdict.reason == reason


def test_address_suffix_is_case_insensitive():
    assert detect_sensitive_data_locally("meet at 7 elm AVENUE").reason == "Physical address detected"


def test_code_like_text_is_clean():
    assert not detect_sensitive_data_locally("def add(a, b):\n    return a + b").has_sensitive_data
