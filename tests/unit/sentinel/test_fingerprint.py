"""
Fingerprint determinism, with property-based checks for the normalization
that merges errors differing only by embedded IDs.
"""

from hypothesis import given
from hypothesis import strategies as st

from sentinel.domain.models import ErrorReport
from sentinel.services.fingerprint import (
    FINGERPRINT_LENGTH,
    generate_fingerprint,
    normalize_message,
)

hex_tokens = st.text(alphabet="0123456789abcdef", min_size=8, max_size=32).filter(
    lambda token: any(c in "abcdef" for c in token)
)


def _error(message: str) -> ErrorReport:
    return ErrorReport(name="TypeError", message=message, stack="at render (app.js:1:1)")


@given(
    message=st.text(max_size=80),
    path=st.text(max_size=30),
    user=st.one_of(st.none(), st.text(min_size=1, max_size=10)),
)
def test_fingerprint_is_deterministic(message: str, path: str, user: str | None) -> None:
    first = generate_fingerprint(_error(message), {"path": path}, user)
    second = generate_fingerprint(_error(message), {"path": path}, user)
    assert first == second
    assert len(first) == FINGERPRINT_LENGTH


@given(a=st.integers(min_value=0), b=st.integers(min_value=0))
def test_digit_content_does_not_change_fingerprint(a: int, b: int) -> None:
    context = {"path": "/bookings"}
    first = generate_fingerprint(_error(f"Booking {a} not found"), context)
    second = generate_fingerprint(_error(f"Booking {b} not found"), context)
    assert first == second


@given(a=hex_tokens, b=hex_tokens)
def test_hex_tokens_do_not_change_fingerprint(a: str, b: str) -> None:
    context = {"path": "/studios"}
    first = generate_fingerprint(_error(f"Studio {a} missing"), context)
    second = generate_fingerprint(_error(f"Studio {b} missing"), context)
    assert first == second


def test_path_changes_fingerprint() -> None:
    error = _error("Cannot read property 'id' of undefined")
    assert generate_fingerprint(error, {"path": "/checkout"}) != generate_fingerprint(
        error, {"path": "/profile"}
    )


def test_user_identity_is_bucketed() -> None:
    error = _error("boom")
    context = {"path": "/checkout"}
    alice = generate_fingerprint(error, context, "alice")
    bob = generate_fingerprint(error, context, "bob")
    anonymous = generate_fingerprint(error, context)

    assert alice == bob
    assert alice != anonymous
    assert generate_fingerprint(error, {**context, "userId": "carol"}) == alice


def test_empty_error_still_fingerprints() -> None:
    assert len(generate_fingerprint(ErrorReport(), None)) == FINGERPRINT_LENGTH


def test_normalize_message_placeholders() -> None:
    assert normalize_message("order 123 failed") == "order N failed"
    assert normalize_message("token deadbeefcafe expired") == "token HEX expired"
    assert normalize_message("session 3f2a9c1e7b expired") == "session HEX expired"
    assert normalize_message("") == ""
