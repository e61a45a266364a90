"""
Tests for caller identity types (``travel_kernel.domain.identity``).

Covers:
- normalize_phone(): separators, whitespace and a leading ``+`` are ignored
- PhoneProof / SessionProof channels
- ApprovalRef: by id, by business key, empty
"""

from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from travel_kernel.domain.identity import (
    ApprovalRef,
    PhoneProof,
    SessionProof,
    normalize_phone,
)

digits = st.text(alphabet="0123456789", min_size=6, max_size=15)
separators = st.sampled_from([" ", "-", ".", "(", ")", "\t"])


class TestNormalizePhone:
    def test_documented_example(self):
        assert normalize_phone("+62 811-2222") == normalize_phone("6281122 22")

    def test_parentheses_and_dots(self):
        assert normalize_phone("(021) 555.0199") == "0215550199"

    def test_empty_and_none(self):
        assert normalize_phone(None) == ""
        assert normalize_phone("") == ""
        assert normalize_phone(" - ") == ""

    def test_different_digits_differ(self):
        assert normalize_phone("+62 811-2222") != normalize_phone("+62 811-2223")

    @settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(number=digits, data=st.data())
    def test_separators_never_change_the_number(self, number, data):
        decorated = ""
        for ch in number:
            decorated += data.draw(st.lists(separators, max_size=2).map("".join)) + ch
        prefix = data.draw(st.sampled_from(["", "+", " +"]))
        assert normalize_phone(prefix + decorated) == number

    @settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(number=digits)
    def test_idempotent(self, number):
        once = normalize_phone(number)
        assert normalize_phone(once) == once


class TestProofs:
    def test_channels(self):
        assert SessionProof(uuid4()).channel == "session"
        assert PhoneProof("+62 811").channel == "phone"

    def test_phone_proof_normalizes(self):
        assert PhoneProof("+62 811-2222").normalized == "628112222"


class TestApprovalRef:
    def test_by_id(self):
        approval_id = uuid4()
        ref = ApprovalRef.by_id(approval_id)
        assert not ref.is_empty
        assert str(ref) == str(approval_id)

    def test_by_number(self):
        ref = ApprovalRef.by_number("APR-2026-00001")
        assert not ref.is_empty
        assert str(ref) == "APR-2026-00001"

    def test_empty(self):
        assert ApprovalRef().is_empty
        assert ApprovalRef(approval_number="").is_empty
