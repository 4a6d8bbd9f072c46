import uuid
from unittest.mock import MagicMock

from proposal_bot.schemas.conversation import Channel
from proposal_bot.services.identity_service import link_channel, resolve_identity
from proposal_bot.services.phone_utils import format_br_phone, is_suffix_match, normalize_phone, whatsapp_address

OPERATOR = uuid.UUID("0f8b4d8e-1c2a-4f3b-9d6e-7a8b9c0d1e2f")
OTHER_OPERATOR = uuid.UUID("1a2b3c4d-5e6f-4a8b-9c0d-1e2f3a4b5c6d")


def _db_returning(*batches):
    """Each query(...).filter(...).all() call returns the next batch."""
    db = MagicMock()
    db.query.return_value.filter.return_value.all.side_effect = list(batches)
    return db


class TestPhoneUtils:
    def test_normalize_strips_everything_but_digits(self):
        assert normalize_phone("+55 (11) 99999-9999") == "5511999999999"
        assert normalize_phone("11 99999-9999") == "11999999999"
        assert normalize_phone(None) == ""

    def test_suffix_match_requires_ten_digits(self):
        assert is_suffix_match("5511999999999", "11999999999")
        assert is_suffix_match("11999999999", "5511999999999")
        assert not is_suffix_match("5511999999999", "99999999")
        assert not is_suffix_match("5511999999999", "5521999999999")

    def test_whatsapp_address(self):
        assert whatsapp_address("5511999999999") == "whatsapp:+5511999999999"

    def test_format_br_phone(self):
        assert format_br_phone("11 99999-9999") == "+5511999999999"
        assert format_br_phone("5511999999999") == "+5511999999999"


class TestResolveIdentity:
    def test_exact_match_on_profile(self):
        db = _db_returning([(OPERATOR, "Ana")], [])

        identity = resolve_identity(db, Channel.TELEGRAM, "11999999999")

        assert identity.is_known_operator is True
        assert identity.operator_id == OPERATOR
        assert identity.display_name == "Ana"

    def test_formatting_does_not_matter(self):
        first = resolve_identity(_db_returning([(OPERATOR, "Ana")], []), Channel.TELEGRAM, "+55 11 99999-9999")
        second = resolve_identity(_db_returning([(OPERATOR, "Ana")], []), Channel.TELEGRAM, "5511999999999")
        assert first == second

    def test_profile_and_company_of_same_operator_count_once(self):
        db = _db_returning([(OPERATOR, "Ana")], [(OPERATOR, "Ana Reformas")])

        identity = resolve_identity(db, Channel.WHATSAPP, "11999999999")

        assert identity.is_known_operator is True
        assert identity.display_name == "Ana"

    def test_exact_match_on_two_operators_is_unknown(self):
        db = _db_returning([(OPERATOR, "Ana")], [(OTHER_OPERATOR, "Bruno")])

        identity = resolve_identity(db, Channel.TELEGRAM, "11999999999")

        assert identity.is_known_operator is False

    def test_suffix_fallback_tolerates_country_code(self):
        db = _db_returning([], [], [(OPERATOR, "Ana", "+55 11 99999-9999")], [])

        identity = resolve_identity(db, Channel.TELEGRAM, "11999999999")

        assert identity.is_known_operator is True
        assert identity.operator_id == OPERATOR

    def test_suffix_fallback_rejects_non_suffix_candidates(self):
        # same last 10 digits, different country prefix on both sides
        db = _db_returning([], [], [(OPERATOR, "Ana", "5511999999999")], [])

        identity = resolve_identity(db, Channel.TELEGRAM, "3511999999999")

        assert identity.is_known_operator is False

    def test_suffix_fallback_ambiguous_is_unknown(self):
        db = _db_returning(
            [],
            [],
            [(OPERATOR, "Ana", "5511999999999")],
            [(OTHER_OPERATOR, "Bruno", "11999999999")],
        )

        identity = resolve_identity(db, Channel.TELEGRAM, "11999999999")

        assert identity.is_known_operator is False

    def test_short_numbers_skip_the_fallback(self):
        db = _db_returning([], [])

        identity = resolve_identity(db, Channel.TELEGRAM, "99999999")

        assert identity.is_known_operator is False
        assert db.query.return_value.filter.return_value.all.call_count == 2

    def test_empty_phone_is_unknown_without_queries(self):
        db = MagicMock()

        identity = resolve_identity(db, Channel.TELEGRAM, "abc")

        assert identity.is_known_operator is False
        db.query.assert_not_called()


class TestLinkChannel:
    def test_upserts_operator_channel(self):
        db = MagicMock()

        link_channel(db, OPERATOR, Channel.TELEGRAM, "777")

        db.execute.assert_called_once()
        statement = db.execute.call_args[0][0]
        assert statement.table.name == "operator_channels"
