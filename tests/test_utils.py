"""Tests for shared utility functions."""

import logging

import pytest

from chauffeur_bot.logging_context import (
    NO_VALUE,
    BookingContextFilter,
    bind_customer,
    current_context,
    get_session_logger,
    set_booking_id,
)
from chauffeur_bot.utils import extract_int, is_skip_command, normalize_phone


class TestNormalizePhone:
    def test_strips_spaces(self):
        assert normalize_phone("050 123 4567") == "0501234567"

    def test_preserves_leading_plus(self):
        assert normalize_phone("+971 50 123 4567") == "+971501234567"

    def test_mixed_separators(self):
        assert normalize_phone("+971 (50) 123-4567") == "+971501234567"

    def test_whatsapp_jid_matches_international_form(self):
        assert normalize_phone("971501234567@s.whatsapp.net") == "+971501234567"

    def test_strips_whitespace(self):
        assert normalize_phone("  +971501234567  ") == "+971501234567"


class TestSkipCommands:
    @pytest.mark.parametrize("text", ["none", "skip", "NA", "n/a", "Not Applicable", "no", " nothing "])
    def test_recognized(self, text):
        assert is_skip_command(text)

    @pytest.mark.parametrize("text", ["nope", "2", "skip it", ""])
    def test_not_recognized(self, text):
        assert not is_skip_command(text)


class TestExtractInt:
    def test_first_integer(self):
        assert extract_int("about 3 or 4") == 3

    def test_strips_unit_words(self):
        assert extract_int("4 hours", r"hours?|hrs?|h") == 4

    def test_no_number(self):
        assert extract_int("a few") is None


class TestLoggingContext:
    def _record(self):
        return logging.LogRecord("test", logging.INFO, __file__, 1, "msg", None, None)

    def test_filter_stamps_customer_and_booking(self):
        bind_customer("+971501234567")
        set_booking_id("BKTEST0001")
        record = self._record()
        assert BookingContextFilter().filter(record)
        assert record.customer_key == "+971501234567"
        assert record.booking_id == "BKTEST0001"

    def test_binding_customer_clears_booking(self):
        bind_customer("+971501234567")
        set_booking_id("BKTEST0001")
        bind_customer("+971509999999")
        assert current_context() == ("+971509999999", NO_VALUE)

    def test_session_logger_adds_filter_once(self):
        logger = get_session_logger("chauffeur_bot.tests.context")
        get_session_logger("chauffeur_bot.tests.context")
        assert sum(isinstance(f, BookingContextFilter) for f in logger.filters) == 1
