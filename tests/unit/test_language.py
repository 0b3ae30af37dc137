"""
Unit tests for agent/providers/language.py - output language validation.
"""

import pytest

from agent.providers.language import (
    FALLBACK_MESSAGES,
    enforce_language,
    get_language_fallback,
    validate_language,
)
from agent.state.schemas import Language


class TestValidateLanguage:
    """Character-set and English-density heuristics."""

    @pytest.mark.parametrize("language", [None, "", "en", "auto", Language.EN])
    def test_skipped_targets(self, language):
        check = validate_language("Completely English sentence for the guest, thank you.", language)

        assert check.valid is True
        assert check.reason == "skipped"

    def test_short_text_not_judged(self):
        assert validate_language("OK 19:00", "ru").valid is True

    def test_russian_cyrillic_passes(self):
        assert validate_language("Отлично, жду вас завтра в семь вечера.", "ru").valid is True

    def test_russian_target_with_english_fails(self):
        check = validate_language("Great, we will see you tomorrow at seven.", "ru")

        assert check.valid is False
        assert check.reason == "missing_cyrillic"

    def test_serbian_latin_passes(self):
        assert validate_language("Hvala, vaša rezervacija je potvrđena za sutra.", "sr").valid is True

    def test_serbian_cyrillic_passes(self):
        assert validate_language("Хвала, ваша резервација је потврђена за сутра.", "sr").valid is True

    def test_hungarian_passes(self):
        assert validate_language("Köszönöm, a foglalását rögzítettük holnap estére.", "hu").valid is True

    def test_english_for_hungarian_fails(self):
        check = validate_language("Thank you, your table for two is booked for tomorrow.", "hu")

        assert check.valid is False
        assert check.reason == "english_loanword_density"

    def test_cyrillic_for_german_fails(self):
        check = validate_language("Спасибо, ваш столик забронирован на завтра.", "de")

        assert check.valid is False
        assert check.reason == "unexpected_cyrillic"

    def test_german_with_loanwords_passes(self):
        text = "Danke! Ihr Tisch für das Team-Meeting ist für morgen reserviert."
        assert validate_language(text, "de").valid is True

    def test_unknown_language_skipped(self):
        assert validate_language("Whatever text goes here today", "xx").valid is True


class TestFallbacks:
    """Canned {language x agent} replacements."""

    def test_agent_specific_fallback(self):
        assert get_language_fallback("ru", "availability") == FALLBACK_MESSAGES[Language.RU]["availability"]

    def test_unknown_agent_uses_language_default(self):
        assert get_language_fallback(Language.HU, "mystery") == FALLBACK_MESSAGES[Language.HU]["default"]

    def test_language_without_agent_table(self):
        assert get_language_fallback("fr", "booking") == FALLBACK_MESSAGES[Language.FR]["default"]

    def test_unknown_language_uses_english(self):
        assert get_language_fallback("xx") == FALLBACK_MESSAGES[Language.EN]["default"]

    def test_every_language_has_default(self):
        for language in Language:
            if language is Language.AUTO:
                continue
            assert "default" in FALLBACK_MESSAGES[language]


class TestEnforceLanguage:

    def test_mismatch_replaced(self):
        text, replaced = enforce_language("Sure, your booking for the table is confirmed.", "sr", "booking")

        assert replaced is True
        assert text == FALLBACK_MESSAGES[Language.SR]["booking"]

    def test_match_kept(self):
        original = "Naravno, vaša rezervacija je potvrđena."
        text, replaced = enforce_language(original, "sr", "booking")

        assert replaced is False
        assert text == original
