"""
Output language validation.

After a successful text generation the router checks the reply against a
lightweight signature of the session language:
- character-set heuristics (Cyrillic share, language-specific diacritics,
  a few high-frequency function words)
- English function-word density, which catches the common failure where a
  provider drifts back into English mid-conversation

A reply that fails the check is replaced by a pre-authored string from
FALLBACK_MESSAGES ({language: {agent: text}}); it is never sent back to a
provider for translation. English, "auto" and unset targets skip the check.
"""

import logging
import re
from dataclasses import dataclass

from agent.state.schemas import Language

logger = logging.getLogger(__name__)

# Texts shorter than this (in word tokens) are too short to judge
MIN_TOKENS_TO_CHECK = 4

# Share of English-only function words above which a reply counts as English
ENGLISH_DENSITY_THRESHOLD = 0.25

# Minimum share of Cyrillic letters for Cyrillic-script targets
MIN_CYRILLIC_RATIO = 0.5

# Maximum share of Cyrillic letters tolerated for Latin-script targets
MAX_CYRILLIC_RATIO_FOR_LATIN = 0.3

_WORD_RE = re.compile(r"[^\W\d_]+", re.UNICODE)

# Words that are English and do not double as common words in the other
# supported languages ("is", "in", "was", "die" are deliberately absent)
ENGLISH_MARKERS: frozenset[str] = frozenset({
    "the", "and", "you", "your", "with", "will", "would", "please", "thank",
    "thanks", "have", "for", "this", "that", "are", "we", "our", "can",
    "reservation", "table", "booking", "confirm", "what", "which", "there",
    "sorry", "help", "people", "time", "name", "shall", "should", "just",
})

LANGUAGE_MARKERS: dict[Language, frozenset[str]] = {
    Language.SR: frozenset({
        "je", "da", "za", "na", "sto", "hvala", "rezervacija", "rezervaciju",
        "molim", "vas", "osoba", "vreme", "ime", "potvrđujem", "želite",
    }),
    Language.HU: frozenset({
        "az", "és", "hogy", "nem", "igen", "van", "foglalás", "foglalást",
        "köszönöm", "kérem", "asztal", "fő", "időpont", "név", "szeretne",
    }),
    Language.DE: frozenset({"der", "die", "das", "und", "ist", "nicht", "tisch", "bitte", "sie", "für"}),
    Language.FR: frozenset({"le", "la", "les", "et", "est", "pour", "vous", "une", "table", "merci"}),
    Language.ES: frozenset({"el", "la", "los", "y", "es", "para", "una", "mesa", "gracias", "reserva"}),
    Language.IT: frozenset({"il", "la", "e", "per", "una", "tavolo", "grazie", "prenotazione", "di"}),
    Language.PT: frozenset({"o", "a", "os", "e", "para", "uma", "mesa", "obrigado", "reserva", "você"}),
    Language.NL: frozenset({"de", "het", "en", "een", "voor", "tafel", "bedankt", "reservering", "u"}),
}

LANGUAGE_DIACRITICS: dict[Language, str] = {
    Language.SR: "čćžšđ",
    Language.HU: "őűáéíóöüú",
    Language.DE: "äöüß",
    Language.FR: "àâçéèêëîïôûùœ",
    Language.ES: "áéíñóúü¿¡",
    Language.IT: "àèéìòù",
    Language.PT: "ãõáâàçéêíóôú",
    Language.NL: "ëï",
}

CYRILLIC_LANGUAGES = frozenset({Language.RU})


# =============================================================================
# Canned replacements: {language: {agent: text}}; "default" covers any agent
# =============================================================================

FALLBACK_MESSAGES: dict[Language, dict[str, str]] = {
    Language.EN: {
        "default": "I'm sorry, I had trouble with that. Could you please repeat your request?",
    },
    Language.RU: {
        "booking": "Извините, произошла ошибка. Давайте продолжим бронирование: уточните, пожалуйста, дату, время и количество гостей.",
        "reservations": "Извините, произошла ошибка. Пожалуйста, повторите, что вы хотите изменить в бронировании.",
        "conductor": "Извините, я не совсем понял. Чем я могу помочь?",
        "availability": "Извините, не удалось проверить наличие мест. Пожалуйста, повторите дату и время.",
        "default": "Извините, произошла ошибка. Пожалуйста, повторите ваш запрос.",
    },
    Language.SR: {
        "booking": "Izvinite, došlo je do greške. Nastavimo sa rezervacijom: molim vas navedite datum, vreme i broj gostiju.",
        "reservations": "Izvinite, došlo je do greške. Molim vas ponovite šta želite da promenite u rezervaciji.",
        "conductor": "Izvinite, nisam razumeo. Kako mogu da vam pomognem?",
        "availability": "Izvinite, nisam uspeo da proverim slobodna mesta. Molim vas ponovite datum i vreme.",
        "default": "Izvinite, došlo je do greške. Molim vas ponovite zahtev.",
    },
    Language.HU: {
        "booking": "Elnézést, hiba történt. Folytassuk a foglalást: kérem, adja meg a dátumot, az időpontot és a vendégek számát.",
        "reservations": "Elnézést, hiba történt. Kérem, ismételje meg, mit szeretne módosítani a foglaláson.",
        "conductor": "Elnézést, nem egészen értettem. Miben segíthetek?",
        "availability": "Elnézést, nem sikerült ellenőrizni a szabad helyeket. Kérem, ismételje meg a dátumot és az időpontot.",
        "default": "Elnézést, hiba történt. Kérem, ismételje meg a kérését.",
    },
    Language.DE: {
        "default": "Entschuldigung, da ist etwas schiefgelaufen. Könnten Sie Ihre Anfrage bitte wiederholen?",
    },
    Language.FR: {
        "default": "Désolé, un problème est survenu. Pourriez-vous répéter votre demande, s'il vous plaît ?",
    },
    Language.ES: {
        "default": "Lo siento, ha ocurrido un problema. ¿Podría repetir su solicitud, por favor?",
    },
    Language.IT: {
        "default": "Mi dispiace, si è verificato un problema. Potrebbe ripetere la sua richiesta, per favore?",
    },
    Language.PT: {
        "default": "Desculpe, ocorreu um problema. Poderia repetir o seu pedido, por favor?",
    },
    Language.NL: {
        "default": "Sorry, er ging iets mis. Kunt u uw verzoek alstublieft herhalen?",
    },
}


@dataclass(frozen=True)
class LanguageCheck:
    valid: bool
    reason: str
    english_density: float = 0.0
    cyrillic_ratio: float = 0.0


def _coerce_language(language: Language | str | None) -> Language | None:
    if language is None or language == "":
        return None
    try:
        return Language(language)
    except ValueError:
        return None


def english_density(tokens: list[str]) -> float:
    if not tokens:
        return 0.0
    return sum(1 for token in tokens if token in ENGLISH_MARKERS) / len(tokens)


def cyrillic_ratio(text: str) -> float:
    letters = [ch for ch in text if ch.isalpha()]
    if not letters:
        return 0.0
    return sum(1 for ch in letters if "Ѐ" <= ch <= "ӿ") / len(letters)


def validate_language(text: str, language: Language | str | None) -> LanguageCheck:
    """
    Check whether `text` plausibly is in `language`.

    Returns a LanguageCheck; valid=True when the check is skipped (English,
    auto, unset or unknown target, or too little text to judge).
    """
    target = _coerce_language(language)
    if target is None or target in (Language.EN, Language.AUTO):
        return LanguageCheck(valid=True, reason="skipped")

    tokens = [token.lower() for token in _WORD_RE.findall(text)]
    if len(tokens) < MIN_TOKENS_TO_CHECK:
        return LanguageCheck(valid=True, reason="too_short")

    density = english_density(tokens)
    ratio = cyrillic_ratio(text)

    if target in CYRILLIC_LANGUAGES:
        if ratio < MIN_CYRILLIC_RATIO:
            return LanguageCheck(False, "missing_cyrillic", density, ratio)
        return LanguageCheck(True, "ok", density, ratio)

    if target is Language.SR and ratio >= MIN_CYRILLIC_RATIO:
        # Serbian Cyrillic script
        return LanguageCheck(True, "ok", density, ratio)

    if ratio > MAX_CYRILLIC_RATIO_FOR_LATIN:
        return LanguageCheck(False, "unexpected_cyrillic", density, ratio)

    if density > ENGLISH_DENSITY_THRESHOLD:
        lowered = text.lower()
        has_diacritics = any(ch in lowered for ch in LANGUAGE_DIACRITICS.get(target, ""))
        markers = LANGUAGE_MARKERS.get(target, frozenset())
        native_hits = sum(1 for token in tokens if token in markers)
        # Mixed replies (English loanwords inside native text) are tolerated
        if not has_diacritics and native_hits < density * len(tokens):
            return LanguageCheck(False, "english_loanword_density", density, ratio)

    return LanguageCheck(True, "ok", density, ratio)


def get_language_fallback(language: Language | str | None, agent: str = "default") -> str:
    """Canned reply for (language, agent), falling back to the language default, then English."""
    target = _coerce_language(language) or Language.EN
    by_agent = FALLBACK_MESSAGES.get(target) or FALLBACK_MESSAGES[Language.EN]
    return by_agent.get(agent) or by_agent["default"]


def enforce_language(
    text: str,
    language: Language | str | None,
    agent: str = "default",
    context: str = "unknown",
) -> tuple[str, bool]:
    """
    Return (text, False) when the text passes validation, otherwise
    (canned fallback, True).
    """
    check = validate_language(text, language)
    if check.valid:
        return text, False

    logger.warning(
        f"Language mismatch for [{context}] | target={language} | reason={check.reason} "
        f"| english_density={check.english_density:.2f} | cyrillic_ratio={check.cyrillic_ratio:.2f} "
        f"| agent={agent}",
        extra={"context": context, "event": "language_mismatch"},
    )
    return get_language_fallback(language, agent), True
