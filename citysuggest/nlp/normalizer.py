import re
import unicodedata

from unidecode import unidecode

_DROP_RE = re.compile(r"[’'`.]")
_SEP_RE = re.compile(r"[^0-9a-z]+")


class QueryNormalizer:
    """
    Turns raw place-name text into the canonical form used for matching.

    The same function builds the index keys at load time and normalizes
    queries at request time, so both sides always agree:

        "MONtREaL"  -> "montreal"
        "Monreāl"   -> "monreal"
        "Вашинг"    -> "vashing"
        "St. John's" -> "st johns"
    """

    def normalize(self, raw: str) -> str:
        if not raw:
            return ""

        # 1. Unify compatibility forms (full-width letters, ligatures)
        text = unicodedata.normalize("NFKC", raw)

        # 2. Transliterate to ASCII; drops diacritics and romanizes other scripts
        text = unidecode(text)

        # 3. Case folding
        text = text.casefold()

        # 4. Punctuation: apostrophes and dots vanish, everything else separates words
        text = _DROP_RE.sub("", text)
        text = _SEP_RE.sub(" ", text)
        return text.strip()


normalizer = QueryNormalizer()
normalize = normalizer.normalize
