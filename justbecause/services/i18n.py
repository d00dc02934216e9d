import json
from functools import lru_cache
from pathlib import Path
from typing import Optional

DEFAULT_LOCALE = "en"
LOCALES = ["en", "hi", "pa", "ur"]
RTL_LOCALES = ["ar", "ur", "he"]

LOCALES_DIR = Path(__file__).parent.parent / "locales"

def is_rtl(locale: str) -> bool:
    return locale in RTL_LOCALES

def text_direction(locale: str) -> str:
    return "rtl" if is_rtl(locale) else "ltr"

def negotiate_locale(accept_language: Optional[str]) -> str:
    """Pick the best supported locale from an Accept-Language header."""
    if not accept_language:
        return DEFAULT_LOCALE

    candidates = []
    for position, part in enumerate(accept_language.split(",")):
        pieces = part.strip().split(";")
        tag = pieces[0].strip().lower()
        if not tag:
            continue
        quality = 1.0
        for param in pieces[1:]:
            param = param.strip()
            if param.startswith("q="):
                try:
                    quality = float(param[2:])
                except ValueError:
                    quality = 0.0
        # q=0 marks a language as not acceptable
        if quality <= 0:
            continue
        candidates.append((-quality, position, tag))

    for _, _, tag in sorted(candidates):
        base = tag.split("-")[0]
        if base in LOCALES:
            return base
    return DEFAULT_LOCALE

def _deep_merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged

@lru_cache(maxsize=None)
def _load(locale: str) -> dict:
    with open(LOCALES_DIR / f"{locale}.json", encoding="utf-8") as f:
        return json.load(f)

def get_dictionary(locale: str) -> dict:
    """Messages for a locale, falling back to English for missing keys."""
    if locale not in LOCALES:
        locale = DEFAULT_LOCALE
    english = _load(DEFAULT_LOCALE)
    if locale == DEFAULT_LOCALE:
        return english
    return _deep_merge(english, _load(locale))
