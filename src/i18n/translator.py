"""
src/i18n/translator.py
───────────────────────
Simple translation engine using JSON locale files.

Usage:
    from src.i18n.translator import t, set_lang

    t("insights.low_oee.title", machine="Extrusora 01")
    # → "OEE abaixo do ideal - Extrusora 01" (pt)
    set_lang("en")
    t("insights.low_oee.title", machine="Extruder 01")
    # → "OEE below target - Extruder 01"
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from config.settings import settings

_LOCALES_DIR = Path(__file__).parent / "locales"
SUPPORTED_LANGS = ("pt", "en")
_FALLBACK = "pt"
_current_lang: str = settings.DEFAULT_LANG if settings.DEFAULT_LANG in SUPPORTED_LANGS else _FALLBACK


@lru_cache(maxsize=4)
def _load_locale(lang: str) -> dict:
    path = _LOCALES_DIR / f"{lang}.json"
    if not path.exists():
        path = _LOCALES_DIR / f"{_FALLBACK}.json"
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def set_lang(lang: str) -> None:
    """Set the active language (module-level default)."""
    global _current_lang
    _current_lang = lang if lang in SUPPORTED_LANGS else _FALLBACK


def t(key: str, lang: str | None = None, **params: object) -> str:
    """
    Translate a dot-separated key and fill `{placeholders}` from params.

    Args:
        key: Dot-separated path, e.g. "insights.waste.title"
        lang: Language override; uses module default if None
        **params: Values for str.format placeholders in the template

    Returns:
        Translated string, or the key itself if not found.
    """
    locale = _load_locale(lang or _current_lang)
    node: dict | str = locale
    for part in key.split("."):
        if isinstance(node, dict):
            node = node.get(part, key)
        else:
            return key
    if isinstance(node, dict):
        return key
    text = str(node)
    return text.format(**params) if params else text


def get_lang() -> str:
    return _current_lang
