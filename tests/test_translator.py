"""
tests/test_translator.py
─────────────────────────
Tests for the JSON locale translator.
"""
import json

import pytest

from src.i18n import translator
from src.i18n.translator import _LOCALES_DIR, get_lang, set_lang, t


@pytest.fixture(autouse=True)
def _restore_lang():
    previous = get_lang()
    yield
    set_lang(previous)


def _leaf_keys(node, prefix=""):
    if isinstance(node, dict):
        for key, value in node.items():
            yield from _leaf_keys(value, f"{prefix}{key}.")
    else:
        yield prefix.rstrip(".")


class TestTranslator:
    def test_default_is_portuguese(self):
        assert get_lang() == "pt"
        assert t("components.quality") == "Qualidade"

    def test_explicit_language(self):
        assert t("components.quality", "en") == "Quality"

    def test_placeholders(self):
        assert t("insights.low_oee.title", "en", machine="EXT-01") == "OEE below target - EXT-01"

    def test_missing_key_returns_key(self):
        assert t("insights.nope.title") == "insights.nope.title"

    def test_branch_key_returns_key(self):
        assert t("insights.low_oee") == "insights.low_oee"

    def test_unsupported_language_falls_back(self):
        set_lang("fr")
        assert translator.get_lang() == "pt"

    def test_locales_have_same_keys(self):
        with open(_LOCALES_DIR / "pt.json", encoding="utf-8") as f:
            pt = set(_leaf_keys(json.load(f)))
        with open(_LOCALES_DIR / "en.json", encoding="utf-8") as f:
            en = set(_leaf_keys(json.load(f)))
        assert pt == en
