"""
Tests for storylets/tags.py -- tag parsing and the TagCache.
"""

import pytest

from storylets.tags import TagCache, parse_tags


class TestParseTags:
    def test_bare_tag_is_true(self):
        assert parse_tags(["once"]) == {"once": True}

    def test_key_value_is_trimmed_string(self):
        assert parse_tags(["desc:   A wolf howls  "]) == {"desc": "A wolf howls"}

    def test_true_false_literals_are_coerced(self):
        tags = parse_tags(["repeat: FALSE", "urgent: True"])
        assert tags == {"repeat": False, "urgent": True}

    def test_other_values_stay_strings(self):
        assert parse_tags(["count: 3"]) == {"count": "3"}

    def test_keys_are_lowercased(self):
        assert parse_tags(["ONCE", "Loc: forest"]) == {"once": True, "loc": "forest"}

    def test_value_may_contain_colons(self):
        assert parse_tags(["time: 12:30"]) == {"time": "12:30"}

    @pytest.mark.parametrize("raw", [None, []])
    def test_no_tags(self, raw):
        assert parse_tags(raw) == {}

    def test_blank_key_is_skipped(self):
        assert parse_tags([": orphan", "  "]) == {}


class TestTagCache:
    def test_get_is_case_insensitive(self):
        cache = TagCache()
        cache.record("enc_wolf", ["Loc: forest"])
        assert cache.get("enc_wolf", "LOC") == "forest"

    def test_get_unknown_id_or_key_returns_default(self):
        cache = TagCache()
        cache.record("enc_wolf", ["once"])
        assert cache.get("enc_bear", "once") is None
        assert cache.get("enc_wolf", "loc", "nowhere") == "nowhere"

    def test_record_replaces_previous_tags(self):
        cache = TagCache()
        cache.record("enc_wolf", ["once"])
        cache.record("enc_wolf", ["loc: cave"])
        assert cache.tags_for("enc_wolf") == {"loc": "cave"}

    def test_matches_is_type_strict(self):
        cache = TagCache()
        cache.record("enc_wolf", ["urgent", "loc: forest"])
        assert cache.matches("enc_wolf", "urgent", True)
        assert not cache.matches("enc_wolf", "urgent", "true")
        assert not cache.matches("enc_wolf", "urgent", 1)
        assert cache.matches("enc_wolf", "Loc", "forest")

    def test_matches_missing_key(self):
        cache = TagCache()
        cache.record("enc_wolf", [])
        assert not cache.matches("enc_wolf", "loc", "forest")
        assert not cache.matches("unknown", "loc", "forest")

    def test_contains_and_len(self):
        cache = TagCache()
        cache.record("a_1", None)
        cache.record("a_2", ["once"])
        assert "a_1" in cache
        assert "a_3" not in cache
        assert len(cache) == 2

    def test_tags_for_returns_copy(self):
        cache = TagCache()
        cache.record("a_1", ["once"])
        cache.tags_for("a_1")["once"] = False
        assert cache.get("a_1", "once") is True
