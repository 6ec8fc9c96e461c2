"""
ColorMatcher tests: match tiers and extraction preferences.
"""
from color_matcher import (
    COLOR_TIER_EXACT,
    COLOR_TIER_FAMILY,
    COLOR_TIER_NONE,
    COLOR_TIER_VARIANT,
    ColorMatcher,
)


def test_family_match(config):
    colors = ColorMatcher(config)
    assert colors.is_color_match("告白", "零度白")
    assert not colors.is_color_match("灵感紫", "告白")


def test_tiers(config):
    colors = ColorMatcher(config)
    assert colors.color_tier("曜石黑", "曜石黑") == COLOR_TIER_EXACT
    assert colors.color_tier(" 曜石黑 ", "曜石黑") == COLOR_TIER_EXACT
    assert colors.color_tier("曜石黑", "曜黑") == COLOR_TIER_VARIANT
    assert colors.color_tier("曜石黑", "夏夜黑") == COLOR_TIER_FAMILY
    assert colors.color_tier("微粉", "玉石绿") == COLOR_TIER_NONE
    assert colors.color_tier(None, "微粉") == COLOR_TIER_NONE


def test_exact_outranks_variant(config):
    colors = ColorMatcher(config)
    assert colors.color_tier("雾凇蓝", "雾凇蓝") > colors.color_tier("雾凇蓝", "雾松蓝") > COLOR_TIER_NONE


def test_no_tables_only_exact(config):
    colors = ColorMatcher()
    assert colors.color_tier("曜石黑", "曜黑") == COLOR_TIER_NONE
    assert colors.color_tier("Black", "black") == COLOR_TIER_EXACT


def test_longest_known_color_wins(config):
    colors = ColorMatcher(config, ["黑", "夏夜黑"])
    assert colors.extract_color_advanced("vivo X200 夏夜黑") == "夏夜黑"


def test_color_after_version_token(config):
    colors = ColorMatcher(config, ["夏夜黑", "曜石黑"])
    assert colors.extract_color_advanced("曜石黑 x 蓝牙版夏夜黑 x", ["蓝牙版"]) == "夏夜黑"


def test_non_color_words_stripped(config):
    colors = ColorMatcher(config)
    assert colors.extract_color("vivo WATCH GT 软胶") is None
    assert colors.extract_color("vivo X200 全网通") is None


def test_basic_character_fallback(config):
    colors = ColorMatcher(config)
    assert colors.extract_color("vivo X200 黑 12+256") == "黑"
