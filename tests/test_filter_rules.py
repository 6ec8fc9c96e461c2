"""
Stage A filter rules: gift-box, gift/custom, accessory and version mutual exclusion.
"""
import pytest

from match_engine import SPUFilter, should_filter_spu


@pytest.mark.parametrize('line, candidate, expected', [
    ("iPhone 15", "iPhone 15 礼盒版", True),
    ("iPhone 15 礼盒版", "iPhone 15 礼盒版", False),
    ("iPhone 15", "iPhone 15", False),
    ("Vivo S30 Pro mini 5G", "vivo S30 Pro mini 三丽鸥家族系列礼盒", True),
    ("vivo X200", "vivo X200 定制版", True),
    ("vivo X200 定制版", "vivo X200 定制版", False),
    ("vivo X200", "vivo X200 原装充电器", True),
    ("vivo X200 充电器", "vivo X200 原装充电器", False),
])
def test_keyword_rules(extractor, line, candidate, expected):
    assert should_filter_spu(line, candidate, extractor) is expected


def test_version_exclusion_is_symmetric(extractor):
    assert should_filter_spu("Watch GT 蓝牙版", "Watch GT eSIM版", extractor)
    assert should_filter_spu("Watch GT eSIM版", "Watch GT 蓝牙版", extractor)


def test_same_version_not_filtered(extractor):
    assert not should_filter_spu("Watch GT 蓝牙版", "Watch GT 蓝牙版", extractor)


def test_non_exclusive_group_not_filtered(extractor):
    assert not should_filter_spu("vivo Y300 5G", "vivo Y300 全网通5G", extractor)


def test_line_without_version_keeps_all(extractor):
    assert not should_filter_spu("Watch GT", "Watch GT eSIM版", extractor)


def test_filter_reused_across_candidates(extractor):
    spu_filter = SPUFilter("Watch GT 蓝牙版", extractor)
    names = ["Watch GT", "Watch GT eSIM版", "Watch GT 蓝牙版", "Watch GT 礼盒"]
    assert [n for n in names if not spu_filter(n)] == ["Watch GT", "Watch GT 蓝牙版"]
