"""
Normalizer tests:
- demo markers and reseller prefixes are dropped
- bracketed capacity tokens become plain tokens
- full-width text is folded, typos fixed
- normalize() is idempotent
"""
import pytest

from config_store import ConfigStore
from normalizer import Normalizer

SAMPLES = [
    "演示机 OPPO A5活力版（12+256）玉石绿",
    "优诺严选 vivo  Y300 Pro+ 5G 12+512 微粉",
    "vivo X200【全网通5G】(16+512) 雾松蓝",
    "  Vivo S30 Pro mini 5G 12+512 可可黑  ",
    "严选 严选 样机 红米K70 至尊版",
    "((12+256))",
    "【】",
    "",
]


def test_bracketed_capacity_becomes_tokens(normalizer):
    assert normalizer.normalize("演示机 OPPO A5活力版（12+256）玉石绿") == "OPPO A5活力版 12+256 玉石绿"


def test_reseller_prefix_removed(normalizer):
    assert normalizer.normalize("优诺严选 vivo  Y300 Pro+ 5G 12+512 微粉") == "vivo Y300 Pro+ 5G 12+512 微粉"


def test_stacked_prefixes_and_demo_marker(normalizer):
    assert normalizer.normalize("严选 严选 样机 红米K70 至尊版") == "红米K70 至尊版"


def test_prefix_only_stripped_at_start(normalizer):
    assert normalizer.normalize("vivo 严选 X200") == "vivo 严选 X200"


def test_typo_correction(normalizer):
    assert normalizer.normalize("vivo X200 雾松蓝") == "vivo X200 雾凇蓝"


def test_full_width_folding(normalizer):
    assert normalizer.normalize("ＶＩＶＯ　Ｘ２００") == "VIVO X200"


def test_case_preserved(normalizer):
    assert normalizer.normalize("VIVO WatchGT") == "VIVO WatchGT"


def test_none_and_empty(normalizer):
    assert normalizer.normalize(None) == ''
    assert normalizer.normalize('') == ''
    assert normalizer.normalize('   ') == ''


@pytest.mark.parametrize('line', SAMPLES)
def test_idempotent(normalizer, line):
    once = normalizer.normalize(line)
    assert normalizer.normalize(once) == once


def test_defaults_without_config():
    n = Normalizer()
    assert n("演示机 A5(12+256)") == "演示机 A5 12+256"


@pytest.mark.parametrize('line', ['a' * 12 + 'b', 'xab ab', 'aab（ab）'])
def test_shrinking_rewrite_reaches_fixed_point(line):
    n = Normalizer(ConfigStore.from_dict({'text-mappings': {'typoCorrections': {'ab': 'b'}}}))
    once = n.normalize(line)
    assert 'ab' not in once
    assert n.normalize(once) == once


def test_long_shrinking_chain():
    n = Normalizer(ConfigStore.from_dict({'text-mappings': {'typoCorrections': {'ab': 'b'}}}))
    assert n.normalize('a' * 12 + 'b') == 'b'
