"""
Color extraction and color matching.

Extraction order (extract_color_advanced):
    1. Known colors (catalog vocabulary + configured variant groups), longest first,
       preferring a phrase at the tail of the line or right after a version token
    2. Tail pattern: the last 2-5 CJK characters, unless they form a non-color word
    3. A single basic color character (黑 白 蓝 ...)

Matching tiers (color_tier), strongest first:
    EXACT    string equality after trim + case-fold
    VARIANT  both colors sit in the same configured synonym group
    FAMILY   both colors contain the same basic-family keyword ("告白" / "零度白" share 白)
    NONE
"""

import re
from typing import Dict, Iterable, List, Optional

from config_store import ConfigStore

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
COLOR_TIER_EXACT = 3
COLOR_TIER_VARIANT = 2
COLOR_TIER_FAMILY = 1
COLOR_TIER_NONE = 0

# Words that look like colors to the tail pattern but describe something else
MATERIAL_WORDS = ['真皮', '素皮', '皮革', '陶瓷', '玻璃', '金属', '塑料', '硅胶', '软胶',
                  '钛合金', '不锈钢', '铝合金', '碳纤维', '尼龙', '橡胶']
ACCESSORY_WORDS = ['表带', '表盘', '耳机', '耳塞', '充电器', '数据线', '保护壳', '保护套',
                   '手机壳', '手机套']
TECH_WORDS = ['超级快充', '蓝牙', '无线', '有线', '快充', '充电', '全网通', 'esim', 'wifi',
              'nfc', '5g', '4g', '3g']
PRODUCT_WORDS = ['智能手表', '智能', '手表', '手环', '手机', '平板', '笔记本', '电脑']

NON_COLOR_WORDS = {
    '全网通', '网通', '版本', '标准', '套餐', '蓝牙版', '活力版', '优享版', '尊享版',
    '标准版', '基础版', '青春版', '旗舰版', '至尊版', '典藏版', '限定版', '纪念版',
    '特别版', '定制版', '礼盒', '礼盒版', '套装', '系列',
}

BASIC_COLOR_CHARS = '黑白蓝红绿紫粉金银灰棕青橙黄'

_VERSION_MARK = '|'
_TAIL_COLOR = re.compile(r'([一-龥]{2,5})$')
_WHITESPACE = re.compile(r'\s+')

_STRIP_WORDS = sorted(MATERIAL_WORDS + ACCESSORY_WORDS + TECH_WORDS + PRODUCT_WORDS, key=len, reverse=True)


class ColorMatcher:
    """Read-only color knowledge: variant groups, basic families and the catalog vocabulary."""

    def __init__(self, config: Optional[ConfigStore] = None, vocabulary: Iterable[str] = ()):
        config = config or ConfigStore.defaults()
        self._group_of: Dict[str, int] = {}
        for i, group in enumerate(config.color_variants):
            for color in group.colors:
                self._group_of.setdefault(_fold(color), i)
        self._families = [(f.family, tuple(f.keywords)) for f in config.color_families]
        self.vocabulary = tuple(sorted({c.strip() for c in vocabulary if c and c.strip()}))

        known = {_fold(c): c for c in self.vocabulary}
        for group in config.color_variants:
            for color in group.colors:
                known.setdefault(_fold(color), color)
        # longest first so "夏夜黑" wins over "黑"
        self._known: List[tuple] = sorted(known.items(), key=lambda kv: len(kv[0]), reverse=True)

    # -- extraction ---------------------------------------------------------

    def clean(self, text: str, version_keywords: Iterable[str] = ()) -> str:
        """Lower-case, mark version tokens with '|', blank out non-color words."""
        text = (text or '').lower()
        for kw in sorted({k.lower() for k in version_keywords if k}, key=len, reverse=True):
            text = text.replace(kw, f' {_VERSION_MARK} ')
        for word in _STRIP_WORDS:
            text = text.replace(word, ' ')
        return _WHITESPACE.sub(' ', text).strip()

    def extract_color(self, text: str, version_keywords: Iterable[str] = ()) -> Optional[str]:
        """Vocabulary-free heuristic: CJK tail phrase, else a basic color character."""
        cleaned = self.clean(text, version_keywords).replace(_VERSION_MARK, ' ').strip()
        if not cleaned:
            return None
        m = _TAIL_COLOR.search(cleaned)
        if m:
            candidate = m.group(1)
            if candidate not in NON_COLOR_WORDS and any(ch in BASIC_COLOR_CHARS for ch in candidate):
                return candidate
        for ch in reversed(cleaned):
            if ch in BASIC_COLOR_CHARS:
                return ch
        return None

    def extract_color_advanced(self, text: str, version_keywords: Iterable[str] = ()) -> Optional[str]:
        """
        Longest known color phrase, preferring the tail or a phrase right after a
        version token; falls back to extract_color when nothing known is present.

        Examples:
            "VIVO WatchGT 软胶蓝牙版夏夜黑" → "夏夜黑"   (vocabulary contains 夏夜黑)
            "OPPO A5 活力版 12+256 玉石绿"   → "玉石绿"
        """
        cleaned = self.clean(text, version_keywords)
        best = None
        best_key = None
        for folded, display in self._known:
            idx = cleaned.rfind(folded)
            if idx < 0:
                continue
            end = idx + len(folded)
            at_tail = cleaned[end:].replace(_VERSION_MARK, '').strip() == ''
            after_version = cleaned[:idx].rstrip().endswith(_VERSION_MARK)
            key = (at_tail or after_version, len(folded))
            if best_key is None or key > best_key:
                best, best_key = display, key
        if best is not None:
            return best
        return self.extract_color(text, version_keywords)

    # -- matching -----------------------------------------------------------

    def color_tier(self, a: Optional[str], b: Optional[str]) -> int:
        if not a or not b:
            return COLOR_TIER_NONE
        fa, fb = _fold(a), _fold(b)
        if fa == fb:
            return COLOR_TIER_EXACT
        ga, gb = self._group_of.get(fa), self._group_of.get(fb)
        if ga is not None and ga == gb:
            return COLOR_TIER_VARIANT
        for _, keywords in self._families:
            if any(kw in fa and kw in fb for kw in keywords):
                return COLOR_TIER_FAMILY
        return COLOR_TIER_NONE

    def is_color_match(self, a: Optional[str], b: Optional[str]) -> bool:
        return self.color_tier(a, b) > COLOR_TIER_NONE


def _fold(text: str) -> str:
    return text.strip().casefold()
