"""
Input line normalization.

Human-typed lines arrive as e.g.

    "演示机 OPPO A5活力版（12+256）玉石绿"
    "优诺严选 vivo  Y300 Pro+ 5G 12+512 微粉"

and leave as

    "OPPO A5活力版 12+256 玉石绿"
    "vivo Y300 Pro+ 5G 12+512 微粉"

Steps, in order (reordering breaks bracket/capacity handling):
    0. NFKC folding: full-width digits, letters and brackets become ASCII
    1. Noise: demo-unit markers anywhere, reseller prefixes at the start, typo fixes
    2. Brackets: "(12+256)" / "【5G】" become plain space-separated tokens
    3. Whitespace: collapse runs, trim
    4. Case is preserved; comparisons downstream are case-insensitive

``normalize`` is total and idempotent: passes repeat until the text reaches a
fixed point (a pass that only revisits an earlier text also stops).
"""

import re
import unicodedata
from typing import Optional

from config_store import ConfigStore

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
_BRACKET_GROUP = re.compile(r'[\(\[【〔<《]\s*([^\(\)\[\]【】〔〕<>《》]*?)\s*[\)\]】〕>》]')
_STRAY_BRACKET = re.compile(r'[\(\)\[\]【】〔〕《》]')
_WHITESPACE = re.compile(r'\s+')


class Normalizer:
    """Config-driven line normalizer. Holds only compiled, read-only patterns."""

    def __init__(self, config: Optional[ConfigStore] = None):
        config = config or ConfigStore.defaults()
        self._demo = _alternation(config.demo_keywords)
        prefixes = _alternation(config.accessory_brand_prefixes, group=False)
        self._prefix = re.compile(rf'^\s*(?:(?:{prefixes})\s*)+') if prefixes else None
        self._typo_map = dict(config.typo_corrections)
        typos = _alternation(self._typo_map, group=False)
        self._typo_re = re.compile(typos) if typos else None

    def normalize(self, raw) -> str:
        if raw is None:
            return ''
        text = unicodedata.normalize('NFKC', str(raw))
        seen = {text}
        while True:
            new = self._pass(text)
            if new == text or new in seen:
                return new
            seen.add(new)
            text = new

    __call__ = normalize

    def _pass(self, text: str) -> str:
        # 1. Noise markers
        if self._demo is not None:
            text = self._demo.sub(' ', text)
        if self._prefix is not None:
            text = self._prefix.sub('', text)
        if self._typo_re is not None:
            text = self._typo_re.sub(lambda m: self._typo_map[m.group(0)], text)

        # 2. Brackets -> spaced tokens, content kept verbatim
        text = _BRACKET_GROUP.sub(lambda m: f' {m.group(1)} ', text)
        text = _STRAY_BRACKET.sub(' ', text)

        # 3. Whitespace
        return _WHITESPACE.sub(' ', text).strip()


def _alternation(words, group: bool = True):
    """Longest-first alternation of literal words (compiled when ``group``)."""
    words = sorted({w for w in words if w}, key=len, reverse=True)
    if not words:
        return None if group else ''
    pattern = '|'.join(re.escape(w) for w in words)
    return re.compile(pattern, re.IGNORECASE) if group else pattern
