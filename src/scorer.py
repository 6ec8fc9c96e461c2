"""
Similarity and priority functions shared by Stage A (SPU) and Stage B (SKU).

Every number used for scoring lives in ScoringWeights; pass a different instance
to retune matching without touching control flow.

SPU similarity:
    exact brand + model   → version table (1.0 / 0.6 / 1.0 / 0.7 / 0.95) + detail bonus
    fuzzy                 → 0.4 + 0.6 * token_similarity(model_a, model_b) when > 0.5,
                            + 0.05 per shared keyword (max 0.1)

SKU similarity:
    weighted over the dimensions either side specifies
    (phones: version 0.3, capacity 0.4, color 0.3; watches: size/band/color/version)

Priority (get_spu_priority):
    3  standard entry: no gift-box and no special-version keyword
    2  special version that the input line also carries
    1  anything else
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from catalog_models import ParsedInput, Version
from color_matcher import COLOR_TIER_EXACT, COLOR_TIER_FAMILY, COLOR_TIER_NONE, COLOR_TIER_VARIANT
from config_store import ConfigStore

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
PRIORITY_STANDARD = 3
PRIORITY_VERSION_MATCH = 2
PRIORITY_OTHER = 1

SPECIAL_EDITION_KEYWORDS = ['十周年', '周年', '纪念版', '限量版', '特别版']

_TOKEN = re.compile(r'[a-z]+|\d+|\+|[一-龥]')


@dataclass(frozen=True)
class ScoringWeights:
    # Stage A, exact brand + model: score by version agreement
    version_exact: float = 1.0
    version_mismatch: float = 0.6
    no_version: float = 1.0
    input_version_only: float = 0.7
    spu_version_only: float = 0.95
    # Stage A, fuzzy
    fuzzy_base: float = 0.4
    fuzzy_model_weight: float = 0.6
    model_similarity_threshold: float = 0.5
    keyword_bonus_per_hit: float = 0.05
    keyword_bonus_max: float = 0.1
    keyword_min_length: int = 3
    # Stage A, exact: model detail bonus
    model_code_bonus: float = 0.1
    special_keyword_bonus: float = 0.05
    model_detail_bonus_max: float = 0.15
    # Stage B
    sku_weights: Dict[str, float] = field(
        default_factory=lambda: {'version': 0.3, 'capacity': 0.4, 'color': 0.3},
        hash=False, compare=False)
    version_group_score: float = 0.83
    color_scores: Dict[int, float] = field(
        default_factory=lambda: {COLOR_TIER_EXACT: 1.0, COLOR_TIER_VARIANT: 0.9,
                                 COLOR_TIER_FAMILY: 0.5, COLOR_TIER_NONE: 0.0},
        hash=False, compare=False)
    sku_no_signal: float = 0.1
    # Final combination
    spu_result_weight: float = 0.5
    sku_result_weight: float = 0.5
    match_threshold: float = 0.5


DEFAULT_WEIGHTS = ScoringWeights()


# ---------------------------------------------------------------------------
# Token similarity
# ---------------------------------------------------------------------------

def tokenize(text: str) -> List[str]:
    """
    Letter runs, digit runs, '+' and single CJK characters, lower-cased.

    Examples:
        "y300pro+"     → ['y', '300', 'pro', '+']
        "Watch GT 蓝牙" → ['watch', 'gt', '蓝', '牙']
    """
    return _TOKEN.findall((text or '').lower())


def token_similarity(a: str, b: str) -> float:
    """Jaccard overlap of the token sets of ``a`` and ``b``."""
    ta, tb = set(tokenize(a)), set(tokenize(b))
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / len(ta | tb)


def keyword_bonus(input_line: str, candidate_name: str, weights: ScoringWeights = DEFAULT_WEIGHTS) -> float:
    """Small bonus for longer non-numeric words of the input that the candidate repeats."""
    words = {w for w in re.findall(r'[a-z]+', (input_line or '').lower()) if len(w) >= weights.keyword_min_length}
    cand = (candidate_name or '').lower()
    hits = sum(1 for w in words if w in cand)
    return min(hits * weights.keyword_bonus_per_hit, weights.keyword_bonus_max)


# ---------------------------------------------------------------------------
# SPU similarity
# ---------------------------------------------------------------------------

def versions_agree(a: Optional[Version], b: Optional[Version]) -> bool:
    """Same version, or two members of one non-exclusive group ("5G" / "全网通5G")."""
    if a is None or b is None:
        return False
    if a.name == b.name:
        return True
    return a.group == b.group and not a.exclusive


def exact_spu_score(
    input_version: Optional[Version],
    candidate_version: Optional[Version],
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> float:
    if input_version and candidate_version:
        return weights.version_exact if versions_agree(input_version, candidate_version) else weights.version_mismatch
    if not input_version and not candidate_version:
        return weights.no_version
    if input_version:
        return weights.input_version_only
    return weights.spu_version_only


def model_detail_bonus(
    input_line: str,
    candidate_name: str,
    input_code: Optional[str] = None,
    candidate_code: Optional[str] = None,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> float:
    """Bonus for a shared model code (WA2456C) and shared special-edition words."""
    bonus = 0.0
    if input_code and candidate_code and input_code.upper() == candidate_code.upper():
        bonus += weights.model_code_bonus
    for kw in SPECIAL_EDITION_KEYWORDS:
        if kw in (input_line or '') and kw in (candidate_name or ''):
            bonus += weights.special_keyword_bonus
    return min(bonus, weights.model_detail_bonus_max)


def spu_similarity(
    parsed: ParsedInput,
    input_brand_key: Optional[str],
    candidate,
    input_line: str,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    candidate_code: Optional[str] = None,
) -> float:
    """
    Score one IndexedSPU against a parsed line.

    Brand conflicts score 0. An exact brand + model pair uses the version table;
    everything else falls back to fuzzy model similarity.
    """
    if input_brand_key and candidate.brand_key != input_brand_key:
        return 0.0

    if input_brand_key and parsed.model and candidate.model == parsed.model:
        score = exact_spu_score(parsed.version, candidate.version, weights)
        score += model_detail_bonus(input_line, candidate.name, parsed.model_code, candidate_code, weights)
        return min(score, 1.0)

    score = 0.0
    if parsed.model and candidate.model:
        sim = token_similarity(parsed.model, candidate.model)
        if sim > weights.model_similarity_threshold:
            score = weights.fuzzy_base + weights.fuzzy_model_weight * sim
    if score > 0:
        score += keyword_bonus(input_line, candidate.name, weights)
    return min(score, 1.0)


def get_spu_priority(input_line: str, candidate_name: str, config: ConfigStore) -> int:
    """
    Examples:
        ("iPhone 15", "iPhone 15")              → 3
        ("Watch GT 蓝牙版", "Watch GT 蓝牙版")  → 2
        ("iPhone 15", "iPhone 15 礼盒版")       → 1
    """
    line = (input_line or '').lower()
    name = (candidate_name or '').lower()
    gift = any(kw.lower() in name for kw in config.gift_box_keywords)
    specials = [kw.lower() for kw in config.special_versions if kw.lower() in name]
    if not gift and not specials:
        return PRIORITY_STANDARD
    if any(kw in line for kw in specials):
        return PRIORITY_VERSION_MATCH
    return PRIORITY_OTHER


# ---------------------------------------------------------------------------
# SKU similarity
# ---------------------------------------------------------------------------

def version_score(a: Optional[Version], b: Optional[Version], weights: ScoringWeights = DEFAULT_WEIGHTS) -> float:
    if a is None or b is None:
        return 0.0
    if a.name == b.name:
        return 1.0
    if versions_agree(a, b):
        return weights.version_group_score
    return 0.0


def sku_similarity(
    parsed: ParsedInput,
    sku_fields: Dict,
    color_tier: int,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    spec_weights: Optional[Dict[str, float]] = None,
) -> float:
    """
    Weighted agreement between the line and one SKU.

    ``sku_fields`` carries the SKU's capacity, color, version, watch_size and
    watch_band. A dimension counts when either side specifies it; when neither
    side specifies anything the score is ``sku_no_signal``.
    """
    w = spec_weights or weights.sku_weights
    total = 0.0
    score = 0.0

    if w.get('version') and (parsed.version or sku_fields.get('version')):
        total += w['version']
        score += w['version'] * version_score(parsed.version, sku_fields.get('version'), weights)

    if w.get('capacity') and (parsed.capacity or sku_fields.get('capacity')):
        total += w['capacity']
        if parsed.capacity and parsed.capacity == sku_fields.get('capacity'):
            score += w['capacity']

    if w.get('color') and (parsed.color or sku_fields.get('color')):
        total += w['color']
        score += w['color'] * weights.color_scores.get(color_tier, 0.0)

    if w.get('size') and (parsed.watch_size or sku_fields.get('watch_size')):
        total += w['size']
        if parsed.watch_size and parsed.watch_size == sku_fields.get('watch_size'):
            score += w['size']

    if w.get('band') and (parsed.watch_band or sku_fields.get('watch_band')):
        total += w['band']
        if parsed.watch_band and parsed.watch_band == sku_fields.get('watch_band'):
            score += w['band']

    if total == 0:
        return weights.sku_no_signal
    return score / total


def combine_similarity(spu_score: float, sku_score: float, weights: ScoringWeights = DEFAULT_WEIGHTS) -> float:
    return spu_score * weights.spu_result_weight + sku_score * weights.sku_result_weight
