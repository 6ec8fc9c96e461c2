"""
Two-stage matcher: line → SPU (Stage A) → SKU (Stage B).

Stage A, SPU resolution:
    0. Candidates: the brand bucket of the CatalogIndex, or the whole catalog
    1. Filter: gift-box, gift/custom, accessory and version mutual-exclusion rules
    2. Exact: brand key and model key both equal (trailing "+" significant)
    3. Tie-break among exact matches: exact score, then priority, then lowest id
    4. Fuzzy fallback only when no exact match survives, kept at >= threshold

Stage B, SKU resolution (active SKUs of the resolved SPU):
    1. Capacity must equal the line's capacity when the line has one
    2. Rank: version agreement (a conflict only deprioritizes), then color tier
       exact > variant group > basic family > none, then catalog order
    3. final similarity = 0.5 * SPU score + 0.5 * SKU score

A Matcher is an immutable snapshot of (config, vocabularies, index). MatchService
builds a new snapshot on every catalog change and swaps the reference, so a
running match never sees a half-built index.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from catalog_client import CatalogClient, fetch_sku_details
from catalog_index import CatalogIndex, IndexedSPU
from catalog_models import (
    MATCH_STATUS_MATCHED,
    MATCH_STATUS_SPU_ONLY,
    SKU,
    SPU,
    Brand,
    MatchResult,
    ParsedInput,
    Version,
)
from color_matcher import COLOR_TIER_NONE
from config_store import ConfigStore
from field_extractor import FieldExtractor
from normalizer import Normalizer
from scorer import (
    DEFAULT_WEIGHTS,
    ScoringWeights,
    combine_similarity,
    get_spu_priority,
    sku_similarity,
    spu_similarity,
    versions_agree,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
DEFAULT_SKU_TIMEOUT = 10.0  # seconds allowed for one getSKUDetails call


# ---------------------------------------------------------------------------
# Filter rules
# ---------------------------------------------------------------------------

class SPUFilter:
    """
    The Stage A filter for one input line. Built once per line, applied to every
    candidate name. Rules are independent and OR'd:

        gift-box     candidate has 礼盒/套装/系列..., the line has none
        gift/custom  candidate has 赠品/定制/周边..., the line has none
        accessory    candidate has 充电器/保护壳..., the line has none
        version      the line's version sits in an exclusive group and the candidate
                     names another member of that group (蓝牙版 vs eSIM版)
    """

    def __init__(self, input_line: str, extractor: FieldExtractor):
        config = extractor.config
        self.line = (input_line or '').lower()
        self._keyword_rules = [
            [kw.lower() for kw in words]
            for words in (config.gift_box_keywords, config.gift_custom_keywords, config.accessory_keywords)
            if words
        ]
        self._conflicting: List[str] = []
        version = extractor.extract_version(input_line)
        if version is not None and version.exclusive:
            group = config.version_group(version.group)
            for entry in group.versions if group else ():
                if entry.name != version.name:
                    self._conflicting.extend(kw.lower() for kw in entry.keywords)

    def __call__(self, candidate_name: str) -> bool:
        name = (candidate_name or '').lower()
        for words in self._keyword_rules:
            if not any(kw in self.line for kw in words) and any(kw in name for kw in words):
                return True
        return any(kw in name for kw in self._conflicting)


def should_filter_spu(input_line: str, candidate_name: str, extractor: FieldExtractor) -> bool:
    """
    Examples:
        ("iPhone 15", "iPhone 15 礼盒版")              → True
        ("iPhone 15 礼盒版", "iPhone 15 礼盒版")       → False
        ("Watch GT 蓝牙版", "Watch GT eSIM版")         → True
        ("Watch GT eSIM版", "Watch GT 蓝牙版")         → True
    """
    return SPUFilter(input_line, extractor)(candidate_name)


def _id_order(spu_id) -> Tuple[int, object]:
    """Sort key for catalog ids: numeric ids numerically, then everything else as text."""
    if isinstance(spu_id, int):
        return (0, spu_id)
    text = str(spu_id)
    return (0, int(text)) if text.isdigit() else (1, text)


# ---------------------------------------------------------------------------
# Matcher snapshot
# ---------------------------------------------------------------------------

class Matcher:
    """
    Immutable matching snapshot. Safe to share between threads: nothing here is
    written after construction.
    """

    def __init__(
        self,
        extractor: FieldExtractor,
        index: CatalogIndex,
        normalizer: Normalizer,
        catalog: Optional[CatalogClient] = None,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
        sku_timeout: float = DEFAULT_SKU_TIMEOUT,
    ):
        self.extractor = extractor
        self.index = index
        self.normalizer = normalizer
        self.catalog = catalog
        self.weights = weights
        self.sku_timeout = sku_timeout

    @property
    def config(self) -> ConfigStore:
        return self.extractor.config

    def parse(self, line: str) -> Tuple[str, ParsedInput]:
        normalized = self.normalizer.normalize(line)
        return normalized, self.extractor.parse(normalized)

    # -- Stage A ------------------------------------------------------------

    def match_spu(
        self,
        line: str,
        parsed: ParsedInput,
        threshold: Optional[float] = None,
    ) -> Tuple[Optional[IndexedSPU], float]:
        """Resolve the SPU for one normalized line. Returns (None, 0.0) when nothing qualifies."""
        threshold = self.weights.match_threshold if threshold is None else threshold
        brand_key = self.extractor.brand_key(parsed.brand)
        spu_filter = SPUFilter(line, self.extractor)

        survivors: List[IndexedSPU] = []
        exact: List[IndexedSPU] = []
        for entry in self.index.candidates(brand_key):
            if spu_filter(entry.name):
                continue
            survivors.append(entry)
            if brand_key and parsed.model and entry.brand_key == brand_key and entry.model == parsed.model:
                exact.append(entry)

        if exact:
            scored = [
                (get_spu_priority(line, e.name, self.config), self._spu_score(parsed, brand_key, e, line), e)
                for e in exact
            ]
            priority, score, best = min(scored, key=lambda t: (-t[1], -t[0], _id_order(t[2].id)))
            logger.debug("Exact SPU %s (priority %s, score %.3f) for %r", best.id, priority, score, line)
            return best, score

        fuzzy = [(self._spu_score(parsed, brand_key, e, line), e) for e in survivors]
        fuzzy = [t for t in fuzzy if t[0] > 0]
        if fuzzy:
            score, best = min(fuzzy, key=lambda t: (-t[0], _id_order(t[1].id)))
            if score >= threshold:
                return best, score
        return None, 0.0

    def _spu_score(self, parsed: ParsedInput, brand_key: Optional[str], entry: IndexedSPU, line: str) -> float:
        return spu_similarity(
            parsed, brand_key, entry, line, self.weights,
            candidate_code=self.extractor.extract_model_code(entry.name),
        )

    # -- Stage B ------------------------------------------------------------

    def sku_fields(self, sku: SKU) -> Dict:
        """Capacity / color / version / watch attributes of one SKU, from fields first, then its name."""
        ex = self.extractor
        capacity = ex.extract_capacity(sku.capacity) if sku.capacity else None
        if capacity is None:
            capacity = (str(sku.capacity).strip() or None) if sku.capacity else ex.extract_capacity(sku.name)
        return {
            'capacity': capacity,
            'color': (sku.color or '').strip() or ex.extract_color_advanced(sku.name),
            'version': ex.extract_version(sku.name),
            'watch_size': ex.extract_watch_size(sku.name),
            'watch_band': ex.extract_watch_band(sku.name),
        }

    def match_sku(
        self,
        entry: IndexedSPU,
        parsed: ParsedInput,
        skus: Iterable[SKU],
    ) -> Tuple[Optional[SKU], float]:
        candidates = [(pos, sku, self.sku_fields(sku)) for pos, sku in enumerate(skus) if sku.is_active]
        if parsed.capacity:
            candidates = [c for c in candidates if c[2]['capacity'] == parsed.capacity]
        if not candidates:
            return None, 0.0

        ranked = []
        for pos, sku, fields in candidates:
            tier = self.extractor.colors.color_tier(parsed.color, fields['color']) if parsed.color else COLOR_TIER_NONE
            conflict = _version_conflict(parsed.version, fields['version'])
            ranked.append(((0 if conflict else 1, tier, -pos), sku, fields, tier))
        _, sku, fields, tier = max(ranked, key=lambda r: r[0])

        product_type = parsed.product_type or self.extractor.detect_product_type(entry.name)
        ptype = self.config.product_type(product_type) if product_type else None
        spec_weights = ptype.spec_weights if ptype and ptype.spec_weights else None
        return sku, sku_similarity(parsed, fields, tier, self.weights, spec_weights)

    # -- whole line ---------------------------------------------------------

    def match_line(self, line: str, threshold: Optional[float] = None) -> MatchResult:
        normalized, parsed = self.parse(line)
        result = MatchResult(
            input_line=line,
            brand=parsed.brand,
            version=parsed.version.name if parsed.version else None,
            parsed=parsed,
        )

        entry, spu_score = self.match_spu(normalized, parsed, threshold)
        if entry is None:
            return result

        result.spu = {'id': entry.id, 'name': entry.name}
        result.status = MATCH_STATUS_SPU_ONLY
        result.similarity = spu_score

        sku_ids = entry.spu.sku_ids
        if self.catalog is None or not sku_ids:
            return result
        try:
            skus = fetch_sku_details(self.catalog, sku_ids, timeout=self.sku_timeout)
        except Exception as e:
            # Collaborator failure only downgrades this line
            logger.warning("SKU lookup failed for SPU %s (%r): %s", entry.id, line, e)
            result.error = f"{type(e).__name__}: {e}"
            return result

        sku, sku_score = self.match_sku(entry, parsed, skus)
        if sku is None:
            return result

        result.sku = {
            'id': sku.id,
            'name': sku.name,
            'capacity': sku.capacity,
            'color': sku.color,
            'barcodes': list(sku.barcodes),
        }
        result.status = MATCH_STATUS_MATCHED
        result.similarity = combine_similarity(spu_score, sku_score, self.weights)
        return result


def _version_conflict(a: Optional[Version], b: Optional[Version]) -> bool:
    return a is not None and b is not None and not versions_agree(a, b)


# ---------------------------------------------------------------------------
# Builder and service
# ---------------------------------------------------------------------------

class MatcherBuilder:
    """Collects config and vocabularies, then builds a Matcher for one catalog snapshot."""

    def __init__(self, config: Optional[ConfigStore] = None):
        self.config = config or ConfigStore.defaults()
        self.brands: Tuple[Brand, ...] = ()
        self.colors: Tuple[str, ...] = ()
        self.catalog: Optional[CatalogClient] = None
        self.weights = DEFAULT_WEIGHTS
        self.sku_timeout = DEFAULT_SKU_TIMEOUT

    def with_config(self, config: ConfigStore) -> "MatcherBuilder":
        self.config = config
        return self

    def with_brands(self, brands: Iterable[Brand]) -> "MatcherBuilder":
        self.brands = tuple(brands)
        return self

    def with_colors(self, colors: Iterable[str]) -> "MatcherBuilder":
        self.colors = tuple(colors)
        return self

    def with_catalog(self, catalog: Optional[CatalogClient]) -> "MatcherBuilder":
        self.catalog = catalog
        return self

    def with_weights(self, weights: ScoringWeights) -> "MatcherBuilder":
        self.weights = weights
        return self

    def with_sku_timeout(self, seconds: float) -> "MatcherBuilder":
        self.sku_timeout = seconds
        return self

    def build(self, spus: Sequence[SPU]) -> Matcher:
        base = FieldExtractor(self.config, self.brands, self.colors)
        index = CatalogIndex.build(spus, base)
        return Matcher(
            extractor=base.with_index(index),
            index=index,
            normalizer=Normalizer(self.config),
            catalog=self.catalog,
            weights=self.weights,
            sku_timeout=self.sku_timeout,
        )


class MatchService:
    """
    Long-lived entry point for the surrounding application.

        service = MatchService(catalog)
        service.initialize()
        service.set_brand_vocabulary(brands)
        service.set_color_vocabulary(colors)
        service.build_index()            # or build_index(snapshot)
        service.match_line("vivo Y300 Pro+ 5G 12+512 微粉")

    Vocabulary setters only affect the next build_index(). Readers always see a
    complete snapshot: build_index publishes by swapping one reference.
    """

    def __init__(
        self,
        catalog: Optional[CatalogClient] = None,
        config_dir: Optional[str] = None,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
        sku_timeout: float = DEFAULT_SKU_TIMEOUT,
    ):
        self.config_dir = config_dir
        self._builder = (MatcherBuilder().with_catalog(catalog)
                         .with_weights(weights).with_sku_timeout(sku_timeout))
        self._build_lock = threading.Lock()
        self._matcher: Optional[Matcher] = None

    def initialize(self, config: Optional[ConfigStore] = None) -> ConfigStore:
        config = config or ConfigStore.load(self.config_dir)
        with self._build_lock:
            self._builder.with_config(config)
        return config

    def set_brand_vocabulary(self, brands: Iterable[Brand]) -> None:
        with self._build_lock:
            self._builder.with_brands(brands)

    def set_color_vocabulary(self, colors: Iterable[str]) -> None:
        with self._build_lock:
            self._builder.with_colors(colors)

    def build_index(self, catalog_snapshot: Optional[Sequence[SPU]] = None) -> Matcher:
        with self._build_lock:
            if catalog_snapshot is None:
                if self._builder.catalog is None:
                    raise ValueError("build_index() needs a catalog snapshot or a catalog client")
                catalog_snapshot = self._builder.catalog.list_catalog_entries()
            matcher = self._builder.build(list(catalog_snapshot))
            self._matcher = matcher
        logger.info("Published matcher snapshot: %d SPUs, %d brands",
                    len(matcher.index), len(matcher.index.by_brand))
        return matcher

    @property
    def matcher(self) -> Matcher:
        matcher = self._matcher
        if matcher is None:
            raise RuntimeError("build_index() must run before matching")
        return matcher

    def match_line(self, line: str, threshold: Optional[float] = None) -> MatchResult:
        return self.matcher.match_line(line, threshold)
