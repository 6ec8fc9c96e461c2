"""
Field extraction: brand, model, capacity, color, version and the SPU part of a line.

All extractors work on a normalized line (see normalizer.py), are pure and never
raise; an unrecognised field is returned as None.

Model extraction is an explicit two-arm strategy, tried in this order:
    1. FromIndex   - longest contiguous token window that is a full catalog model
                     of the detected brand (needs a CatalogIndex)
    2. FromPattern - regex token segmentation + the model-normalization table

Model keys are lower-case with whitespace removed, and a trailing "+" is kept:
    "Y300 Pro+"  → "y300pro+"
    "y300pro+"   → "y300pro+"
    "Y300 Pro"   → "y300pro"
"""

import re
from typing import Iterable, List, Optional, Sequence, Tuple

from catalog_models import Brand, ParsedInput, Version
from color_matcher import ColorMatcher
from config_store import ConfigStore

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
MIN_INDEX_COVERAGE = 0.5       # share of the line's model text an index hit must cover
WATCH_SIZE_RANGE = (38, 50)    # plausible watch case sizes in mm

# "12+256", "12GB+512GB", "8G+256G", "12+1TB"
CAPACITY_PAIR = re.compile(
    r'(?<![a-z0-9.])(\d{1,3})\s*(?:gb|g)?\s*\+\s*(\d{1,4})\s*(tb|t|gb|g)?(?![a-z0-9])', re.IGNORECASE)
# "256GB", "256G", "1TB", "1T" (2G-5G are network generations, not storage)
STORAGE_ONLY = re.compile(r'(?<![a-z0-9.+])(\d{1,4})\s*(tb|gb|t|g)(?![a-z0-9])', re.IGNORECASE)
NETWORK_MARKER = re.compile(r'(?:全网通\s*)?(?<![a-z0-9])[2-5]g(?![a-z0-9])|全网通', re.IGNORECASE)
WATCH_SIZE = re.compile(r'(?<!\d)(\d{2})\s*mm(?![a-z])', re.IGNORECASE)
MODEL_CODE_PATTERNS = (
    re.compile(r'(?<![a-z0-9])([a-z]{2}\d{4}[a-z]?)(?![a-z0-9])', re.IGNORECASE),            # WA2456C
    re.compile(r'(?<![a-z0-9])([a-z]{3}-[a-z]{2}\d{2})(?![a-z0-9])', re.IGNORECASE),         # RTS-AL00
)
PRO_WITH_SUFFIX = re.compile(r'(?<![a-z])pro\s*(mini|max|plus|ultra|air|lite|se)(?![a-z])', re.IGNORECASE)
PRO_KEYWORDS = ('pro', 'pro版')

MODEL_TOKEN = re.compile(r'[a-z0-9]+\+*')
WEARABLE_CJK = (('手环', 'band'), ('手表', 'watch'))
NOISE_TOKENS = {'gb', 'tb', 'esim', 'wifi', 'wlan', 'nfc', 'lte', 'gps', 'mm', 'cellular'}

SPU_MATERIAL_SUFFIX = re.compile(r'软胶|硅胶|皮革|陶瓷|玻璃')
WATCH_BAND_MATERIALS = ['不锈钢', '钛金属', '软胶', '硅胶', '皮革', '真皮', '素皮', '金属', '尼龙', '橡胶', '陶瓷', '编织']
DEFAULT_WATCH_KEYWORDS = ('watch', '手表', '手环', 'band')

_WHITESPACE = re.compile(r'\s+')


# ---------------------------------------------------------------------------
# Model extraction strategies
# ---------------------------------------------------------------------------

class ModelExtractionStrategy:
    """Turns the segmented model tokens of a line into a model key, or None."""

    def extract(self, tokens: Sequence[str], brand_key: Optional[str]) -> Optional[str]:
        raise NotImplementedError


class FromIndex(ModelExtractionStrategy):
    """Dynamic lookup: token windows checked against the CatalogIndex model-token buckets of the brand."""

    def __init__(self, index):
        self.index = index

    def extract(self, tokens: Sequence[str], brand_key: Optional[str]) -> Optional[str]:
        if not tokens:
            return None
        total = sum(len(t) for t in tokens)
        plus_tokens = {i for i, t in enumerate(tokens) if t.endswith('+')}

        best: Optional[Tuple[int, int, str]] = None
        for size in range(len(tokens), 0, -1):
            for start in range(0, len(tokens) - size + 1):
                key = ''.join(tokens[start:start + size])
                if not self.index.has_model(key, brand_key):
                    continue
                # never let "y300pro" stand in for "y300 pro+"
                if any(i < start or i >= start + size for i in plus_tokens):
                    continue
                if len(key) / total < MIN_INDEX_COVERAGE:
                    continue
                rank = (len(key), -start, key)
                if best is None or rank > best:
                    best = rank
        return best[2] if best else None


class FromPattern(ModelExtractionStrategy):
    """Static fallback: the segmented tokens are the model."""

    def extract(self, tokens: Sequence[str], brand_key: Optional[str]) -> Optional[str]:
        return ''.join(tokens) or None


# ---------------------------------------------------------------------------
# FieldExtractor
# ---------------------------------------------------------------------------

class FieldExtractor:
    """
    Read-only extractor bound to one config, brand vocabulary, color vocabulary
    and (optionally) one CatalogIndex. Use ``with_index`` to bind a new index;
    this extractor is left untouched.
    """

    def __init__(
        self,
        config: Optional[ConfigStore] = None,
        brands: Iterable[Brand] = (),
        colors: Iterable[str] = (),
        index=None,
        color_matcher: Optional[ColorMatcher] = None,
    ):
        self.config = config or ConfigStore.defaults()
        self.brands = tuple(_with_aliases(brands, self.config.brand_aliases))
        self.colors = color_matcher or ColorMatcher(self.config, colors)
        self.index = index

        keys = {}
        for brand in self.brands:
            for key in brand.lookup_keys():
                keys.setdefault(key, brand)
        self._brand_keys: List[Tuple[str, Brand, re.Pattern]] = [
            (key, brand, _keyword_pattern(key))
            for key, brand in sorted(keys.items(), key=lambda kv: len(kv[0]), reverse=True)
        ]

        self._versions: List[Tuple[str, Version, re.Pattern]] = []
        for group in self.config.version_groups:
            pairs = [(kw, entry) for entry in group.versions for kw in entry.keywords]
            for kw, entry in sorted(pairs, key=lambda p: len(p[0]), reverse=True):
                version = Version(name=entry.name, group=group.id, keyword=kw,
                                  priority=entry.priority, exclusive=group.exclusive)
                self._versions.append((kw.lower(), version, _keyword_pattern(kw.lower())))
        self._version_keywords = [kw for kw, _, _ in self._versions]

        self._normalizations = [(src.lower(), dst.lower()) for src, dst in self.config.model_normalizations]
        self._watch_keywords = tuple(
            kw.lower() for kw in (self._type_keywords('watch') or DEFAULT_WATCH_KEYWORDS))

        strategies: List[ModelExtractionStrategy] = []
        if index is not None:
            strategies.append(FromIndex(index))
        strategies.append(FromPattern())
        self.model_strategies = tuple(strategies)

    def with_index(self, index) -> "FieldExtractor":
        return FieldExtractor(self.config, self.brands, index=index, color_matcher=self.colors)

    @property
    def version_keywords(self) -> List[str]:
        return list(self._version_keywords)

    # -- brand --------------------------------------------------------------

    def extract_brand(self, s: str) -> Optional[Brand]:
        """
        Longest brand key (name, spell or alias) found in ``s``, case-insensitive.

        Examples:
            "Redmi K70 至尊版" → Brand(name='红米', spell='Redmi')
            "红米K70"           → Brand(name='红米', spell='Redmi')
        """
        if not s:
            return None
        lower = s.lower()
        for key, brand, pattern in self._brand_keys:
            if pattern.search(lower):
                return brand
        return None

    def brand_key(self, brand) -> Optional[str]:
        """Canonical lower-case key for a Brand, a registry name, a spell or an alias."""
        if brand is None:
            return None
        if isinstance(brand, Brand):
            return brand.key
        text = str(brand).strip().lower()
        if not text:
            return None
        for key, entry, _ in self._brand_keys:
            if key == text:
                return entry.key
        return text

    # -- model --------------------------------------------------------------

    def model_tokens(self, s: str, brand=None) -> List[str]:
        """Lower-case model tokens of ``s`` once brand, capacity, network and version text is gone."""
        text = (s or '').lower()
        if isinstance(brand, Brand):
            for key in sorted(brand.lookup_keys(), key=len, reverse=True):
                text = _keyword_pattern(key).sub(' ', text)
        for src, dst in self._normalizations:
            text = text.replace(src, dst)
        text = CAPACITY_PAIR.sub(' ', text)
        text = STORAGE_ONLY.sub(lambda m: ' ' if _is_storage(m) else m.group(0), text)
        text = NETWORK_MARKER.sub(' ', text)
        for kw, _, pattern in self._versions:
            text = pattern.sub(' ', text)
        text = WATCH_SIZE.sub(' ', text)
        for pattern in MODEL_CODE_PATTERNS:
            text = pattern.sub(' ', text)
        for cjk, ascii_word in WEARABLE_CJK:
            text = re.sub(rf'{cjk}\s*(?=\d)', f' {ascii_word} ', text)
        text = re.sub(r'\s+\+', '+', text)
        return [t for t in MODEL_TOKEN.findall(text) if t.rstrip('+') not in NOISE_TOKENS]

    def extract_model(self, s: str, brand=None) -> Optional[str]:
        if isinstance(brand, str):
            brand = self.resolve_brand(brand)
        tokens = self.model_tokens(s, brand)
        brand_key = self.brand_key(brand)
        for strategy in self.model_strategies:
            model = strategy.extract(tokens, brand_key)
            if model:
                return model
        return None

    # -- capacity -----------------------------------------------------------

    def extract_capacity(self, s: str) -> Optional[str]:
        """
        Examples:
            "12GB+512GB" → "12+512"
            "8+256"      → "8+256"
            "12+1TB"     → "12+1T"
            "256GB"      → "256"
            "1TB"        → "1T"
            "5G"         → None
        """
        if not s:
            return None
        m = CAPACITY_PAIR.search(s)
        if m:
            suffix = 'T' if (m.group(3) or '').lower() in ('tb', 't') else ''
            return f"{int(m.group(1))}+{int(m.group(2))}{suffix}"
        for m in STORAGE_ONLY.finditer(s):
            if not _is_storage(m):
                continue
            value, unit = int(m.group(1)), m.group(2).lower()
            return f"{value}T" if unit in ('tb', 't') else str(value)
        return None

    # -- color --------------------------------------------------------------

    def extract_color(self, s: str) -> Optional[str]:
        return self.colors.extract_color(s, self._version_keywords)

    def extract_color_advanced(self, s: str) -> Optional[str]:
        return self.colors.extract_color_advanced(s, self._version_keywords)

    # -- version ------------------------------------------------------------

    def extract_version(self, s: str) -> Optional[Version]:
        """
        First version keyword by table order (longest keyword first within a group).
        A ``pro`` hit that opens a model suffix such as ``Pro mini`` is not a version.
        """
        if not s:
            return None
        lower = s.lower()
        for kw, version, pattern in self._versions:
            for m in pattern.finditer(lower):
                if kw in PRO_KEYWORDS and PRO_WITH_SUFFIX.match(lower, m.start()):
                    continue
                return version
        return None

    # -- SPU part -----------------------------------------------------------

    def extract_spu_part(self, s: str) -> str:
        """
        Prefix of ``s`` before the first capacity, network, version or watch-size
        marker. Without a marker, the trailing color and material words are removed.

        Examples:
            "Vivo S30 Pro mini 5G 12+512 可可黑"  → "Vivo S30 Pro mini"
            "VIVO WatchGT 软胶蓝牙版夏夜黑"       → "VIVO WatchGT 软胶"
            "OPPO A5 玉石绿"                     → "OPPO A5"
        """
        text = s or ''
        lower = text.lower()
        cuts = []
        for pattern in (CAPACITY_PAIR, NETWORK_MARKER):
            m = pattern.search(lower)
            if m:
                cuts.append(m.start())
        for m in STORAGE_ONLY.finditer(lower):
            if _is_storage(m):
                cuts.append(m.start())
                break
        for kw, _, pattern in self._versions:
            m = pattern.search(lower)
            if m:
                cuts.append(m.start())
        if self.is_watch_product(lower):
            m = WATCH_SIZE.search(lower)
            if m:
                cuts.append(m.start())

        cuts = [c for c in cuts if c > 0]
        if cuts:
            return _WHITESPACE.sub(' ', text[:min(cuts)]).strip()

        color = self.extract_color_advanced(text)
        if color:
            idx = lower.rfind(color.lower())
            if idx > 0:
                text = text[:idx]
        text = SPU_MATERIAL_SUFFIX.sub(' ', text)
        return _WHITESPACE.sub(' ', text).strip()

    # -- watch / product type -----------------------------------------------

    def is_watch_product(self, s: str) -> bool:
        lower = (s or '').lower()
        return any(kw in lower for kw in self._watch_keywords)

    def extract_watch_size(self, s: str) -> Optional[str]:
        for m in WATCH_SIZE.finditer(s or ''):
            size = int(m.group(1))
            if WATCH_SIZE_RANGE[0] <= size <= WATCH_SIZE_RANGE[1]:
                return f"{size}mm"
        return None

    def extract_watch_band(self, s: str) -> Optional[str]:
        for material in WATCH_BAND_MATERIALS:
            if material in (s or ''):
                return material
        return None

    def extract_model_code(self, s: str) -> Optional[str]:
        for pattern in MODEL_CODE_PATTERNS:
            m = pattern.search(s or '')
            if m:
                return m.group(1).upper()
        return None

    def detect_product_type(self, s: str) -> Optional[str]:
        lower = (s or '').lower()
        for ptype in self.config.product_types:
            if any(kw.lower() in lower for kw in ptype.keywords):
                return ptype.id
        return None

    # -- whole line ---------------------------------------------------------

    def parse(self, line: str) -> ParsedInput:
        """Run every extractor over one normalized line."""
        spu_part = self.extract_spu_part(line)
        brand = self.extract_brand(spu_part) or self.extract_brand(line)
        product_type = self.detect_product_type(line)
        is_watch = product_type == 'watch' or self.is_watch_product(line)
        model = self.extract_model(spu_part, brand) if spu_part else None
        if model is None:
            model = self.extract_model(line, brand)
        return ParsedInput(
            spu_prefix=spu_part,
            brand=brand.name if brand else None,
            model=model,
            capacity=self.extract_capacity(line),
            color=self.extract_color_advanced(self.strip_brand(line, brand)),
            version=self.extract_version(line),
            product_type=product_type,
            watch_size=self.extract_watch_size(line) if is_watch else None,
            watch_band=self.extract_watch_band(line) if is_watch else None,
            model_code=self.extract_model_code(line),
        )

    def strip_brand(self, s: str, brand: Optional[Brand]) -> str:
        if not brand:
            return s or ''
        text = s or ''
        for key in sorted(brand.lookup_keys(), key=len, reverse=True):
            text = _keyword_pattern(key).sub(' ', text.lower()) if key.isascii() else text.replace(key, ' ')
        return text

    # -- helpers ------------------------------------------------------------

    def resolve_brand(self, text: str) -> Optional[Brand]:
        key = self.brand_key(text)
        for brand in self.brands:
            if brand.key == key:
                return brand
        return None

    def _type_keywords(self, type_id: str) -> Tuple[str, ...]:
        ptype = self.config.product_type(type_id)
        return ptype.keywords if ptype else ()


def _keyword_pattern(keyword: str) -> re.Pattern:
    """ASCII edges of a keyword must not touch other ASCII letters or digits."""
    pattern = re.escape(keyword)
    if keyword[:1].isascii() and keyword[:1].isalnum():
        pattern = r'(?<![a-z0-9])' + pattern
    if keyword[-1:].isascii() and keyword[-1:].isalnum() and len(keyword) <= 2:
        pattern = pattern + r'(?![a-z0-9])'
    return re.compile(pattern, re.IGNORECASE)


def _is_storage(m) -> bool:
    """Bare G/T units are storage only for real capacities ("9T" is a model, "5G" a network)."""
    value, unit = int(m.group(1)), m.group(2).lower()
    if unit == 'g':
        return value >= 6
    if unit == 't':
        return value in (1, 2)
    return True


def _with_aliases(brands: Iterable[Brand], aliases) -> List[Brand]:
    """Attach configured aliases to the registry brands they name."""
    alias_map = {name.strip().lower(): tuple(values) for name, values in aliases}
    result = []
    for brand in brands:
        extra = tuple(a for a in alias_map.get(brand.key, ()) if a not in brand.aliases)
        if extra:
            brand = Brand(name=brand.name, spell=brand.spell, aliases=tuple(brand.aliases) + extra)
        result.append(brand)
    return result
