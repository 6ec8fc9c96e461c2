"""
Brand- and model-partitioned index over one catalog snapshot.

    by_brand:        brand key → [IndexedSPU]
    by_model_token:  model window key → [IndexedSPU]

Every contiguous window of an SPU's model tokens is indexed, so a catalog name
"HUAWEI MatePad 4 Pro" is reachable through "matepad4pro", "4pro", "matepad4", ...
A window that equals an SPU's full model is what the FromIndex model strategy
accepts (``has_model``).

An index belongs to exactly one snapshot. It is never patched: a changed catalog
means ``CatalogIndex.build`` on the new snapshot and a reference swap.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from catalog_models import SPU, Version


@dataclass(frozen=True)
class IndexedSPU:
    """An SPU with the fields extracted from its name at build time."""
    spu: SPU
    spu_part: str
    brand_key: Optional[str]
    model: Optional[str]
    model_tokens: Tuple[str, ...]
    version: Optional[Version]

    @property
    def id(self):
        return self.spu.id

    @property
    def name(self) -> str:
        return self.spu.name


class CatalogIndex:

    def __init__(
        self,
        entries: Tuple[IndexedSPU, ...],
        by_brand: Dict[str, Tuple[IndexedSPU, ...]],
        by_model_token: Dict[str, Tuple[IndexedSPU, ...]],
    ):
        self.entries = entries
        self.by_brand = by_brand
        self.by_model_token = by_model_token
        self._by_id = {e.id: e for e in entries}

    @classmethod
    def build(cls, spus: Iterable[SPU], extractor) -> "CatalogIndex":
        """
        Index a catalog snapshot. ``extractor`` is a FieldExtractor without an
        index (models come from the pattern strategy).
        """
        entries: List[IndexedSPU] = []
        by_brand: Dict[str, List[IndexedSPU]] = {}
        by_model_token: Dict[str, List[IndexedSPU]] = {}

        for spu in spus:
            name = spu.name or ''
            part = extractor.extract_spu_part(name)
            brand = extractor.resolve_brand(spu.brand) if spu.brand else None
            if brand is None:
                brand = extractor.extract_brand(part) or extractor.extract_brand(name)
            brand_key = extractor.brand_key(brand) if brand else extractor.brand_key(spu.brand)

            tokens = tuple(extractor.model_tokens(part, brand) or extractor.model_tokens(name, brand))
            model = ''.join(tokens) or None
            entry = IndexedSPU(
                spu=spu, spu_part=part, brand_key=brand_key,
                model=model, model_tokens=tokens, version=extractor.extract_version(name),
            )
            entries.append(entry)

            if brand_key:
                by_brand.setdefault(brand_key, []).append(entry)

            for window in sliding_windows(tokens):
                bucket = by_model_token.setdefault(window, [])
                if not bucket or bucket[-1] is not entry:
                    bucket.append(entry)

        return cls(
            entries=tuple(entries),
            by_brand={k: tuple(v) for k, v in by_brand.items()},
            by_model_token={k: tuple(v) for k, v in by_model_token.items()},
        )

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, spu_id) -> Optional[IndexedSPU]:
        return self._by_id.get(spu_id)

    def has_model(self, key: str, brand_key: Optional[str]) -> bool:
        """True when ``key`` is the full model of an SPU of ``brand_key`` (any brand when None)."""
        return any(
            e.model == key and (brand_key is None or e.brand_key == brand_key)
            for e in self.lookup_model_token(key)
        )

    def candidates(self, brand_key: Optional[str]) -> Tuple[IndexedSPU, ...]:
        """Stage A candidate set: the brand bucket, or the full catalog without a brand."""
        if brand_key is None:
            return self.entries
        return self.by_brand.get(brand_key, ())

    def lookup_model_token(self, token: str) -> Tuple[IndexedSPU, ...]:
        return self.by_model_token.get(token, ())


def sliding_windows(tokens: Tuple[str, ...]) -> List[str]:
    """
    Every contiguous window of ``tokens``, concatenated.

    Examples:
        ("pad", "4", "pro") → ["pad4pro", "pad4", "4pro", "pad", "4", "pro"]
    """
    windows = []
    for size in range(len(tokens), 0, -1):
        for start in range(0, len(tokens) - size + 1):
            windows.append(''.join(tokens[start:start + size]))
    return windows
