"""
Data model for the product-line matcher.

Catalog side:
    - SPU: a product family ("vivo Y300 Pro+ 全网通5G"), the unit Stage A resolves
    - SKU: a purchasable variant of an SPU (capacity + color + version) with barcodes
    - Brand: one registry entry, keyed by native name and transliteration

Match side:
    - Version: a recognised version keyword and its mutual-exclusion group
    - ParsedInput: the fields pulled out of one input line
    - MatchResult: what the matcher returns for one input line
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
MATCH_STATUS_MATCHED = "matched"         # SPU and SKU resolved
MATCH_STATUS_SPU_ONLY = "spuMatched"     # SPU resolved, SKU missing or collaborator failed
MATCH_STATUS_NO_MATCH = "unmatched"      # nothing above threshold

SKU_STATE_ACTIVE = "active"
SKU_STATE_INACTIVE = "inactive"

CatalogId = Union[int, str]


# ---------------------------------------------------------------------------
# Catalog entities
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SKUStub:
    sku_id: CatalogId
    color: Optional[str] = None
    spec: Optional[str] = None
    combo: Optional[str] = None


@dataclass(frozen=True)
class SPU:
    id: CatalogId
    name: str
    brand: Optional[str] = None
    sku_stubs: tuple = ()

    @property
    def sku_ids(self) -> List[CatalogId]:
        return [stub.sku_id for stub in self.sku_stubs]


@dataclass(frozen=True)
class SKU:
    id: CatalogId
    name: str
    capacity: Optional[str] = None
    color: Optional[str] = None
    barcodes: tuple = ()
    state: str = SKU_STATE_ACTIVE

    @property
    def is_active(self) -> bool:
        return str(self.state).lower() == SKU_STATE_ACTIVE


@dataclass(frozen=True)
class Brand:
    """A brand registry entry. ``name`` and ``spell`` resolve to the same key."""
    name: str
    spell: Optional[str] = None
    aliases: tuple = ()

    @property
    def key(self) -> str:
        return self.name.strip().lower()

    def lookup_keys(self) -> List[str]:
        keys = [self.name, self.spell or ''] + list(self.aliases)
        return [k.strip().lower() for k in keys if k and k.strip()]


# ---------------------------------------------------------------------------
# Match-side records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Version:
    name: str
    group: str
    keyword: str = ''
    priority: int = 0
    exclusive: bool = False


@dataclass
class ParsedInput:
    spu_prefix: str = ''
    brand: Optional[str] = None
    model: Optional[str] = None
    capacity: Optional[str] = None
    color: Optional[str] = None
    version: Optional[Version] = None
    product_type: Optional[str] = None
    watch_size: Optional[str] = None
    watch_band: Optional[str] = None
    model_code: Optional[str] = None


@dataclass
class MatchResult:
    input_line: str
    status: str = MATCH_STATUS_NO_MATCH
    similarity: float = 0.0
    spu: Optional[Dict] = None     # {'id', 'name'}
    sku: Optional[Dict] = None     # {'id', 'name', 'capacity', 'color', 'barcodes'}
    brand: Optional[str] = None
    version: Optional[str] = None
    error: Optional[str] = None
    parsed: Optional[ParsedInput] = field(default=None, repr=False)

    def to_row(self) -> Dict:
        """Flatten into a dict for DataFrame construction."""
        sku = self.sku or {}
        return {
            'input': self.input_line,
            'status': self.status,
            'spu_id': self.spu['id'] if self.spu else None,
            'matched_spu': self.spu['name'] if self.spu else '',
            'sku_id': sku.get('id'),
            'matched_sku': sku.get('name', ''),
            'brand': self.brand or '',
            'version': self.version or '',
            'capacity': sku.get('capacity') or '',
            'color': sku.get('color') or '',
            'barcodes': list(sku.get('barcodes') or []),
            'similarity': round(self.similarity, 4),
            'error': self.error or '',
        }
