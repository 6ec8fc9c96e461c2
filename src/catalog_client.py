"""
Catalog collaborator: the read-only interface the matcher needs from the catalog service.

    list_catalog_entries()            → [SPU]   (id, name, brand, SKU stubs)
    get_sku_details(ids, timeout)     → [SKU]   (id, name, capacity, color, barcodes, state)

The catalog itself is owned elsewhere. This module provides the interface, an
in-memory implementation, and loaders that build one from pandas tables
(CSV or Excel exports of the catalog service).
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from catalog_models import SKU, SKU_STATE_ACTIVE, SPU, Brand, SKUStub

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
SKU_PAGE_SIZE = 100  # ids per get_sku_details call
BARCODE_SEPARATORS = (';', ',', '|')


class CatalogError(RuntimeError):
    """The catalog service could not answer a read."""


class CatalogClient(ABC):

    @abstractmethod
    def list_catalog_entries(self) -> List[SPU]:
        raise NotImplementedError

    @abstractmethod
    def get_sku_details(self, ids: Sequence, timeout: Optional[float] = None) -> List[SKU]:
        raise NotImplementedError


def fetch_sku_details(
    client: CatalogClient,
    ids: Sequence,
    timeout: Optional[float] = None,
    page_size: int = SKU_PAGE_SIZE,
) -> List[SKU]:
    """Fetch SKUs in pages of ``page_size``, keeping the order of ``ids``."""
    skus: List[SKU] = []
    ids = list(ids)
    for start in range(0, len(ids), page_size):
        skus.extend(client.get_sku_details(ids[start:start + page_size], timeout=timeout))
    return skus


class InMemoryCatalog(CatalogClient):
    """A catalog snapshot held in memory. Lookups ignore the timeout."""

    def __init__(self, spus: Iterable[SPU], skus: Iterable[SKU]):
        self._spus = list(spus)
        self._skus: Dict = {sku.id: sku for sku in skus}

    def list_catalog_entries(self) -> List[SPU]:
        return list(self._spus)

    def get_sku_details(self, ids: Sequence, timeout: Optional[float] = None) -> List[SKU]:
        return [self._skus[i] for i in ids if i in self._skus]

    def colors(self) -> List[str]:
        """Distinct SKU colors, the usual source of the color vocabulary."""
        return sorted({sku.color for sku in self._skus.values() if sku.color})


# ---------------------------------------------------------------------------
# Table loaders
# ---------------------------------------------------------------------------

def read_table(path: str, sheet_name=0) -> pd.DataFrame:
    """Read a CSV or Excel export into a DataFrame of strings."""
    ext = os.path.splitext(path)[1].lower()
    if ext in ('.xlsx', '.xlsm', '.xls'):
        df = pd.read_excel(path, sheet_name=sheet_name, dtype=str)
    else:
        df = pd.read_csv(path, dtype=str, encoding='utf-8-sig')
    df.columns = [str(c).strip() for c in df.columns]
    return df.fillna('')


def catalog_from_frames(df_spu: pd.DataFrame, df_sku: pd.DataFrame) -> InMemoryCatalog:
    """
    Build an InMemoryCatalog from two tables.

    df_spu columns: id, name, brand
    df_sku columns: id, spu_id, name, capacity, color, barcodes, state
        barcodes may be a list or a string joined by ';' ',' or '|'
        a missing state means active
    """
    skus = []
    stubs_by_spu: Dict[str, List[SKUStub]] = {}
    for _, row in df_sku.iterrows():
        sku = SKU(
            id=_clean_id(row['id']),
            name=str(row.get('name', '')).strip(),
            capacity=_optional(row.get('capacity')),
            color=_optional(row.get('color')),
            barcodes=tuple(_split_barcodes(row.get('barcodes'))),
            state=_optional(row.get('state')) or SKU_STATE_ACTIVE,
        )
        skus.append(sku)
        spu_key = str(_clean_id(row['spu_id']))
        stubs_by_spu.setdefault(spu_key, []).append(SKUStub(sku_id=sku.id, color=sku.color, spec=sku.capacity))

    spus = []
    for _, row in df_spu.iterrows():
        spu_id = _clean_id(row['id'])
        spus.append(SPU(
            id=spu_id,
            name=str(row.get('name', '')).strip(),
            brand=_optional(row.get('brand')),
            sku_stubs=tuple(stubs_by_spu.get(str(spu_id), [])),
        ))

    logger.info("Catalog loaded: %d SPUs, %d SKUs", len(spus), len(skus))
    return InMemoryCatalog(spus, skus)


def load_catalog_files(spu_path: str, sku_path: str) -> InMemoryCatalog:
    return catalog_from_frames(read_table(spu_path), read_table(sku_path))


def brands_from_frame(df_brand: pd.DataFrame) -> List[Brand]:
    """Brand registry table: name, spell (optional), aliases (optional, ';'-joined)."""
    brands = []
    for _, row in df_brand.iterrows():
        name = _optional(row.get('name'))
        if not name:
            continue
        aliases = tuple(a.strip() for a in str(row.get('aliases', '') or '').split(';') if a.strip())
        brands.append(Brand(name=name, spell=_optional(row.get('spell')), aliases=aliases))
    return brands


def _optional(value) -> Optional[str]:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    text = str(value).strip()
    return text if text and text.lower() not in ('nan', 'none') else None


def _clean_id(value):
    """Catalog ids: ints when they look like ints, else stripped strings."""
    text = str(value).strip()
    if text.endswith('.0') and text[:-2].isdigit():
        text = text[:-2]
    return int(text) if text.isdigit() else text


def _split_barcodes(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    text = _optional(value) or ''
    for sep in BARCODE_SEPARATORS[1:]:
        text = text.replace(sep, BARCODE_SEPARATORS[0])
    return [part.strip() for part in text.split(BARCODE_SEPARATORS[0]) if part.strip()]
