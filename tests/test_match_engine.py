"""
End-to-end matcher tests against the sample catalog in conftest.py:
- gift-box SPUs lose to the standard entry
- exclusive versions filter SPUs and deprioritize SKUs
- "Pro+" and "Pro" resolve to different SPUs
- collaborator failures downgrade a line instead of failing it
- snapshots are swapped, never mutated
"""
import pytest

from catalog_client import CatalogClient, CatalogError, InMemoryCatalog, fetch_sku_details
from catalog_models import (
    MATCH_STATUS_MATCHED,
    MATCH_STATUS_NO_MATCH,
    MATCH_STATUS_SPU_ONLY,
    SKU,
    SPU,
)
from match_engine import MatcherBuilder, MatchService, _id_order

from conftest import BRANDS, SPUS, make_spu


class FailingCatalog(CatalogClient):

    def __init__(self, spus):
        self.spus = spus

    def list_catalog_entries(self):
        return list(self.spus)

    def get_sku_details(self, ids, timeout=None):
        raise CatalogError("catalog read timed out")


class RecordingCatalog(InMemoryCatalog):

    def __init__(self, spus, skus):
        super().__init__(spus, skus)
        self.calls = []

    def get_sku_details(self, ids, timeout=None):
        self.calls.append((list(ids), timeout))
        return super().get_sku_details(ids, timeout)


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------

def test_standard_entry_beats_gift_box(service):
    result = service.match_line("Vivo S30 Pro mini 5G 12+512 可可黑")
    assert result.status == MATCH_STATUS_MATCHED
    assert result.spu['id'] == 2
    assert result.sku['id'] == 201
    assert result.sku['barcodes'] == ['6935117800001', '6935117800002']
    assert result.brand == 'vivo'
    assert result.version == '5G'
    assert 0.9 < result.similarity <= 1.0


def test_watch_bluetooth_filters_esim(service):
    result = service.match_line("VIVO WatchGT 软胶蓝牙版夏夜黑")
    assert result.status == MATCH_STATUS_MATCHED
    assert result.spu['id'] == 10
    assert result.sku['id'] == 1001
    assert 'eSIM' not in result.spu['name']
    assert 'eSIM' not in result.sku['name']


def test_pro_plus_not_pro(service):
    result = service.match_line("Vivo Y300 Pro+ 5G 12+512 微粉")
    assert result.spu['id'] == 21
    assert result.sku['id'] == 2101

    result = service.match_line("Vivo Y300 Pro 5G 12+512 微粉")
    assert result.spu['id'] == 20


def test_version_named_spu_beats_generic(service):
    # SPU 10 carries no version, SPU 11 names the line's eSIM版
    result = service.match_line("vivo WATCH GT eSIM版 夏夜黑")
    assert result.status == MATCH_STATUS_MATCHED
    assert result.spu['id'] == 11
    assert result.sku['id'] == 1101


def test_capacity_before_model(service):
    result = service.match_line("vivo 12+512 Y300 Pro+ 微粉")
    assert result.parsed.model == 'y300pro+'
    assert result.status == MATCH_STATUS_MATCHED
    assert result.spu['id'] == 21
    assert result.sku['id'] == 2101


def test_exact_color_preferred_over_variant(service):
    result = service.match_line("vivo Y300 Pro+ 12+512 曜石黑")
    assert result.sku['id'] == 2103


def test_variant_color_used_when_no_exact(service):
    # 浅粉 and 微粉 share a variant group
    result = service.match_line("vivo Y300 Pro+ 12+512 浅粉")
    assert result.sku["id"] == 2101


def test_inactive_sku_skipped(service):
    result = service.match_line("vivo Y300 Pro+ 8+256 微粉")
    assert result.status == MATCH_STATUS_SPU_ONLY
    assert result.spu['id'] == 21
    assert result.sku is None


def test_bracketed_and_demo_line(service):
    result = service.match_line("演示机 OPPO A5活力版（12+256）玉石绿")
    assert result.status == MATCH_STATUS_MATCHED
    assert result.spu['id'] == 30
    assert result.sku['id'] == 3001


def test_unmatched_line(service):
    result = service.match_line("Nokia 3310")
    assert result.status == MATCH_STATUS_NO_MATCH
    assert result.similarity == 0
    assert result.spu is None and result.sku is None


def test_empty_line(service):
    result = service.match_line("")
    assert result.status == MATCH_STATUS_NO_MATCH


def test_fuzzy_fallback(service):
    # "y300+" is no catalog model; token overlap picks the Pro+ entry
    result = service.match_line("vivo Y300+ 12+512 微粉")
    assert result.status == MATCH_STATUS_MATCHED
    assert result.spu['id'] == 21
    assert result.similarity < 1.0


def test_threshold_override(service):
    assert service.match_line("vivo Y300+ 12+512 微粉", threshold=0.95).status == MATCH_STATUS_NO_MATCH


# ---------------------------------------------------------------------------
# Version conflicts in Stage B
# ---------------------------------------------------------------------------

WATCH3_BT = SKU(5001, 'vivo WATCH 3 蓝牙版 夏夜黑', None, '夏夜黑', ('6935117850001',))
WATCH3_ESIM = SKU(5002, 'vivo WATCH 3 eSIM版 夏夜黑', None, '夏夜黑', ('6935117850002',))


def _watch3_matcher(config, skus):
    spu = make_spu(50, 'vivo WATCH 3', 'vivo', skus)
    return (MatcherBuilder(config).with_brands(BRANDS).with_colors(['夏夜黑'])
            .with_catalog(InMemoryCatalog([spu], skus)).build([spu]))


def test_conflicting_version_sku_kept_with_lower_score(config):
    line = "vivo WATCH 3 eSIM版 夏夜黑"
    conflicting = _watch3_matcher(config, [WATCH3_BT]).match_line(line)
    agreeing = _watch3_matcher(config, [WATCH3_ESIM]).match_line(line)

    assert conflicting.status == MATCH_STATUS_MATCHED
    assert conflicting.sku['id'] == 5001
    assert agreeing.sku['id'] == 5002
    assert conflicting.similarity < agreeing.similarity


def test_agreeing_version_sku_preferred(config):
    result = _watch3_matcher(config, [WATCH3_BT, WATCH3_ESIM]).match_line("vivo WATCH 3 eSIM版 夏夜黑")
    assert result.sku['id'] == 5002


# ---------------------------------------------------------------------------
# Tie-break
# ---------------------------------------------------------------------------

def test_equal_priority_lowest_id_wins(config):
    spus = [SPU(9, 'vivo X200 Pro', 'vivo'), SPU(3, 'vivo X200 Pro', 'vivo'), SPU('a1', 'vivo X200 Pro', 'vivo')]
    matcher = MatcherBuilder(config).with_brands(BRANDS).build(spus)
    entry, score = matcher.match_spu("vivo X200 Pro", matcher.parse("vivo X200 Pro")[1])
    assert entry.id == 3
    assert score == 1.0


def test_id_order():
    assert sorted([10, '2', 'b', 1], key=_id_order) == [1, '2', 10, 'b']


# ---------------------------------------------------------------------------
# Collaborator
# ---------------------------------------------------------------------------

def test_catalog_failure_downgrades_line(config):
    service = MatchService(FailingCatalog(SPUS))
    service.initialize(config)
    service.set_brand_vocabulary(BRANDS)
    service.build_index()
    result = service.match_line("Vivo Y300 Pro+ 5G 12+512 微粉")
    assert result.status == MATCH_STATUS_SPU_ONLY
    assert result.spu['id'] == 21
    assert 'CatalogError' in result.error


def test_sku_fetch_paged_with_timeout(config, catalog):
    recording = RecordingCatalog(catalog.list_catalog_entries(),
                                 catalog.get_sku_details([2101, 2102, 2103, 2104]))
    service = MatchService(recording, sku_timeout=2.5)
    service.initialize(config)
    service.set_brand_vocabulary(BRANDS)
    service.build_index()
    service.match_line("Vivo Y300 Pro+ 5G 12+512 微粉")
    assert recording.calls == [([2101, 2102, 2103, 2104], 2.5)]


def test_fetch_sku_details_pages():
    skus = [SKU(i, f'sku {i}') for i in range(250)]
    recording = RecordingCatalog([], skus)
    fetched = fetch_sku_details(recording, list(range(250)), page_size=100)
    assert [len(ids) for ids, _ in recording.calls] == [100, 100, 50]
    assert [s.id for s in fetched] == list(range(250))


def test_without_catalog_stays_spu_only(config):
    matcher = MatcherBuilder(config).with_brands(BRANDS).build(SPUS)
    result = matcher.match_line("Vivo Y300 Pro+ 5G 12+512 微粉")
    assert result.status == MATCH_STATUS_SPU_ONLY


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

def test_matcher_required_before_build(config):
    service = MatchService()
    service.initialize(config)
    with pytest.raises(RuntimeError):
        service.match_line("vivo X200")


def test_build_needs_snapshot_or_catalog(config):
    service = MatchService()
    service.initialize(config)
    with pytest.raises(ValueError):
        service.build_index()


def test_rebuild_swaps_snapshot(config):
    service = MatchService()
    service.initialize(config)
    service.set_brand_vocabulary(BRANDS)
    old = service.build_index([SPU(30, 'OPPO A5 活力版', 'OPPO')])
    assert service.match_line("vivo Y300 Pro+ 5G").status == MATCH_STATUS_NO_MATCH

    new = service.build_index(SPUS)
    assert service.matcher is new
    assert new is not old
    assert service.match_line("vivo Y300 Pro+ 5G").spu['id'] == 21
    # the published old snapshot is untouched
    assert len(old.index) == 1
    assert old.match_line("vivo Y300 Pro+ 5G").status == MATCH_STATUS_NO_MATCH


def test_vocabulary_changes_apply_on_next_build(config):
    service = MatchService()
    service.initialize(config)
    service.build_index(SPUS)
    assert service.match_line("vivo Y300 Pro+ 5G").brand is None

    service.set_brand_vocabulary(BRANDS)
    assert service.match_line("vivo Y300 Pro+ 5G").brand is None
    service.build_index(SPUS)
    assert service.match_line("vivo Y300 Pro+ 5G").brand == 'vivo'
