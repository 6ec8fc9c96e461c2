import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import pytest

from catalog_client import InMemoryCatalog
from catalog_models import SKU, SPU, Brand, SKUStub
from config_store import ConfigStore
from field_extractor import FieldExtractor
from match_engine import MatchService
from normalizer import Normalizer

BRANDS = [
    Brand(name='vivo', spell='vivo'),
    Brand(name='红米', spell='Redmi'),
    Brand(name='苹果', spell='Apple'),
    Brand(name='华为', spell='HUAWEI'),
    Brand(name='OPPO', spell='OPPO'),
]


def make_spu(spu_id, name, brand, skus=()):
    return SPU(id=spu_id, name=name, brand=brand,
               sku_stubs=tuple(SKUStub(sku_id=s.id, color=s.color, spec=s.capacity) for s in skus))


# SKUs per SPU
SKUS = {
    2: [SKU(201, 'vivo S30 Pro mini 全网通5G 12GB+512GB 可可黑', '12+512', '可可黑', ('6935117800001', '6935117800002')),
        SKU(202, 'vivo S30 Pro mini 全网通5G 12GB+256GB 可可黑', '12+256', '可可黑', ('6935117800003',))],
    10: [SKU(1001, 'vivo WATCH GT 蓝牙版 夏夜黑 软胶', None, '夏夜黑', ('6935117810001',)),
         SKU(1002, 'vivo WATCH GT eSIM版 曜石黑', None, '曜石黑', ('6935117810002',))],
    11: [SKU(1101, 'vivo WATCH GT eSIM版 夏夜黑', None, '夏夜黑', ('6935117811001',))],
    20: [SKU(2001, 'vivo Y300 Pro 全网通5G 12+512 微粉', '12+512', '微粉', ('6935117820001',))],
    21: [SKU(2101, 'vivo Y300 Pro+ 全网通5G 12+512 微粉', '12+512', '微粉', ('6935117821001',)),
         SKU(2102, 'vivo Y300 Pro+ 全网通5G 12+512 曜黑', '12+512', '曜黑', ('6935117821002',)),
         SKU(2103, 'vivo Y300 Pro+ 全网通5G 12+512 曜石黑', '12+512', '曜石黑', ('6935117821003',)),
         SKU(2104, 'vivo Y300 Pro+ 全网通5G 8+256 微粉', '8+256', '微粉', ('6935117821004',), 'inactive')],
    30: [SKU(3001, 'OPPO A5 活力版 12+256 玉石绿', '12+256', '玉石绿', ('6932169330001',))],
}

SPUS = [
    make_spu(1, 'vivo S30 Pro mini 三丽鸥家族系列礼盒', 'vivo'),
    make_spu(2, 'vivo S30 Pro mini 全网通5G 12GB+512GB 可可黑', 'vivo', SKUS[2]),
    make_spu(10, 'vivo WATCH GT', 'vivo', SKUS[10]),
    make_spu(11, 'vivo WATCH GT eSIM版', 'vivo', SKUS[11]),
    make_spu(20, 'vivo Y300 Pro 全网通5G', 'vivo', SKUS[20]),
    make_spu(21, 'vivo Y300 Pro+ 全网通5G', 'vivo', SKUS[21]),
    make_spu(30, 'OPPO A5 活力版', 'OPPO', SKUS[30]),
    make_spu(40, 'HUAWEI MatePad 4 Pro', '华为'),
]


@pytest.fixture(scope='session')
def config():
    return ConfigStore.load()


@pytest.fixture
def brands():
    return list(BRANDS)


@pytest.fixture
def catalog():
    return InMemoryCatalog(SPUS, [sku for skus in SKUS.values() for sku in skus])


@pytest.fixture
def extractor(config, catalog):
    return FieldExtractor(config, BRANDS, catalog.colors())


@pytest.fixture
def normalizer(config):
    return Normalizer(config)


@pytest.fixture
def service(config, catalog):
    svc = MatchService(catalog)
    svc.initialize(config)
    svc.set_brand_vocabulary(BRANDS)
    svc.set_color_vocabulary(catalog.colors())
    svc.build_index()
    return svc
