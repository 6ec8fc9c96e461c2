"""
Micro-benchmark for the product-line matcher.

Measures:
1. CatalogIndex build (MatchService.build_index) on a synthetic 10k-SPU catalog
2. run_matching() end-to-end on a synthetic 1k-line input sheet, single and multi-threaded
3. Hot spots: Normalizer.normalize and FieldExtractor.parse

Usage:
    python scripts/benchmark_matcher.py
"""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
import time
import numpy as np
import pandas as pd
from batch import run_matching
from catalog_client import catalog_from_frames
from catalog_models import Brand
from match_engine import MatchService

BRANDS = [('vivo', 'vivo'), ('OPPO', 'oppo'), ('华为', 'HUAWEI'), ('小米', 'Xiaomi'), ('红米', 'Redmi')]
SERIES = ['X', 'S', 'Y', 'A', 'K', 'Mate ', 'Nova ', 'Reno ']
SUFFIXES = ['', ' Pro', ' Pro+', ' Pro mini', ' Ultra', ' 活力版', ' 礼盒']
CAPACITIES = ['8+256', '12+256', '12+512', '16+1T']
COLORS = ['可可黑', '夏夜黑', '曜石黑', '零度白', '微粉', '玉石绿', '雾凇蓝', '灵感紫']


def generate_synthetic_catalog(n_spus: int = 10000, seed: int = 7):
    """Synthetic SPU and SKU tables (4 SKUs per SPU)."""
    rng = np.random.default_rng(seed)
    spu_rows, sku_rows = [], []
    for i in range(n_spus):
        brand, spell = BRANDS[rng.integers(len(BRANDS))]
        name = f"{spell} {SERIES[rng.integers(len(SERIES))]}{rng.integers(1, 400)}{SUFFIXES[rng.integers(len(SUFFIXES))]}"
        spu_rows.append({'id': i + 1, 'name': name, 'brand': brand})
        for j in range(4):
            capacity = CAPACITIES[rng.integers(len(CAPACITIES))]
            color = COLORS[rng.integers(len(COLORS))]
            sku_rows.append({
                'id': f"{i + 1}-{j}", 'spu_id': i + 1,
                'name': f"{name} {capacity} {color}", 'capacity': capacity, 'color': color,
                'barcodes': f"69{i:08d}{j}", 'state': 'active',
            })
    return pd.DataFrame(spu_rows), pd.DataFrame(sku_rows)


def generate_synthetic_input(df_spu: pd.DataFrame, n_rows: int = 1000, seed: int = 11) -> pd.DataFrame:
    """Lines derived from catalog names with noise: casing, brackets, demo markers."""
    rng = np.random.default_rng(seed)
    lines = []
    for _ in range(n_rows):
        name = df_spu['name'].iloc[rng.integers(len(df_spu))]
        capacity = CAPACITIES[rng.integers(len(CAPACITIES))]
        color = COLORS[rng.integers(len(COLORS))]
        variant = rng.integers(3)
        if variant == 0:
            line = f"{name} 5G {capacity} {color}"
        elif variant == 1:
            line = f"{name.upper()}({capacity}){color}"
        else:
            line = f"演示机 {name} {capacity}{color}"
        lines.append(line)
    return pd.DataFrame({'商品名称': lines})


def benchmark_function(func, *args, **kwargs):
    """Benchmark a function and return (result, elapsed_ms)."""
    start = time.perf_counter()
    result = func(*args, **kwargs)
    elapsed_ms = (time.perf_counter() - start) * 1000
    return result, elapsed_ms


def build_service(df_spu: pd.DataFrame, df_sku: pd.DataFrame) -> MatchService:
    catalog = catalog_from_frames(df_spu, df_sku)
    service = MatchService(catalog)
    service.initialize()
    service.set_brand_vocabulary([Brand(name=b, spell=s) for b, s in BRANDS])
    service.set_color_vocabulary(catalog.colors())
    return service


def benchmark_build_index(service: MatchService):
    print("\n" + "="*70)
    print("BENCHMARK: build_index() - 10k SPU catalog")
    print("="*70)
    matcher, elapsed = benchmark_function(service.build_index)
    print(f"  Build: {elapsed:.2f}ms")
    print(f"  SPUs: {len(matcher.index)}  brands: {len(matcher.index.by_brand)}  "
          f"model tokens: {len(matcher.index.by_model_token)}")


def benchmark_hot_path(service: MatchService, n_iterations: int = 2000):
    print("\n" + "="*70)
    print("BENCHMARK: normalize + parse - hot path")
    print("="*70)
    matcher = service.matcher
    samples = [
        "Vivo S30 Pro mini 5G 12+512 可可黑",
        "VIVO WatchGT 软胶蓝牙版夏夜黑",
        "演示机 OPPO A5活力版（12+256）玉石绿",
    ]
    for line in samples:
        start = time.perf_counter()
        for _ in range(n_iterations):
            matcher.parse(line)
        per_call_us = (time.perf_counter() - start) * 1e6 / n_iterations
        print(f"\nInput: {line}")
        print(f"  Per call: {per_call_us:.2f}μs")


def benchmark_run_matching(service: MatchService, df_input: pd.DataFrame):
    print("\n" + "="*70)
    print(f"BENCHMARK: run_matching() - {len(df_input)} lines")
    print("="*70)
    for workers in (1, 4):
        df_result, elapsed = benchmark_function(run_matching, df_input, service, max_workers=workers)
        print(f"\n  workers={workers}: {elapsed:.2f}ms ({elapsed / len(df_input):.2f}ms per line)")
        for status, count in df_result['status'].value_counts().items():
            print(f"    {status}: {count} ({count / len(df_result) * 100:.1f}%)")


def main():
    print("="*70)
    print("PRODUCT MATCHER BENCHMARK")
    print("="*70)
    df_spu, df_sku = generate_synthetic_catalog(10000)
    df_input = generate_synthetic_input(df_spu, 1000)
    service = build_service(df_spu, df_sku)

    benchmark_build_index(service)
    benchmark_hot_path(service)
    benchmark_run_matching(service, df_input)

    print("\n" + "="*70)
    print("BENCHMARK COMPLETE")
    print("="*70)


if __name__ == '__main__':
    main()
