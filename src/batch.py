"""
Batch matching over a table of input lines, plus export and coverage metrics.

The matcher core works one line at a time; this module is the caller side:
    - run_matching():            DataFrame of lines → DataFrame of results
    - to_export_frame() / export_csv(): the downstream CSV format
    - compute_coverage_metrics(): matched / SPU-only / unmatched rates
    - nearest_spu_names():       rapidfuzz near-miss candidates for unmatched lines

Lines are independent, so run_matching can fan out across a thread pool; every
worker reads the same immutable Matcher snapshot.
"""

import io
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional

import pandas as pd
from rapidfuzz import fuzz, process

from catalog_models import (
    MATCH_STATUS_MATCHED,
    MATCH_STATUS_NO_MATCH,
    MATCH_STATUS_SPU_ONLY,
    MatchResult,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
CSV_COLUMNS = ['input', 'status', 'matchedSPU', 'version', 'capacity', 'color',
               'matchedSKU', 'brand', 'barcodes', 'similarity']
BARCODE_JOIN = ';'

STATUS_LABELS_ZH = {
    MATCH_STATUS_MATCHED: '完全匹配',
    MATCH_STATUS_SPU_ONLY: 'SPU匹配',
    MATCH_STATUS_NO_MATCH: '未匹配',
}

DIAGNOSTIC_LIMIT = 3        # near-miss candidates reported per unmatched line
NEAR_MISS_SCORE = 80        # rapidfuzz score at which an unmatched line counts as a near miss

# Column role detection for uploaded sheets
NAME_KEYWORDS = ['input', 'name', 'product', 'model', 'description', 'desc', 'item',
                 '商品', '名称', '型号', '产品']
NAME_EXCLUDE_KEYWORDS = ['id', 'barcode', 'sku', 'code', 'imei', '条码', '编码']


def _detect_name_column(columns: List[str]) -> str:
    """
    Pick the column holding the product text.

    Prefers a keyword hit that is not an id/barcode column; falls back to the
    first column.
    """
    for col in columns:
        lower = str(col).strip().lower()
        if any(kw in lower for kw in NAME_KEYWORDS) and not any(ex == lower or lower.endswith(f'_{ex}') for ex in NAME_EXCLUDE_KEYWORDS):
            return col
    return columns[0]


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

def run_matching(
    df_input: pd.DataFrame,
    source,
    name_col: Optional[str] = None,
    threshold: Optional[float] = None,
    progress_callback: Optional[Callable] = None,
    max_workers: int = 1,
    diagnostic: bool = False,
) -> pd.DataFrame:
    """
    Match every row of ``df_input``.

    Args:
        df_input: the uploaded lines
        source: a Matcher, or a MatchService (its current snapshot is used for the whole batch)
        name_col: column with the product text; detected when omitted
        threshold: Stage A fuzzy threshold (default from the matcher's weights)
        progress_callback: optional callable(current, total)
        max_workers: > 1 fans lines out over a thread pool
        diagnostic: add rapidfuzz near-miss candidates for unmatched lines

    Returns:
        One row per input line with columns from MatchResult.to_row(),
        plus 'top_candidates' when ``diagnostic`` is set.
    """
    matcher = getattr(source, 'matcher', source)
    df = df_input.copy()
    df.columns = [str(c).strip() for c in df.columns]
    if df.empty:
        return pd.DataFrame(columns=list(MatchResult('').to_row().keys()))
    name_col = name_col.strip() if name_col else _detect_name_column(df.columns.tolist())
    lines = ['' if pd.isna(v) else str(v).strip() for v in df[name_col].tolist()]
    total = len(lines)

    def _match(line: str) -> MatchResult:
        try:
            return matcher.match_line(line, threshold)
        except Exception as e:
            logger.exception("Matching failed for %r", line)
            return MatchResult(input_line=line, error=f"{type(e).__name__}: {e}")

    results: List[MatchResult] = []
    if max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            for i, result in enumerate(pool.map(_match, lines), start=1):
                results.append(result)
                if progress_callback:
                    progress_callback(i, total)
    else:
        for i, line in enumerate(lines, start=1):
            results.append(_match(line))
            if progress_callback:
                progress_callback(i, total)

    df_results = results_to_frame(results)
    if diagnostic:
        df_results['top_candidates'] = [
            nearest_spu_names(matcher, r.input_line) if r.status == MATCH_STATUS_NO_MATCH else []
            for r in results
        ]
    logger.info("Matched %d lines: %s", total, df_results['status'].value_counts().to_dict())
    return df_results


def results_to_frame(results: List[MatchResult]) -> pd.DataFrame:
    return pd.DataFrame([r.to_row() for r in results])


def nearest_spu_names(matcher, line: str, limit: int = DIAGNOSTIC_LIMIT) -> List[Dict]:
    """
    Closest SPU names by rapidfuzz token_sort_ratio, for reviewing unmatched lines.

    Returns [{'id', 'name', 'score'}, ...], best first.
    """
    entries = matcher.index.entries
    if not entries or not line:
        return []
    names = [e.name for e in entries]
    query = matcher.normalizer.normalize(line)
    hits = process.extract(query, names, scorer=fuzz.token_sort_ratio, limit=limit)
    return [{'id': entries[idx].id, 'name': name, 'score': round(score, 1)} for name, score, idx in hits]


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def format_similarity(similarity: float) -> str:
    """0.925 → '92.5%'"""
    return f"{similarity * 100:.1f}%"


def to_export_frame(df_results: pd.DataFrame, localized_status: bool = False) -> pd.DataFrame:
    """Reshape run_matching output into the downstream CSV columns."""
    status = df_results['status']
    if localized_status:
        status = status.map(lambda s: STATUS_LABELS_ZH.get(s, s))
    return pd.DataFrame({
        'input': df_results['input'],
        'status': status,
        'matchedSPU': df_results['matched_spu'],
        'version': df_results['version'],
        'capacity': df_results['capacity'],
        'color': df_results['color'],
        'matchedSKU': df_results['matched_sku'],
        'brand': df_results['brand'],
        'barcodes': df_results['barcodes'].map(lambda codes: BARCODE_JOIN.join(codes or [])),
        'similarity': df_results['similarity'].map(format_similarity),
    }, columns=CSV_COLUMNS)


def export_csv(df_results: pd.DataFrame, path: Optional[str] = None, localized_status: bool = False) -> str:
    """
    Write the CSV export (UTF-8 with BOM so spreadsheet apps read the Chinese text).

    Returns the CSV text; also writes it to ``path`` when given.
    """
    df_export = to_export_frame(df_results, localized_status)
    buf = io.StringIO()
    df_export.to_csv(buf, index=False)
    text = buf.getvalue()
    if path:
        with open(path, 'w', encoding='utf-8-sig', newline='') as f:
            f.write(text)
    return text


# ---------------------------------------------------------------------------
# Coverage metrics
# ---------------------------------------------------------------------------

def compute_coverage_metrics(df_results: pd.DataFrame) -> Dict[str, object]:
    """
    Summary of a completed batch.

    Returns a dict with:
        total_rows
        matched_count / matched_rate        SPU and SKU resolved
        spu_only_count / spu_only_rate      SPU resolved, no SKU
        no_match_count / no_match_rate
        error_count                         lines carrying a collaborator/matching error
        avg_similarity                      mean similarity of matched lines
        near_miss_count                     unmatched lines whose best diagnostic candidate
                                            scored >= NEAR_MISS_SCORE (needs diagnostic=True)
    """
    total = len(df_results)
    if total == 0:
        return {'total_rows': 0, 'matched_count': 0, 'matched_rate': 0.0,
                'spu_only_count': 0, 'spu_only_rate': 0.0,
                'no_match_count': 0, 'no_match_rate': 0.0,
                'error_count': 0, 'avg_similarity': 0.0, 'near_miss_count': 0}

    matched = df_results[df_results['status'] == MATCH_STATUS_MATCHED]
    spu_only = df_results[df_results['status'] == MATCH_STATUS_SPU_ONLY]
    no_match = df_results[df_results['status'] == MATCH_STATUS_NO_MATCH]
    errors = int((df_results['error'] != '').sum()) if 'error' in df_results.columns else 0

    near_miss = 0
    if 'top_candidates' in no_match.columns:
        near_miss = sum(1 for cands in no_match['top_candidates']
                        if cands and cands[0]['score'] >= NEAR_MISS_SCORE)

    avg = round(float(matched['similarity'].mean()), 4) if len(matched) > 0 else 0.0
    return {
        'total_rows': total,
        'matched_count': len(matched),
        'matched_rate': round(len(matched) / total * 100, 1),
        'spu_only_count': len(spu_only),
        'spu_only_rate': round(len(spu_only) / total * 100, 1),
        'no_match_count': len(no_match),
        'no_match_rate': round(len(no_match) / total * 100, 1),
        'error_count': errors,
        'avg_similarity': avg,
        'near_miss_count': near_miss,
    }
