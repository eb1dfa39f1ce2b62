"""
Model data preparation: gap filling, benchmark attachment and standardization.

Turns a raw multi-entity panel into the frames the three pooling fitters use:
- stocks: tradable entities with benchmark_group / category_label attached
- indices: benchmark entities (SP500, NASDAQ)
- merged: stocks plus benchmark_close of the entity's benchmark group,
  standardized per entity (benchmark_close across all rows)

Standardization statistics are held by a Standardizer so evaluation rows can
be transformed with the statistics of the training rows.
"""

from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from sklearn.preprocessing import StandardScaler

from pooling_bench.config.settings import build_run_config, tradable_entities
from pooling_bench.core.logger import get_logger

logger = get_logger(__name__)


def fill_entity_gaps(df: pd.DataFrame,
                     columns: Optional[List[str]] = None,
                     entity_col: str = 'entity_id',
                     date_col: str = 'date') -> pd.DataFrame:
    """
    Forward-fill then backward-fill columns within each entity in date order.

    Args:
        df: Panel rows
        columns: Columns to fill (default: all numeric columns)
        entity_col: Entity column
        date_col: Date column

    Returns:
        New DataFrame sorted by (entity, date); the input is not modified
    """
    out = df.sort_values([entity_col, date_col]).reset_index(drop=True)
    if columns is None:
        columns = out.select_dtypes(include=[np.number]).columns.tolist()
    columns = [col for col in columns if col in out.columns]
    if not columns or out.empty:
        return out

    grouped = out.groupby(entity_col, sort=False)[columns]
    out[columns] = grouped.transform(lambda s: s.ffill().bfill())
    return out


def order_by_date(df: pd.DataFrame, date_col: str = 'date',
                  entity_col: str = 'entity_id') -> pd.DataFrame:
    """Rows sorted by (date, entity) so every consecutive batch spans all entities."""
    return df.sort_values([date_col, entity_col], kind='mergesort').reset_index(drop=True)


class Standardizer:
    """Per-entity z-scoring with statistics fitted once and reused.

    Entity columns are scaled with one StandardScaler per entity; global
    columns with one StandardScaler over all rows. A zero-variance column is
    only centred; a column with no observed values is left untouched.

    Usage:
        standardizer = Standardizer(['close', 'ma5'], global_columns=['benchmark_close'])
        train_std = standardizer.fit_transform(train)
        test_std = standardizer.transform(test)
    """

    def __init__(self, columns: List[str], global_columns: Optional[List[str]] = None,
                 entity_col: str = 'entity_id'):
        self.columns = list(columns)
        self.global_columns = list(global_columns or [])
        self.entity_col = entity_col
        self.entity_scalers_: Dict[str, tuple] = {}
        self.global_scaler_: Optional[tuple] = None
        self.is_fitted = False

    @staticmethod
    def _fit_scaler(frame: pd.DataFrame, columns: List[str]):
        observed = [col for col in columns if col in frame.columns and frame[col].notna().any()]
        if not observed:
            return None
        scaler = StandardScaler()
        scaler.fit(frame[observed].astype(float))
        return scaler, observed

    def fit(self, df: pd.DataFrame) -> 'Standardizer':
        self.entity_scalers_ = {}
        for entity, entity_df in df.groupby(self.entity_col, sort=True):
            fitted = self._fit_scaler(entity_df, self.columns)
            if fitted is not None:
                self.entity_scalers_[entity] = fitted
        self.global_scaler_ = self._fit_scaler(df, self.global_columns)
        self.is_fitted = True
        return self

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        if not self.is_fitted:
            raise RuntimeError("Standardizer must be fitted before transform")

        out = df.copy()
        scaled_cols = [col for col in self.columns + self.global_columns if col in out.columns]
        out[scaled_cols] = out[scaled_cols].astype(float)
        unseen = []
        for entity, index in out.groupby(self.entity_col, sort=False).groups.items():
            if entity not in self.entity_scalers_:
                unseen.append(entity)
                continue
            scaler, cols = self.entity_scalers_[entity]
            out.loc[index, cols] = scaler.transform(out.loc[index, cols].astype(float))
        if unseen:
            logger.warning(f"No standardization statistics for entities {unseen}, left unscaled")

        if self.global_scaler_ is not None and not out.empty:
            scaler, cols = self.global_scaler_
            out[cols] = scaler.transform(out[cols].astype(float))
        return out

    def fit_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        return self.fit(df).transform(df)


def attach_benchmark_close(stocks: pd.DataFrame,
                           indices: pd.DataFrame,
                           config: Dict) -> pd.DataFrame:
    """
    Add the benchmark group's close on the same date to each tradable row.

    Args:
        stocks: Tradable rows with the group column attached
        indices: Benchmark rows (entity_id is the benchmark group name)
        config: Run config

    Returns:
        New DataFrame with config['benchmark_col'] filled per entity
    """
    date_col, entity_col = config['date_col'], config['entity_col']
    group_col, benchmark_col = config['group_col'], config['benchmark_col']

    if indices.empty and benchmark_col in stocks.columns:
        logger.info(f"No benchmark rows, using the {benchmark_col} column already present")
        return stocks.copy()

    # One benchmark close per (date, benchmark group)
    lookup = (indices
              .drop_duplicates([date_col, entity_col], keep='last')
              .dropna(subset=[config['target_col']])
              [[date_col, entity_col, config['target_col']]]
              .rename(columns={entity_col: group_col, config['target_col']: benchmark_col}))

    merged = (stocks
              .drop(columns=[benchmark_col], errors='ignore')
              .merge(lookup, on=[date_col, group_col], how='left'))

    missing_groups = set(stocks[group_col].dropna()) - set(lookup[group_col])
    if missing_groups:
        logger.warning(f"No benchmark rows for groups {sorted(missing_groups)}")

    return fill_entity_gaps(merged, [benchmark_col], entity_col, date_col)


def prepare_model_data(data: pd.DataFrame,
                       config: Optional[Dict] = None,
                       standardizer: Optional[Standardizer] = None) -> Dict:
    """
    Prepare a raw panel for the pooling fitters.

    Steps:
        1. ffill/bfill numeric columns per entity in date order
        2. Split tradable vs benchmark entities
        3. Attach benchmark_group / category_label from the entity metadata
        4. Attach benchmark_close by benchmark group and date
        5. Standardize (fit a new Standardizer unless one is given)

    Args:
        data: Raw rows (date, entity_id, close, feature columns)
        config: Run config (build_run_config() defaults if None)
        standardizer: Fitted Standardizer to reuse (e.g. training statistics
                      for evaluation rows)

    Returns:
        Dict with 'stocks', 'indices', 'merged', 'standardizer', 'processing_info'
    """
    config = config or build_run_config()
    date_col, entity_col = config['date_col'], config['entity_col']
    metadata = config['entity_metadata']

    df = data.copy()
    df[date_col] = pd.to_datetime(df[date_col])
    n_missing_before = int(df.isna().sum().sum())
    df = fill_entity_gaps(df, None, entity_col, date_col)

    stocks = df[df[entity_col].isin(tradable_entities(config))].copy()
    indices = df[df[entity_col].isin(config['benchmark_entities'])].copy()

    stocks[config['group_col']] = stocks[entity_col].map(
        {e: meta['benchmark_group'] for e, meta in metadata.items()})
    stocks[config['category_col']] = stocks[entity_col].map(
        {e: meta['category_label'] for e, meta in metadata.items()})

    merged = attach_benchmark_close(stocks, indices, config)

    fitted_here = standardizer is None
    if fitted_here:
        standardizer = Standardizer(
            config['standardize_columns'],
            global_columns=[config['benchmark_col']],
            entity_col=entity_col
        ).fit(merged)
    merged = standardizer.transform(merged)

    processing_info = {
        'n_input_rows': len(data),
        'n_stock_rows': len(stocks),
        'n_index_rows': len(indices),
        'n_merged_rows': len(merged),
        'entities': sorted(merged[entity_col].unique().tolist()),
        'date_range': (df[date_col].min(), df[date_col].max()) if not df.empty else (None, None),
        'missing_filled': n_missing_before - int(df.isna().sum().sum()),
        'standardizer_fitted_here': fitted_here
    }
    logger.debug(f"Prepared {len(merged)} merged rows for {len(processing_info['entities'])} entities")

    return {
        'stocks': stocks,
        'indices': indices,
        'merged': merged,
        'standardizer': standardizer,
        'processing_info': processing_info
    }


def align_calendar(data: pd.DataFrame,
                   date_col: str = 'date',
                   entity_col: str = 'entity_id') -> pd.DataFrame:
    """
    Expand the panel to a complete daily (entity x date) grid and fill gaps.

    Every entity gets a row for every calendar day between the panel's first
    and last date; new rows are filled forward then backward within the entity.

    Returns:
        New DataFrame sorted by (entity, date)
    """
    if data.empty:
        return data.copy()

    df = data.copy()
    df[date_col] = pd.to_datetime(df[date_col])
    df = df.drop_duplicates([entity_col, date_col], keep='last')

    all_dates = pd.date_range(df[date_col].min(), df[date_col].max(), freq='D')
    grid = pd.MultiIndex.from_product(
        [sorted(df[entity_col].unique()), all_dates], names=[entity_col, date_col]
    )
    aligned = df.set_index([entity_col, date_col]).reindex(grid).reset_index()

    fill_cols = [col for col in aligned.columns if col not in (entity_col, date_col)]
    aligned = fill_entity_gaps(aligned, fill_cols, entity_col, date_col)

    logger.info(f"Calendar alignment added {len(aligned) - len(df)} rows "
                f"({len(all_dates)} dates x {aligned[entity_col].nunique()} entities)")
    return aligned
