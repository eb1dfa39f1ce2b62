"""Input validation for the raw multi-entity panel.

Missing required columns or entities are fatal (DataValidationError).
Duplicates, missing values, outliers and calendar gaps are reported in the
results dict and logged as warnings; preparation fills or tolerates them.
"""

from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from pooling_bench.config.settings import build_run_config, tradable_entities
from pooling_bench.core.exceptions import DataValidationError
from pooling_bench.core.logger import get_logger

logger = get_logger(__name__)


class InputDataValidator:
    """Validates the raw panel before preparation and modelling.

    Usage:
        validator = InputDataValidator(df, config)
        results = validator.validate_all()   # raises DataValidationError if fatal
    """

    def __init__(self, df: pd.DataFrame, config: Optional[Dict] = None,
                 outlier_iqr_factor: float = 1.5):
        """
        Initialize validator.

        Args:
            df: Raw rows (not modified)
            config: Run config (build_run_config() defaults if None)
            outlier_iqr_factor: Tukey fence multiplier for outlier counts
        """
        self.df = df
        self.config = config or build_run_config()
        self.outlier_iqr_factor = outlier_iqr_factor
        self.results = {}

    def validate_all(self) -> Dict:
        """
        Run all checks.

        Returns:
            Results dict keyed by check name

        Raises:
            DataValidationError: If required columns or entities are missing
        """
        self.check_schema()
        self.check_entities()

        errors = []
        if not self.results['schema']['passed']:
            errors.append(f"missing columns {self.results['schema']['missing_columns']}")
        if not self.results['entities']['passed']:
            errors.append(f"missing entities {self.results['entities']['missing_entities']}")
        if errors:
            raise DataValidationError("Input data failed validation: " + '; '.join(errors))

        self.check_duplicates()
        self.check_nulls()
        self.check_outliers()
        self.check_date_continuity()
        self.check_incomplete_dates()
        return self.results

    def check_schema(self) -> bool:
        """Verify required columns exist."""
        required = self.config['required_columns']
        missing = [col for col in required if col not in self.df.columns]

        self.results['schema'] = {
            'passed': len(missing) == 0,
            'missing_columns': missing,
            'total_columns': len(self.df.columns),
            'expected_columns': len(required)
        }
        return len(missing) == 0

    def check_entities(self) -> bool:
        """Verify every tradable and benchmark entity has at least one row."""
        entity_col = self.config['entity_col']
        expected = tradable_entities(self.config) + list(self.config['benchmark_entities'])
        present = set(self.df[entity_col].unique()) if entity_col in self.df.columns else set()
        missing = [entity for entity in expected if entity not in present]

        self.results['entities'] = {
            'passed': len(missing) == 0,
            'missing_entities': missing,
            'row_counts': self.df[entity_col].value_counts().to_dict() if entity_col in self.df.columns else {}
        }
        return len(missing) == 0

    def check_duplicates(self) -> bool:
        """Check for duplicate (entity, date) combinations."""
        keys = [self.config['entity_col'], self.config['date_col']]
        duplicates = int(self.df.duplicated(subset=keys).sum())
        total_rows = len(self.df)

        self.results['duplicates'] = {
            'passed': duplicates == 0,
            'total_rows': total_rows,
            'duplicate_count': duplicates,
            'duplicate_pct': round(duplicates / total_rows * 100, 2) if total_rows > 0 else 0
        }
        if duplicates:
            logger.warning(f"{duplicates} duplicate (entity, date) rows")
        return duplicates == 0

    def check_nulls(self) -> Dict:
        """Missing-value counts per column."""
        null_counts = {}
        for col in self.df.columns:
            null_count = int(self.df[col].isna().sum())
            if null_count > 0:
                null_counts[col] = {
                    'null_count': null_count,
                    'null_pct': round(null_count / len(self.df) * 100, 2)
                }

        self.results['nulls'] = {
            'passed': not null_counts,
            'columns_with_nulls': null_counts
        }
        if null_counts:
            logger.warning(f"Missing values in {sorted(null_counts)}; they will be filled per entity")
        return null_counts

    def check_outliers(self) -> Dict:
        """Count values outside the Tukey fences of each numeric column."""
        outliers = {}
        numeric = self.df.select_dtypes(include=[np.number])
        for col in numeric.columns:
            values = numeric[col].dropna()
            if len(values) < 4:
                continue
            q1, q3 = np.percentile(values, [25, 75])
            iqr = q3 - q1
            lower = q1 - self.outlier_iqr_factor * iqr
            upper = q3 + self.outlier_iqr_factor * iqr
            count = int(((values < lower) | (values > upper)).sum())
            if count:
                outliers[col] = count

        self.results['outliers'] = {
            'passed': not outliers,
            'outlier_counts': outliers,
            'iqr_factor': self.outlier_iqr_factor
        }
        return outliers

    def check_date_continuity(self) -> Dict:
        """Per-entity date range, number of calendar gaps and the largest gap."""
        date_col, entity_col = self.config['date_col'], self.config['entity_col']
        dates = pd.to_datetime(self.df[date_col])

        continuity = {}
        for entity, entity_dates in dates.groupby(self.df[entity_col]):
            ordered = entity_dates.drop_duplicates().sort_values()
            step_days = ordered.diff().dt.days.dropna()
            continuity[entity] = {
                'start': ordered.min(),
                'end': ordered.max(),
                'n_dates': len(ordered),
                'gaps': int((step_days > 1).sum()),
                'max_gap_days': int(step_days.max()) if len(step_days) else 0
            }

        self.results['date_continuity'] = continuity
        return continuity

    def check_incomplete_dates(self) -> List:
        """Dates on which not every expected entity has a row."""
        date_col, entity_col = self.config['date_col'], self.config['entity_col']
        expected = set(tradable_entities(self.config)) | set(self.config['benchmark_entities'])
        subset = self.df[self.df[entity_col].isin(expected)]
        per_date = subset.groupby(pd.to_datetime(subset[date_col]))[entity_col].nunique()
        incomplete = sorted(per_date[per_date < len(expected)].index)

        self.results['incomplete_dates'] = {
            'passed': not incomplete,
            'count': len(incomplete),
            'dates': incomplete
        }
        if incomplete:
            logger.warning(f"{len(incomplete)} dates are missing at least one entity")
        return incomplete


def validate_input(df: pd.DataFrame, config: Optional[Dict] = None) -> Dict:
    """Validate a raw panel; raises DataValidationError on fatal problems."""
    return InputDataValidator(df, config).validate_all()
