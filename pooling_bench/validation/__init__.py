"""Input data validation for Pooling Bench.

Checks input data quality:
- Required columns and entities
- Duplicate keys and missing values
- Outliers and calendar gaps
"""

from pooling_bench.validation.input_validator import InputDataValidator

__all__ = ['InputDataValidator']
