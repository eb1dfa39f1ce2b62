"""Data preparation for the pooling fitters.

Gap filling per entity, benchmark attachment and train-fitted standardization.
"""

from pooling_bench.features import preparation

__all__ = ['preparation']
