"""Pooling Bench - compare No-, Partial- and Complete-Pooling regressions.

Fits per-entity, hierarchical and pooled regression models over a panel of
entities, evaluates them with contiguous date-block cross-validation and
summarizes the metrics per paradigm.
"""

__version__ = '0.1.0'
