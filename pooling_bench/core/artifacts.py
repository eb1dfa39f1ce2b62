"""Fit artifacts, fit outcomes and model collections.

A ModelArtifact is a closed tagged variant: its ArtifactKind is fixed when the
artifact is built, and the combiner and predictor dispatch on that tag rather
than on the class of the underlying statistics-library result.
"""

from collections.abc import Mapping as MappingABC
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

import numpy as np
import pandas as pd


class ArtifactKind(Enum):
    """Every kind of fit artifact the engine knows how to combine and predict."""

    OLS = 'ols'
    ROBUST = 'robust'
    GLM = 'glm'
    BAYESIAN_HIERARCHICAL = 'bayesian_hierarchical'
    BAYESIAN_POOLED = 'bayesian_pooled'
    MIXED_EFFECTS = 'mixed_effects'
    RAW_COEFFICIENT = 'raw_coefficient'
    BUNDLE = 'bundle'


class ModelArtifact:
    """A successfully fitted model.

    Attributes:
        kind: ArtifactKind tag
        coefficients: pd.Series of point estimates ('const' first, then features)
        covariance: pd.DataFrame of coefficient (co)variances, or None
        std_errors: pd.Series of standard errors
        n_obs: Number of observations backing the fit
        feature_names: Feature columns the fit expects at prediction time
        diagnostics: Opaque dict of fit diagnostics
        fitted: Opaque library result object (statsmodels results, InferenceData)
        members: Named sub-artifacts (BUNDLE only)
        group_effects: Posterior-mean random intercepts per grouping level
                       (BAYESIAN_HIERARCHICAL only), e.g. {"benchmark_group": Series}
    """

    def __init__(self,
                 kind: ArtifactKind,
                 coefficients: Optional[pd.Series] = None,
                 covariance: Optional[pd.DataFrame] = None,
                 n_obs: int = 0,
                 feature_names: Optional[List[str]] = None,
                 diagnostics: Optional[Dict[str, Any]] = None,
                 fitted: Any = None,
                 std_errors: Optional[pd.Series] = None,
                 members: Optional[Dict[str, 'ModelArtifact']] = None,
                 group_effects: Optional[Dict[str, pd.Series]] = None):
        if not isinstance(kind, ArtifactKind):
            raise TypeError(f"kind must be an ArtifactKind, got {kind!r}")

        self.kind = kind
        self.coefficients = coefficients
        self.covariance = covariance
        self.n_obs = int(n_obs)
        self.feature_names = list(feature_names or [])
        self.diagnostics = dict(diagnostics or {})
        self.fitted = fitted
        self.members = dict(members or {})
        self.group_effects = dict(group_effects or {})

        if std_errors is None and covariance is not None:
            std_errors = pd.Series(
                np.sqrt(np.clip(np.diag(covariance.values), 0, None)),
                index=covariance.index
            )
        self.std_errors = std_errors

    @classmethod
    def raw_coefficients(cls,
                         coefficients: pd.Series,
                         covariance: pd.DataFrame,
                         n_obs: int,
                         feature_names: List[str],
                         diagnostics: Optional[Dict[str, Any]] = None,
                         std_errors: Optional[pd.Series] = None) -> 'ModelArtifact':
        """Build a generic {coefficients, covariance} artifact for fixed-effect pooling."""
        return cls(
            ArtifactKind.RAW_COEFFICIENT,
            coefficients=coefficients,
            covariance=covariance,
            n_obs=n_obs,
            feature_names=feature_names,
            diagnostics=diagnostics,
            std_errors=std_errors
        )

    @classmethod
    def bundle(cls, members: Dict[str, 'ModelArtifact']) -> 'ModelArtifact':
        """Bundle several named single-fit artifacts into one artifact."""
        if not members:
            raise ValueError("A bundle needs at least one member artifact")
        return cls(
            ArtifactKind.BUNDLE,
            n_obs=max(m.n_obs for m in members.values()),
            members=members
        )

    def to_raw_coefficients(self) -> 'ModelArtifact':
        """Reduce a coefficient-bearing artifact to a RAW_COEFFICIENT artifact."""
        if self.coefficients is None or self.covariance is None:
            raise ValueError(f"{self.kind.value} artifact carries no coefficient covariance")
        return ModelArtifact.raw_coefficients(
            coefficients=self.coefficients.copy(),
            covariance=self.covariance.copy(),
            n_obs=self.n_obs,
            feature_names=self.feature_names,
            diagnostics={'source_kind': self.kind.value}
        )

    def __repr__(self) -> str:
        if self.kind is ArtifactKind.BUNDLE:
            return f"ModelArtifact(kind=bundle, members={sorted(self.members)})"
        return (f"ModelArtifact(kind={self.kind.value}, n_obs={self.n_obs}, "
                f"features={self.feature_names})")


class FitOutcome:
    """Explicit success/failure value returned by one unit of work.

    Exactly one of ``value`` and ``error`` is set. ``value`` is usually a
    ModelArtifact but fold runs reuse the type for their result dicts.
    """

    def __init__(self, value: Any = None, error: Optional[BaseException] = None,
                 label: str = ''):
        if (value is None) == (error is None):
            raise ValueError("FitOutcome needs exactly one of value or error")
        self.value = value
        self.error = error
        self.label = label

    @classmethod
    def success(cls, value: Any, label: str = '') -> 'FitOutcome':
        return cls(value=value, label=label)

    @classmethod
    def failure(cls, error: BaseException, label: str = '') -> 'FitOutcome':
        return cls(error=error, label=label)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def artifact(self) -> Optional[ModelArtifact]:
        return self.value

    def describe_error(self) -> str:
        if self.error is None:
            return ''
        return f"{type(self.error).__name__}: {self.error}"

    def __repr__(self) -> str:
        state = 'ok' if self.ok else f'failed ({self.describe_error()})'
        return f"FitOutcome({self.label!r}, {state})"


def attempt(fn: Callable, *args, label: str = '', **kwargs) -> FitOutcome:
    """Run one unit of work and turn its result or exception into a FitOutcome."""
    try:
        value = fn(*args, **kwargs)
    except Exception as e:
        return FitOutcome.failure(e, label=label)
    if value is None:
        return FitOutcome.failure(ValueError("fit function returned no result"), label=label)
    return FitOutcome.success(value, label=label)


class ModelCollection(MappingABC):
    """Read-only mapping of result name -> ModelArtifact (or None when the fit failed).

    Built once per fitter invocation and never mutated afterwards.
    """

    def __init__(self, name: str, artifacts: Mapping[str, Optional[ModelArtifact]]):
        self.name = name
        self._artifacts = MappingProxyType(dict(artifacts))

    def __getitem__(self, key: str) -> Optional[ModelArtifact]:
        return self._artifacts[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._artifacts)

    def __len__(self) -> int:
        return len(self._artifacts)

    def present(self) -> Dict[str, ModelArtifact]:
        """Entries whose fit succeeded."""
        return {k: v for k, v in self._artifacts.items() if v is not None}

    def absent(self) -> List[str]:
        """Names of entries whose fit failed."""
        return [k for k, v in self._artifacts.items() if v is None]

    def __repr__(self) -> str:
        return (f"ModelCollection({self.name!r}, present={sorted(self.present())}, "
                f"absent={self.absent()})")
