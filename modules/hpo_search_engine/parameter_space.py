"""
Space-filling hyperparameter sampling.

Building a sample is a three-step affair:

    space = ParameterSpace.from_config(ranges)    # declare
    space = space.resolve(n_features=X.shape[1])  # finalize data-dependent bounds
    configs = space.sample(size=20, seed=234)     # Latin-hypercube style draw

Each parameter's unit interval is cut into ``size`` equal-probability
strata; every stratum is used exactly once per parameter, in an
independent random order, with a uniform jitter inside the stratum. The
joint sample is not a grid, but every marginal is evenly covered.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from utils.exceptions import ConfigurationError
from utils import constants


@dataclass(frozen=True)
class Configuration:
    """One immutable assignment of values to every tuned parameter."""
    config_id: int
    params: Tuple[Tuple[str, Any], ...]

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.params)

    @property
    def label(self) -> str:
        return f"Config{self.config_id:03d}"


@dataclass(frozen=True)
class ParameterRange:
    name: str
    kind: str
    low: Optional[float] = None
    high: Optional[Union[float, str]] = None
    transform: Optional[str] = None
    choices: Tuple[Any, ...] = field(default_factory=tuple)

    KINDS = ('continuous', 'integer', 'categorical')

    @classmethod
    def from_mapping(cls, name: str, entry: Mapping[str, Any]) -> "ParameterRange":
        kind = entry.get('kind')
        if kind not in cls.KINDS:
            raise ConfigurationError(f"Unknown range kind {kind!r} (expected one of {cls.KINDS})",
                                     stage="sampler", key=name)

        if kind == 'categorical':
            choices = tuple(entry.get('choices') or ())
            if not choices:
                raise ConfigurationError("Categorical range needs a non-empty 'choices' list",
                                         stage="sampler", key=name)
            return cls(name=name, kind=kind, choices=choices)

        if 'low' not in entry or 'high' not in entry:
            raise ConfigurationError("Numeric range needs both 'low' and 'high'", stage="sampler", key=name)

        transform = entry.get('transform')
        if transform not in (None, 'log10'):
            raise ConfigurationError(f"Unknown transform {transform!r}", stage="sampler", key=name)
        if transform and kind != 'continuous':
            raise ConfigurationError("Only continuous ranges accept a transform", stage="sampler", key=name)

        high = entry['high']
        if high == constants.N_FEATURES_TOKEN and kind != 'integer':
            raise ConfigurationError(f"Only integer ranges may use '{constants.N_FEATURES_TOKEN}'",
                                     stage="sampler", key=name)

        prange = cls(name=name, kind=kind, low=entry['low'], high=high, transform=transform)
        if prange.is_resolved:
            prange._check_bounds()
        return prange

    @property
    def is_resolved(self) -> bool:
        return self.high != constants.N_FEATURES_TOKEN

    def resolve(self, n_features: int) -> "ParameterRange":
        if self.is_resolved:
            return self
        if n_features < 1:
            raise ConfigurationError(f"Cannot resolve upper bound: training data has {n_features} usable features",
                                     stage="sampler", key=self.name)
        resolved = ParameterRange(name=self.name, kind=self.kind, low=self.low, high=int(n_features))
        resolved._check_bounds()
        return resolved

    def _check_bounds(self) -> None:
        if self.low > self.high:
            raise ConfigurationError(f"low ({self.low}) exceeds high ({self.high})", stage="sampler", key=self.name)
        if self.kind == 'integer' and (int(self.low) != self.low or int(self.high) != self.high):
            raise ConfigurationError("Integer range bounds must be whole numbers", stage="sampler", key=self.name)

    def from_unit(self, u: np.ndarray) -> List[Any]:
        """Map unit-interval draws onto this parameter's values."""
        if self.kind == 'categorical':
            idx = np.minimum((u * len(self.choices)).astype(int), len(self.choices) - 1)
            return [self.choices[i] for i in idx]

        if self.kind == 'integer':
            width = int(self.high) - int(self.low) + 1
            values = int(self.low) + np.minimum(np.floor(u * width), width - 1).astype(int)
            return [int(v) for v in values]

        values = self.low + u * (self.high - self.low)
        if self.transform == 'log10':
            values = np.power(10.0, values)
        return [float(v) for v in values]


class ParameterSpace:
    """Ordered collection of parameter ranges; order fixes the random stream."""

    def __init__(self, ranges: List[ParameterRange]):
        if not ranges:
            raise ConfigurationError("At least one hyperparameter range must be declared", stage="sampler")
        names = [r.name for r in ranges]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate parameter names in {names}", stage="sampler")
        self.ranges = list(ranges)

    @classmethod
    def from_config(cls, ranges: Mapping[str, Mapping[str, Any]]) -> "ParameterSpace":
        return cls([ParameterRange.from_mapping(name, entry) for name, entry in ranges.items()])

    @property
    def names(self) -> List[str]:
        return [r.name for r in self.ranges]

    @property
    def is_resolved(self) -> bool:
        return all(r.is_resolved for r in self.ranges)

    def resolve(self, n_features: int) -> "ParameterSpace":
        """Finalize data-dependent bounds against the training feature count."""
        return ParameterSpace([r.resolve(n_features) for r in self.ranges])

    def sample(self, size: int, seed: int = constants.DEFAULT_SAMPLER_SEED) -> List[Configuration]:
        if size < 1:
            raise ConfigurationError(f"Sample size must be >= 1, got {size}", stage="sampler", key=size)
        unresolved = [r.name for r in self.ranges if not r.is_resolved]
        if unresolved:
            raise ConfigurationError(f"Unresolved data-dependent parameters: {unresolved}",
                                     stage="sampler", key=unresolved[0])

        rng = np.random.default_rng(seed)
        columns = {}
        for prange in self.ranges:
            strata = rng.permutation(size)
            u = (strata + rng.uniform(size=size)) / size
            columns[prange.name] = prange.from_unit(u)

        return [
            Configuration(config_id=i + 1, params=tuple((name, columns[name][i]) for name in self.names))
            for i in range(size)
        ]


def sample_configurations(ranges: Mapping[str, Mapping[str, Any]], size: int,
                          seed: int = constants.DEFAULT_SAMPLER_SEED,
                          n_features: Optional[int] = None) -> List[Configuration]:
    """Declare, resolve (when ``n_features`` is given) and sample in one call."""
    space = ParameterSpace.from_config(ranges)
    if n_features is not None:
        space = space.resolve(n_features)
    return space.sample(size, seed)


def configurations_to_frame(configs: List[Configuration]) -> pd.DataFrame:
    return pd.DataFrame([{'config_id': c.config_id, **c.as_dict()} for c in configs])
