import inspect
from typing import Dict, Any, List, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import GradientBoostingClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, StandardScaler


class ModelFactory:
    """
    Factory for the boosted-tree classifier behind a unified fit/predict interface.

    Every model is returned as a two-step ``Pipeline``: a preprocessor
    (one-hot encoding for categorical columns, standardisation for numeric
    ones) followed by the classifier. Fitting the pipeline on a slice fits
    the preprocessing on that slice only, so validation and test rows are
    transformed with statistics learned from training rows.
    """

    CLASSIFIERS = {
        'GradientBoostingClassifier': GradientBoostingClassifier,
    }

    @classmethod
    def create(cls, model_name: str, params: Optional[Dict[str, Any]] = None,
               categorical_features: Sequence[str] = (),
               numeric_features: Sequence[str] = ()) -> Pipeline:
        """
        Create an unfitted preprocessing + classifier pipeline.
        """
        if params is None:
            params = {}

        if model_name not in cls.CLASSIFIERS:
            raise ValueError(f"Unknown model name: {model_name}. Available: {cls.get_available_models()}")

        model_class = cls.CLASSIFIERS[model_name]
        estimator = model_class(**cls._filter_params(model_class, params))

        return Pipeline([
            ('preprocess', cls.build_preprocessor(categorical_features, numeric_features)),
            ('model', estimator),
        ])

    @staticmethod
    def build_preprocessor(categorical_features: Sequence[str], numeric_features: Sequence[str]) -> ColumnTransformer:
        transformers = []
        if numeric_features:
            transformers.append(('numeric', StandardScaler(), list(numeric_features)))
        if categorical_features:
            transformers.append((
                'categorical',
                OneHotEncoder(handle_unknown='ignore', sparse_output=False),
                list(categorical_features),
            ))
        return ColumnTransformer(transformers, remainder='drop')

    @classmethod
    def get_available_models(cls) -> List[str]:
        """Return list of all supported model names."""
        return list(cls.CLASSIFIERS.keys())

    @classmethod
    def accepted_params(cls, model_name: str) -> List[str]:
        """Constructor keyword names of a registered classifier."""
        if model_name not in cls.CLASSIFIERS:
            raise ValueError(f"Unknown model name: {model_name}. Available: {cls.get_available_models()}")
        return cls._constructor_keys(cls.CLASSIFIERS[model_name])

    @staticmethod
    def _constructor_keys(model_class) -> List[str]:
        sig = inspect.signature(model_class.__init__)
        return [
            p.name for p in sig.parameters.values()
            if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY) and p.name != 'self'
        ]

    @classmethod
    def _filter_params(cls, model_class, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Remove parameters from `params` that are not accepted by `model_class` constructor.

        Only fixed parameters rely on this; tuned ranges are checked against
        ``accepted_params`` before sampling.
        """
        sig = inspect.signature(model_class.__init__)
        has_kwargs = any(p.kind == p.VAR_KEYWORD for p in sig.parameters.values())
        if has_kwargs:
            return params

        valid_keys = cls._constructor_keys(model_class)
        return {k: v for k, v in params.items() if k in valid_keys}


def split_feature_types(X: pd.DataFrame, categorical: Optional[Sequence[str]] = None):
    """
    Partition feature columns into (categorical, numeric).

    Declared categorical columns win; otherwise any non-numeric column is
    treated as categorical.
    """
    if categorical is None:
        categorical = [c for c in X.columns
                       if not pd.api.types.is_numeric_dtype(X[c]) or pd.api.types.is_bool_dtype(X[c])]
    categorical = [c for c in X.columns if c in set(categorical)]
    numeric = [c for c in X.columns if c not in set(categorical)]
    return categorical, numeric


def predict_scores(model: Pipeline, X: pd.DataFrame, positive_label: Any = 1) -> np.ndarray:
    """Per-row probability of ``positive_label`` in [0, 1]."""
    classes = list(model.classes_)
    if positive_label not in classes:
        raise ValueError(f"Positive label {positive_label!r} was not seen during fit (classes: {classes})")
    return model.predict_proba(X)[:, classes.index(positive_label)]
