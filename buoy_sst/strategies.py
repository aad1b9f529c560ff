"""
strategies.py
Regression strategies compared by the evaluation harness.

Every strategy builds a scikit-learn pipeline (scaler + model) from its
hyper-parameters. fit() returns a Predictor; the harness only ever talks
to fit / predict and the declared grid.
"""

import itertools
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from sklearn.dummy import DummyRegressor
from sklearn.ensemble import RandomForestRegressor
from sklearn.linear_model import LinearRegression
from sklearn.neighbors import KNeighborsRegressor
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import FunctionTransformer, StandardScaler

from buoy_sst import config
from buoy_sst.errors import StrategyFitError

FIT_ERRORS = (ValueError, np.linalg.LinAlgError, FloatingPointError)


def regular_grid(low, high, levels: int, integer: bool = True) -> list:
    """Evenly spaced candidates over [low, high]; integer grids are rounded and de-duplicated."""
    values = np.linspace(low, high, levels)
    if integer:
        return sorted({int(v) for v in np.round(values)})
    return values.tolist()


def column_powers(X, degree=1):
    """x, x^2, ..., x^degree for each column, no interaction terms."""
    X = np.asarray(X, dtype=float)
    return np.hstack([X ** p for p in range(1, int(degree) + 1)])


class Predictor:
    def __init__(self, name: str, params: Dict[str, Any], model: Pipeline, predictors: List[str]):
        self.name = name
        self.params = params
        self.model = model
        self.predictors = predictors

    def predict(self, rows: pd.DataFrame) -> np.ndarray:
        try:
            values = np.asarray(self.model.predict(rows[self.predictors]), dtype=float)
        except FIT_ERRORS as exc:
            raise StrategyFitError(self.name, self.params, exc) from exc
        if not np.all(np.isfinite(values)):
            raise StrategyFitError(self.name, self.params, "non-finite predictions")
        return values


class RegressionStrategy:
    name = "base"
    param_grid: Dict[str, list] = {}

    def __init__(self, predictors: Optional[List[str]] = None,
                 param_grid: Optional[Dict[str, list]] = None,
                 random_state: int = config.SEED):
        self.predictors = list(predictors or config.PREDICTORS)
        if param_grid is not None:
            self.param_grid = param_grid
        self.random_state = random_state

    def __repr__(self):
        return f"{type(self).__name__}(name={self.name!r})"

    def build(self, **params) -> Pipeline:
        raise NotImplementedError

    def grid_points(self, grid: Optional[Dict[str, list]] = None) -> List[Dict[str, Any]]:
        grid = self.param_grid if grid is None else grid
        if not grid:
            return [{}]
        names = list(grid)
        return [dict(zip(names, combo)) for combo in itertools.product(*(grid[n] for n in names))]

    def fit(self, rows: pd.DataFrame, target: str = config.TARGET, **params) -> Predictor:
        model = self.build(**params)
        try:
            model.fit(rows[self.predictors], rows[target].astype(float).to_numpy())
        except FIT_ERRORS as exc:
            raise StrategyFitError(self.name, params, exc) from exc
        return Predictor(self.name, params, model, self.predictors)


class LinearStrategy(RegressionStrategy):
    name = "linear"

    def build(self, **params):
        return Pipeline([("prep", StandardScaler()), ("model", LinearRegression())])


class KNNStrategy(RegressionStrategy):
    name = "knn"
    param_grid = {"n_neighbors": regular_grid(*config.KNN_NEIGHBORS)}

    def build(self, n_neighbors=5):
        return Pipeline([
            ("prep", StandardScaler()),
            ("model", KNeighborsRegressor(n_neighbors=int(n_neighbors))),
        ])


class PolynomialStrategy(RegressionStrategy):
    name = "polynomial"
    param_grid = {"degree": regular_grid(*config.POLY_DEGREE)}

    def build(self, degree=2):
        return Pipeline([
            ("prep", StandardScaler()),
            ("poly", FunctionTransformer(column_powers, kw_args={"degree": int(degree)})),
            ("model", LinearRegression()),
        ])


class RandomForestStrategy(RegressionStrategy):
    name = "random_forest"
    param_grid = {
        "max_features": regular_grid(*config.RF_MAX_FEATURES),
        "n_estimators": regular_grid(*config.RF_TREES),
        "min_samples_split": regular_grid(*config.RF_MIN_SPLIT),
    }

    def build(self, max_features=3, n_estimators=500, min_samples_split=2):
        return Pipeline([
            ("prep", StandardScaler()),
            ("model", RandomForestRegressor(
                max_features=int(max_features),
                n_estimators=int(n_estimators),
                min_samples_split=int(min_samples_split),
                random_state=self.random_state,
            )),
        ])


class MeanStrategy(RegressionStrategy):
    """Baseline: always predicts the training mean."""
    name = "mean"

    def build(self, **params):
        return Pipeline([("model", DummyRegressor(strategy="mean"))])


def default_strategies(random_state: int = config.SEED, include_baseline: bool = False) -> List[RegressionStrategy]:
    strategies = [
        LinearStrategy(),
        KNNStrategy(),
        PolynomialStrategy(),
        RandomForestStrategy(random_state=random_state),
    ]
    if include_baseline:
        strategies.append(MeanStrategy())
    return strategies


def feature_importance(predictor: Predictor) -> Optional[pd.DataFrame]:
    model = predictor.model.named_steps["model"]
    feat_names = predictor.predictors
    if hasattr(model, "feature_importances_"):
        return (
            pd.DataFrame({"feature": feat_names, "importance": model.feature_importances_})
              .sort_values("importance", ascending=False)
              .reset_index(drop=True)
        )
    coefs = getattr(model, "coef_", None)
    if coefs is not None and np.ravel(coefs).size == len(feat_names):
        df = pd.DataFrame({"feature": feat_names, "coefficient": np.ravel(coefs)})
        df["abs_coef_rank"] = df["coefficient"].abs().rank(ascending=False, method="dense")
        return df.sort_values("abs_coef_rank").reset_index(drop=True)
    return None
