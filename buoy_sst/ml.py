"""
ml.py
ML for daily water temperature (wtmp) using wind, wave and air features.

- Stratified train/test split on the target (quartile strata)
- Stratified k-fold cross-validation on the training set only
- Regular-grid tuning per strategy, ranked by mean RMSE
- Winner refit on the full training set and scored once on the test set
"""

import json
import math
import numbers
import os
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score
from sklearn.model_selection import StratifiedKFold, train_test_split

from buoy_sst import config
from buoy_sst.errors import (
    AllStrategiesFailedError,
    InvalidFoldCountError,
    InvalidFractionError,
    StrategyFitError,
)
from buoy_sst.strategies import RegressionStrategy, default_strategies, feature_importance

DATE_COL = "date"
METRICS = ["rmse", "rsq", "mae"]


@dataclass
class Fold:
    fold_id: int
    analysis: pd.Index
    assessment: pd.Index


@dataclass
class CVResult:
    mean: Dict[str, float]
    std: Dict[str, float]
    n_ok: int
    n_failed: int
    fold_metrics: List[Dict[str, float]] = field(default_factory=list)


@dataclass
class ModelResult:
    name: str
    best_params: Dict[str, Any]
    cv: CVResult
    test_metrics: Optional[Dict[str, float]] = None
    grid_results: List[Tuple[Dict[str, Any], CVResult]] = field(default_factory=list, repr=False)
    strategy: Optional[RegressionStrategy] = field(default=None, repr=False)
    feature_importance: Optional[pd.DataFrame] = field(default=None, repr=False)

    @property
    def rmse(self) -> float:
        return self.cv.mean["rmse"]


@dataclass
class Comparison:
    ranked: List[ModelResult]
    best: ModelResult
    test_metrics: Dict[str, float]
    leaderboard: pd.DataFrame
    predictions: pd.DataFrame
    n_train: int
    n_test: int


def rmse(y_true, y_pred) -> float:
    return math.sqrt(mean_squared_error(y_true, y_pred))

def evaluate(y_true: np.ndarray, y_pred: np.ndarray) -> Dict[str, float]:
    return {
        "rmse": rmse(y_true, y_pred),
        "rsq": r2_score(y_true, y_pred),
        "mae": mean_absolute_error(y_true, y_pred),
    }


def strata_bins(values, breaks: int = config.STRATA_BREAKS, min_count: int = 2) -> np.ndarray:
    """Quantile bins of a numeric target, coarsened until every bin has min_count rows.

    Falls back to a single stratum (plain random sampling) for tiny inputs.
    """
    values = pd.Series(values).reset_index(drop=True).astype(float)
    if values.nunique() < 2:
        return np.zeros(len(values), dtype=int)
    for n_bins in range(breaks, 1, -1):
        bins = pd.qcut(values, q=n_bins, labels=False, duplicates="drop")
        counts = bins.value_counts()
        if len(counts) > 1 and counts.min() >= min_count:
            return bins.to_numpy(dtype=int)
    return np.zeros(len(values), dtype=int)


def split(data: pd.DataFrame,
          train_fraction: float = config.TRAIN_FRACTION,
          strata_field: str = config.TARGET,
          seed: int = config.SEED) -> Tuple[pd.DataFrame, pd.DataFrame]:
    if not (isinstance(train_fraction, numbers.Real) and 0 < train_fraction < 1):
        raise InvalidFractionError(train_fraction)
    n = len(data)
    n_train = int(math.floor(train_fraction * n))
    n_test = n - n_train
    if n_train < 1 or n_test < 1:
        raise ValueError(f"cannot split {n} rows with train_fraction={train_fraction}")

    breaks = min(config.STRATA_BREAKS, n_train, n_test)
    strata = strata_bins(data[strata_field], breaks=breaks, min_count=2)
    train_idx, test_idx = train_test_split(
        data.index,
        train_size=n_train,
        random_state=seed,
        stratify=strata if len(np.unique(strata)) > 1 else None,
    )
    return data.loc[train_idx].sort_index(), data.loc[test_idx].sort_index()


def make_folds(train: pd.DataFrame,
               k: int = config.N_FOLDS,
               strata_field: str = config.TARGET,
               seed: int = config.SEED) -> List[Fold]:
    n = len(train)
    if not isinstance(k, (int, np.integer)) or isinstance(k, bool) or k < 2 or k > n:
        raise InvalidFoldCountError(k, n)

    strata = strata_bins(train[strata_field], min_count=k)
    skf = StratifiedKFold(n_splits=k, shuffle=True, random_state=seed)
    return [
        Fold(i, train.index[analysis], train.index[assessment])
        for i, (analysis, assessment) in enumerate(skf.split(np.zeros(n), strata), start=1)
    ]


def summarize_folds(fold_metrics: List[Dict[str, float]], n_failed: int) -> CVResult:
    if not fold_metrics:
        nan = dict.fromkeys(METRICS, float("nan"))
        return CVResult(mean=nan, std=dict(nan), n_ok=0, n_failed=n_failed)
    table = pd.DataFrame(fold_metrics, columns=METRICS)
    return CVResult(
        mean=table.mean().to_dict(),
        std=table.std().to_dict(),
        n_ok=len(table),
        n_failed=n_failed,
        fold_metrics=fold_metrics,
    )


def cross_validate(strategy: RegressionStrategy,
                   data: pd.DataFrame,
                   folds: Sequence[Fold],
                   target: str = config.TARGET,
                   params: Optional[Dict[str, Any]] = None) -> CVResult:
    """Fit on each fold's analysis rows, score on its assessment rows.

    A fold whose fit or prediction fails is counted and left out of the mean.
    """
    params = params or {}
    fold_metrics, n_failed = [], 0
    for fold in folds:
        analysis = data.loc[fold.analysis]
        assessment = data.loc[fold.assessment]
        try:
            predictor = strategy.fit(analysis, target, **params)
            y_pred = predictor.predict(assessment)
        except StrategyFitError:
            n_failed += 1
            continue
        fold_metrics.append(evaluate(assessment[target].to_numpy(dtype=float), y_pred))
    return summarize_folds(fold_metrics, n_failed)


def tune(strategy: RegressionStrategy,
         data: pd.DataFrame,
         folds: Sequence[Fold],
         target: str = config.TARGET,
         grid: Optional[Dict[str, list]] = None,
         n_jobs: Optional[int] = 1) -> Optional[ModelResult]:
    """Cross-validate every grid point; keep the one with the lowest mean RMSE.

    Returns None (with a warning) when no grid point has a single usable fold.
    """
    points = strategy.grid_points(grid)
    cv_results = Parallel(n_jobs=n_jobs)(
        delayed(cross_validate)(strategy, data, folds, target, p) for p in points
    )
    usable = [(p, cv) for p, cv in zip(points, cv_results) if cv.n_ok > 0]
    if not usable:
        warnings.warn(
            f"{strategy.name}: every fold failed at every grid point; excluded from ranking",
            UserWarning,
        )
        return None

    best_params, best_cv = min(usable, key=lambda pc: pc[1].mean["rmse"])
    return ModelResult(
        name=strategy.name,
        best_params=best_params,
        cv=best_cv,
        grid_results=list(zip(points, cv_results)),
        strategy=strategy,
    )


def _mean_rmse(item) -> float:
    if isinstance(item, ModelResult):
        return item.cv.mean["rmse"]
    _, cv = item
    return cv.mean["rmse"]


def rank(results):
    """Sort by mean cross-validated RMSE, ascending; ties keep input order.

    Items are ModelResults or (name, CVResult) pairs. Entries without a
    finite RMSE are left out.
    """
    usable = [r for r in results if np.isfinite(_mean_rmse(r))]
    if not usable:
        raise AllStrategiesFailedError()
    return sorted(usable, key=_mean_rmse)


def final_report(strategy: RegressionStrategy,
                 train: pd.DataFrame,
                 test: pd.DataFrame,
                 target: str = config.TARGET,
                 params: Optional[Dict[str, Any]] = None,
                 return_predictions: bool = False):
    """Refit on the whole training set and score once on the held-out test set.

    With return_predictions, also returns the test predictions and the refit predictor.
    """
    predictor = strategy.fit(train, target, **(params or {}))
    y_pred = predictor.predict(test)
    metrics = evaluate(test[target].to_numpy(dtype=float), y_pred)
    if return_predictions:
        return metrics, y_pred, predictor
    return metrics


def leaderboard(ranked: Sequence[ModelResult]) -> pd.DataFrame:
    rows = []
    for r in ranked:
        row = {"model": r.name}
        for m in METRICS:
            row[f"{m}_mean"] = r.cv.mean[m]
            row[f"{m}_std"] = r.cv.std[m]
        row["n_folds_ok"] = r.cv.n_ok
        row["n_folds_failed"] = r.cv.n_failed
        row["best_params"] = json.dumps(r.best_params)
        rows.append(row)
    return pd.DataFrame(rows)


def compare_strategies(data: pd.DataFrame,
                       strategies: Optional[Sequence[RegressionStrategy]] = None,
                       target: str = config.TARGET,
                       train_fraction: float = config.TRAIN_FRACTION,
                       n_folds: int = config.N_FOLDS,
                       seed: int = config.SEED,
                       grids: Optional[Dict[str, Dict[str, list]]] = None,
                       n_jobs: Optional[int] = 1,
                       verbose: bool = False) -> Comparison:
    strategies = default_strategies(random_state=seed) if strategies is None else list(strategies)
    grids = grids or {}

    train, test = split(data, train_fraction, target, seed)
    folds = make_folds(train, n_folds, target, seed)
    if verbose:
        print(f"[ML] Train: {len(train)} rows, test: {len(test)} rows, {len(folds)} folds")

    results: List[ModelResult] = []
    for strategy in strategies:
        result = tune(strategy, train, folds, target, grids.get(strategy.name), n_jobs)
        if result is None:
            continue
        if verbose:
            print(f"[CV] {result.name}: rmse={result.rmse:.4f} "
                  f"(failed folds: {result.cv.n_failed}) params={result.best_params}")
        results.append(result)

    ranked = rank(results)
    best = ranked[0]
    test_metrics, y_pred, predictor = final_report(
        best.strategy, train, test, target, best.best_params, return_predictions=True)
    best.test_metrics = test_metrics
    best.feature_importance = feature_importance(predictor)

    predictions = pd.DataFrame({
        DATE_COL: test[DATE_COL].values if DATE_COL in test.columns else test.index.values,
        "y_true": test[target].to_numpy(dtype=float),
        "y_pred": y_pred,
    })
    return Comparison(
        ranked=ranked,
        best=best,
        test_metrics=test_metrics,
        leaderboard=leaderboard(ranked),
        predictions=predictions,
        n_train=len(train),
        n_test=len(test),
    )


def run_ml(csv_path: str = config.DAILY_PATH,
           target_col: str = config.TARGET,
           save_dir: str = config.SAVE_DIR,
           random_state: int = config.SEED,
           n_jobs: Optional[int] = -1) -> Dict[str, Any]:

    os.makedirs(save_dir, exist_ok=True)

    df = pd.read_csv(csv_path)
    df[DATE_COL] = pd.to_datetime(df[DATE_COL])
    df = df.sort_values(DATE_COL).reset_index(drop=True)

    result = compare_strategies(df, target=target_col, seed=random_state,
                                n_jobs=n_jobs, verbose=True)
    best = result.best

    metrics_path = os.path.join(save_dir, f"metrics_{target_col}.csv")
    result.leaderboard.to_csv(metrics_path, index=False)

    test_path = os.path.join(save_dir, f"test_metrics_{target_col}.json")
    with open(test_path, "w") as f:
        json.dump({"model": best.name, "params": best.best_params, **result.test_metrics}, f, indent=2)

    preds_path = os.path.join(save_dir, f"preds_{best.name}_{target_col}.csv")
    result.predictions.to_csv(preds_path, index=False)

    if best.feature_importance is not None:
        fi_path = os.path.join(save_dir, f"importance_{best.name}_{target_col}.csv")
        best.feature_importance.to_csv(fi_path, index=False)
    else:
        fi_path = None

    print(f"\n=== Target: {target_col} ===")
    print(result.leaderboard.to_string(index=False))
    print(f"\nBest model: {best.name} {best.best_params}")
    print("Test set: " + ", ".join(f"{k}={v:.4f}" for k, v in result.test_metrics.items()))
    print(f"Saved metrics -> {metrics_path}")
    print(f"Saved test metrics -> {test_path}")
    print(f"Saved predictions -> {preds_path}")
    if fi_path:
        print(f"Saved importance -> {fi_path}")

    return {
        "target": target_col,
        "metrics_csv": metrics_path,
        "test_json": test_path,
        "preds_csv": preds_path,
        "importance_csv": fi_path,
        "leaderboard": result.leaderboard,
        "best_model": best.name,
        "test_metrics": result.test_metrics,
    }

def run_ols_significance(data: pd.DataFrame,
                         target_col: str = config.TARGET,
                         predictors: Optional[List[str]] = None):
    import statsmodels.api as sm
    predictors = list(predictors or config.PREDICTORS)
    df_ols = data.dropna(subset=predictors + [target_col]).reset_index(drop=True)
    X = sm.add_constant(df_ols[predictors].astype(float))
    y = df_ols[target_col].astype(float)
    return sm.OLS(y, X).fit()


def main():
    run_ml(config.DAILY_PATH, target_col=config.TARGET)
    print("\n[INFO] Running OLS significance test...\n")
    daily = pd.read_csv(config.DAILY_PATH)
    print(run_ols_significance(daily, target_col=config.TARGET).summary())


if __name__ == "__main__":
    main()
