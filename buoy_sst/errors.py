"""
errors.py
Error taxonomy for cleaning and model evaluation.

Row-level errors (malformed, timestamp) are recorded and the row dropped.
Configuration errors (fraction, fold count) are fatal.
Strategy fit errors only knock out one fold / grid cell.

Constructor arguments are kept in ``args`` so the errors survive copy and
pickle (pandas deep-copies ``DataFrame.attrs``, joblib pickles results).
"""


class BuoySSTError(Exception):
    pass


class MalformedRecordError(BuoySSTError, ValueError):
    def __init__(self, row, reason):
        super().__init__(row, reason)
        self.row = row
        self.reason = reason

    def __str__(self):
        return f"malformed record at row {self.row}: {self.reason}"


class InvalidTimestampError(BuoySSTError, ValueError):
    def __init__(self, row, parts):
        super().__init__(row, parts)
        self.row = row
        self.parts = parts

    def __str__(self):
        return f"invalid timestamp at row {self.row}: {self.parts}"


class InvalidFractionError(BuoySSTError, ValueError):
    def __init__(self, fraction):
        super().__init__(fraction)
        self.fraction = fraction

    def __str__(self):
        return f"train_fraction must be in (0, 1), got {self.fraction!r}"


class InvalidFoldCountError(BuoySSTError, ValueError):
    def __init__(self, k, n_rows):
        super().__init__(k, n_rows)
        self.k = k
        self.n_rows = n_rows

    def __str__(self):
        return f"need 2 <= k <= {self.n_rows} folds, got {self.k!r}"


class StrategyFitError(BuoySSTError, RuntimeError):
    def __init__(self, strategy, params, cause):
        super().__init__(strategy, params, cause)
        self.strategy = strategy
        self.params = params
        self.cause = cause

    def __str__(self):
        return f"{self.strategy} failed to fit with {self.params}: {self.cause}"


class AllStrategiesFailedError(BuoySSTError, RuntimeError):
    def __init__(self, message="no strategy produced a usable cross-validation result"):
        super().__init__(message)
