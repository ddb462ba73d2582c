"""
Statistical Forecasting Engine

Deterministic cost forecasts over daily totals. Three mutually exclusive
models are selected through ForecastModel and dispatched from forecast():

- linear: ordinary least squares over the day index, extrapolated forward
- movingAverage: mean of the trailing 7 days
- weightedMovingAverage: recency-weighted mean of the trailing 7 days,
  left-padded with the mean when fewer days exist

Each model returns the same flat prediction shape, so rollups and
persistence do not care which one produced the numbers.
"""

import math
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import structlog

from app.schemas.costs import CostRecord, DailyPrediction, RollupPrediction
from app.shared.core.exceptions import InsufficientHistoryError, UnknownModelError, ValidationError

logger = structlog.get_logger()

WINDOW = 7
# Oldest -> newest
WMA_WEIGHTS = np.array([0.05, 0.10, 0.10, 0.15, 0.15, 0.20, 0.25])
# Heuristic band scale for the linear model, not a calibrated interval
LINEAR_CI_SCALE = 0.1


class ForecastModel(str, Enum):
    LINEAR = "linear"
    MOVING_AVERAGE = "movingAverage"
    WEIGHTED_MOVING_AVERAGE = "weightedMovingAverage"

    @property
    def tag(self) -> str:
        return _MODEL_TAGS[self]

    @classmethod
    def parse(cls, value: Union[str, "ForecastModel"]) -> "ForecastModel":
        if isinstance(value, cls):
            return value
        wanted = str(value).replace("_", "").replace("-", "").lower()
        for model in cls:
            if wanted in (model.value.lower(), model.tag.lower()):
                return model
        raise UnknownModelError(str(value))


_MODEL_TAGS = {
    ForecastModel.LINEAR: "LinearRegression",
    ForecastModel.MOVING_AVERAGE: "MovingAverage",
    ForecastModel.WEIGHTED_MOVING_AVERAGE: "WeightedMovingAverage",
}

# Minimum number of daily points each model can work with on its own
MODEL_MIN_HISTORY: Dict[ForecastModel, int] = {
    ForecastModel.LINEAR: WINDOW,
    ForecastModel.MOVING_AVERAGE: WINDOW,
    ForecastModel.WEIGHTED_MOVING_AVERAGE: 1,
}


@dataclass(frozen=True)
class RegressionFit:
    slope: float
    intercept: float
    r2: float

    def predict(self, x: float) -> float:
        return self.slope * x + self.intercept


def daily_totals(history: Sequence[CostRecord]) -> pd.Series:
    """
    Sums records per calendar day, oldest first.
    Days without records are absent, not zero.
    """
    if not history:
        return pd.Series(dtype=float)

    df = pd.DataFrame([{"ds": r.date, "y": float(r.amount)} for r in history])
    df["ds"] = pd.to_datetime(df["ds"])
    return df.groupby("ds")["y"].sum().sort_index()


def linear_regression(x: Sequence[float], y: Sequence[float]) -> RegressionFit:
    """
    Ordinary least squares fit of y = slope * x + intercept.

    R² is explained over total variation, 1.0 for a flat series,
    and clamped to [0, 1].
    """
    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    if xs.size == 0 or xs.size != ys.size:
        raise ValidationError("Regression needs two equally sized, non-empty series")

    x_mean = xs.mean()
    y_mean = ys.mean()
    denominator = float(((xs - x_mean) ** 2).sum())
    slope = float(((xs - x_mean) * (ys - y_mean)).sum() / denominator) if denominator else 0.0
    intercept = float(y_mean - slope * x_mean)

    total = float(((ys - y_mean) ** 2).sum())
    if total == 0:
        r2 = 1.0
    else:
        fitted = slope * xs + intercept
        explained = float(((fitted - y_mean) ** 2).sum())
        r2 = min(max(explained / total, 0.0), 1.0)

    return RegressionFit(slope=slope, intercept=intercept, r2=r2)


def _linear(series: pd.Series, horizon: int) -> Tuple[List[float], List[float]]:
    day_index = (series.index - series.index[0]).days.to_numpy(dtype=float)
    values = series.to_numpy(dtype=float)
    fit = linear_regression(day_index, values)

    ci = math.sqrt(1.0 - fit.r2) * float(values.max()) * LINEAR_CI_SCALE
    last = day_index[-1]
    amounts = [fit.predict(last + step) for step in range(1, horizon + 1)]
    return amounts, [ci] * horizon


def _moving_average(series: pd.Series, horizon: int) -> Tuple[List[float], List[float]]:
    window = series.to_numpy(dtype=float)[-WINDOW:]
    mean = float(window.mean())
    ci = float(window.std(ddof=1)) if window.size > 1 else 0.0
    return [mean] * horizon, [ci] * horizon


def _weighted_moving_average(series: pd.Series, horizon: int) -> Tuple[List[float], List[float]]:
    window = series.to_numpy(dtype=float)[-WINDOW:]
    if window.size < WINDOW:
        padding = np.full(WINDOW - window.size, window.mean())
        window = np.concatenate([padding, window])

    weights = WMA_WEIGHTS / WMA_WEIGHTS.sum()
    value = float(np.dot(window, weights))
    ci = float(np.sqrt(((window - value) ** 2).mean()))
    return [value] * horizon, [ci] * horizon


_DISPATCH: Dict[ForecastModel, Callable[[pd.Series, int], Tuple[List[float], List[float]]]] = {
    ForecastModel.LINEAR: _linear,
    ForecastModel.MOVING_AVERAGE: _moving_average,
    ForecastModel.WEIGHTED_MOVING_AVERAGE: _weighted_moving_average,
}


def _clamp(value: float) -> float:
    if math.isnan(value) or value < 0:
        return 0.0
    return value


def forecast(
    model: Union[str, ForecastModel],
    history: Sequence[CostRecord],
    horizon: int,
    as_of: Optional[date] = None
) -> List[DailyPrediction]:
    """
    Predicts one amount per day for as_of+1 .. as_of+horizon.

    Raises UnknownModelError for an unrecognized model, ValidationError for a
    non-positive horizon and InsufficientHistoryError when the model's minimum
    number of daily points is not met.
    """
    selected = ForecastModel.parse(model)
    if isinstance(horizon, bool) or not isinstance(horizon, int) or horizon <= 0:
        raise ValidationError("Forecast horizon must be a positive number of days", details={"horizon": horizon})

    series = daily_totals(history)
    required = MODEL_MIN_HISTORY[selected]
    if len(series) < required:
        raise InsufficientHistoryError(required=required, available=len(series))

    amounts, intervals = _DISPATCH[selected](series, horizon)
    start = as_of or date.today()

    predictions = [
        DailyPrediction(
            predicted_date=start + timedelta(days=step + 1),
            predicted_amount=_clamp(amount),
            confidence_interval=_clamp(ci),
            model=selected.tag,
            prediction_period="daily"
        )
        for step, (amount, ci) in enumerate(zip(amounts, intervals))
    ]

    logger.info(
        "forecast_generated",
        model=selected.tag,
        history_points=len(series),
        horizon=horizon
    )
    return predictions


def _rollup(chunk: Sequence[DailyPrediction], period: str, prediction_period: str) -> RollupPrediction:
    return RollupPrediction(
        period=period,
        start_date=chunk[0].predicted_date,
        end_date=chunk[-1].predicted_date,
        predicted_amount=sum(p.predicted_amount for p in chunk),
        confidence_interval=sum(p.confidence_interval for p in chunk) / len(chunk),
        model=chunk[0].model,
        prediction_period=prediction_period
    )


def weekly_rollup(daily: Sequence[DailyPrediction]) -> List[RollupPrediction]:
    """Consecutive 7-day chunks in date order; the last chunk may be shorter."""
    ordered = sorted(daily, key=lambda p: p.predicted_date)
    return [
        _rollup(ordered[i:i + WINDOW], f"Week {i // WINDOW + 1}", "weekly")
        for i in range(0, len(ordered), WINDOW)
    ]


def monthly_rollup(daily: Sequence[DailyPrediction]) -> RollupPrediction:
    """Single rollup over the whole horizon."""
    if not daily:
        raise ValidationError("Cannot roll up an empty forecast")
    ordered = sorted(daily, key=lambda p: p.predicted_date)
    return _rollup(ordered, f"Next {len(ordered)} Days", "monthly")
