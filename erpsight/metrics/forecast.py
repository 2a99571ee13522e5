"""
Monthly sales forecast: 3/6-month moving averages plus an OLS trend line
extrapolated forward with a 95% prediction interval.
"""

from dataclasses import dataclass, field
import math
from typing import Optional

import numpy as np

from erpsight.metrics.timeseries import monthly_sales_totals
from erpsight.records.models import SalesRecord

DEFAULT_FORECAST_MONTHS = 3
FLAT_TREND_RATIO = 0.01      # |slope| below 1% of the intercept is flat
Z_95 = 1.96


@dataclass
class ForecastPoint:
    month: str
    actual: Optional[float] = None
    moving_avg3: Optional[float] = None
    moving_avg6: Optional[float] = None
    forecast: Optional[float] = None
    upper_bound: Optional[float] = None
    lower_bound: Optional[float] = None


@dataclass
class ForecastStats:
    slope: float = 0.0
    intercept: float = 0.0
    r2: float = 0.0
    trend: str = "flat"          # 'up', 'down', 'flat'
    avg_growth_rate: float = 0.0  # mean MoM %


@dataclass
class SalesForecast:
    points: list[ForecastPoint] = field(default_factory=list)
    stats: ForecastStats = field(default_factory=ForecastStats)


# ── Helpers ───────────────────────────────────────────────────────────────────

def moving_average(values: list[float], window: int) -> list[Optional[float]]:
    """Trailing simple moving average; None until the window is full."""
    if window <= 0:
        return [None] * len(values)
    return [
        sum(values[i - window + 1:i + 1]) / window if i >= window - 1 else None
        for i in range(len(values))
    ]


def linear_regression(values: list[float]) -> tuple[float, float, float]:
    """OLS of values on x = 0..n-1. Returns (slope, intercept, r²)."""
    n = len(values)
    if n == 0:
        return 0.0, 0.0, 0.0
    if n == 1:
        return 0.0, float(values[0]), 1.0
    y = np.array(values, dtype=float)
    x = np.arange(n, dtype=float)
    slope, intercept = np.polyfit(x, y, 1)
    predicted = slope * x + intercept
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    ss_res = float(np.sum((y - predicted) ** 2))
    r2 = 1.0 if ss_tot == 0 else 1 - ss_res / ss_tot
    return float(slope), float(intercept), r2


def residual_std(values: list[float], slope: float, intercept: float) -> float:
    """Residual standard error with n-2 degrees of freedom; 0 for two points or fewer."""
    n = len(values)
    if n <= 2:
        return 0.0
    residuals = np.array(values, dtype=float) - (slope * np.arange(n) + intercept)
    return math.sqrt(float(np.sum(residuals ** 2)) / (n - 2))


def next_month(month: str) -> str:
    year, mon = (int(p) for p in month.split("-")[:2])
    if mon == 12:
        return f"{year + 1}-01"
    return f"{year}-{mon + 1:02d}"


def avg_growth_rate(values: list[float]) -> float:
    """Mean month-over-month % change, skipping months that follow a zero."""
    changes = [
        (cur - prev) / abs(prev) * 100
        for prev, cur in zip(values, values[1:])
        if prev != 0
    ]
    return sum(changes) / len(changes) if changes else 0.0


def classify_trend(slope: float, intercept: float) -> str:
    threshold = abs(intercept) * FLAT_TREND_RATIO
    if slope > threshold:
        return "up"
    if slope < -threshold:
        return "down"
    return "flat"


# ── Forecast ──────────────────────────────────────────────────────────────────

def calc_sales_forecast(sales: list[SalesRecord], forecast_months: int = DEFAULT_FORECAST_MONTHS) -> SalesForecast:
    monthly = monthly_sales_totals(sales)
    if not monthly:
        return SalesForecast()

    amounts = [m.value for m in monthly]
    ma3 = moving_average(amounts, 3)
    ma6 = moving_average(amounts, 6)
    slope, intercept, r2 = linear_regression(amounts)
    std = residual_std(amounts, slope, intercept)

    points = [ForecastPoint(m.month, actual=m.value, moving_avg3=ma3[i], moving_avg6=ma6[i])
              for i, m in enumerate(monthly)]

    n = len(amounts)
    mean_x = (n - 1) / 2
    sxx = sum((j - mean_x) ** 2 for j in range(n))
    month = monthly[-1].month
    for i in range(forecast_months):
        x = n + i
        value = slope * x + intercept
        month = next_month(month)
        # prediction interval widens with distance from the centre of the data
        se = std * math.sqrt(1 + 1 / n + (x - mean_x) ** 2 / sxx) if sxx > 0 else std
        points.append(ForecastPoint(month, forecast=value,
                                    upper_bound=value + Z_95 * se, lower_bound=value - Z_95 * se))

    stats = ForecastStats(slope, intercept, r2, classify_trend(slope, intercept), avg_growth_rate(amounts))
    return SalesForecast(points, stats)
