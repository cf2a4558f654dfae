from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from fuelfinder.models import FuelType, Station


@dataclass
class PriceTrend:
    fuel_type: FuelType
    days: int
    labels: list[str] = field(default_factory=list)
    prices: list[float] = field(default_factory=list)
    trend_line: list[float] = field(default_factory=list)
    trend: str = "stable"
    station_count: int = 0
    message: str | None = None


def trend_line(prices: Sequence[float]) -> list[float]:
    """Least-squares line over the point index, rounded like the displayed prices."""
    n = len(prices)
    if n == 0:
        return []
    if n == 1:
        return [round(prices[0], 3)]

    mean_x = (n - 1) / 2
    mean_y = sum(prices) / n
    numerator = sum((x - mean_x) * (y - mean_y) for x, y in enumerate(prices))
    denominator = sum((x - mean_x) ** 2 for x in range(n))
    slope = numerator / denominator
    intercept = mean_y - slope * mean_x
    return [round(slope * x + intercept, 3) for x in range(n)]


def trend_direction(prices: Sequence[float]) -> str:
    if len(prices) < 4:
        return "stable"
    midpoint = len(prices) // 2
    first_half = prices[:midpoint]
    second_half = prices[midpoint:]
    first_avg = sum(first_half) / len(first_half)
    second_avg = sum(second_half) / len(second_half)
    delta = second_avg - first_avg
    threshold = max(0.002, first_avg * 0.005)
    if delta > threshold:
        return "increasing"
    if delta < -threshold:
        return "decreasing"
    return "stable"


def compute_price_trend(
    stations: Iterable[Station],
    fuel_type: FuelType,
    days: int = 90,
    now: datetime | None = None,
) -> PriceTrend:
    now = now or datetime.now()
    result = PriceTrend(fuel_type=fuel_type, days=days)

    priced = [s.fuel_prices[fuel_type] for s in stations if s.price_for(fuel_type) is not None]
    result.station_count = len(priced)
    if not priced:
        result.message = f"No stations found with {fuel_type.value} in the selected area"
        return result

    start = now - timedelta(days=days)
    prices_by_day: dict[date, list[float]] = defaultdict(list)
    for entry in priced:
        # undated prices count as today's
        updated_at = entry.updated_at or now
        if updated_at >= start:
            prices_by_day[updated_at.date()].append(entry.price)

    if not prices_by_day:
        result.message = f"No recent prices found for {fuel_type.value} in the selected area"
        return result

    for day in sorted(prices_by_day):
        values = prices_by_day[day]
        result.labels.append(day.isoformat())
        result.prices.append(round(sum(values) / len(values), 3))

    result.trend_line = trend_line(result.prices)
    result.trend = trend_direction(result.prices)
    return result
