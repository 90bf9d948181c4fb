"""Detention billing rates."""

from typing import Callable, Union

from .thresholds import StopType

DETENTION_RATE_PER_MINUTE = 1.25

RateFunction = Callable[[Union[str, StopType], int], float]


def flat_rate(rate_per_minute: float) -> RateFunction:
    """Build a rate function charging a fixed amount per detention minute."""

    def cost_for_minutes(stop_type: Union[str, StopType], minutes: int) -> float:
        if minutes <= 0:
            return 0.0
        return round(minutes * rate_per_minute, 2)

    return cost_for_minutes


# Same rate for every stop type
cost_for_minutes = flat_rate(DETENTION_RATE_PER_MINUTE)
