"""Resolve caller-supplied estimate data into a frozen Input Context."""

from datetime import date
from decimal import Decimal
from typing import Dict, Optional

from pricing_engine.core.config import Settings, settings as app_settings
from pricing_engine.schemas.common import SeasonalPeriod, ServiceType
from pricing_engine.schemas.estimate import EstimateRequest, InputContext
from pricing_engine.services.action_applier import ZERO, to_money

# May through September
_PEAK_MONTHS = frozenset(range(5, 10))

# Crew members included in the local hourly rate
_INCLUDED_CREW = 2


def is_weekend(moment: date) -> bool:
    """Saturday or Sunday."""
    return moment.weekday() >= 5


def seasonal_period(moment: date) -> SeasonalPeriod:
    if moment.month in _PEAK_MONTHS:
        return SeasonalPeriod.peak
    return SeasonalPeriod.standard


def base_price(request: EstimateRequest, config: Optional[Settings] = None) -> Decimal:
    """Service base price used to seed ``totalPrice``."""
    config = config or app_settings
    duration = Decimal(str(request.estimated_duration))
    if request.service is ServiceType.local:
        extra_crew = max(0, request.crew_size - _INCLUDED_CREW)
        hourly = Decimal(str(config.LOCAL_HOURLY_RATE)) + Decimal(
            str(config.LOCAL_EXTRA_CREW_HOURLY_RATE)
        ) * extra_crew
        return to_money(hourly * duration)
    if request.service is ServiceType.long_distance:
        return to_money(
            Decimal(str(config.LONG_DISTANCE_RATE_PER_POUND))
            * Decimal(str(request.total_weight))
        )
    if request.service is ServiceType.storage:
        return to_money(
            Decimal(str(config.STORAGE_RATE_PER_CUBIC_FOOT))
            * Decimal(str(request.total_volume))
        )
    return to_money(Decimal(str(config.PACKING_HOURLY_RATE)) * duration)


def default_base_values(
    request: EstimateRequest, config: Optional[Settings] = None
) -> Dict[str, Decimal]:
    price = base_price(request, config)
    labor = price if request.service in (ServiceType.local, ServiceType.packing_only) else ZERO
    return {"totalPrice": price, "laborCost": labor}


def build_input_context(
    request: EstimateRequest, config: Optional[Settings] = None
) -> InputContext:
    """Fill in derived fields and freeze the result.

    Caller-supplied values win; only omitted fields are derived.
    Supplied ``baseValues`` are merged over the computed defaults.
    """
    data = request.model_dump(exclude={"is_weekend", "seasonal_period", "base_values"})
    base_values = default_base_values(request, config)
    if request.base_values:
        base_values.update(request.base_values)
    return InputContext(
        **data,
        is_weekend=(
            request.is_weekend if request.is_weekend is not None else is_weekend(request.move_date)
        ),
        seasonal_period=request.seasonal_period or seasonal_period(request.move_date),
        base_values=base_values,
    )
