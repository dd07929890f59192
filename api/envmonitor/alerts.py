
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from .models import BreachKey, Incident, Sample, Severity, Thresholds


@dataclass(frozen=True)
class BreachRule:
    key: BreachKey
    field: str      # attribute on Sample
    bound: str      # attribute on Thresholds
    above: bool     # True: breach when value > bound, False: value < bound
    severity: Severity
    title: str
    template: str   # formatted with the offending value


RULES: Tuple[BreachRule, ...] = (
    BreachRule(BreachKey.TEMP_HIGH, "temperature", "temp_high", True,
               Severity.DANGER, "Temp High", "High breach: {value}°C"),
    BreachRule(BreachKey.TEMP_LOW, "temperature", "temp_low", False,
               Severity.WARNING, "Temp Low", "Low breach: {value}°C"),
    BreachRule(BreachKey.HUM_HIGH, "humidity", "hum_high", True,
               Severity.DANGER, "Hum High", "High humidity: {value}%"),
    BreachRule(BreachKey.HUM_LOW, "humidity", "hum_low", False,
               Severity.WARNING, "Hum Low", "Low humidity: {value}%"),
)

RULES_BY_KEY: Dict[BreachKey, BreachRule] = {r.key: r for r in RULES}


def evaluate(sample: Sample, thresholds: Thresholds) -> Dict[BreachKey, bool]:
    """
    Flag every boundary condition the sample currently violates.

    Pure: the result depends only on the two arguments. An indeterminate
    field (None) reports False for both of its conditions.
    """
    flags: Dict[BreachKey, bool] = {}
    for rule in RULES:
        value = getattr(sample, rule.field)
        limit = getattr(thresholds, rule.bound)
        if value is None:
            flags[rule.key] = False
        elif rule.above:
            flags[rule.key] = value > limit
        else:
            flags[rule.key] = value < limit
    return flags


def _format_value(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value:g}"


def build_incident(key: BreachKey, sample: Sample, now: Optional[datetime] = None) -> Incident:
    rule = RULES_BY_KEY[key]
    value = getattr(sample, rule.field)
    return Incident(
        id=uuid.uuid4().hex,
        breach_key=key,
        severity=rule.severity,
        title=rule.title,
        description=rule.template.format(value=_format_value(value)),
        created_at=now or datetime.now(timezone.utc),
    )
