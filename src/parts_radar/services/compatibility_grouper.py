"""Vehicle compatibility grouping.

Pure-function module — NO database access.

Splits a bulk vehicle selection into groups that share the enabled
compatibility dimensions (vehicle type, make, 5-year model band) so that a
single parts request is valid for every vehicle in its group.  The
partition is advisory: callers may still build requests by hand.
"""

from __future__ import annotations

import re
from typing import Iterable

from parts_radar.domain.enums import CompatibilityRule
from parts_radar.domain.schemas import Compatibility, Vehicle, VehicleGroup, YearRange

# Width of a model-year band
YEAR_BAND = 5

# Key used when no rule is enabled
OTHER_GROUP_KEY = "other"


def year_band(year: int) -> tuple[int, int]:
    """Return the inclusive (start, end) of the 5-year band containing *year*."""
    start = (year // YEAR_BAND) * YEAR_BAND
    return start, start + YEAR_BAND - 1


def _normalize_rules(rules: Iterable[CompatibilityRule | str]) -> set[CompatibilityRule]:
    return {CompatibilityRule(r) for r in rules}


def _group_key(vehicle: Vehicle, rules: set[CompatibilityRule]) -> tuple[str, ...]:
    parts: list[str] = []
    if CompatibilityRule.TYPE in rules:
        parts.append(vehicle.type)
    if CompatibilityRule.MAKE in rules:
        parts.append(vehicle.make)
    if CompatibilityRule.YEAR in rules:
        start, end = year_band(vehicle.year)
        parts.append(f"{start}-{end}")
    return tuple(parts)


def _group_label(key: tuple[str, ...]) -> str:
    return "_".join(key) or OTHER_GROUP_KEY


def _group_name(key: str) -> str:
    """'sedan_toyota_2015-2019' -> 'Sedan Toyota 2015-2019'."""
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), key.replace("_", " "))


def _compatibility(vehicle: Vehicle, rules: set[CompatibilityRule]) -> Compatibility:
    year_range = None
    if CompatibilityRule.YEAR in rules:
        start, end = year_band(vehicle.year)
        year_range = YearRange(min=start, max=end)
    return Compatibility(
        type=vehicle.type if CompatibilityRule.TYPE in rules else None,
        make=vehicle.make if CompatibilityRule.MAKE in rules else None,
        year_range=year_range,
    )


# ── Main grouping function ────────────────────────────────────────────────

def group_vehicles(
    vehicles: list[Vehicle],
    rules: Iterable[CompatibilityRule | str],
) -> list[VehicleGroup]:
    """Partition *vehicles* by the enabled compatibility *rules*.

    Every input vehicle lands in exactly one group.  Groups come back in
    order of first appearance; vehicles keep their input order inside a
    group.  With no rules enabled all vehicles share the ``other`` group.
    """
    enabled = _normalize_rules(rules)
    groups: dict[tuple[str, ...], VehicleGroup] = {}
    used_ids: set[str] = set()

    for vehicle in vehicles:
        key = _group_key(vehicle, enabled)
        group = groups.get(key)
        if group is None:
            label = _group_label(key)
            group_id = label
            suffix = 2
            while group_id in used_ids:
                group_id = f"{label}-{suffix}"
                suffix += 1
            used_ids.add(group_id)
            group = VehicleGroup(
                id=group_id,
                name=_group_name(label),
                vehicles=[],
                compatibility=_compatibility(vehicle, enabled),
            )
            groups[key] = group
        group.vehicles.append(vehicle)

    return list(groups.values())


def is_compatible(vehicle: Vehicle, compatibility: Compatibility) -> bool:
    """Return True when *vehicle* satisfies every dimension of *compatibility*."""
    if compatibility.type is not None and vehicle.type != compatibility.type:
        return False
    if compatibility.make is not None and vehicle.make != compatibility.make:
        return False
    yr = compatibility.year_range
    if yr is not None and not (yr.min <= vehicle.year <= yr.max):
        return False
    return True
