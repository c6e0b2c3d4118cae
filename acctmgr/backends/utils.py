"""Functions shared between different backends."""

import datetime
import re
from typing import Optional

from acctmgr.backends.structures import INFINITE, AssociationLimits

UNIT_PATTERN = re.compile(r"(\d+)([KMGTP]?)")

UNITS = {
    "K": 2**10,
    "M": 2**20,
    "G": 2**30,
    "T": 2**40,
    "P": 2**50,
}

LIMIT_LABELS = {
    "shares": "Fairshare",
    "grp_cpu_mins": "GrpCPUMins",
    "grp_cpus": "GrpCPUs",
    "grp_jobs": "GrpJobs",
    "grp_nodes": "GrpNodes",
    "grp_submit_jobs": "GrpSubmitJobs",
    "grp_wall": "GrpWall",
    "max_cpu_mins_per_job": "MaxCPUMins",
    "max_cpus_per_job": "MaxCPUs",
    "max_jobs": "MaxJobs",
    "max_nodes_per_job": "MaxNodes",
    "max_submit_jobs": "MaxSubmitJobs",
    "max_wall_per_job": "MaxWall",
}

DURATION_FIELDS = ("grp_wall", "max_wall_per_job")


def parse_int(value: str) -> int:
    """Convert 5K to 5120."""
    match = re.match(UNIT_PATTERN, value)
    if not match:
        return 0
    number = int(match.group(1))
    unit = match.group(2)
    factor = UNITS[unit] if unit else 1
    return factor * number


def parse_duration(value: str) -> Optional[int]:
    """Returns duration in minutes or None if the value is malformed.

    Accepted forms:
    90 is 90 minutes
    01:30:00 is 90 minutes
    1-00:00:00 is 1440 minutes
    1-2 is 1560 minutes (days-hours)
    """
    value = value.strip()
    if value == str(INFINITE):
        return INFINITE
    days = 0
    if "-" in value:
        days_part, value = value.split("-", 1)
        if not days_part.isdigit():
            return None
        days = int(days_part)
        parts = value.split(":")
        if not all(part.isdigit() for part in parts) or len(parts) > 3:
            return None
        hours = int(parts[0])
        minutes = int(parts[1]) if len(parts) > 1 else 0
        seconds = int(parts[2]) if len(parts) > 2 else 0
    else:
        parts = value.split(":")
        if not all(part.isdigit() for part in parts) or len(parts) > 3:
            return None
        if len(parts) == 1:
            hours, minutes, seconds = 0, int(parts[0]), 0
        elif len(parts) == 2:
            hours, minutes, seconds = 0, int(parts[0]), int(parts[1])
        else:
            hours, minutes, seconds = (int(part) for part in parts)

    delta = datetime.timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)
    return int(delta.total_seconds()) // 60


def format_duration(minutes: int) -> str:
    """Formats minutes as [days-]HH:MM:SS."""
    days, rest = divmod(minutes, 24 * 60)
    hours, mins = divmod(rest, 60)
    if days:
        return f"{days}-{hours:02d}:{mins:02d}:00"
    return f"{hours:02d}:{mins:02d}:00"


def format_limit(name: str, value: Optional[int]) -> str:
    """Human-readable value of a numeric limit."""
    if value is None:
        return ""
    if value == INFINITE:
        return "NONE"
    if name in DURATION_FIELDS:
        return format_duration(value)
    return str(value)


def describe_limits(limits: AssociationLimits) -> list[str]:
    """Lines describing the limits which are set."""
    lines = []
    for name, label in LIMIT_LABELS.items():
        value = getattr(limits, name)
        if value is None:
            continue
        lines.append(f"  {label:<14}= {format_limit(name, value)}")
    if limits.qos:
        lines.append(f"  {'QOS':<14}= {','.join(limits.qos)}")
    if limits.default_qos is not None:
        lines.append(f"  {'DefaultQOS':<14}= {limits.default_qos or 'NONE'}")
    return lines
