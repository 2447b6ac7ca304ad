from typing import Dict, Iterable, Tuple, Union

Number = Union[int, float]


def percentage(part: Number, whole: Number) -> float:
    """part/whole as a percentage rounded to 2 decimals, 0 when whole is 0"""
    if not whole:
        return 0
    return round(part / whole * 100, 2)


def group_availability(group) -> Dict:
    """
    Seat availability for a group: remaining seats, whether it can take
    another enrollment and how full it is.
    """
    available_seats = max(group.capacity - group.enrolled_count, 0)
    return {
        "group_id": group.id,
        "name": group.name,
        "capacity": group.capacity,
        "enrolled_count": group.enrolled_count,
        "available_seats": available_seats,
        "available": available_seats > 0 and bool(group.is_active),
        "occupancy_percentage": percentage(group.enrolled_count, group.capacity),
    }


def enrollment_stats(status_counts: Iterable[Tuple[str, int]]) -> Dict:
    """
    Aggregate (status, count) rows into the general enrollment statistics
    """
    counts = {status: count for status, count in status_counts}
    total = sum(counts.values())
    completed = counts.get("completed", 0)
    return {
        "total": total,
        "active": counts.get("enrolled", 0),
        "in_progress": counts.get("in-progress", 0),
        "completed": completed,
        "cancelled": counts.get("cancelled", 0),
        "completion_rate": percentage(completed, total),
    }
