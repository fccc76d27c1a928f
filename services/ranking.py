"""
Ordering of professionals in public search results.

1. Plan priority (bizness > pro > starteris > free)
2. Activity (not seen for more than 60 days sinks)
3. Distance, when the difference is more than 0.1 km
4. Rating, highest first
5. Most recently active first
"""
from datetime import datetime, timedelta
from functools import cmp_to_key
from typing import List, Dict, Any, Optional

from utils.distance import calculate_distance
from utils.plans import plan_priority

INACTIVE_AFTER = timedelta(days=60)
DISTANCE_TOLERANCE_KM = 0.1
UNKNOWN_DISTANCE_KM = 9999


def distance_to(professional, lat: Optional[float], lon: Optional[float]) -> float:
    if lat is None or lon is None or professional.latitude is None or professional.longitude is None:
        return UNKNOWN_DISTANCE_KM
    return calculate_distance(lat, lon, professional.latitude, professional.longitude)


def _compare(a: Dict[str, Any], b: Dict[str, Any]) -> int:
    if a["priority"] != b["priority"]:
        return a["priority"] - b["priority"]

    if a["inactive"] != b["inactive"]:
        return 1 if a["inactive"] else -1

    if abs(a["distance"] - b["distance"]) > DISTANCE_TOLERANCE_KM:
        return -1 if a["distance"] < b["distance"] else 1

    if a["rating"] != b["rating"]:
        return -1 if a["rating"] > b["rating"] else 1

    if a["last_active"] != b["last_active"]:
        return -1 if a["last_active"] > b["last_active"] else 1
    return 0


def sort_professionals(professionals, lat: Optional[float], lon: Optional[float], now: datetime) -> List[Dict[str, Any]]:
    """
    Returns ``[{"professional", "distance"}]`` for approved, active
    professionals in ranking order.
    """
    cutoff = now - INACTIVE_AFTER
    entries = []
    for professional in professionals:
        if not professional.approved or not professional.active:
            continue
        last_active = professional.last_active or datetime.min
        entries.append({
            "professional": professional,
            "priority": plan_priority(professional.plan),
            "inactive": last_active < cutoff,
            "distance": distance_to(professional, lat, lon),
            "rating": professional.rating or 0,
            "last_active": last_active,
        })

    entries.sort(key=cmp_to_key(_compare))
    return [{"professional": e["professional"], "distance": e["distance"]} for e in entries]
