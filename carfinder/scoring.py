# carfinder/scoring.py
"""Opportunity ranking over alert history.

Alerts are grouped by model and compared to their group's median price and
median mileage. Thresholds:

- priceRatio <= 0.92                                  -> opportunity ("Preço Bom")
- priceRatio <= 0.95 and kmRatio <= 0.90 (km median) -> opportunity ("Achado")

score = (1 - priceRatio) * 100, plus half the mileage discount in percent
when a mileage median applies. This is a ranking heuristic, not a
statistical test.
"""
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from .parser import UNKNOWN, extract_brand, parse_price
from .utils import utcnow

PRICE_THRESHOLD = 0.92
PRICE_WITH_KM_THRESHOLD = 0.95
KM_THRESHOLD = 0.90
LOW_KM_BADGE_THRESHOLD = 0.85
NEW_BADGE_AGE = timedelta(hours=24)


def median(values: Sequence[float]) -> float:
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def group_medians(alerts, min_group_size: int):
    """Per-model medians of price and mileage, for groups with at least
    `min_group_size` values."""
    prices: Dict[str, List[float]] = defaultdict(list)
    mileages: Dict[str, List[int]] = defaultdict(list)
    for alert in alerts:
        model = alert.model or UNKNOWN
        price = parse_price(alert.price)
        if price > 0:
            prices[model].append(price)
        if alert.mileage and alert.mileage > 0:
            mileages[model].append(alert.mileage)

    price_medians = {m: median(v) for m, v in prices.items() if len(v) >= min_group_size}
    km_medians = {m: median(v) for m, v in mileages.items() if len(v) >= min_group_size}
    return price_medians, km_medians


def score_alert(alert, median_price: float, median_km: Optional[float], now: datetime) -> Optional[dict]:
    price = parse_price(alert.price)
    if price <= 0:
        return None
    km = alert.mileage or 0
    km_applies = bool(median_km) and km > 0

    price_ratio = price / median_price
    km_ratio = km / median_km if km_applies else 1.0

    badges = []
    if price_ratio <= PRICE_THRESHOLD:
        pct_below = round((1 - price_ratio) * 100)
        explanation = f"{pct_below}% abaixo do preço mediano"
        badges.append("Preço Bom")
    elif price_ratio <= PRICE_WITH_KM_THRESHOLD and km_applies and km_ratio <= KM_THRESHOLD:
        explanation = "Preço e KM abaixo da mediana"
        badges.append("Achado")
    else:
        return None

    if km_applies and km_ratio <= LOW_KM_BADGE_THRESHOLD:
        badges.append("Baixo KM")
    if alert.created_at and now - alert.created_at < NEW_BADGE_AGE:
        badges.append("Novo")

    score = (1 - price_ratio) * 100
    if km_applies:
        score += ((1 - km_ratio) * 100) / 2

    return {
        "brand": extract_brand(alert.model),
        "median": median_price,
        "pct_below_median": round((1 - price_ratio) * 100),
        "score": score,
        "explanation": explanation,
        "badges": badges,
    }


def find_opportunities(alerts, min_group_size: int, limit: int = 20,
                       now: Optional[datetime] = None) -> List[dict]:
    """Rank alerts priced below their model's median.

    `alerts` are expected newest first; ties keep that order. Each result is
    the alert's columns plus brand, median, pct_below_median, score,
    explanation and badges.
    """
    now = now or utcnow()
    alerts = list(alerts)
    price_medians, km_medians = group_medians(alerts, min_group_size)

    opportunities = []
    for alert in alerts:
        model = alert.model or UNKNOWN
        median_price = price_medians.get(model)
        if not median_price:
            continue
        scored = score_alert(alert, median_price, km_medians.get(model), now)
        if scored is None:
            continue
        opportunities.append(dict(_columns(alert), **scored))

    opportunities.sort(key=lambda o: o["score"], reverse=True)
    return opportunities[:limit]


def _columns(alert) -> dict:
    return {
        "id": alert.id,
        "search_id": alert.search_id,
        "list_id": alert.list_id,
        "subject": alert.subject,
        "price": alert.price,
        "municipality": alert.municipality,
        "neighbourhood": alert.neighbourhood,
        "ad_url": alert.ad_url,
        "model": alert.model,
        "thumbnail_url": alert.thumbnail_url,
        "mileage": alert.mileage,
        "status": alert.status,
        "created_at": alert.created_at,
    }


def model_stats(alerts, limit: int = 50) -> List[dict]:
    """Count and price range per model, most frequent first."""
    groups: Dict[str, List[float]] = defaultdict(list)
    counts: Dict[str, int] = defaultdict(int)
    for alert in alerts:
        model = alert.model or UNKNOWN
        counts[model] += 1
        price = parse_price(alert.price)
        if price > 0:
            groups[model].append(price)
    stats = [
        {
            "model": model,
            "count": count,
            "min_price": min(groups[model]) if groups[model] else None,
            "max_price": max(groups[model]) if groups[model] else None,
        }
        for model, count in counts.items()
    ]
    stats.sort(key=lambda s: s["count"], reverse=True)
    return stats[:limit]


def brand_distribution(alerts) -> List[dict]:
    counts: Dict[str, int] = defaultdict(int)
    for alert in alerts:
        counts[extract_brand(alert.model)] += 1
    total = sum(counts.values())
    brands = [
        {"brand": brand, "count": count, "percentage": round(count * 100 / total)}
        for brand, count in counts.items()
    ]
    brands.sort(key=lambda b: b["count"], reverse=True)
    return brands
