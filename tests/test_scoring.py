"""Tests for opportunity ranking."""
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from carfinder.scoring import (
    brand_distribution,
    find_opportunities,
    median,
    model_stats,
    score_alert,
)

NOW = datetime(2024, 5, 10, 12, 0, 0)


def alert(id, model, price, mileage=None, age=timedelta(days=3)):
    return SimpleNamespace(
        id=id, search_id="s1", list_id=str(id), subject=f"{model} 2015", price=price,
        municipality=None, neighbourhood=None, ad_url=f"https://www.olx.com.br/ad/{id}",
        model=model, thumbnail_url=None, mileage=mileage, status="new", created_at=NOW - age,
    )


def test_median_odd_and_even():
    assert median([20000, 10000, 12000, 15000, 10000]) == 12000
    assert median([1, 2, 3, 4]) == 2.5


def test_price_ratio_rule():
    scored = score_alert(alert(1, "Honda Civic", "R$ 11.000"), 12000, None, NOW)
    assert scored is not None
    assert scored["score"] == pytest.approx(8.333, abs=0.01)
    assert scored["badges"] == ["Preço Bom"]
    assert scored["pct_below_median"] == 8
    assert score_alert(alert(2, "Honda Civic", "R$ 20.000"), 12000, None, NOW) is None


def test_price_and_mileage_rule():
    # priceRatio 0.94 alone isn't enough, but with kmRatio 0.8 it is
    scored = score_alert(alert(1, "Fiat Uno", "R$ 9.400", mileage=40000), 10000, 50000, NOW)
    assert scored["badges"] == ["Achado", "Baixo KM"]
    assert scored["score"] == pytest.approx(6 + 10)
    assert score_alert(alert(2, "Fiat Uno", "R$ 9.400", mileage=48000), 10000, 50000, NOW) is None
    assert score_alert(alert(3, "Fiat Uno", "R$ 9.400"), 10000, 50000, NOW) is None


def test_find_opportunities_ranks_and_excludes():
    alerts = [
        alert(1, "Honda Civic", "R$ 10.000"),
        alert(2, "Honda Civic", "R$ 11.000"),
        alert(3, "Honda Civic", "R$ 12.000"),
        alert(4, "Honda Civic", "R$ 15.000"),
        alert(5, "Honda Civic", "R$ 20.000"),
    ]
    result = find_opportunities(alerts, min_group_size=5, now=NOW)
    assert [o["list_id"] for o in result] == ["1", "2"]
    assert result[0]["median"] == 12000
    assert result[0]["brand"] == "Honda"
    assert result[1]["score"] == pytest.approx(8.333, abs=0.01)


def test_small_groups_are_not_scored():
    alerts = [alert(i, "Honda Civic", p) for i, p in enumerate(["R$ 5.000", "R$ 10.000", "R$ 12.000"])]
    assert find_opportunities(alerts, min_group_size=5, now=NOW) == []
    assert len(find_opportunities(alerts, min_group_size=3, now=NOW)) == 1


def test_unknown_models_share_a_bucket():
    alerts = [alert(i, None, p) for i, p in enumerate(["R$ 5.000", "R$ 10.000", "R$ 12.000"])]
    result = find_opportunities(alerts, min_group_size=3, now=NOW)
    assert [o["list_id"] for o in result] == ["0"]
    assert result[0]["brand"] == "Desconhecido"


def test_ties_keep_input_order_and_limit_applies():
    alerts = [alert(i, "Gol", "R$ 8.000") for i in range(3)] + [alert(i, "Gol", "R$ 10.000") for i in range(3, 6)]
    result = find_opportunities(alerts, min_group_size=3, limit=2, now=NOW)
    assert [o["list_id"] for o in result] == ["0", "1"]


def test_unpriced_alerts_are_skipped():
    alerts = [alert(1, "Gol", "Consulte")] + [alert(i, "Gol", "R$ 10.000") for i in range(2, 5)]
    assert find_opportunities(alerts, min_group_size=3, now=NOW) == []


def test_recent_alert_gets_new_badge():
    scored = score_alert(alert(1, "Gol", "R$ 8.000", age=timedelta(hours=2)), 10000, None, NOW)
    assert "Novo" in scored["badges"]


def test_model_stats_and_brands():
    alerts = [
        alert(1, "Honda Civic", "R$ 10.000"),
        alert(2, "Honda Civic", "R$ 14.000"),
        alert(3, "Honda Fit", "R$ 9.000"),
        alert(4, None, None),
    ]
    stats = model_stats(alerts)
    assert stats[0] == {"model": "Honda Civic", "count": 2, "min_price": 10000.0, "max_price": 14000.0}
    assert {"model": "Desconhecido", "count": 1, "min_price": None, "max_price": None} in stats

    brands = brand_distribution(alerts)
    assert brands[0] == {"brand": "Honda", "count": 3, "percentage": 75}
    assert brands[1] == {"brand": "Desconhecido", "count": 1, "percentage": 25}
