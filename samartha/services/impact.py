# samartha/services/impact.py
from typing import Iterable

# 1 kg of food waste ~ 2.5 kg CO2 equivalent
CO2_PER_KG_FOOD = 2.5
CO2_PER_TREE_YEAR = 21.77
KG_PER_MEAL = 0.5

def co2_reduction(quantity) -> float:
    try:
        q = float(quantity)
    except (TypeError, ValueError):
        return 0.0
    if q != q or q <= 0:    # NaN or non-positive
        return 0.0
    return q * CO2_PER_KG_FOOD

def total_impact(listings: Iterable) -> dict:
    """
    listings: Listing models or dicts with a `quantity`.
    Returns food saved, CO2 avoided and their tree / meal equivalents.
    """
    total_food = 0.0
    total_co2 = 0.0
    for l in listings:
        qty = l.get("quantity") if isinstance(l, dict) else getattr(l, "quantity", 0)
        co2 = co2_reduction(qty)
        if co2 > 0:
            total_food += float(qty)
            total_co2 += co2
    return {
        "total_food_saved": total_food,
        "total_co2_reduced": total_co2,
        "trees_equivalent": round(total_co2 / CO2_PER_TREE_YEAR),
        "meals_equivalent": round(total_food / KG_PER_MEAL),
    }
