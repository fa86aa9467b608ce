"""Barcode lookup against the Open Food Facts product API."""

import logging
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel, Field

from bestbefore.core.config import constants, settings
from bestbefore.core.logging import span


logger = logging.getLogger(__name__)

LOOKUP_FIELDS = "product_name,nutriscore_data,nutriments,nutrition_grades,expiration_date"

ULTRA_PROCESSED_NOVA_GROUP = 4


class FoodProduct(BaseModel):
    """Product facts returned by a successful lookup."""

    product_name: str = ""
    categories: list[str] = Field(default_factory=list)
    image_url: str | None = None
    brands: str | None = None
    badges: list[str] = Field(default_factory=list)
    expiration_date: str | None = Field(None, description="Date string as printed by Open Food Facts, if any")
    nutrition_grade: str | None = None


class BarcodeLookupResult(BaseModel):
    success: bool
    data: FoodProduct | None = None
    error: str | None = None


def _number(nutriments: Mapping[str, Any], key: str) -> float | None:
    value = nutriments.get(key)
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value)


# (badge, nutriment key, predicate), checked in display order
_NUTRIMENT_BADGES: list[tuple[str, str, Callable[[float], bool]]] = [
    ("High Fiber", "fiber_value", lambda v: v >= 3),
    ("Moderate Salt", "salt_value", lambda v: 100 <= v <= 400),
    ("Low Sugar", "sugars_value", lambda v: v <= 5),
    ("High Protein", "proteins_value", lambda v: v >= 5),
    ("Low Saturated Fat", "saturated-fat_value", lambda v: v <= 1.5),
    ("Low Calories", "energy-kcal_value", lambda v: v <= 40),
    ("High Calcium", "calcium_value", lambda v: v >= 100),
    ("High Iron", "iron_value", lambda v: v >= 2),
    ("High Potassium", "potassium_value", lambda v: v >= 300),
    ("Low Cholesterol", "cholesterol_value", lambda v: v <= 20),
]


def health_badges(nutriments: Mapping[str, Any] | None, nova_group: int | None = None) -> list[str]:
    """Derive health badges from nutrient values and the NOVA processing group.

    Missing or non-numeric nutrients never produce a badge.
    """
    nutriments = nutriments or {}
    badges = []
    for badge, key, predicate in _NUTRIMENT_BADGES:
        value = _number(nutriments, key)
        if value is not None and predicate(value):
            badges.append(badge)
        # NOVA badge is listed right after salt
        if key == "salt_value" and nova_group == ULTRA_PROCESSED_NOVA_GROUP:
            badges.append("Ultra-Processed")
    return badges


def _to_food_product(product: Mapping[str, Any]) -> FoodProduct:
    nutriscore = product.get("nutriscore_data") or {}
    return FoodProduct(
        product_name=product.get("product_name") or "",
        badges=health_badges(product.get("nutriments"), product.get("nova-group")),
        expiration_date=product.get("expiration_date") or None,
        nutrition_grade=product.get("nutrition_grades") or nutriscore.get("grade") or None,
    )


async def lookup_barcode(barcode: str, *, client: httpx.AsyncClient | None = None) -> BarcodeLookupResult:
    """Look up a scanned barcode.

    Args:
        barcode: Barcode digits as scanned
        client: Optional client to reuse; a short-lived one is created otherwise

    Returns:
        success=True with the product, or success=False with a message when the
        product is unknown or the request failed
    """
    url = f"{settings.openfoodfacts_url.rstrip('/')}/{quote(barcode, safe='')}"
    with span("barcode_service.lookup_barcode"):
        try:
            if client is None:
                async with httpx.AsyncClient(timeout=constants.API_TIMEOUT_SECONDS) as owned:
                    response = await owned.get(url, params={"fields": LOOKUP_FIELDS})
            else:
                response = await client.get(url, params={"fields": LOOKUP_FIELDS})

            if not response.is_success:
                message = f"Network response was not ok ({response.status_code})"
                logger.warning("Barcode lookup failed", extra={"barcode": barcode, "error": message})
                return BarcodeLookupResult(success=False, error=message)

            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Barcode lookup failed", extra={"barcode": barcode, "error": str(e)})
            return BarcodeLookupResult(success=False, error=str(e) or "Unknown error during barcode lookup.")

        if not isinstance(payload, dict) or payload.get("status") != 1 or not payload.get("product"):
            return BarcodeLookupResult(success=False, error="Product not found.")

        return BarcodeLookupResult(success=True, data=_to_food_product(payload["product"]))
