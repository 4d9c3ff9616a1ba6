"""Shop catalog: the read-only menu the tools serve from.

The built-in shop is used unless CATALOG_PATH points at a JSON file of the
same shape (camelCase keys, see ShopInfo).
"""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path

from cafe_assistant.models import MenuItem, ShopInfo

logger = logging.getLogger(__name__)

_COFFEE_SIZES = ["single", "double"]
_MILKS = ["whole", "skim", "oat", "almond"]


def default_shop() -> ShopInfo:
    return ShopInfo(
        name="Your Coffee Shop",
        currency="EUR",
        languages=["English", "Greek", "French", "Spanish"],
        hours="Mon-Sun 07:00-20:00",
        address="123 Coffee Street",
        phone="+30 000 000 0000",
        ordering_policy=(
            "Takeaway only by default. Confirm allergies. "
            "Do not promise delivery unless tool says delivery is available."
        ),
        menu=[
            MenuItem(id="cap", name="Cappuccino", price=Decimal("3.80"), tags=["coffee"],
                     options=_COFFEE_SIZES, milks=_MILKS),
            MenuItem(id="lat", name="Latte", price=Decimal("4.00"), tags=["coffee"],
                     options=_COFFEE_SIZES, milks=_MILKS),
            MenuItem(id="esp", name="Espresso", price=Decimal("2.40"), tags=["coffee"],
                     options=_COFFEE_SIZES),
            MenuItem(id="fre", name="Freddo Espresso", price=Decimal("3.50"),
                     tags=["coffee", "cold"]),
            MenuItem(id="tea", name="Tea", price=Decimal("2.80"), tags=["tea"],
                     options=["black", "green", "herbal"]),
            MenuItem(id="cro", name="Croissant", price=Decimal("2.60"), tags=["pastry"],
                     allergens=["gluten", "dairy", "egg"]),
        ],
    )


def load_shop(path: Path | None) -> ShopInfo:
    """Load the shop from a JSON file, or return the built-in one."""
    if path is None:
        return default_shop()
    shop = ShopInfo.model_validate_json(path.read_text())
    logger.info("Loaded catalog %s: %d menu items", path, len(shop.menu))
    return shop
