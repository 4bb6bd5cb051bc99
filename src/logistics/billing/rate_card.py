"""Rate card — slab pricing by merchant category, zone and direction.

All weights are in grams. Slabs per zone:

    0-250          base charge up to 250 g
    250-500        flat addition for 250-500 g
    upto5kg        flat charge at 5 kg (used from 5 kg up)
    add500till5kg  per extra 500 g between 500 g and 5 kg
    upto10kg       flat charge at 10 kg (used from 10 kg up)
    add1kgTill10   per extra kg between 5 and 10 kg
    add1kg         per extra kg beyond 10 kg

RTO slabs share the same layout. COD carries a percentage with a floor and
GST on top when the card says GST is additional.
"""

import math
from dataclasses import dataclass

from logistics.utils.money import round2

ZONES = ("A", "B", "C1", "C2", "D1", "D2", "E", "F")
SLABS = ("0-250", "250-500", "upto5kg", "add500till5kg", "upto10kg", "add1kgTill10", "add1kg")
GST_RATE = 0.18

FORWARD = "forward"
RTO = "rto"


def _slabs(*rows) -> dict[str, dict[str, float]]:
    """Build ``{zone: {slab: charge}}`` from one row of eight zone values per slab."""
    return {zone: {slab: row[i] for slab, row in zip(SLABS, rows)} for i, zone in enumerate(ZONES)}


# fmt: off
RATE_CARDS = {
    "New User": {
        FORWARD: _slabs(
            (36, 42, 42, 43, 45, 46, 56, 62),
            (6, 8, 10, 12, 12, 13, 13, 14),
            (135, 188, 241, 263, 268, 278, 337, 375),
            (10, 17, 23, 28, 30, 32, 40, 44),
            (221, 277, 354, 387, 396, 411, 498, 554),
            (27, 30, 36, 39, 42, 46, 55, 65),
            (19, 23, 26, 29, 30, 33, 46, 48),
        ),
        RTO: _slabs(
            (43, 51, 51, 52, 53, 55, 68, 75),
            (7, 7, 12, 14, 12, 14, 16, 17),
            (156, 217, 277, 302, 309, 321, 389, 432),
            (12, 20, 27, 36, 36, 42, 51, 55),
            (254, 319, 407, 300, 456, 474, 573, 638),
            (33, 36, 43, 46, 51, 55, 66, 78),
            (23, 27, 32, 35, 36, 40, 55, 58),
        ),
        "cod": {"percentage": 1.8, "minimum": 45},
    },
    "Basic User": {
        FORWARD: _slabs(
            (33, 38, 38, 40, 41, 42, 52, 57),
            (5, 5, 9, 11, 9, 11, 12, 13),
            (119, 165, 212, 232, 236, 245, 297, 330),
            (9, 16, 21, 28, 28, 32, 38, 42),
            (195, 244, 311, 340, 348, 361, 438, 487),
            (25, 28, 33, 36, 38, 42, 50, 60),
            (17, 21, 24, 26, 28, 30, 42, 44),
        ),
        RTO: _slabs(
            (40, 46, 46, 48, 49, 50, 62, 69),
            (7, 7, 11, 13, 11, 13, 15, 16),
            (143, 199, 254, 277, 283, 294, 356, 396),
            (11, 19, 25, 33, 33, 38, 46, 50),
            (233, 293, 373, 275, 418, 434, 526, 585),
            (30, 33, 40, 42, 46, 50, 61, 71),
            (21, 25, 29, 32, 33, 37, 50, 53),
        ),
        "cod": {"percentage": 1.5, "minimum": 35},
    },
    "Lite User": {
        FORWARD: _slabs(
            (34, 39, 40, 42, 43, 44, 53, 59),
            (6, 6, 10, 11, 10, 11, 12, 14),
            (125, 173, 221, 242, 246, 256, 310, 345),
            (10, 17, 22, 28, 28, 32, 39, 44),
            (203, 255, 325, 356, 364, 378, 458, 509),
            (26, 29, 35, 37, 40, 44, 53, 62),
            (18, 22, 25, 28, 29, 32, 44, 46),
        ),
        RTO: _slabs(
            (42, 48, 48, 50, 51, 53, 65, 72),
            (7, 7, 11, 14, 11, 14, 15, 17),
            (149, 208, 266, 289, 296, 307, 372, 414),
            (11, 19, 26, 35, 35, 40, 48, 53),
            (244, 306, 390, 288, 437, 454, 550, 612),
            (32, 35, 42, 44, 48, 53, 64, 75),
            (22, 26, 30, 33, 35, 39, 53, 55),
        ),
        "cod": {"percentage": 1.8, "minimum": 40},
    },
    "Advanced": {
        FORWARD: _slabs(
            (32, 37, 37, 38, 39, 40, 49, 54),
            (5, 5, 9, 10, 9, 10, 11, 13),
            (114, 158, 202, 221, 225, 234, 283, 315),
            (9, 15, 20, 27, 27, 30, 37, 40),
            (186, 233, 297, 325, 332, 345, 418, 465),
            (24, 27, 32, 34, 37, 40, 48, 57),
            (16, 20, 23, 25, 27, 29, 40, 42),
        ),
        RTO: _slabs(
            (38, 44, 44, 45, 47, 48, 59, 66),
            (6, 6, 10, 13, 10, 13, 14, 15),
            (136, 190, 243, 264, 270, 281, 340, 378),
            (10, 18, 24, 32, 32, 37, 44, 48),
            (222, 279, 356, 263, 399, 415, 502, 559),
            (29, 32, 38, 40, 44, 48, 58, 68),
            (20, 24, 28, 30, 32, 35, 48, 51),
        ),
        "cod": {"percentage": 1.25, "minimum": 25},
    },
}
# fmt: on

for _card in RATE_CARDS.values():
    _card["gst_additional"] = True

_CATEGORY_ALIASES = {"Advanced User": "Advanced"}


class RateCardError(ValueError):
    """Unknown category, zone or direction."""


@dataclass(frozen=True)
class ChargeBreakdown:
    zone: str
    weight_g: float
    shipping_charge: float
    cod_charge: float
    total: float
    direction: str = FORWARD


def resolve_category(user_category: str | None) -> str | None:
    if not user_category:
        return None
    category = _CATEGORY_ALIASES.get(user_category, user_category)
    return category if category in RATE_CARDS else None


def volumetric_weight_g(length_cm: float, width_cm: float, height_cm: float) -> float:
    """Dimensional weight in grams (divisor 5000)."""
    return round2((length_cm * width_cm * height_cm) / 5000 * 1000)


def charged_weight_g(declared_g: float, volumetric_g: float) -> float:
    return max(declared_g or 0.0, volumetric_g or 0.0)


def slab_charge(slabs: dict[str, float], weight_g: float) -> float:
    """Apply the weight slabs of one zone to ``weight_g``."""
    if weight_g <= 250:
        return slabs["0-250"]
    if weight_g <= 500:
        return slabs["0-250"] + slabs["250-500"]
    if weight_g <= 5000:
        extra_500s = math.ceil((weight_g - 500) / 500)
        return slabs["0-250"] + slabs["250-500"] + extra_500s * slabs["add500till5kg"]
    if weight_g <= 10000:
        full_kgs, remainder = divmod(weight_g - 5000, 1000)
        charge = slabs["upto5kg"] + int(full_kgs) * slabs["add1kgTill10"]
        if remainder > 0:
            charge += slabs["add500till5kg"]
        return charge
    extra_kgs = math.ceil((weight_g - 10000) / 1000)
    return slabs["upto10kg"] + extra_kgs * slabs["add1kg"]


def cod_charge(card: dict, cod_amount: float) -> float:
    if not cod_amount or cod_amount <= 0:
        return 0.0
    cod = card["cod"]
    charge = max(cod_amount * cod["percentage"] / 100, cod["minimum"])
    if card.get("gst_additional"):
        charge *= 1 + GST_RATE
    return round2(charge)


def calculate_charges(
    user_category: str,
    weight_g: float,
    zone: str,
    cod_amount: float = 0.0,
    direction: str = FORWARD,
) -> ChargeBreakdown:
    """Shipping, COD and total charge for one shipment.

    COD is only charged on forward shipments.
    """
    category = resolve_category(user_category)
    if category is None:
        raise RateCardError(f"No rate card for user category {user_category!r}")
    if zone not in ZONES:
        raise RateCardError(f"Unknown zone {zone!r}")
    if direction not in (FORWARD, RTO):
        raise RateCardError(f"Unknown direction {direction!r}")

    card = RATE_CARDS[category]
    shipping = round2(slab_charge(card[direction][zone], weight_g))
    cod = cod_charge(card, cod_amount) if direction == FORWARD else 0.0
    return ChargeBreakdown(
        zone=zone,
        weight_g=weight_g,
        shipping_charge=shipping,
        cod_charge=cod,
        total=round2(shipping + cod),
        direction=direction,
    )
