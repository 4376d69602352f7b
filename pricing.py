from typing import Dict, Optional, Sequence
from urllib.parse import quote

from schemas import DashboardStats, Phone

WHATSAPP_BASE = "https://wa.me/"


def discount_percent(phone: Phone) -> int:
    # Not clamped: an ouPrice above the market price gives a negative discount.
    if phone.market_price == 0:
        return 0
    return round((phone.market_price - phone.ou_price) / phone.market_price * 100)


def savings(phone: Phone) -> Dict[str, int]:
    return {
        "market": phone.market_price - phone.ou_price,
        "jumia": phone.jumia_price - phone.ou_price,
    }


def format_naira(amount: int) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}₦{abs(round(amount)):,}"


def whatsapp_order_url(phone: Phone, contact_phone: Optional[str] = None) -> str:
    message = (
        f"Hi, I have just made a payment for the {phone.name} "
        f"({format_naira(phone.ou_price)}). Here is my payment evidence."
    )
    digits = "".join(ch for ch in (contact_phone or "") if ch.isdigit())
    return f"{WHATSAPP_BASE}{digits}?text={quote(message, safe='')}"


def dashboard_stats(phones: Sequence[Phone]) -> DashboardStats:
    return DashboardStats(
        total_phones=len(phones),
        inventory_value=sum(p.ou_price for p in phones),
        potential_profit=sum(p.market_price - p.ou_price for p in phones),
        unique_brands=len({p.brand for p in phones}),
    )
