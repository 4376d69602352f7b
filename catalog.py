"""
Catalog filtering and sorting.

Everything here is pure: the input list is never mutated and the same
phones + FilterState always give the same result.
"""

from typing import List, Sequence

from schemas import FilterState, Phone


def filter_phones(phones: Sequence[Phone], filters: FilterState) -> List[Phone]:
    result = list(phones)

    if filters.search:
        q = filters.search.casefold()
        result = [p for p in result if q in p.name.casefold() or q in p.brand.casefold()]

    if filters.brand != "all":
        result = [p for p in result if p.brand == filters.brand]

    if filters.min_ram > 0:
        result = [p for p in result if p.ram >= filters.min_ram]

    if filters.max_price is not None:
        result = [p for p in result if p.ou_price <= filters.max_price]

    # sorted() is stable, also with reverse=True
    if filters.sort_by == "price_asc":
        result = sorted(result, key=lambda p: p.ou_price)
    elif filters.sort_by == "price_desc":
        result = sorted(result, key=lambda p: p.ou_price, reverse=True)
    else:
        result = sorted(result, key=lambda p: p.added_date, reverse=True)

    return result


def brands(phones: Sequence[Phone]) -> List[str]:
    """Distinct brands in first-seen order."""
    return list(dict.fromkeys(p.brand for p in phones))


def max_ou_price(phones: Sequence[Phone]) -> int:
    return max((p.ou_price for p in phones), default=0)


def featured_phones(phones: Sequence[Phone], limit: int = 4) -> List[Phone]:
    return list(phones[:limit])


def similar_phones(phones: Sequence[Phone], phone: Phone, limit: int = 4) -> List[Phone]:
    return [p for p in phones if p.brand == phone.brand and p.id != phone.id][:limit]
