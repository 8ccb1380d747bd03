"""
Filter, sort and paginate the in-memory package list.

Everything here is a pure function of the fetched rows plus the request's filter,
sort and page parameters. The list route fetches all rows once and hands them over.
"""
from __future__ import annotations

import hashlib
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass
from typing import Any

from app.mortgage_dashboard.constants import FILTER_ALL, SORT_FIELDS
from app.mortgage_dashboard.modules.mortgage_packages.models import MortgagePackage

DEFAULT_SORT_FIELD = "last_updated"
DEFAULT_SORT_ORDER = "desc"


def parse_client_loan(raw: str | None) -> float | None:
    """
    Parse the client loan amount filter. Returns None when the value is empty or not
    a finite number, in which case the filter (and its sort override) is inactive.
    """
    if raw is None:
        return None
    s = raw.strip()
    # float() accepts digit separators like "1_000"; the form field does not.
    if not s or "_" in s:
        return None
    try:
        n = float(s)
    except ValueError:
        return None
    if not math.isfinite(n):
        return None
    return n


@dataclass(frozen=True)
class FilterState:
    search: str = ""
    bank: str = FILTER_ALL
    property_type: str = FILTER_ALL
    lockin_period: str = FILTER_ALL
    category: str = FILTER_ALL
    client_loan: str = ""

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "FilterState":
        def _choice(name: str) -> str:
            return (args.get(name) or "").strip() or FILTER_ALL

        return cls(
            search=(args.get("q") or "").strip(),
            bank=_choice("bank"),
            property_type=_choice("property_type"),
            lockin_period=_choice("lockin_period"),
            category=_choice("category"),
            client_loan=(args.get("client_loan") or "").strip(),
        )

    @property
    def client_loan_amount(self) -> float | None:
        return parse_client_loan(self.client_loan)

    def signature(self) -> str:
        """Stable digest of the filter values; a change means the page resets to 1."""
        raw = "\x1f".join(f"{k}={v}" for k, v in sorted(asdict(self).items()))
        return hashlib.sha1(raw.encode("utf-8")).hexdigest()

    def to_args(self) -> dict[str, str]:
        """Query-string form, omitting inactive filters."""
        out: dict[str, str] = {}
        if self.search:
            out["q"] = self.search
        for name in ("bank", "property_type", "lockin_period", "category"):
            value = getattr(self, name)
            if value != FILTER_ALL:
                out[name] = value
        if self.client_loan:
            out["client_loan"] = self.client_loan
        return out

    def matches(self, pkg: MortgagePackage) -> bool:
        if self.search:
            term = self.search.lower()
            if term not in pkg.package_name.lower() and term not in pkg.bank.lower():
                return False
        if self.bank != FILTER_ALL and pkg.bank != self.bank:
            return False
        if self.property_type != FILTER_ALL and pkg.property_type != self.property_type:
            return False
        if self.lockin_period != FILTER_ALL and pkg.lockin_period != self.lockin_period:
            return False
        if self.category != FILTER_ALL and pkg.category != self.category:
            return False
        amount = self.client_loan_amount
        if amount is not None and not amount >= pkg.min_loan_size:
            return False
        return True


@dataclass(frozen=True)
class SortState:
    field: str = DEFAULT_SORT_FIELD
    order: str = DEFAULT_SORT_ORDER

    @classmethod
    def from_value(cls, value: str | None) -> "SortState":
        """Parse the sort dropdown value, e.g. "min_loan_size-asc"."""
        value = (value or "").strip()
        if not value:
            return cls()
        sort_field, _, order = value.rpartition("-")
        if not sort_field:
            sort_field, order = order, DEFAULT_SORT_ORDER
        if order not in ("asc", "desc"):
            order = DEFAULT_SORT_ORDER
        return cls(field=sort_field, order=order)

    @property
    def value(self) -> str:
        return f"{self.field}-{self.order}"

    @property
    def descending(self) -> bool:
        return self.order == "desc"

    def flipped(self) -> "SortState":
        return SortState(field=self.field, order="asc" if self.descending else "desc")


def _sort_key(sort_field: str):
    # Unknown fields fall back to the package name.
    if sort_field not in SORT_FIELDS:
        sort_field = "package_name"
    return lambda pkg: getattr(pkg, sort_field)


def filter_and_sort(
    packages: Iterable[MortgagePackage],
    filters: FilterState,
    sort: SortState,
) -> list[MortgagePackage]:
    """
    Keep the packages that satisfy every active filter, then order them.

    With a valid client loan amount the requested sort is ignored and the qualifying
    packages are ordered by minimum loan size, highest first: the closest fit to the
    client's amount comes first. Ties keep their incoming order.
    """
    filtered = [pkg for pkg in packages if filters.matches(pkg)]
    if filters.client_loan_amount is not None:
        return sorted(filtered, key=lambda pkg: pkg.min_loan_size, reverse=True)
    return sorted(filtered, key=_sort_key(sort.field), reverse=sort.descending)


@dataclass(frozen=True)
class Page:
    items: list[MortgagePackage]
    number: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0

    @property
    def has_prev(self) -> bool:
        return self.number > 1

    @property
    def has_next(self) -> bool:
        return self.number < self.total_pages

    @property
    def page_numbers(self) -> range:
        return range(1, self.total_pages + 1)


def paginate(items: Sequence[MortgagePackage], page: int, page_size: int) -> Page:
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    total = len(items)
    last = max(1, math.ceil(total / page_size))
    number = min(max(1, page), last)
    start = (number - 1) * page_size
    return Page(items=list(items[start : start + page_size]), number=number, page_size=page_size, total=total)


def list_signature(filters: FilterState, sort: SortState) -> str:
    return f"{filters.signature()}:{sort.value}"


def resolve_page(requested: str | int | None, signature: str, previous_signature: str | None) -> int:
    """Requested page number, or 1 when filters or sort differ from the previous request."""
    if previous_signature is not None and previous_signature != signature:
        return 1
    try:
        page = int(requested or 1)
    except (TypeError, ValueError):
        return 1
    return page if page >= 1 else 1


def _distinct(values: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for v in values:
        if v not in seen:
            seen[v] = None
    return tuple(seen)


@dataclass(frozen=True)
class FilterOptions:
    categories: tuple[str, ...] = ()
    banks: tuple[str, ...] = ()
    property_types: tuple[str, ...] = ()
    lockin_periods: tuple[str, ...] = ()

    @classmethod
    def from_packages(cls, packages: Sequence[MortgagePackage]) -> "FilterOptions":
        return cls(
            categories=_distinct(p.category for p in packages),
            banks=_distinct(p.bank for p in packages),
            property_types=_distinct(p.property_type for p in packages),
            lockin_periods=_distinct(p.lockin_period for p in packages),
        )


@dataclass(frozen=True)
class PackageListView:
    page: Page
    total_packages: int
    filters: FilterState
    sort: SortState
    options: FilterOptions

    @property
    def total_matches(self) -> int:
        return self.page.total

    @property
    def client_loan_amount(self) -> float | None:
        return self.filters.client_loan_amount

    def is_most_relevant(self, index: int) -> bool:
        """The first card of the page is highlighted when a client loan amount drives the order."""
        return index == 0 and self.client_loan_amount is not None


def build_list_view(
    packages: Sequence[MortgagePackage],
    filters: FilterState,
    sort: SortState,
    *,
    page: int,
    page_size: int,
) -> PackageListView:
    ordered = filter_and_sort(packages, filters, sort)
    return PackageListView(
        page=paginate(ordered, page, page_size),
        total_packages=len(packages),
        filters=filters,
        sort=sort,
        options=FilterOptions.from_packages(packages),
    )
