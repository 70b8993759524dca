"""Traffic categories, their quota policies and the path classifier."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable

_MINUTE_MS = 60_000
BLOCK_DURATION_MS = 15 * _MINUTE_MS


class Category(str, Enum):
    AUTH = "auth"
    BOOKING = "booking"
    PAYMENT = "payment"
    ADMIN = "admin"
    MAPS = "maps"
    WEBHOOK = "webhook"
    SENSITIVE = "sensitive"
    DEFAULT = "default"

    @classmethod
    def parse(cls, value: str) -> Category:
        """Return the category named ``value``, or DEFAULT for unknown names."""
        try:
            return cls(value)
        except ValueError:
            return cls.DEFAULT


@dataclass(frozen=True)
class CategoryPolicy:
    max_requests: int
    window_ms: int
    block_ms: int
    description: str


POLICIES: dict[Category, CategoryPolicy] = {
    Category.AUTH: CategoryPolicy(
        10, 15 * _MINUTE_MS, BLOCK_DURATION_MS, "Too many authentication attempts"
    ),
    Category.BOOKING: CategoryPolicy(
        30, _MINUTE_MS, BLOCK_DURATION_MS, "Too many booking requests"
    ),
    Category.PAYMENT: CategoryPolicy(
        10, _MINUTE_MS, BLOCK_DURATION_MS, "Too many payment requests"
    ),
    Category.ADMIN: CategoryPolicy(
        100, _MINUTE_MS, BLOCK_DURATION_MS, "Too many admin requests"
    ),
    Category.MAPS: CategoryPolicy(
        60, _MINUTE_MS, BLOCK_DURATION_MS, "Too many map requests"
    ),
    Category.WEBHOOK: CategoryPolicy(
        100, _MINUTE_MS, BLOCK_DURATION_MS, "Too many webhook deliveries"
    ),
    Category.SENSITIVE: CategoryPolicy(
        5, _MINUTE_MS, BLOCK_DURATION_MS, "Too many requests to sensitive endpoints"
    ),
    Category.DEFAULT: CategoryPolicy(
        100, _MINUTE_MS, BLOCK_DURATION_MS, "Too many requests"
    ),
}


# -- Classifier ----------------------------------------------------------------

_WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

_AUTH_MARKERS = ("/auth/", "/login", "/logout", "/signup", "/register", "/otp", "/password", "/token")
_BOOKING_MARKERS = ("/book", "/ride-request", "/rides/request")
_BOOKING_WRITE_MARKERS = ("/rides", "/trips", "/orders", "/food-orders", "/parcel", "/deliveries", "/rentals")
_PAYMENT_MARKERS = ("/payment", "/wallet", "/payout", "/checkout", "/refund", "/tip", "/settlement")
_MAPS_MARKERS = ("/maps", "/geocode", "/directions", "/places", "/distance", "/autocomplete", "/eta")
_SENSITIVE_MARKERS = ("/kyc", "/documents", "/identity", "/verification", "/data-rights", "/privacy", "/bank-account")


def _contains_any(path: str, markers: tuple[str, ...]) -> bool:
    return any(marker in path for marker in markers)


def _is_auth(path: str, method: str) -> bool:
    return _contains_any(path, _AUTH_MARKERS)


def _is_booking(path: str, method: str) -> bool:
    if _contains_any(path, _BOOKING_MARKERS):
        return True
    return method in _WRITE_METHODS and _contains_any(path, _BOOKING_WRITE_MARKERS)


def _is_payment(path: str, method: str) -> bool:
    return _contains_any(path, _PAYMENT_MARKERS)


def _is_admin(path: str, method: str) -> bool:
    return path.startswith("/api/admin") or path.startswith("/admin/")


def _is_maps(path: str, method: str) -> bool:
    return _contains_any(path, _MAPS_MARKERS)


def _is_webhook(path: str, method: str) -> bool:
    return "/webhook" in path


def _is_sensitive(path: str, method: str) -> bool:
    return _contains_any(path, _SENSITIVE_MARKERS)


# Evaluated in order; earlier entries win when predicates overlap.
_RULES: list[tuple[Category, Callable[[str, str], bool]]] = [
    (Category.AUTH, _is_auth),
    (Category.BOOKING, _is_booking),
    (Category.PAYMENT, _is_payment),
    (Category.ADMIN, _is_admin),
    (Category.MAPS, _is_maps),
    (Category.WEBHOOK, _is_webhook),
    (Category.SENSITIVE, _is_sensitive),
]


def classify(path: str, method: str, explicit: Category | None = None) -> Category:
    """Map a request path and method to its traffic category.

    An ``explicit`` category short-circuits classification.
    """
    if explicit is not None:
        return explicit

    lowered = path.lower()
    upper_method = method.upper()
    for category, predicate in _RULES:
        if predicate(lowered, upper_method):
            return category
    return Category.DEFAULT
