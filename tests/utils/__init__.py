from tests.utils.factories import EventFactory, PayoutFactory
from tests.utils.helpers import (
    admin_action,
    admin_headers,
    get_earnings,
    headers_for,
    money,
    post_events,
    request_payout,
)

__all__ = [
    "EventFactory",
    "PayoutFactory",
    "admin_action",
    "admin_headers",
    "get_earnings",
    "headers_for",
    "money",
    "post_events",
    "request_payout",
]
