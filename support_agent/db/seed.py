"""Sample orders for local development and demos."""

from __future__ import annotations

import logging
from datetime import timedelta

from support_agent.db.models import OrderStatus, utc_now
from support_agent.db.store import SupportStore

logger = logging.getLogger(__name__)


def seed_sample_orders(store: SupportStore) -> int:
    """Insert (or refresh) a handful of demo orders.  Returns count written."""
    now = utc_now()
    samples = [
        {
            "order_id": "10001234",
            "customer_email": "alex@example.com",
            "status": OrderStatus.shipped.value,
            "items": [{"name": "Noise-Cancelling Headphones", "quantity": 1, "price": 19999}],
            "total": 19999,
            "tracking_number": "1Z999AA10123456784",
            "estimated_delivery": now + timedelta(days=2),
        },
        {
            "order_id": "10005678",
            "customer_email": "alex@example.com",
            "status": OrderStatus.processing.value,
            "items": [
                {"name": "USB-C Charger 65W", "quantity": 2, "price": 3499},
                {"name": "Braided USB-C Cable", "quantity": 1, "price": 1299},
            ],
            "total": 8297,
            "tracking_number": None,
            "estimated_delivery": now + timedelta(days=5),
        },
        {
            "order_id": "10009012",
            "customer_email": "sam@example.com",
            "status": OrderStatus.delivered.value,
            "items": [{"name": "Smart Watch S2", "quantity": 1, "price": 24900}],
            "total": 24900,
            "tracking_number": "9400111899223856927361",
            "estimated_delivery": now - timedelta(days=3),
        },
    ]
    for sample in samples:
        store.add_order(**sample)
    logger.info("Seeded %d sample orders", len(samples))
    return len(samples)
