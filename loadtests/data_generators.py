"""Faker-based data generators for Locust load test scenarios.

Payloads match the field names of the API's Pydantic request schemas and
pass the engine's item validation.
"""

import random
import uuid

from faker import Faker

fake = Faker("pt_BR")

PRODUCTS = [
    ("oil-cbd-10", "CBD Oil 10%", 189.90),
    ("oil-cbd-20", "CBD Oil 20%", 329.90),
    ("flower-a", "Dried Flower A", 45.00),
    ("gummies-5", "CBD Gummies 5mg", 79.50),
]

CARRIERS = ["correios", "jadlog", "loggi"]


def organization_id() -> str:
    return f"org-lt-{random.randint(1, 5)}"


def actor_headers(role: str, organization: str | None = None, actor_id: str | None = None) -> dict:
    """Headers the session layer would set in front of the API."""
    headers = {
        "X-Actor-Id": actor_id or f"{role}-{uuid.uuid4().hex[:8]}",
        "X-Actor-Role": role,
    }
    if organization:
        headers["X-Organization-Id"] = organization
    return headers


def order_item() -> dict:
    product_ref, name, price = random.choice(PRODUCTS)
    return {
        "product_ref": product_ref,
        "product_name": name,
        "quantity": random.randint(1, 3),
        "unit_price": price,
    }


def delivery_address() -> dict:
    return {
        "street": fake.street_address()[:255],
        "city": fake.city()[:100],
        "state": fake.estado_sigla(),
        "postal_code": fake.postcode(),
        "country": "BR",
    }


def patient_order_data(num_items: int = 2) -> dict:
    """Generate CreatePatientOrderRequest payload."""
    return {
        "items": [order_item() for _ in range(num_items)],
        "shipping": round(random.uniform(0, 25.0), 2),
        "customer_name": fake.name(),
        "description": fake.sentence(nb_words=6),
        "prescription_reference": f"RX-{uuid.uuid4().hex[:8].upper()}",
        "delivery_address": delivery_address(),
    }


def tracking_data() -> dict:
    return {
        "carrier_code": random.choice(CARRIERS),
        "tracking_number": f"BR{random.randint(10**8, 10**9 - 1)}BR",
    }
