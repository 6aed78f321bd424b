"""Canopy Orders load testing, Locust entry point.

Start the API with an in-memory stock ledger deep enough for the run, for
example ``STOCK_DEFAULT_LEVEL=1000000 uvicorn app:app --app-dir src``,
otherwise payment confirmation is refused for lack of stock.

Usage:
    # Every user class (web UI):
    locust -f loadtests/locustfile.py --host http://localhost:8000

    # Lifecycle journeys only, headless:
    locust -f loadtests/locustfile.py FulfillmentUser --headless \
           -u 50 -r 5 -t 300s --csv=results/loadtest
"""

import logging
import time

import requests
from locust import events

from loadtests.helpers.response import extract_error_detail
from loadtests.scenarios.ordering import FulfillmentUser, OrganizationReadsUser  # noqa: F401

logger = logging.getLogger("loadtest")


@events.request.add_listener
def log_failed_request(request_type, name, response, exception, **_kw):
    """Log the failure code and reason for every failed request."""
    if exception:
        logger.error("[EXCEPTION] %s %s: %s", request_type, name, exception)
        return
    if response is not None and response.status_code >= 400:
        logger.error("[%s] %s %s: %s", response.status_code, request_type, name, extract_error_detail(response))


@events.test_start.add_listener
def check_target(environment, **_kwargs):
    print(f"\n[LOADTEST] Started at {time.strftime('%H:%M:%S')} against {environment.host}")
    if not environment.host:
        return
    try:
        health = requests.get(f"{environment.host}/health", timeout=5)
    except requests.RequestException as exc:
        print(f"[LOADTEST] Health check failed: {exc}\n")
        return
    print(f"[LOADTEST] Health: {health.status_code} {health.text}\n")


@events.test_stop.add_listener
def announce_stop(**_kwargs):
    print(f"\n[LOADTEST] Stopped at {time.strftime('%H:%M:%S')}\n")
