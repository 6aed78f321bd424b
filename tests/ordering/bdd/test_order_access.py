"""BDD tests for who may act on an order."""

from pytest_bdd import scenarios

scenarios("features/order_access.feature")
