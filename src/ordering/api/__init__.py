from ordering.api.routes import order_router, organization_router, patient_router

__all__ = ["order_router", "organization_router", "patient_router"]
