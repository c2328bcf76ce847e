from fastapi import APIRouter

from requisition_crm.api.v1.endpoints import (
    # Procurement lifecycle
    requests,
    cost_comparisons,
    purchase_orders,
    deliveries,
    inventory,
    # Master data
    vendors,
    sites,
)


api_router = APIRouter(prefix="/api/v1")

# Procurement lifecycle
api_router.include_router(requests.router, prefix="/requests", tags=["Requests"])
api_router.include_router(cost_comparisons.router, tags=["Cost Comparisons"])
api_router.include_router(purchase_orders.router, prefix="/purchase-orders", tags=["Purchase Orders"])
api_router.include_router(deliveries.router, tags=["Deliveries"])
api_router.include_router(inventory.router, tags=["Inventory"])

# Master data
api_router.include_router(vendors.router, prefix="/vendors", tags=["Vendors"])
api_router.include_router(sites.router, prefix="/sites", tags=["Sites"])
