# Models module - importing registers every table on Base.metadata
from requisition_crm.models.site import Site
from requisition_crm.models.vendor import Vendor
from requisition_crm.models.inventory import InventoryItem, StockMovement, StockMovementType
from requisition_crm.models.request import Request, RequestStatus, RequestStatusHistory
from requisition_crm.models.cost_comparison import (
    CostComparison,
    CostComparisonQuote,
    CCStatus,
    CC_EDITABLE_STATUSES,
)
from requisition_crm.models.purchase_order import PurchaseOrder, POStatus
from requisition_crm.models.delivery import (
    Delivery,
    DeliveryType,
    PaymentStatus,
    REQUIRED_FIELDS_BY_TYPE,
)
from requisition_crm.models.document_sequence import (
    DocumentSequence,
    DocumentSequenceAudit,
    DocumentScope,
    format_document_number,
)

__all__ = [
    "Site",
    "Vendor",
    "InventoryItem",
    "StockMovement",
    "StockMovementType",
    "Request",
    "RequestStatus",
    "RequestStatusHistory",
    "CostComparison",
    "CostComparisonQuote",
    "CCStatus",
    "CC_EDITABLE_STATUSES",
    "PurchaseOrder",
    "POStatus",
    "Delivery",
    "DeliveryType",
    "PaymentStatus",
    "REQUIRED_FIELDS_BY_TYPE",
    "DocumentSequence",
    "DocumentSequenceAudit",
    "DocumentScope",
    "format_document_number",
]
