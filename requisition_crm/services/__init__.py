# Services module
from requisition_crm.services.document_sequence_service import DocumentSequenceService
from requisition_crm.services.request_service import RequestService
from requisition_crm.services.cost_comparison_service import CostComparisonService
from requisition_crm.services.purchase_order_service import PurchaseOrderService
from requisition_crm.services.delivery_service import DeliveryService
from requisition_crm.services.reference_data_service import ReferenceDataService
from requisition_crm.services.inventory_service import InventoryService

__all__ = [
    "DocumentSequenceService",
    "RequestService",
    "CostComparisonService",
    "PurchaseOrderService",
    "DeliveryService",
    "ReferenceDataService",
    "InventoryService",
]
