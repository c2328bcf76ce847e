"""Role-based procurement and requisition CRM."""

__version__ = "1.0.0"
