"""ORM models for the ITC engine."""

from itc_kernel.models.purchase_invoice import (
    PurchaseInvoiceModel,
    PurchaseLineItemModel,
)
from itc_kernel.models.register import ItcRegisterModel
from itc_kernel.models.vendor import VendorModel

__all__ = [
    "ItcRegisterModel",
    "PurchaseInvoiceModel",
    "PurchaseLineItemModel",
    "VendorModel",
]
