# Overview: Model package exports for the shopledger schema.

from .tenancy import Organization, Location
from .catalog import Product, CustomerPrice
from .inventory import StockLevel, GENERAL_BATCH_KEY, batch_key_for
from .customers import Customer, CreditTransaction
from .cash import CashDrawer, CashDrawerSession, CashTransaction
from .sales import Sale, SaleLine, SaleLineBatch, Invoice, Payment, GatewayCharge
from .purchasing import PurchaseOrder, PurchaseOrderItem, ReceivingRecord, ReceivingRecordLine
from .documents import Return, ReturnLine, DocumentSequence, AuditEvent
from .expenses import Expense
from .transfers import TransferOrder, TransferLine, TransferLineBatch

__all__ = [
    "Organization",
    "Location",
    "Product",
    "CustomerPrice",
    "StockLevel",
    "GENERAL_BATCH_KEY",
    "batch_key_for",
    "Customer",
    "CreditTransaction",
    "CashDrawer",
    "CashDrawerSession",
    "CashTransaction",
    "Sale",
    "SaleLine",
    "SaleLineBatch",
    "Invoice",
    "Payment",
    "GatewayCharge",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "ReceivingRecord",
    "ReceivingRecordLine",
    "Return",
    "ReturnLine",
    "DocumentSequence",
    "AuditEvent",
    "Expense",
    "TransferOrder",
    "TransferLine",
    "TransferLineBatch",
]
