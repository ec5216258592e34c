from stockledger.models.catalog import Item, ItemPrice, Location, Supplier
from stockledger.models.stock import LocationStock
from stockledger.models.period import Period, PeriodLocation
from stockledger.models.delivery import Delivery, DeliveryLine
from stockledger.models.issue import Issue, IssueLine
from stockledger.models.transfer import Transfer, TransferLine
from stockledger.models.ncr import NCR
from stockledger.models.reconciliation import Reconciliation
from stockledger.models.approval import Approval
from stockledger.models.audit_log import AuditLog

__all__ = [
    "Approval",
    "AuditLog",
    "Delivery",
    "DeliveryLine",
    "Issue",
    "IssueLine",
    "Item",
    "ItemPrice",
    "Location",
    "LocationStock",
    "NCR",
    "Period",
    "PeriodLocation",
    "Reconciliation",
    "Supplier",
    "Transfer",
    "TransferLine",
]
