from .auth import User
from .inventory import Product, StockMovement, DemandNotice, DemandNoticePayment
from .sales import Order, OrderItem, OrderPayment, Quotation, QuotationItem
from .purchasing import Supplier, PurchaseOrder, POItem, POAttachment
from .audits import Audit, AuditItem, AuditItemCount, AuditEvidence
from .timekeeping import AttendanceLog, BreakLog
from .documents import SeriesCounter

__all__ = [
    'User',
    'Product', 'StockMovement', 'DemandNotice', 'DemandNoticePayment',
    'Order', 'OrderItem', 'OrderPayment', 'Quotation', 'QuotationItem',
    'Supplier', 'PurchaseOrder', 'POItem', 'POAttachment',
    'Audit', 'AuditItem', 'AuditItemCount', 'AuditEvidence',
    'AttendanceLog', 'BreakLog',
    'SeriesCounter',
]
