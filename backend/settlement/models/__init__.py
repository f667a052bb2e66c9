from .operators import Operator
from .catalog import Product, ProductVariant
from .inventory import StockMovement, StockAlert
from .sales import Sale, SaleLine, PaymentSplit
from .customers import Customer, PointsTransaction, LoyaltyTierConfig, LoyaltyReward
from .documents import DocumentSequence, AuditLog

__all__ = [
    'Operator',
    'Product', 'ProductVariant',
    'StockMovement', 'StockAlert',
    'Sale', 'SaleLine', 'PaymentSplit',
    'Customer', 'PointsTransaction', 'LoyaltyTierConfig', 'LoyaltyReward',
    'DocumentSequence', 'AuditLog',
]
