from .auth import User, SessionToken
from .inventory import Product, StockRecord, Supplier, Supply
from .sales import Sale
from .reviews import Review
from .communications import NewsletterSubscription

__all__ = [
    'User', 'SessionToken',
    'Product', 'StockRecord', 'Supplier', 'Supply',
    'Sale',
    'Review',
    'NewsletterSubscription',
]
