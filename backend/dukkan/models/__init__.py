from .accounts import Account
from .catalog import Category, Product, Warehouse
from .inventory import Inventory, InventoryTransaction
from .documents import Invoice, InvoiceDetail, Purchase, PurchaseDetail, DocumentSequence
from .finance import Transaction
from .auth import User, SessionToken
from .settings import Settings

__all__ = [
    'Account',
    'Category', 'Product', 'Warehouse',
    'Inventory', 'InventoryTransaction',
    'Invoice', 'InvoiceDetail', 'Purchase', 'PurchaseDetail', 'DocumentSequence',
    'Transaction',
    'User', 'SessionToken',
    'Settings',
]
