from .auth import User, USER_ROLES
from .catalog import Category, Product, ProductImage, ProductColor, ProductSize, ProductFeature
from .orders import Order, OrderItem, OrderStatus, PaymentStatus, ALLOWED_TRANSITIONS, can_transition
from .ledger import AdminBalance, BalanceTransaction
from .notifications import (
    NotificationSettings, Notification, NotificationLog, SETTINGS_ROW_ID, NOTIFICATION_TYPES, LOG_CHANNELS,
)

__all__ = [
    'User', 'USER_ROLES',
    'Category', 'Product', 'ProductImage', 'ProductColor', 'ProductSize', 'ProductFeature',
    'Order', 'OrderItem', 'OrderStatus', 'PaymentStatus', 'ALLOWED_TRANSITIONS', 'can_transition',
    'AdminBalance', 'BalanceTransaction',
    'NotificationSettings', 'Notification', 'NotificationLog', 'SETTINGS_ROW_ID', 'NOTIFICATION_TYPES', 'LOG_CHANNELS',
]
