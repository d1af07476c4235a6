from .storage import StorageSlot, ImageBlob
from .records import (
    ROLE_ADMIN,
    ROLE_EMPLOYEE,
    ROLE_EMPLOYEE_RETURN,
    ALL_ROLES,
    SALE_STATUS_ACTIVE,
    SALE_STATUS_RETURNED,
    SALE_STATUSES,
    Product,
    User,
    AuthSession,
    SaleItem,
    Sale,
    ThemeColors,
    BankService,
    AppSettings,
)

__all__ = [
    'StorageSlot', 'ImageBlob',
    'ROLE_ADMIN', 'ROLE_EMPLOYEE', 'ROLE_EMPLOYEE_RETURN', 'ALL_ROLES',
    'SALE_STATUS_ACTIVE', 'SALE_STATUS_RETURNED', 'SALE_STATUSES',
    'Product', 'User', 'AuthSession', 'SaleItem', 'Sale',
    'ThemeColors', 'BankService', 'AppSettings',
]
