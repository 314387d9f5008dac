from .org import Department, User, SessionToken, RequestTypeDepartment
from .inventory import Item, ItemLocation, Asset, Equipment, StockLedger
from .requests import Request, RequestLine, RequestApproval
from .documents import Issue, IssueLine, Return, ReturnLine
from .activity import ActivityLog
from .maintenance import MaintenanceLog

__all__ = [
    'Department', 'User', 'SessionToken', 'RequestTypeDepartment',
    'Item', 'ItemLocation', 'Asset', 'Equipment', 'StockLedger',
    'Request', 'RequestLine', 'RequestApproval',
    'Issue', 'IssueLine', 'Return', 'ReturnLine',
    'ActivityLog',
    'MaintenanceLog',
]
