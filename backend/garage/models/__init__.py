from .tenancy import Company
from .auth import Role, User, SessionToken
from .settings import StatusMessage
from .workflow import WorkflowLevel, ApprovalEvent
from .returns import PurchaseReturn, PurchaseReturnItem
from .inventory import InventoryLine
from .communications import Notification
from .audit import SystemLog

__all__ = [
    'Company',
    'Role', 'User', 'SessionToken',
    'StatusMessage',
    'WorkflowLevel', 'ApprovalEvent',
    'PurchaseReturn', 'PurchaseReturnItem',
    'InventoryLine',
    'Notification',
    'SystemLog',
]
