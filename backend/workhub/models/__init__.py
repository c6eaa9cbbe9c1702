from .tenancy import Organization
from .auth import User, SessionToken, ROLES, ROLE_ADMIN, ROLE_MANAGER, ROLE_FINANCE, ROLE_MEMBER
from .projects import Project, ProjectMember, Task, Timesheet, Attachment
from .finance import SalesOrder, PurchaseOrder, CustomerInvoice, VendorBill, Expense, DocumentSequence
from .events import Event, ImmutableEventError
from .cache import AnalyticsCache

__all__ = [
    'Organization',
    'User', 'SessionToken', 'ROLES', 'ROLE_ADMIN', 'ROLE_MANAGER', 'ROLE_FINANCE', 'ROLE_MEMBER',
    'Project', 'ProjectMember', 'Task', 'Timesheet', 'Attachment',
    'SalesOrder', 'PurchaseOrder', 'CustomerInvoice', 'VendorBill', 'Expense', 'DocumentSequence',
    'Event', 'ImmutableEventError',
    'AnalyticsCache',
]
