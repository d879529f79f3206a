from .tenancy import Tenant, Client
from .cases import Case, CaseComment, CaseStage
from .sequences import TenantSequence
from .audit import AuditEntry
from .notifications import Notification

__all__ = [
    'Tenant', 'Client',
    'Case', 'CaseStage', 'CaseComment',
    'TenantSequence',
    'AuditEntry',
    'Notification',
]
