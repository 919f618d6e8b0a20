# Import SQLAlchemy models so they register on Base.metadata
from app.models.order import Order, OrderStatus  # noqa: F401
from app.models.order_audit_record import AuditOutcome, OrderAuditRecord  # noqa: F401
from app.models.organization import Organization, OrganizationMembership  # noqa: F401
from app.models.user import User, UserRole  # noqa: F401
