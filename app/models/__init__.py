from app.models.admin import Admin, AdminRole  # noqa: F401
from app.models.audit import AuditLog  # noqa: F401
from app.models.billing import Product, Subscription, WebhookEvent  # noqa: F401
from app.models.user import User, UserRole  # noqa: F401
