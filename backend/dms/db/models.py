from dms.auth.models import RefreshToken, User  # noqa: F401
from dms.audit.models import AuditLog  # noqa: F401
