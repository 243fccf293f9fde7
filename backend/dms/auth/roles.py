from enum import Enum


class Role(str, Enum):
    SYSTEM_ADMIN = "ADMIN"
    TENANT_ADMIN = "MERCHANT_ADMIN"
    TENANT_MANAGER = "MERCHANT_MANAGER"
    TENANT_USER = "MERCHANT_USER"
    READ_ONLY = "READ_ONLY"

    @classmethod
    def parse(cls, value) -> "Role | None":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


TENANT_ROLES = (
    Role.TENANT_ADMIN,
    Role.TENANT_MANAGER,
    Role.TENANT_USER,
    Role.READ_ONLY,
)
