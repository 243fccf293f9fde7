from dms.auth.roles import Role

MERCHANT_READ = "merchant:read"
MERCHANT_WRITE = "merchant:write"
USER_MANAGE = "user:manage"
DOC_UPLOAD = "doc:upload"
DOC_VIEW = "doc:view"
DOC_DELETE = "doc:delete"
KYC_VERIFY = "kyc:verify"
BILLING_VIEW = "billing:view"
AUDIT_READ = "audit:read"
SETTINGS_WRITE = "settings:write"

ALL_PERMISSIONS: tuple[str, ...] = (
    MERCHANT_READ,
    MERCHANT_WRITE,
    USER_MANAGE,
    DOC_UPLOAD,
    DOC_VIEW,
    DOC_DELETE,
    KYC_VERIFY,
    BILLING_VIEW,
    AUDIT_READ,
    SETTINGS_WRITE,
)

ROLE_PERMISSIONS: dict[Role, tuple[str, ...]] = {
    Role.SYSTEM_ADMIN: ALL_PERMISSIONS,
    Role.TENANT_ADMIN: ALL_PERMISSIONS,
    Role.TENANT_MANAGER: (
        MERCHANT_READ,
        USER_MANAGE,
        DOC_UPLOAD,
        DOC_VIEW,
        DOC_DELETE,
        KYC_VERIFY,
        BILLING_VIEW,
    ),
    Role.TENANT_USER: (MERCHANT_READ, DOC_UPLOAD, DOC_VIEW),
    Role.READ_ONLY: (MERCHANT_READ, DOC_VIEW, BILLING_VIEW),
}


def permissions_for(role: Role | str | None) -> tuple[str, ...]:
    """Permissions granted to ``role``, in canonical order.

    Anything outside the closed ``Role`` enum gets nothing.
    """
    parsed = Role.parse(role)
    if parsed is None:
        return ()
    return ROLE_PERMISSIONS.get(parsed, ())
