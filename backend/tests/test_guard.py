from datetime import datetime

import pytest

from dms.auth.errors import Forbidden
from dms.auth.guard import require_permissions, require_tenant_access
from dms.auth.rbac import AUDIT_READ, DOC_DELETE, DOC_VIEW, SETTINGS_WRITE
from dms.auth.roles import Role
from dms.auth.security import build_access_claims


def _claims(role, tenant_id="T1"):
    return build_access_claims(
        user_id="u_1", role=role, tenant_id=tenant_id, refresh_record_id="rt_1", now=datetime.utcnow()
    )


def test_tenant_access_same_tenant_passes():
    require_tenant_access(_claims(Role.TENANT_USER, "T1"), "T1")


def test_tenant_access_other_tenant_is_forbidden():
    with pytest.raises(Forbidden) as excinfo:
        require_tenant_access(_claims(Role.TENANT_ADMIN, "T1"), "T2")
    assert excinfo.value.status_code == 403
    assert excinfo.value.message == "Access denied to this merchant"


@pytest.mark.parametrize("claim_tenant,target", [(None, "T1"), ("T1", None), (None, None)])
def test_tenant_access_missing_tenant_is_forbidden(claim_tenant, target):
    with pytest.raises(Forbidden):
        require_tenant_access(_claims(Role.TENANT_MANAGER, claim_tenant), target)


def test_system_admin_reaches_every_tenant():
    admin = _claims(Role.SYSTEM_ADMIN, None)

    require_tenant_access(admin, "T1")
    require_tenant_access(admin, "T2")
    require_tenant_access(admin, None)


def test_require_permissions_checks_every_permission():
    user = _claims(Role.TENANT_USER)

    require_permissions(user, [DOC_VIEW])
    with pytest.raises(Forbidden):
        require_permissions(user, [DOC_VIEW, DOC_DELETE])


def test_require_permissions_with_nothing_required_passes():
    require_permissions(_claims(Role.READ_ONLY), [])


def test_require_permissions_is_repeatable():
    manager = _claims(Role.TENANT_MANAGER)

    for _ in range(3):
        with pytest.raises(Forbidden):
            require_permissions(manager, [SETTINGS_WRITE])
        require_permissions(manager, [DOC_DELETE])


def test_system_admin_bypasses_permission_checks():
    admin = _claims(Role.SYSTEM_ADMIN, None)
    stripped = type(admin)(
        subject_id=admin.subject_id,
        refresh_record_id=admin.refresh_record_id,
        role=admin.role,
        permissions=(),
        tenant_id=None,
        expires_at=admin.expires_at,
    )

    require_permissions(stripped, [AUDIT_READ, SETTINGS_WRITE])
