"""
Tenant resolution and the data-layer tenant policy.

Application code filters by ``tenant_code`` explicitly. Independently of that,
while a ``TenantScope`` is bound to the database session:

* every ORM select gets ``tenant_code == scope.code`` criteria on all
  ``TenantScoped`` entities (including lazy loads and aliases);
* a flush that would write a ``TenantScoped`` row for another tenant is refused;
* a ``TenantScoped`` row that still loads for another tenant is refused.

System reads that must see every tenant run inside ``unscoped()``.
"""
import re
from collections import namedtuple
from contextlib import contextmanager

from sqlalchemy import event
from sqlalchemy.orm import Session as OrmSession, with_loader_criteria

from models import db
from models.community import Community, COMMUNITY_ACTIVE
from models.db import TenantScoped
from utils.errors import Forbidden, UnknownTenant, CROSS_TENANT, CROSS_TENANT_WRITE

TenantScope = namedtuple("TenantScope", ["code", "name"])

SCOPE_KEY = "tenant_scope"
# session flag for system reads that must see every tenant
BYPASS_KEY = "tenant_scope_bypass"

_CODE_RE = re.compile(r"^[A-Z]{2,4}$")


def normalize_code(code) -> str:
    if not isinstance(code, str):
        return ""
    return code.strip().upper()


def is_valid_code(code) -> bool:
    return bool(_CODE_RE.match(normalize_code(code)))


def resolve(code) -> TenantScope:
    norm = normalize_code(code)
    if not is_valid_code(norm):
        raise UnknownTenant()

    community = db.session.get(Community, norm)
    if community is None or community.status != COMMUNITY_ACTIVE:
        raise UnknownTenant()
    return TenantScope(community.code, community.display_name)


def known_tenants():
    return (
        Community.query
        .filter_by(status=COMMUNITY_ACTIVE)
        .order_by(Community.code.asc())
        .all()
    )


def current_scope():
    return db.session.info.get(SCOPE_KEY)


def bind_scope(scope: TenantScope):
    db.session.info[SCOPE_KEY] = scope


def clear_scope():
    db.session.info.pop(SCOPE_KEY, None)


@contextmanager
def tenant_scope(scope: TenantScope):
    previous = current_scope()
    bind_scope(scope)
    try:
        yield scope
    finally:
        if previous is None:
            clear_scope()
        else:
            bind_scope(previous)


@contextmanager
def unscoped():
    """Suspend the tenant policy for the reads inside the block."""
    previous = db.session.info.get(BYPASS_KEY, False)
    db.session.info[BYPASS_KEY] = True
    try:
        yield
    finally:
        db.session.info[BYPASS_KEY] = previous


@event.listens_for(OrmSession, "do_orm_execute")
def _apply_tenant_criteria(state):
    scope = state.session.info.get(SCOPE_KEY)
    if scope is None or state.session.info.get(BYPASS_KEY):
        return
    if not state.is_select or state.is_column_load or state.is_relationship_load:
        return

    code = scope.code
    state.statement = state.statement.options(
        with_loader_criteria(
            TenantScoped,
            lambda cls: cls.tenant_code == code,
            include_aliases=True,
        )
    )


@event.listens_for(OrmSession, "before_flush")
def _refuse_cross_tenant_writes(session, flush_context, instances):
    scope = session.info.get(SCOPE_KEY)
    if scope is None:
        return

    pending = list(session.new) + list(session.dirty) + list(session.deleted)
    for obj in pending:
        if isinstance(obj, TenantScoped) and obj.tenant_code != scope.code:
            raise Forbidden("Cross-community write refused", reason=CROSS_TENANT_WRITE)


@event.listens_for(TenantScoped, "load", propagate=True)
def _refuse_foreign_rows(target, context):
    info = context.session.info
    scope = info.get(SCOPE_KEY)
    if scope is None or info.get(BYPASS_KEY):
        return
    if target.tenant_code != scope.code:
        raise Forbidden("Cross-community read refused", reason=CROSS_TENANT)
