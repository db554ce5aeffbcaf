from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import declared_attr

db = SQLAlchemy()


class TenantScoped:
    """Rows that carry a ``tenant_code`` column.

    The tenancy policy in ``security.tenancy`` filters every ORM select on
    subclasses of this mixin and refuses flushes that cross the bound scope.
    """

    @declared_attr
    def tenant_code(cls):
        return db.Column(db.String(4), db.ForeignKey("communities.code"), nullable=False, index=True)
