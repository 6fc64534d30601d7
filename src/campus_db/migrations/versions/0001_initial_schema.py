"""Initial control-plane schema.

Notes:
- UUID primary keys everywhere except ``capabilities.id`` (stable string key).
- Enums use VARCHAR (native_enum=False).
- ``user_panels`` carries a partial unique index enforcing one default per identity.
"""

from __future__ import annotations

from alembic import op

from campus_db.base import Base

# Revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision: str | None = None
branch_labels: str | None = None
depends_on: str | None = None

_TABLES = (
    "users",
    "roles",
    "role_permissions",
    "user_roles",
    "capabilities",
    "panels",
    "user_panels",
    "audit_logs",
)


def upgrade() -> None:
    # Import models so Base.metadata is populated.
    import campus_db.models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.create_all(
        bind=bind,
        tables=[Base.metadata.tables[name] for name in _TABLES],
    )


def downgrade() -> None:
    import campus_db.models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.drop_all(
        bind=bind,
        tables=[Base.metadata.tables[name] for name in reversed(_TABLES)],
    )
