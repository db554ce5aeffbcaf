"""initial parkboard schema

Revision ID: a1f0c2d3e4b5
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a1f0c2d3e4b5"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "communities",
        sa.Column("code", sa.String(length=4), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("display_name", sa.String(length=160), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("status IN ('active', 'inactive')", name="ck_communities_status"),
        sa.PrimaryKeyConstraint("code"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("tenant_code", sa.String(length=4), nullable=False),
        sa.Column("display_name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=30), nullable=True),
        sa.Column("unit_number", sa.String(length=20), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("role IN ('resident', 'administrator')", name="ck_users_role"),
        sa.ForeignKeyConstraint(["tenant_code"], ["communities.code"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_users_tenant_code"), ["tenant_code"], unique=False)

    op.create_table(
        "slots",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("tenant_code", sa.String(length=4), nullable=False),
        sa.Column("location_level", sa.String(length=20), nullable=False),
        sa.Column("location_tower", sa.String(length=60), nullable=False),
        sa.Column("location_landmark", sa.String(length=120), nullable=True),
        sa.Column("price_per_hour", sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("available_from", sa.DateTime(), nullable=True),
        sa.Column("available_until", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("booking_seq", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("status IN ('available', 'taken', 'expired')", name="ck_slots_status"),
        sa.CheckConstraint(
            "available_from IS NULL OR available_until IS NULL OR available_until > available_from",
            name="ck_slots_window",
        ),
        sa.CheckConstraint("price_per_hour IS NULL OR price_per_hour >= 0", name="ck_slots_price"),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["tenant_code"], ["communities.code"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("slots", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_slots_owner_id"), ["owner_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_slots_tenant_code"), ["tenant_code"], unique=False)
        batch_op.create_index(batch_op.f("ix_slots_status"), ["status"], unique=False)
        batch_op.create_index("ix_slots_location", ["location_level", "location_tower"], unique=False)

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("slot_id", sa.Integer(), nullable=False),
        sa.Column("requester_id", sa.String(length=64), nullable=False),
        sa.Column("tenant_code", sa.String(length=4), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("total_price", sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by", sa.String(length=64), nullable=True),
        sa.Column("cancel_reason", sa.String(length=120), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("start_time < end_time", name="ck_bookings_range"),
        sa.CheckConstraint("status IN ('pending', 'confirmed', 'cancelled')", name="ck_bookings_status"),
        sa.ForeignKeyConstraint(["slot_id"], ["slots.id"]),
        sa.ForeignKeyConstraint(["requester_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["tenant_code"], ["communities.code"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("bookings", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_bookings_slot_id"), ["slot_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_bookings_requester_id"), ["requester_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_bookings_tenant_code"), ["tenant_code"], unique=False)
        batch_op.create_index(
            "ix_bookings_slot_window", ["slot_id", "status", "start_time", "end_time"], unique=False
        )

    # Overlap backstop: exclusion constraint on PostgreSQL, triggers on SQLite
    dialect = op.get_bind().dialect.name
    if dialect == "postgresql":
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            "ALTER TABLE bookings ADD CONSTRAINT ex_bookings_no_overlap "
            "EXCLUDE USING gist (slot_id WITH =, tsrange(start_time, end_time, '[)') WITH &&) "
            "WHERE (status IN ('pending', 'confirmed'))"
        )
    elif dialect == "sqlite":
        for name, event in (
            ("tr_bookings_no_overlap_insert", "INSERT"),
            ("tr_bookings_no_overlap_update", "UPDATE OF slot_id, start_time, end_time, status"),
        ):
            op.execute(
                f"CREATE TRIGGER {name} BEFORE {event} ON bookings "
                "WHEN NEW.status IN ('pending', 'confirmed') "
                "BEGIN "
                "SELECT RAISE(ABORT, 'ex_bookings_no_overlap') "
                "WHERE EXISTS (SELECT 1 FROM bookings AS b "
                "WHERE b.slot_id = NEW.slot_id AND b.id IS NOT NEW.id "
                "AND b.status IN ('pending', 'confirmed') "
                "AND b.start_time < NEW.end_time AND NEW.start_time < b.end_time); "
                "END"
            )

    op.create_table(
        "sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("subject_id", sa.String(length=64), nullable=False),
        sa.Column("token_hash", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("revoked", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("sessions", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_sessions_subject_id"), ["subject_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_sessions_token_hash"), ["token_hash"], unique=True)

    op.create_table(
        "rate_limits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("window_start", sa.DateTime(), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("rate_limits", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_rate_limits_key"), ["key"], unique=True)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("tenant_code", sa.String(length=4), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity", sa.String(length=80), nullable=True),
        sa.Column("entity_id", sa.String(length=80), nullable=True),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=255), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("audit_logs", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_audit_logs_tenant_code"), ["tenant_code"], unique=False)


def downgrade():
    with op.batch_alter_table("audit_logs", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_audit_logs_tenant_code"))
    op.drop_table("audit_logs")

    with op.batch_alter_table("rate_limits", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_rate_limits_key"))
    op.drop_table("rate_limits")

    with op.batch_alter_table("sessions", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_sessions_token_hash"))
        batch_op.drop_index(batch_op.f("ix_sessions_subject_id"))
    op.drop_table("sessions")

    with op.batch_alter_table("bookings", schema=None) as batch_op:
        batch_op.drop_index("ix_bookings_slot_window")
        batch_op.drop_index(batch_op.f("ix_bookings_tenant_code"))
        batch_op.drop_index(batch_op.f("ix_bookings_requester_id"))
        batch_op.drop_index(batch_op.f("ix_bookings_slot_id"))
    op.drop_table("bookings")

    with op.batch_alter_table("slots", schema=None) as batch_op:
        batch_op.drop_index("ix_slots_location")
        batch_op.drop_index(batch_op.f("ix_slots_status"))
        batch_op.drop_index(batch_op.f("ix_slots_tenant_code"))
        batch_op.drop_index(batch_op.f("ix_slots_owner_id"))
    op.drop_table("slots")

    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_users_tenant_code"))
    op.drop_table("users")

    op.drop_table("communities")
