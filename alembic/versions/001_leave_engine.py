"""001 – Leave engine schema: balances, requests, notifications.

Revision ID: 001_leave_engine
Revises:
Create Date: 2026-10-18 10:00:00.000000+05:30
"""

from alembic import op

# Revision identifiers
revision = "001_leave_engine"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("leave_type", ["paid", "sick", "unpaid", "maternity"]),
    (
        "leave_status",
        ["pending", "manager_approved", "hr_approved", "rejected", "cancelled"],
    ),
    (
        "notification_type",
        ["info", "action_required", "approval", "reminder", "alert"],
    ),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. leave_balances ─────────────────────────────────────────────────
    # year = 0 holds the statutory maternity allotment; allotted NULL = uncapped
    op.execute("""
        CREATE TABLE leave_balances (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id UUID NOT NULL,
            leave_type  leave_type NOT NULL,
            year        INTEGER NOT NULL,
            allotted    INTEGER,
            consumed    INTEGER NOT NULL DEFAULT 0,
            reserved    INTEGER NOT NULL DEFAULT 0,
            updated_at  TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, leave_type, year),
            CONSTRAINT ck_leave_balance_reserved CHECK (reserved >= 0),
            CONSTRAINT ck_leave_balance_consumed CHECK (consumed >= 0)
        )
    """)

    # ── 2. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id    UUID NOT NULL,
            manager_id     UUID,
            leave_type     leave_type NOT NULL,
            start_date     DATE NOT NULL,
            end_date       DATE NOT NULL,
            days           INTEGER NOT NULL,
            year           INTEGER NOT NULL,
            reason         TEXT,
            status         leave_status NOT NULL DEFAULT 'pending',
            approval_trail JSONB NOT NULL DEFAULT '[]'::jsonb,
            created_at     TIMESTAMPTZ DEFAULT NOW(),
            updated_at     TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_request_dates CHECK (start_date <= end_date)
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_requests_employee_dates
            ON leave_requests(employee_id, start_date, end_date)
    """)
    op.execute("""
        CREATE INDEX ix_leave_requests_manager_status
            ON leave_requests(manager_id, status)
    """)

    # ── 3. notifications ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE notifications (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            recipient_id UUID NOT NULL,
            type         notification_type DEFAULT 'info',
            title        VARCHAR(200) NOT NULL,
            message      TEXT NOT NULL,
            action_url   VARCHAR(500),
            entity_type  VARCHAR(50),
            entity_id    UUID,
            created_at   TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_notifications_recipient
            ON notifications(recipient_id, created_at)
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for t in ("notifications", "leave_requests", "leave_balances"):
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
