"""001 – Initial schema: employees with balance buckets, leave requests.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 10:30:00.000000+05:30
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("user_role", ["employee", "manager", "hr", "admin"]),
    (
        "leave_status",
        ["pending", "approved", "rejected", "cancelled", "withdrawal-requested"],
    ),
    ("leave_type", ["casual", "sick", "wfh", "on_duty", "pl", "lop"]),
    ("leave_duration", ["full-day", "half-day"]),
    ("half_day_type", ["morning", "afternoon"]),
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

    # ── 1. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id                      UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code           VARCHAR(50)  NOT NULL UNIQUE,
            name                    VARCHAR(200) NOT NULL,
            email                   VARCHAR(255) UNIQUE,
            role                    user_role NOT NULL DEFAULT 'employee',
            department              VARCHAR(150),
            designation             VARCHAR(150),
            reporting_manager_id    UUID REFERENCES employees(id),
            joining_date            DATE,
            is_active               BOOLEAN DEFAULT TRUE,
            total_leave_quota       NUMERIC(5,1) NOT NULL DEFAULT 0,
            leave_balance           NUMERIC(5,1) NOT NULL DEFAULT 0,
            leave_taken             NUMERIC(5,1) NOT NULL DEFAULT 0,
            carry_over_leaves       NUMERIC(5,1) NOT NULL DEFAULT 0,
            current_year_leaves     NUMERIC(5,1) NOT NULL DEFAULT 0,
            last_carry_forward_year INTEGER,
            created_at              TIMESTAMPTZ DEFAULT NOW(),
            updated_at              TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_employees_balance_non_negative
                CHECK (leave_balance >= 0 AND leave_taken >= 0)
        )
    """)
    op.execute("CREATE INDEX idx_employees_department ON employees(department)")

    # ── 2. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                      UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id             UUID NOT NULL REFERENCES employees(id),
            leave_type              leave_type NOT NULL,
            start_date              DATE NOT NULL,
            end_date                DATE NOT NULL,
            reason                  TEXT NOT NULL,
            leave_duration          leave_duration NOT NULL,
            half_day_type           half_day_type,
            status                  leave_status NOT NULL DEFAULT 'pending',
            number_of_days          NUMERIC(5,1) NOT NULL DEFAULT 0,
            balance_debited         BOOLEAN NOT NULL DEFAULT FALSE,
            reviewed_by             UUID REFERENCES employees(id),
            reviewed_on             TIMESTAMPTZ,
            admin_note              TEXT NOT NULL DEFAULT '',
            auto_approved           BOOLEAN NOT NULL DEFAULT FALSE,
            auto_approved_by_system BOOLEAN NOT NULL DEFAULT FALSE,
            created_at              TIMESTAMPTZ DEFAULT NOW(),
            updated_at              TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_requests_dates CHECK (end_date >= start_date)
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_requests_status_created
            ON leave_requests(status, created_at)
    """)
    op.execute(
        "CREATE INDEX ix_leave_requests_employee ON leave_requests(employee_id)"
    )


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS leave_requests CASCADE")
    op.execute("DROP TABLE IF EXISTS employees CASCADE")

    # Drop enum types
    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
