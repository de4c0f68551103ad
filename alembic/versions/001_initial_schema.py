"""001 – Initial schema: directory, calendar, policy, requests, ledgers, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-16 10:00:00.000000+05:30
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
    ("user_role", ["HR", "MANAGER", "EMPLOYEE", "MD", "ADMIN", "VP"]),
    ("leave_type", ["CL", "SL", "PL", "RH", "COMPOFF", "LWP"]),
    (
        "leave_status",
        ["PENDING", "APPROVED", "REJECTED", "CANCELLED", "CANCELLED_BY_COMPANY"],
    ),
    (
        "ledger_action",
        [
            "ACCRUE_MONTHLY",
            "ACCRUE_ANNUAL",
            "DEBIT_APPROVED",
            "CREDIT_REVERSED",
            "CARRY_FORWARD",
            "LAPSE",
            "ENCASHMENT",
            "COMPOFF_CREDIT",
        ],
    ),
    ("compoff_status", ["PENDING", "APPROVED", "REJECTED"]),
    ("wfh_status", ["PENDING", "APPROVED", "REJECTED", "CANCELLED"]),
    ("wfh_action", ["DEBIT_APPROVED", "CREDIT_REVERSED"]),
]

APPEND_ONLY_TABLES = ("leave_transactions", "wfh_transactions")


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # ── Enum types ────────────────────────────────────────────────────────
    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. departments ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE departments (
            id          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name        VARCHAR(150) NOT NULL UNIQUE,
            code        VARCHAR(20) UNIQUE,
            is_active   BOOLEAN DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. role_definitions ───────────────────────────────────────────────
    op.execute("""
        CREATE TABLE role_definitions (
            id          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name        VARCHAR(50) NOT NULL UNIQUE,
            role_rank   INTEGER NOT NULL,
            wfh_enabled BOOLEAN DEFAULT FALSE,
            is_active   BOOLEAN DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 3. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id                   UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            emp_code             VARCHAR(20)  NOT NULL UNIQUE,
            name                 VARCHAR(255) NOT NULL,
            role                 user_role    NOT NULL DEFAULT 'EMPLOYEE',
            role_rank            INTEGER      NOT NULL,
            department_id        UUID REFERENCES departments(id),
            reporting_manager_id UUID,
            join_date            DATE,
            active               BOOLEAN DEFAULT TRUE,
            created_at           TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT fk_emp_reporting_manager
                FOREIGN KEY (reporting_manager_id) REFERENCES employees(id)
        )
    """)
    op.execute("CREATE INDEX ix_employees_department_id        ON employees(department_id)")
    op.execute("CREATE INDEX ix_employees_reporting_manager_id ON employees(reporting_manager_id)")
    op.execute("CREATE INDEX ix_employees_role_rank            ON employees(role_rank)")

    # ── 4. leave_policies ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_policies (
            id                    UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            year                  INTEGER NOT NULL UNIQUE,
            annual_pl             INTEGER NOT NULL DEFAULT 7,
            annual_cl             INTEGER NOT NULL DEFAULT 5,
            annual_sl             INTEGER NOT NULL DEFAULT 6,
            annual_rh             INTEGER NOT NULL DEFAULT 1,
            monthly_credit_pl     NUMERIC(8, 4),
            monthly_credit_cl     NUMERIC(8, 4),
            monthly_credit_sl     NUMERIC(8, 4) DEFAULT 0,
            pl_eligibility_months INTEGER NOT NULL DEFAULT 6,
            backdated_max_days    INTEGER NOT NULL DEFAULT 7,
            carry_forward_pl_max  INTEGER NOT NULL DEFAULT 4,
            sandwich_enabled      BOOLEAN NOT NULL DEFAULT TRUE,
            allow_hr_override     BOOLEAN NOT NULL DEFAULT TRUE,
            wfh_max_days          INTEGER NOT NULL DEFAULT 12,
            wfh_day_value         NUMERIC(6, 4) NOT NULL DEFAULT 0.5,
            revision              INTEGER NOT NULL DEFAULT 1,
            updated_by            UUID REFERENCES employees(id),
            created_at            TIMESTAMPTZ DEFAULT NOW(),
            updated_at            TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 5. holidays / restricted_holidays ─────────────────────────────────
    for table in ("holidays", "restricted_holidays"):
        unique_name = "uq_holiday_date" if table == "holidays" else "uq_restricted_holiday_date"
        op.execute(f"""
            CREATE TABLE {table} (
                id          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                year        INTEGER NOT NULL,
                name        VARCHAR(150) NOT NULL,
                date        DATE NOT NULL,
                active      BOOLEAN DEFAULT TRUE,
                created_at  TIMESTAMPTZ DEFAULT NOW(),
                CONSTRAINT {unique_name} UNIQUE (date)
            )
        """)
        op.execute(f"CREATE INDEX ix_{table}_year ON {table}(year)")

    # ── 6. attendance_logs ────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE attendance_logs (
            id          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            employee_id UUID NOT NULL REFERENCES employees(id),
            punch_date  DATE NOT NULL,
            in_time     TIME,
            out_time    TIME,
            source      VARCHAR(30) DEFAULT 'WEB',
            created_at  TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_attendance_emp_date UNIQUE (employee_id, punch_date)
        )
    """)

    # ── 7. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                    UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            employee_id           UUID NOT NULL REFERENCES employees(id),
            leave_type            leave_type NOT NULL,
            from_date             DATE NOT NULL,
            to_date               DATE NOT NULL,
            reason                TEXT,
            status                leave_status NOT NULL DEFAULT 'PENDING',
            computed_days         NUMERIC(10, 4) NOT NULL,
            paid_days             NUMERIC(10, 4) NOT NULL,
            lwp_days              NUMERIC(10, 4) NOT NULL DEFAULT 0,
            override_policy       BOOLEAN DEFAULT FALSE,
            override_remark       TEXT,
            auto_converted_to_lwp BOOLEAN DEFAULT FALSE,
            auto_lwp_reason       TEXT,
            approver_id           UUID REFERENCES employees(id),
            applied_at            TIMESTAMPTZ DEFAULT NOW(),
            approved_by_id        UUID REFERENCES employees(id),
            approved_remark       TEXT,
            approved_at           TIMESTAMPTZ,
            rejected_by_id        UUID REFERENCES employees(id),
            rejected_remark       TEXT,
            rejected_at           TIMESTAMPTZ,
            cancelled_by_id       UUID REFERENCES employees(id),
            cancelled_remark      TEXT,
            cancelled_at          TIMESTAMPTZ,
            recredited            BOOLEAN DEFAULT FALSE,
            version               INTEGER NOT NULL DEFAULT 1,
            CONSTRAINT ck_leave_requests_dates CHECK (from_date <= to_date)
        )
    """)
    op.execute("CREATE INDEX ix_leave_requests_employee_status ON leave_requests(employee_id, status)")
    op.execute("CREATE INDEX ix_leave_requests_approver_status ON leave_requests(approver_id, status)")
    op.execute("CREATE INDEX ix_leave_requests_dates           ON leave_requests(from_date, to_date)")

    # ── 8. compoff_requests ───────────────────────────────────────────────
    op.execute("""
        CREATE TABLE compoff_requests (
            id            UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            employee_id   UUID NOT NULL REFERENCES employees(id),
            worked_date   DATE NOT NULL,
            reason        TEXT,
            status        compoff_status NOT NULL DEFAULT 'PENDING',
            requested_at  TIMESTAMPTZ DEFAULT NOW(),
            action_by_id  UUID REFERENCES employees(id),
            action_at     TIMESTAMPTZ,
            action_remark TEXT,
            version       INTEGER NOT NULL DEFAULT 1,
            CONSTRAINT uq_compoff_requests_employee_date UNIQUE (employee_id, worked_date)
        )
    """)
    op.execute("CREATE INDEX ix_compoff_requests_status ON compoff_requests(status)")

    # ── 9. leave_transactions (append-only ledger) ────────────────────────
    op.execute("""
        CREATE TABLE leave_transactions (
            id                    UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            employee_id           UUID NOT NULL REFERENCES employees(id),
            year                  INTEGER NOT NULL,
            leave_type            leave_type NOT NULL,
            delta_days            NUMERIC(10, 4) NOT NULL,
            action                ledger_action NOT NULL,
            remarks               TEXT,
            action_by_employee_id UUID REFERENCES employees(id),
            action_at             TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            leave_request_id      UUID REFERENCES leave_requests(id),
            compoff_request_id    UUID REFERENCES compoff_requests(id),
            accrual_month         SMALLINT CHECK (accrual_month BETWEEN 1 AND 12),
            expires_on            DATE,
            dedup_key             VARCHAR(200),
            CONSTRAINT uq_leave_transactions_dedup_key UNIQUE (dedup_key)
        )
    """)
    op.execute("CREATE INDEX ix_leave_tx_emp_year_type     ON leave_transactions(employee_id, year, leave_type)")
    op.execute("CREATE INDEX ix_leave_tx_year_action       ON leave_transactions(year, action)")
    op.execute("CREATE INDEX ix_leave_tx_leave_request_id  ON leave_transactions(leave_request_id)")

    # ── 10. wfh_requests / wfh_transactions ───────────────────────────────
    op.execute("""
        CREATE TABLE wfh_requests (
            id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            employee_id     UUID NOT NULL REFERENCES employees(id),
            request_date    DATE NOT NULL,
            reason          TEXT,
            status          wfh_status NOT NULL DEFAULT 'PENDING',
            applied_at      TIMESTAMPTZ DEFAULT NOW(),
            approved_by     UUID REFERENCES employees(id),
            approved_at     TIMESTAMPTZ,
            rejected_by     UUID REFERENCES employees(id),
            rejected_at     TIMESTAMPTZ,
            rejected_remark TEXT,
            cancelled_at    TIMESTAMPTZ,
            version         INTEGER NOT NULL DEFAULT 1
        )
    """)
    op.execute("CREATE INDEX ix_wfh_requests_employee_date ON wfh_requests(employee_id, request_date)")
    op.execute("CREATE INDEX ix_wfh_requests_status        ON wfh_requests(status)")

    op.execute("""
        CREATE TABLE wfh_transactions (
            id                    UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            employee_id           UUID NOT NULL REFERENCES employees(id),
            year                  INTEGER NOT NULL,
            request_date          DATE NOT NULL,
            day_value             NUMERIC(10, 4) NOT NULL,
            action                wfh_action NOT NULL,
            remarks               TEXT,
            action_by_employee_id UUID REFERENCES employees(id),
            action_at             TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            wfh_request_id        UUID REFERENCES wfh_requests(id),
            dedup_key             VARCHAR(200),
            CONSTRAINT uq_wfh_transactions_dedup_key UNIQUE (dedup_key)
        )
    """)
    op.execute("CREATE INDEX ix_wfh_tx_emp_year ON wfh_transactions(employee_id, year)")

    # ── 11. audit_trail ───────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            actor_id    UUID REFERENCES employees(id),
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   VARCHAR(64) NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id   ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity     ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")
    op.execute("CREATE INDEX ix_audit_trail_action     ON audit_trail(action)")

    # ── Append-only guard for the ledgers ─────────────────────────────────
    op.execute("""
        CREATE OR REPLACE FUNCTION refuse_ledger_mutation() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION '% rows are append-only', TG_TABLE_NAME;
        END;
        $$ LANGUAGE plpgsql
    """)
    for table in APPEND_ONLY_TABLES:
        op.execute(f"""
            CREATE TRIGGER trg_{table}_append_only
                BEFORE UPDATE OR DELETE ON {table}
                FOR EACH ROW EXECUTE FUNCTION refuse_ledger_mutation()
        """)

    # ══════════════════════════════════════════════════════════════════════
    # SEED DATA
    # ══════════════════════════════════════════════════════════════════════

    op.execute("""
        INSERT INTO role_definitions (name, role_rank, wfh_enabled) VALUES
        ('MD',       1, FALSE),
        ('ADMIN',    2, FALSE),
        ('VP',       2, TRUE),
        ('HR',       3, TRUE),
        ('MANAGER',  4, TRUE),
        ('EMPLOYEE', 5, FALSE)
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for table in APPEND_ONLY_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS trg_{table}_append_only ON {table}")
    op.execute("DROP FUNCTION IF EXISTS refuse_ledger_mutation()")

    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "wfh_transactions",
        "wfh_requests",
        "leave_transactions",
        "compoff_requests",
        "leave_requests",
        "attendance_logs",
        "restricted_holidays",
        "holidays",
        "leave_policies",
        "employees",
        "role_definitions",
        "departments",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
