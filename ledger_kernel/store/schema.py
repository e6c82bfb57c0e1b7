"""
PostgreSQL schema for the ledger kernel.

Uniqueness and the amount_paid ceiling are enforced here so that
concurrent writers cannot slip past the service-level pre-checks.
"""
import logging

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS chart_of_accounts (
    id          UUID PRIMARY KEY,
    tenant_id   TEXT NOT NULL,
    code        VARCHAR(20) NOT NULL,
    name        VARCHAR(255) NOT NULL,
    type        VARCHAR(20) NOT NULL
                CHECK (type IN ('asset', 'liability', 'equity', 'revenue', 'expense')),
    is_active   BOOLEAN NOT NULL DEFAULT TRUE,
    parent_id   UUID REFERENCES chart_of_accounts(id),
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT uq_chart_of_accounts_code UNIQUE (tenant_id, code)
);

CREATE TABLE IF NOT EXISTS journal_entries (
    id              UUID PRIMARY KEY,
    tenant_id       TEXT NOT NULL,
    journal_number  VARCHAR(100) NOT NULL,
    journal_date    DATE NOT NULL,
    memo            VARCHAR(1000),
    status          VARCHAR(20) NOT NULL DEFAULT 'draft'
                    CHECK (status IN ('draft', 'posted', 'reversed')),
    posted_at       TIMESTAMPTZ,
    reversed_from   UUID REFERENCES journal_entries(id),
    created_by      TEXT,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT uq_journal_entries_number UNIQUE (tenant_id, journal_number),
    CONSTRAINT uq_journal_entries_reversed_from UNIQUE (reversed_from)
);

CREATE INDEX IF NOT EXISTS idx_journal_entries_tenant_date
    ON journal_entries (tenant_id, journal_date DESC, created_at DESC);

CREATE TABLE IF NOT EXISTS journal_entry_lines (
    id              UUID PRIMARY KEY,
    journal_id      UUID NOT NULL REFERENCES journal_entries(id) ON DELETE CASCADE,
    account_id      UUID NOT NULL REFERENCES chart_of_accounts(id),
    sort_order      INTEGER NOT NULL,
    debit           NUMERIC(18, 2) NOT NULL DEFAULT 0 CHECK (debit >= 0),
    credit          NUMERIC(18, 2) NOT NULL DEFAULT 0 CHECK (credit >= 0),
    description     VARCHAR(500),
    department_id   UUID,
    reference_type  VARCHAR(50),
    reference_id    UUID
);

CREATE INDEX IF NOT EXISTS idx_journal_entry_lines_journal
    ON journal_entry_lines (journal_id, sort_order);
CREATE INDEX IF NOT EXISTS idx_journal_entry_lines_reference
    ON journal_entry_lines (reference_type, reference_id);

CREATE TABLE IF NOT EXISTS ar_invoices (
    id              UUID PRIMARY KEY,
    tenant_id       TEXT NOT NULL,
    invoice_number  VARCHAR(100) NOT NULL,
    customer_id     UUID NOT NULL,
    date_issued     DATE NOT NULL,
    due_date        DATE NOT NULL,
    amount_total    NUMERIC(18, 2) NOT NULL CHECK (amount_total > 0),
    amount_paid     NUMERIC(18, 2) NOT NULL DEFAULT 0,
    balance_due     NUMERIC(18, 2) GENERATED ALWAYS AS (amount_total - amount_paid) STORED,
    status          VARCHAR(20) NOT NULL DEFAULT 'open'
                    CHECK (status IN ('open', 'partial', 'paid', 'void')),
    memo            VARCHAR(1000),
    created_by      TEXT,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT uq_ar_invoices_number UNIQUE (tenant_id, invoice_number),
    CONSTRAINT ck_ar_invoices_amount_paid CHECK (amount_paid >= 0 AND amount_paid <= amount_total)
);

CREATE INDEX IF NOT EXISTS idx_ar_invoices_open
    ON ar_invoices (tenant_id, status, due_date);

CREATE TABLE IF NOT EXISTS ar_payments (
    id              UUID PRIMARY KEY,
    tenant_id       TEXT NOT NULL,
    invoice_id      UUID NOT NULL REFERENCES ar_invoices(id),
    customer_id     UUID NOT NULL,
    payment_date    DATE NOT NULL,
    amount          NUMERIC(18, 2) NOT NULL CHECK (amount > 0),
    method          VARCHAR(50) NOT NULL,
    reference       VARCHAR(255),
    notes           VARCHAR(1000),
    created_by      TEXT,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_ar_payments_invoice ON ar_payments (invoice_id);
CREATE INDEX IF NOT EXISTS idx_ar_payments_customer ON ar_payments (tenant_id, customer_id, payment_date);

CREATE TABLE IF NOT EXISTS activity_log (
    id              UUID PRIMARY KEY,
    tenant_id       TEXT NOT NULL,
    actor_user_id   TEXT NOT NULL,
    entity          VARCHAR(50) NOT NULL,
    entity_id       UUID NOT NULL,
    action          VARCHAR(20) NOT NULL,
    diff            JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


async def apply_schema(pool) -> None:
    """Create the kernel tables if they do not exist yet."""
    async with pool.acquire() as conn:
        await conn.execute(SCHEMA_SQL)
    logger.info("Ledger schema applied")
