#!/usr/bin/env python3
"""
Initialize the Ticket Desk schema (tickets, ai_operations) with a direct
PostgreSQL connection
"""
import os
import sys

import psycopg2
from dotenv import load_dotenv

load_dotenv()

TABLES = ("tickets", "ai_operations")

DDL_SQL = """
CREATE TABLE IF NOT EXISTS tickets (
    id SERIAL PRIMARY KEY,
    call_id TEXT,
    request_type TEXT NOT NULL DEFAULT 'other'
        CHECK (request_type IN ('quote', 'coa', 'freight', 'claim', 'other')),
    status TEXT NOT NULL DEFAULT 'open'
        CHECK (status IN ('open', 'routed', 'in_progress', 'resolved', 'closed')),
    priority TEXT NOT NULL DEFAULT 'normal'
        CHECK (priority IN ('low', 'normal', 'high', 'urgent')),
    summary TEXT,
    data JSONB NOT NULL DEFAULT '{}'::jsonb,
    customer_name TEXT,
    customer_email TEXT,
    customer_phone TEXT,
    assignee TEXT,
    ai_classification JSONB,
    ai_sentiment TEXT,
    ai_sentiment_score INTEGER CHECK (ai_sentiment_score BETWEEN 0 AND 100),
    ai_extracted_entities JSONB,
    ai_confidence INTEGER CHECK (ai_confidence BETWEEN 0 AND 100),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    first_response_at TIMESTAMPTZ,
    resolved_at TIMESTAMPTZ,
    breached BOOLEAN NOT NULL DEFAULT FALSE,
    warning_sent_at TIMESTAMPTZ,
    urgent_sent_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_tickets_sla_open
    ON tickets (created_at)
    WHERE first_response_at IS NULL AND status NOT IN ('resolved', 'closed');

CREATE TABLE IF NOT EXISTS ai_operations (
    id SERIAL PRIMARY KEY,
    ticket_id INTEGER REFERENCES tickets(id),
    call_id TEXT,
    operation TEXT NOT NULL
        CHECK (operation IN ('classify', 'sentiment', 'suggest', 'summarize', 'extract')),
    provider TEXT,
    model TEXT,
    input JSONB NOT NULL DEFAULT '{}'::jsonb,
    output JSONB,
    success BOOLEAN NOT NULL,
    response_time_ms INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    tokens_used INTEGER,
    cost_estimate NUMERIC(12, 6),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_ai_operations_ticket ON ai_operations (ticket_id);
CREATE INDEX IF NOT EXISTS idx_ai_operations_created ON ai_operations (created_at DESC);

-- breached is write-once-true
CREATE OR REPLACE FUNCTION tickets_keep_breached() RETURNS trigger AS $$
BEGIN
    IF OLD.breached AND NOT NEW.breached THEN
        NEW.breached := TRUE;
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS trg_tickets_keep_breached ON tickets;
CREATE TRIGGER trg_tickets_keep_breached
    BEFORE UPDATE ON tickets
    FOR EACH ROW EXECUTE FUNCTION tickets_keep_breached();
"""


def get_connection():
    """Get PostgreSQL connection using .env variables"""
    host = os.getenv("SUPABASE_DB_HOST")
    port = int(os.getenv("SUPABASE_DB_PORT", "6543"))
    database = os.getenv("SUPABASE_DB_NAME", "postgres")
    user = os.getenv("SUPABASE_DB_USER")
    password = os.getenv("SUPABASE_DB_PASSWORD")

    print(f"Connecting to: {host}:{port}")
    print(f"   Database: {database}")
    print(f"   User: {user}")

    return psycopg2.connect(
        host=host,
        port=port,
        database=database,
        user=user,
        password=password
    )


def create_schema() -> bool:
    """Create tables, indexes and the breached trigger"""
    conn = None
    try:
        conn = get_connection()
        cur = conn.cursor()

        print("Creating database schema...")
        cur.execute(DDL_SQL)
        conn.commit()
        print("DDL executed successfully")

        cur.execute("""
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public'
            AND table_name = ANY(%s)
            ORDER BY table_name
        """, (list(TABLES),))
        tables = cur.fetchall()

        print("\nCreated tables:")
        for table in tables:
            print(f"  - {table[0]}")

        cur.close()
        return len(tables) == len(TABLES)

    except Exception as e:
        print(f"Error: {str(e)}")
        if conn:
            conn.rollback()
        return False
    finally:
        if conn:
            conn.close()


if __name__ == "__main__":
    sys.exit(0 if create_schema() else 1)
