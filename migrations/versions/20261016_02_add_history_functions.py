"""add get_recent_check_history / prune_check_history functions

Revision ID: 20261016_02
Revises: 20261016_01
Create Date: 2026-10-16
"""

from __future__ import annotations

from alembic import op

# revision identifiers, used by Alembic.
revision = "20261016_02"
down_revision = "20261016_01"
branch_labels = None
depends_on = None


RECENT_HISTORY_FUNCTION = """
CREATE OR REPLACE FUNCTION get_recent_check_history(
    limit_per_config integer DEFAULT 60,
    target_config_ids uuid[] DEFAULT NULL
)
RETURNS TABLE (
    config_id       uuid,
    status          varchar,
    latency_ms      integer,
    ping_latency_ms integer,
    checked_at      timestamptz,
    message         text,
    name            varchar,
    type            varchar,
    model           varchar,
    endpoint        varchar,
    group_name      varchar
)
LANGUAGE sql
STABLE
AS $$
    SELECT
        ranked.config_id,
        ranked.status,
        ranked.latency_ms,
        ranked.ping_latency_ms,
        ranked.checked_at,
        ranked.message,
        c.name,
        c.type,
        c.model,
        c.endpoint,
        c.group_name
    FROM (
        SELECT
            h.*,
            ROW_NUMBER() OVER (PARTITION BY h.config_id ORDER BY h.checked_at DESC) AS rn
        FROM check_history h
        WHERE target_config_ids IS NULL OR h.config_id = ANY(target_config_ids)
    ) AS ranked
    JOIN check_configs c ON c.id = ranked.config_id
    WHERE ranked.rn <= limit_per_config
    ORDER BY ranked.config_id, ranked.checked_at DESC;
$$;
"""

PRUNE_HISTORY_FUNCTION = """
CREATE OR REPLACE FUNCTION prune_check_history(retention_days integer DEFAULT 30)
RETURNS integer
LANGUAGE plpgsql
AS $$
DECLARE
    effective_days integer := LEAST(365, GREATEST(7, retention_days));
    deleted integer;
BEGIN
    DELETE FROM check_history
    WHERE checked_at < NOW() - make_interval(days => effective_days);
    GET DIAGNOSTICS deleted = ROW_COUNT;
    RETURN deleted;
END;
$$;
"""


def upgrade() -> None:
    op.execute(RECENT_HISTORY_FUNCTION)
    op.execute(PRUNE_HISTORY_FUNCTION)


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS prune_check_history(integer)")
    op.execute("DROP FUNCTION IF EXISTS get_recent_check_history(integer, uuid[])")
