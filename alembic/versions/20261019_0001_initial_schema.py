"""Initial Solo Leveling admin schema."""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=254), nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("user_type", sa.String(length=16), server_default="adventurer", nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("user_id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "user_type IN ('adventurer', 'coach', 'admin')", name="ck_users_user_type"
        ),
    )

    op.create_table(
        "system_settings",
        sa.Column("setting_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("setting_key", sa.String(length=100), nullable=False),
        sa.Column("setting_value", sa.Text(), server_default="", nullable=False),
        sa.Column("setting_type", sa.String(length=16), server_default="string", nullable=False),
        sa.Column("category", sa.String(length=50), server_default="general", nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("default_value", sa.Text(), nullable=True),
        sa.Column("is_encrypted", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("setting_id"),
        sa.UniqueConstraint("setting_key", name="uq_system_settings_key"),
    )
    op.create_index("ix_system_settings_category", "system_settings", ["category"])

    op.create_table(
        "feature_flags",
        sa.Column("flag_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("flag_key", sa.String(length=100), nullable=False),
        sa.Column("flag_name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_enabled", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("rollout_percentage", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("target_user_types", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["created_by"], ["users.user_id"], ondelete="set null"),
        sa.PrimaryKeyConstraint("flag_id"),
        sa.UniqueConstraint("flag_key", name="uq_feature_flags_key"),
        sa.CheckConstraint(
            "rollout_percentage >= 0 AND rollout_percentage <= 100",
            name="ck_feature_flags_rollout_range",
        ),
    )

    op.create_table(
        "admin_action_logs",
        sa.Column("log_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("admin_user_id", sa.Integer(), nullable=True),
        sa.Column("action_type", sa.String(length=64), nullable=False),
        sa.Column("target_type", sa.String(length=64), nullable=True),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("action_details", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("log_id"),
    )
    op.create_index("ix_admin_action_logs_created_at", "admin_action_logs", ["created_at"])

    op.create_table(
        "performance_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("endpoint", sa.String(length=255), nullable=False),
        sa.Column("method", sa.String(length=10), nullable=False),
        sa.Column("response_time_ms", sa.Integer(), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_performance_logs_created_at", "performance_logs", ["created_at"])

    op.create_table(
        "user_analytics",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("session_id", sa.String(length=128), nullable=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("event_data", sa.JSON(), nullable=True),
        sa.Column("page_url", sa.String(length=512), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_analytics_created_at", "user_analytics", ["created_at"])

    op.create_table(
        "system_error_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("error_level", sa.String(length=16), server_default="error", nullable=False),
        sa.Column("error_message", sa.Text(), nullable=False),
        sa.Column("endpoint", sa.String(length=255), nullable=True),
        sa.Column("method", sa.String(length=10), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("resolved", sa.Boolean(), server_default=sa.false(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "error_level IN ('info', 'warn', 'error', 'critical')",
            name="ck_system_error_logs_level",
        ),
    )
    op.create_index("ix_system_error_logs_created_at", "system_error_logs", ["created_at"])

    op.create_table(
        "user_sessions",
        sa.Column("session_id", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        _timestamp("last_activity"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("session_id"),
    )
    op.create_index("ix_user_sessions_expires_at", "user_sessions", ["expires_at"])

    op.bulk_insert(
        sa.table(
            "system_settings",
            sa.column("setting_key", sa.String),
            sa.column("setting_value", sa.Text),
            sa.column("setting_type", sa.String),
            sa.column("category", sa.String),
            sa.column("description", sa.Text),
            sa.column("default_value", sa.Text),
        ),
        [
            {
                "setting_key": "data_retention_days",
                "setting_value": "90",
                "setting_type": "number",
                "category": "data",
                "description": "Days to keep performance, analytics and resolved error logs.",
                "default_value": "90",
            },
            {
                "setting_key": "performance_monitoring_enabled",
                "setting_value": "true",
                "setting_type": "boolean",
                "category": "monitoring",
                "description": "Record response times for every API request.",
                "default_value": "true",
            },
            {
                "setting_key": "performance_alert_threshold",
                "setting_value": "500",
                "setting_type": "number",
                "category": "monitoring",
                "description": "Response time in milliseconds above which a warning is logged.",
                "default_value": "500",
            },
            {
                "setting_key": "user_analytics_enabled",
                "setting_value": "false",
                "setting_type": "boolean",
                "category": "monitoring",
                "description": "Capture product analytics events.",
                "default_value": "false",
            },
        ],
    )


def downgrade() -> None:
    op.drop_index("ix_user_sessions_expires_at", table_name="user_sessions")
    op.drop_table("user_sessions")
    op.drop_index("ix_system_error_logs_created_at", table_name="system_error_logs")
    op.drop_table("system_error_logs")
    op.drop_index("ix_user_analytics_created_at", table_name="user_analytics")
    op.drop_table("user_analytics")
    op.drop_index("ix_performance_logs_created_at", table_name="performance_logs")
    op.drop_table("performance_logs")
    op.drop_index("ix_admin_action_logs_created_at", table_name="admin_action_logs")
    op.drop_table("admin_action_logs")
    op.drop_table("feature_flags")
    op.drop_index("ix_system_settings_category", table_name="system_settings")
    op.drop_table("system_settings")
    op.drop_table("users")
