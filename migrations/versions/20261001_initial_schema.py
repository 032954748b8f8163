"""initial schema: tenants, roster, reports, usage

Revision ID: 20261001_initial_schema
Revises:
Create Date: 2026-10-01 10:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _now_default():
    return sa.text("CURRENT_TIMESTAMP")


def upgrade() -> None:
    op.create_table(
        "subscription_plans",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(64), nullable=False, unique=True),
        sa.Column("description", sa.Text),
        sa.Column("price_monthly", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_ai_checks_per_month", sa.Integer, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now_default()),
    )

    op.create_table(
        "hospitals",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("subdomain", sa.String(63), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("settings", sa.JSON, nullable=False, server_default="{}"),
        sa.Column("subscription_plan_id", sa.Integer, sa.ForeignKey("subscription_plans.id"), nullable=True),
        sa.Column("plan_name", sa.String(64), nullable=False, server_default="free"),
        sa.Column("max_ai_checks_per_month", sa.Integer, nullable=False, server_default="100"),
        sa.Column("ai_checks_used_this_month", sa.Integer, nullable=False, server_default="0"),
        sa.Column("billing_period_start", sa.DateTime(timezone=True)),
        sa.Column("billing_period_end", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now_default()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=_now_default()),
        sa.CheckConstraint(
            "status IN ('active','suspended','banned')", name="ck_hospitals_status"
        ),
    )
    op.create_index("ix_hospitals_subdomain", "hospitals", ["subdomain"], unique=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("hospital_id", sa.Integer, sa.ForeignKey("hospitals.id"), nullable=True),
        sa.Column("role", sa.String(32), nullable=False, server_default="PATIENT"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("age", sa.Integer),
        sa.Column("gender", sa.String(32)),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=_now_default()),
    )
    op.create_index("ix_users_hospital_id", "users", ["hospital_id"])

    op.create_table(
        "doctors",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("hospital_id", sa.Integer, sa.ForeignKey("hospitals.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("specialization", sa.String(255), nullable=False),
        sa.Column("qualification", sa.String(255), nullable=False, server_default=""),
        sa.Column("expertise_tags", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("timings", sa.String(255)),
        sa.Column("description", sa.Text),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now_default()),
    )
    op.create_index("ix_doctors_hospital_id", "doctors", ["hospital_id"])

    op.create_table(
        "reports",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("hospital_id", sa.Integer, sa.ForeignKey("hospitals.id"), nullable=False),
        sa.Column("patient_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_by", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("symptom_input", sa.Text, nullable=False),
        sa.Column("qa_flow", sa.JSON, nullable=False),
        sa.Column("summary", sa.Text, nullable=False),
        sa.Column("possible_conditions", sa.JSON, nullable=False),
        sa.Column("risk_level", sa.String(8), nullable=False, server_default="low"),
        sa.Column("recommended_tests", sa.JSON, nullable=False),
        sa.Column("diet_plan", sa.JSON, nullable=False),
        sa.Column("what_to_avoid", sa.JSON, nullable=False),
        sa.Column("home_care", sa.JSON, nullable=False),
        # no FK: the doctor may be removed later, the snapshot stays
        sa.Column("recommended_doctor_id", sa.Integer),
        sa.Column("recommended_doctor_name", sa.String(255)),
        sa.Column("recommended_doctor_qualification", sa.String(255)),
        sa.Column("recommended_doctor_specialization", sa.String(255)),
        sa.Column("source", sa.String(8), nullable=False, server_default="AI"),
        sa.Column("model_info", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now_default()),
        sa.CheckConstraint("risk_level IN ('low','medium','high')", name="ck_reports_risk_level"),
        sa.CheckConstraint("source IN ('AI','MANUAL')", name="ck_reports_source"),
    )
    op.create_index("ix_reports_hospital_id", "reports", ["hospital_id"])
    op.create_index("ix_reports_patient_id", "reports", ["patient_id"])

    op.create_table(
        "ai_usage_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("hospital_id", sa.Integer, sa.ForeignKey("hospitals.id"), nullable=False),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("patient_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.String(32), nullable=False, server_default="SYMPTOM_ANALYSIS"),
        sa.Column("provider", sa.String(16), nullable=False),
        sa.Column("model", sa.String(128)),
        sa.Column("tokens_used", sa.Integer, nullable=False, server_default="0"),
        sa.Column("meta", sa.JSON, nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now_default()),
    )
    op.create_index("ix_ai_usage_logs_hospital_id", "ai_usage_logs", ["hospital_id"])

    op.create_table(
        "system_settings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("key", sa.String(32), nullable=False, unique=True),
        sa.Column("ai_provider", sa.String(16)),
        sa.Column("openai_model", sa.String(128)),
        sa.Column("groq_model", sa.String(128)),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=_now_default()),
    )


def downgrade() -> None:
    op.drop_table("system_settings")
    op.drop_index("ix_ai_usage_logs_hospital_id", table_name="ai_usage_logs")
    op.drop_table("ai_usage_logs")
    op.drop_index("ix_reports_patient_id", table_name="reports")
    op.drop_index("ix_reports_hospital_id", table_name="reports")
    op.drop_table("reports")
    op.drop_index("ix_doctors_hospital_id", table_name="doctors")
    op.drop_table("doctors")
    op.drop_index("ix_users_hospital_id", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_hospitals_subdomain", table_name="hospitals")
    op.drop_table("hospitals")
    op.drop_table("subscription_plans")
