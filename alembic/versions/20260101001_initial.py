"""Initial clinic intake schema."""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20260101001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "patients",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("patient_name", sa.String(length=255), nullable=False),
        sa.Column("age", sa.Integer(), nullable=False),
        sa.Column("residence", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("doctor_name", sa.String(length=255), nullable=False),
        sa.Column("diagnosis", sa.Text(), nullable=False, server_default=""),
        sa.Column("doctor_request", sa.Text(), nullable=False, server_default=""),
        sa.Column("has_surgery", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("surgery_type", sa.String(length=255), nullable=True),
        sa.Column("needs_medical_care", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("care_type", sa.String(length=32), nullable=True),
        sa.Column("session_type", sa.String(length=32), nullable=True),
        sa.Column("session_count", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("session_price", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("needs_medical_aids", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("aid_type", sa.String(length=255), nullable=True),
        sa.Column("aid_price", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("has_diet", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("diet_plan", sa.Text(), nullable=True),
        sa.Column("has_other_services", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("other_service_type", sa.String(length=255), nullable=True),
        sa.Column("other_service_price", sa.Integer(), nullable=True, server_default="0"),
        sa.Column(
            "attachments",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
        ),
        sa.Column("overall_assessment", sa.Text(), nullable=False, server_default=""),
        sa.Column("total_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_received", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_patients_created_at", "patients", ["created_at"], unique=False)

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("patient_id", sa.Uuid(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("note", sa.Text(), nullable=False, server_default=""),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"], ondelete="CASCADE"),
        sa.CheckConstraint("amount >= 1", name="ck_payments_amount_positive"),
    )
    op.create_index("ix_payments_patient_id", "payments", ["patient_id"], unique=False)
    op.create_index("ix_payments_created_at", "payments", ["created_at"], unique=False)

    op.create_table(
        "summary_dispatches",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("summary_date", sa.Date(), nullable=False),
        sa.Column("patient_count", sa.Integer(), nullable=False),
        sa.Column("total_amount", sa.Integer(), nullable=False),
        sa.Column("sent_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("summary_date", name="uq_summary_dispatches_summary_date"),
    )
    op.create_index(
        "ix_summary_dispatches_created_at", "summary_dispatches", ["created_at"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_summary_dispatches_created_at", table_name="summary_dispatches")
    op.drop_table("summary_dispatches")
    op.drop_index("ix_payments_created_at", table_name="payments")
    op.drop_index("ix_payments_patient_id", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_patients_created_at", table_name="patients")
    op.drop_table("patients")
