"""Initial database schema for Modality Ingest

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # Create patients table
    op.create_table(
        "patients",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("mrn", sa.String(64), nullable=False),
        sa.Column("last_name", sa.String(128), nullable=False),
        sa.Column("first_name", sa.String(128), nullable=False),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("phone_number", sa.String(32), nullable=True),
        sa.Column("sex", sa.String(16), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_patients")),
    )
    op.create_index(op.f("ix_patients_mrn"), "patients", ["mrn"], unique=True)
    op.create_index("ix_patients_last_name", "patients", ["last_name"], unique=False)

    # Create studies table
    op.create_table(
        "studies",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("study_instance_uid", sa.String(128), nullable=False),
        sa.Column("accession_number", sa.String(64), nullable=True),
        sa.Column("study_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("modality", sa.String(16), nullable=False),
        sa.Column("study_description", sa.String(512), nullable=True),
        sa.Column("body_part_examined", sa.String(64), nullable=True),
        sa.Column("num_series", sa.Integer(), nullable=False),
        sa.Column("num_instances", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("SCHEDULED", "IN_PROGRESS", "COMPLETED", "CANCELLED", name="studystatus"),
            nullable=False,
        ),
        sa.Column("patient_id_fk", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["patient_id_fk"],
            ["patients.id"],
            name=op.f("fk_studies_patient_id_fk_patients"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_studies")),
    )
    op.create_index(
        op.f("ix_studies_study_instance_uid"), "studies", ["study_instance_uid"], unique=True
    )
    op.create_index(
        op.f("ix_studies_accession_number"), "studies", ["accession_number"], unique=False
    )
    op.create_index("ix_studies_study_date_desc", "studies", [sa.text("study_date DESC")])
    op.create_index("ix_studies_patient_id_fk", "studies", ["patient_id_fk"], unique=False)
    op.create_index("ix_studies_status", "studies", ["status"], unique=False)

    # Create series table
    op.create_table(
        "series",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("series_instance_uid", sa.String(128), nullable=False),
        sa.Column("series_number", sa.Integer(), nullable=True),
        sa.Column("series_description", sa.String(512), nullable=True),
        sa.Column("modality", sa.String(16), nullable=False),
        sa.Column("num_instances", sa.Integer(), nullable=False),
        sa.Column("study_id_fk", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["study_id_fk"],
            ["studies.id"],
            name=op.f("fk_series_study_id_fk_studies"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_series")),
    )
    op.create_index(
        op.f("ix_series_series_instance_uid"), "series", ["series_instance_uid"], unique=True
    )
    op.create_index("ix_series_study_id_fk", "series", ["study_id_fk"], unique=False)
    op.create_index("ix_series_modality", "series", ["modality"], unique=False)

    # Create images table
    op.create_table(
        "images",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("sop_instance_uid", sa.String(128), nullable=False),
        sa.Column("instance_number", sa.Integer(), nullable=True),
        sa.Column("transfer_syntax_uid", sa.String(128), nullable=True),
        sa.Column("storage_locator", sa.String(1024), nullable=True),
        sa.Column("byte_size", sa.BigInteger(), nullable=True),
        sa.Column("series_id_fk", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["series_id_fk"],
            ["series.id"],
            name=op.f("fk_images_series_id_fk_series"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_images")),
    )
    op.create_index(
        op.f("ix_images_sop_instance_uid"), "images", ["sop_instance_uid"], unique=True
    )
    op.create_index("ix_images_series_id_fk", "images", ["series_id_fk"], unique=False)
    op.create_index("ix_images_number", "images", ["instance_number"], unique=False)

    # Create reports table, at most one per study
    op.create_table(
        "reports",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("study_id_fk", sa.Integer(), nullable=False),
        sa.Column("radiologist_id", sa.String(64), nullable=True),
        sa.Column("findings", sa.Text(), nullable=True),
        sa.Column("impression", sa.Text(), nullable=True),
        sa.Column("technique", sa.Text(), nullable=True),
        sa.Column("clinical_history", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("PENDING", "IN_REVIEW", "FINAL", "AMENDED", name="reportstatus"),
            nullable=False,
        ),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["study_id_fk"],
            ["studies.id"],
            name=op.f("fk_reports_study_id_fk_studies"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_reports")),
        sa.UniqueConstraint("study_id_fk", name=op.f("uq_reports_study_id_fk")),
    )
    op.create_index("ix_reports_status", "reports", ["status"], unique=False)


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table("reports")
    op.drop_table("images")
    op.drop_table("series")
    op.drop_table("studies")
    op.drop_table("patients")

    # Drop enums
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TYPE IF EXISTS reportstatus")
        op.execute("DROP TYPE IF EXISTS studystatus")
