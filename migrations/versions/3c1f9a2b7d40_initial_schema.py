"""initial schema

Revision ID: 3c1f9a2b7d40
Revises:
Create Date: 2026-10-19 09:12:44.512301

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c1f9a2b7d40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create gate, submission, token, consent and analytics tables."""
    op.create_table(
        "gate",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner_id", sa.BigInteger(), nullable=False),
        sa.Column("slug", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("artist_name", sa.String(length=255), nullable=True),
        sa.Column("file_reference", sa.Text(), nullable=False),
        sa.Column("required_steps", sa.JSON(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_downloads", sa.Integer(), nullable=True),
        sa.Column("downloads_issued", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index("ix_gate_owner_id", "gate", ["owner_id"])

    op.create_table(
        "submission",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("gate_id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("consent", sa.JSON(), nullable=False),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("social_repost_verified", sa.Boolean(), nullable=False),
        sa.Column("social_repost_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("social_follow_verified", sa.Boolean(), nullable=False),
        sa.Column("social_follow_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("streaming_connect_verified", sa.Boolean(), nullable=False),
        sa.Column("streaming_connect_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("second_social_follow_verified", sa.Boolean(), nullable=False),
        sa.Column(
            "second_social_follow_verified_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("credential_issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("download_completed", sa.Boolean(), nullable=False),
        sa.Column("download_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["gate_id"], ["gate.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("gate_id", "email", name="uq_submission_gate_email"),
    )
    op.create_index("ix_submission_gate_id", "submission", ["gate_id"])

    op.create_table(
        "handshake_token",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("value_hash", sa.String(length=64), nullable=False),
        sa.Column("submission_id", sa.Integer(), nullable=False),
        sa.Column("gate_id", sa.Integer(), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("code_verifier", sa.String(length=128), nullable=True),
        sa.Column("used", sa.Boolean(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["submission_id"], ["submission.id"]),
        sa.ForeignKeyConstraint(["gate_id"], ["gate.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("value_hash"),
    )
    op.create_index("ix_handshake_token_expires_at", "handshake_token", ["expires_at"])
    op.create_index("ix_handshake_token_submission_id", "handshake_token", ["submission_id"])

    op.create_table(
        "download_credential",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("token_hash", sa.String(length=64), nullable=False),
        sa.Column("submission_id", sa.Integer(), nullable=False),
        sa.Column("gate_id", sa.Integer(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["submission_id"], ["submission.id"]),
        sa.ForeignKeyConstraint(["gate_id"], ["gate.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token_hash"),
    )
    op.create_index(
        "ix_download_credential_submission_id", "download_credential", ["submission_id"]
    )

    op.create_table(
        "consent_event",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("contact_id", sa.String(length=320), nullable=False),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_consent_event_contact_ts", "consent_event", ["contact_id", "timestamp"]
    )

    op.create_table(
        "funnel_event",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("gate_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("step", sa.String(length=50), nullable=True),
        sa.Column("session_id", sa.String(length=255), nullable=True),
        sa.Column("submission_id", sa.Integer(), nullable=True),
        sa.Column("referrer", sa.Text(), nullable=True),
        sa.Column("utm_source", sa.String(length=255), nullable=True),
        sa.Column("utm_medium", sa.String(length=255), nullable=True),
        sa.Column("utm_campaign", sa.String(length=255), nullable=True),
        sa.Column("country", sa.String(length=2), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["gate_id"], ["gate.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_funnel_event_session_id", "funnel_event", ["session_id"])
    op.create_index(
        "ix_funnel_event_gate_type_ts", "funnel_event", ["gate_id", "event_type", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_funnel_event_gate_type_ts", table_name="funnel_event")
    op.drop_index("ix_funnel_event_session_id", table_name="funnel_event")
    op.drop_table("funnel_event")
    op.drop_index("ix_consent_event_contact_ts", table_name="consent_event")
    op.drop_table("consent_event")
    op.drop_index("ix_download_credential_submission_id", table_name="download_credential")
    op.drop_table("download_credential")
    op.drop_index("ix_handshake_token_expires_at", table_name="handshake_token")
    op.drop_index("ix_handshake_token_submission_id", table_name="handshake_token")
    op.drop_table("handshake_token")
    op.drop_index("ix_submission_gate_id", table_name="submission")
    op.drop_table("submission")
    op.drop_index("ix_gate_owner_id", table_name="gate")
    op.drop_table("gate")
