"""Organizations, membership, invitations, experiments and video assets.

Revision ID: 0001_evaluation_admin
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_evaluation_admin"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # -----------------------------------------------------------------------
    # 1. Tenancy
    # -----------------------------------------------------------------------

    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("external_team_id", sa.Text(), nullable=True),
        sa.Column("prolific_api_token", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_organizations_slug", "organizations", ["slug"], unique=True)
    op.create_index("idx_organizations_name", "organizations", ["name"])
    op.create_index("idx_organizations_team", "organizations", ["external_team_id"])

    op.create_table(
        "organization_members",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default="MEMBER"),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("organization_id", "user_id", name="uq_member_org_user"),
        sa.CheckConstraint("role IN ('OWNER', 'ADMIN', 'MEMBER', 'VIEWER')", name="ck_member_role"),
    )
    op.create_index("idx_members_org", "organization_members", ["organization_id"])
    op.create_index("idx_members_user", "organization_members", ["user_id"])

    op.create_table(
        "organization_invitations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default="MEMBER"),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("organization_id", "email", name="uq_invitation_org_email"),
        sa.CheckConstraint("role IN ('ADMIN', 'MEMBER', 'VIEWER')", name="ck_invitation_role"),
    )
    op.create_index("idx_invitations_org", "organization_invitations", ["organization_id"])
    op.create_index("idx_invitations_token", "organization_invitations", ["token"], unique=True)

    # -----------------------------------------------------------------------
    # 2. Experiments and their children
    # -----------------------------------------------------------------------

    op.create_table(
        "experiments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="draft"),
        sa.Column("created_by", sa.Text(), nullable=True),
        sa.Column("prolific_study_id", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_experiments_org", "experiments", ["organization_id"])
    op.create_index("idx_experiments_prolific_study", "experiments", ["prolific_study_id"], unique=True)

    op.create_table(
        "evaluation_tasks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("experiment_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("experiments.id"), nullable=False),
        sa.Column("kind", sa.Text(), nullable=False, server_default="two_video_comparison"),
        sa.Column("scenario_id", sa.Text(), nullable=False),
        sa.Column("model_a", sa.Text(), nullable=True),
        sa.Column("model_b", sa.Text(), nullable=True),
        sa.Column("video_a_path", sa.Text(), nullable=True),
        sa.Column("video_b_path", sa.Text(), nullable=True),
        sa.Column("task_metadata", postgresql.JSONB(), nullable=False, server_default="{}"),
        *_timestamps(),
    )
    op.create_index("idx_tasks_experiment", "evaluation_tasks", ["experiment_id"])

    op.create_table(
        "participants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("experiment_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("experiments.id"), nullable=False),
        sa.Column("prolific_participant_id", sa.Text(), nullable=True),
        sa.Column("prolific_submission_id", sa.Text(), nullable=True),
        sa.Column("session_id", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="active"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "experiment_id", "prolific_participant_id", name="uq_participant_experiment_prolific"
        ),
    )
    op.create_index("idx_participants_experiment", "participants", ["experiment_id"])
    op.create_index("idx_participants_prolific", "participants", ["prolific_participant_id"])

    op.create_table(
        "evaluation_submissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("experiment_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("experiments.id"), nullable=False),
        sa.Column("task_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("evaluation_tasks.id"), nullable=False),
        sa.Column("participant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("participants.id"), nullable=True),
        sa.Column("kind", sa.Text(), nullable=False, server_default="two_video_comparison"),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_submissions_experiment", "evaluation_submissions", ["experiment_id"])
    op.create_index("idx_submissions_task", "evaluation_submissions", ["task_id"])
    op.create_index("idx_submissions_participant", "evaluation_submissions", ["participant_id"])

    # -----------------------------------------------------------------------
    # 3. Video assets
    # -----------------------------------------------------------------------

    op.create_table(
        "videos",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("key", sa.Text(), nullable=False),
        sa.Column("content_type", sa.Text(), nullable=False, server_default="video/mp4"),
        sa.Column("size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_videos_org", "videos", ["organization_id"])
    op.create_index("idx_videos_key", "videos", ["key"], unique=True)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    for table in (
        "videos",
        "evaluation_submissions",
        "participants",
        "evaluation_tasks",
        "experiments",
        "organization_invitations",
        "organization_members",
        "organizations",
    ):
        op.drop_table(table)
