"""Loyalty ledger, approvals and journey op log.

Revision ID: 20261018_01
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261018_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


UUID = sa.dialects.postgresql.UUID

kyc_status = sa.Enum("NONE", "PENDING", "APPROVED", "REJECTED", name="kyc_status")
ledger_source_type = sa.Enum(
    "BAG_LIFT",
    "REDEMPTION",
    "ADJUSTMENT",
    "JOINING_BONUS",
    "REFERRAL_BONUS",
    name="points_ledger_source_type",
)
bag_lift_status = sa.Enum("PENDING", "APPROVED", "REJECTED", name="bag_lift_status")
redemption_status = sa.Enum(
    "PLACED", "APPROVED", "SHIPPED", "DELIVERED", "REJECTED", name="reward_redemption_status"
)
journey_op_type = sa.Enum("START", "MOVE", "STOP", name="journey_op_type")
journey_status = sa.Enum("ACTIVE", "COMPLETED", name="journey_status")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("region", sa.String(length=100), nullable=True),
        sa.Column("area", sa.String(length=100), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="field_officer"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "masons",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=False),
        sa.Column("kyc_document_name", sa.String(length=100), nullable=True),
        sa.Column("kyc_document_id_num", sa.String(length=150), nullable=True),
        sa.Column("kyc_status", kyc_status, nullable=False, server_default="NONE"),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bags_lifted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("referred_by_id", UUID(as_uuid=True), nullable=True),
        sa.Column("dealer_id", sa.String(length=255), nullable=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=True),
        sa.Column("device_id", sa.String(length=255), nullable=True, unique=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["referred_by_id"], ["masons.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_masons_dealer_id", "masons", ["dealer_id"])
    op.create_index("idx_masons_user_id", "masons", ["user_id"])

    op.create_table(
        "kyc_submissions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("mason_id", UUID(as_uuid=True), nullable=False),
        sa.Column("aadhaar_number", sa.String(length=20), nullable=True),
        sa.Column("pan_number", sa.String(length=20), nullable=True),
        sa.Column("voter_id_number", sa.String(length=20), nullable=True),
        sa.Column("documents", sa.JSON(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(name="kyc_status", create_type=False),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("remark", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["mason_id"], ["masons.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_kyc_submissions_mason_id", "kyc_submissions", ["mason_id"])

    op.create_table(
        "points_ledger",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("mason_id", UUID(as_uuid=True), nullable=False),
        sa.Column("source_type", ledger_source_type, nullable=False),
        sa.Column("source_id", UUID(as_uuid=True), nullable=True),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["mason_id"], ["masons.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("source_type", "source_id", name="uq_points_ledger_source"),
    )
    op.create_index("idx_points_ledger_mason_id", "points_ledger", ["mason_id"])
    op.create_index("idx_points_ledger_source_id", "points_ledger", ["source_id"])

    op.create_table(
        "bag_lifts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("mason_id", UUID(as_uuid=True), nullable=False),
        sa.Column("dealer_id", sa.String(length=255), nullable=True),
        sa.Column("purchase_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("bag_count", sa.Integer(), nullable=False),
        sa.Column("points_credited", sa.Integer(), nullable=False),
        sa.Column("status", bag_lift_status, nullable=False, server_default="PENDING"),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("site_id", sa.String(length=255), nullable=True),
        sa.Column("site_key_person_name", sa.String(length=255), nullable=True),
        sa.Column("site_key_person_phone", sa.String(length=20), nullable=True),
        sa.Column("verification_site_image_url", sa.Text(), nullable=True),
        sa.Column("verification_proof_image_url", sa.Text(), nullable=True),
        sa.Column("approved_by", UUID(as_uuid=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reversed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["mason_id"], ["masons.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["approved_by"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("bag_count > 0", name="ck_bag_lifts_bag_count_positive"),
    )
    op.create_index("idx_bag_lifts_mason_id", "bag_lifts", ["mason_id"])
    op.create_index("idx_bag_lifts_status", "bag_lifts", ["status"])
    op.create_index("idx_bag_lifts_site_id", "bag_lifts", ["site_id"])

    op.create_table(
        "rewards",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("item_name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("point_cost", sa.Integer(), nullable=False),
        sa.Column("total_available_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("meta", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("stock >= 0", name="ck_rewards_stock_non_negative"),
    )

    op.create_table(
        "reward_redemptions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("mason_id", UUID(as_uuid=True), nullable=False),
        sa.Column("reward_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", redemption_status, nullable=False, server_default="PLACED"),
        sa.Column("fulfillment_notes", sa.Text(), nullable=True),
        sa.Column("points_debited", sa.Integer(), nullable=False),
        sa.Column("delivery_name", sa.String(length=160), nullable=True),
        sa.Column("delivery_phone", sa.String(length=20), nullable=True),
        sa.Column("delivery_address", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["mason_id"], ["masons.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reward_id"], ["rewards.id"]),
        sa.CheckConstraint("quantity > 0", name="ck_reward_redemptions_quantity_positive"),
    )
    op.create_index("idx_reward_redemptions_mason_id", "reward_redemptions", ["mason_id"])
    op.create_index("idx_reward_redemptions_status", "reward_redemptions", ["status"])

    op.create_table(
        "journey_ops",
        sa.Column("server_seq", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("op_id", UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("journey_id", sa.String(length=255), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("type", journey_op_type, nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("local_seq", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_journey_ops_journey", "journey_ops", ["journey_id"])
    op.create_index("idx_journey_ops_user", "journey_ops", ["user_id"])
    op.create_index("idx_journey_ops_created", "journey_ops", ["created_at"])

    op.create_table(
        "journeys",
        sa.Column("id", sa.String(length=255), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("pjp_id", sa.String(length=255), nullable=True),
        sa.Column("site_id", sa.String(length=255), nullable=True),
        sa.Column("dealer_id", sa.String(length=255), nullable=True),
        sa.Column("task_id", sa.String(length=255), nullable=True),
        sa.Column("verified_dealer_id", sa.Integer(), nullable=True),
        sa.Column("site_name", sa.String(length=255), nullable=True),
        sa.Column("dest_lat", sa.Numeric(10, 7), nullable=True),
        sa.Column("dest_lng", sa.Numeric(10, 7), nullable=True),
        sa.Column("status", journey_status, nullable=False, server_default="ACTIVE"),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_distance", sa.Numeric(10, 3), nullable=False, server_default="0"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_journeys_user_status", "journeys", ["user_id", "status"])

    op.create_table(
        "journey_breadcrumbs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("journey_id", sa.String(length=255), nullable=False),
        sa.Column("server_seq", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("h3_index", sa.String(length=15), nullable=True),
        sa.Column("speed", sa.Float(), nullable=True),
        sa.Column("accuracy", sa.Float(), nullable=True),
        sa.Column("heading", sa.Float(), nullable=True),
        sa.Column("altitude", sa.Float(), nullable=True),
        sa.Column("battery_level", sa.Float(), nullable=True),
        sa.Column("is_mocked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["journey_id"], ["journeys.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "idx_breadcrumbs_journey_time", "journey_breadcrumbs", ["journey_id", "recorded_at"]
    )


def downgrade() -> None:
    op.drop_index("idx_breadcrumbs_journey_time", table_name="journey_breadcrumbs")
    op.drop_table("journey_breadcrumbs")
    op.drop_index("idx_journeys_user_status", table_name="journeys")
    op.drop_table("journeys")
    op.drop_index("idx_journey_ops_created", table_name="journey_ops")
    op.drop_index("idx_journey_ops_user", table_name="journey_ops")
    op.drop_index("idx_journey_ops_journey", table_name="journey_ops")
    op.drop_table("journey_ops")
    op.drop_index("idx_reward_redemptions_status", table_name="reward_redemptions")
    op.drop_index("idx_reward_redemptions_mason_id", table_name="reward_redemptions")
    op.drop_table("reward_redemptions")
    op.drop_table("rewards")
    op.drop_index("idx_bag_lifts_site_id", table_name="bag_lifts")
    op.drop_index("idx_bag_lifts_status", table_name="bag_lifts")
    op.drop_index("idx_bag_lifts_mason_id", table_name="bag_lifts")
    op.drop_table("bag_lifts")
    op.drop_index("idx_points_ledger_source_id", table_name="points_ledger")
    op.drop_index("idx_points_ledger_mason_id", table_name="points_ledger")
    op.drop_table("points_ledger")
    op.drop_index("idx_kyc_submissions_mason_id", table_name="kyc_submissions")
    op.drop_table("kyc_submissions")
    op.drop_index("idx_masons_user_id", table_name="masons")
    op.drop_index("idx_masons_dealer_id", table_name="masons")
    op.drop_table("masons")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in (
        journey_status,
        journey_op_type,
        redemption_status,
        bag_lift_status,
        ledger_source_type,
        kyc_status,
    ):
        enum.drop(bind, checkfirst=True)
