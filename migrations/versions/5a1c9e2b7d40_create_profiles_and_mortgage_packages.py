"""create profiles and mortgage_packages tables

Revision ID: 5a1c9e2b7d40
Revises:
Create Date: 2025-06-02 10:14:37.120553

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5a1c9e2b7d40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create profiles and mortgage_packages tables."""
    # Check if tables already exist (idempotent)
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "profiles" not in existing_tables:
        op.create_table(
            "profiles",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("role", sa.String(64), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "mortgage_packages" not in existing_tables:
        op.create_table(
            "mortgage_packages",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("bank", sa.String(128), nullable=False),
            sa.Column("property_type", sa.String(128), nullable=False),
            sa.Column("min_loan_size", sa.Numeric(14, 2), nullable=False),
            sa.Column("package_name", sa.String(255), nullable=False),
            sa.Column("lockin_period", sa.String(64), nullable=False),
            sa.Column("rates", sa.Text(), nullable=False),
            sa.Column("features", sa.Text(), nullable=True),
            sa.Column("subsidies", sa.Text(), nullable=True),
            sa.Column("remarks", sa.Text(), nullable=True),
            sa.Column("last_updated", sa.Date(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_mortgage_packages_bank", "mortgage_packages", ["bank"])
        op.create_index("idx_mortgage_packages_last_updated", "mortgage_packages", ["last_updated"])


def downgrade() -> None:
    op.drop_index("idx_mortgage_packages_last_updated", table_name="mortgage_packages")
    op.drop_index("idx_mortgage_packages_bank", table_name="mortgage_packages")
    op.drop_table("mortgage_packages")
    op.drop_table("profiles")
