"""add category and feature_tag to mortgage_packages

Revision ID: 8e3f7b1a6c25
Revises: 5a1c9e2b7d40
Create Date: 2025-07-18 16:42:05.381902

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8e3f7b1a6c25'
down_revision: Union[str, Sequence[str], None] = '5a1c9e2b7d40'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Existing rows keep NULL; they are read back as category "Fixed",
    with the feature tag derived from their features text.
    """
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    cols = {c["name"] for c in inspector.get_columns("mortgage_packages")}

    with op.batch_alter_table("mortgage_packages") as batch_op:
        if "category" not in cols:
            batch_op.add_column(sa.Column("category", sa.String(64), nullable=True))
        if "feature_tag" not in cols:
            batch_op.add_column(sa.Column("feature_tag", sa.String(32), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("mortgage_packages") as batch_op:
        batch_op.drop_column("feature_tag")
        batch_op.drop_column("category")
