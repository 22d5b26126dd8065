"""initial_schema

Revision ID: 3f9c1a7d2e40
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f9c1a7d2e40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=24), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('password', sa.String(length=200), nullable=False),
        sa.Column('given_name', sa.String(length=100), nullable=False),
        sa.Column('family_name', sa.String(length=100), nullable=False),
        sa.Column('role', sa.String(length=50), nullable=False),
        sa.Column('created_on', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_updated_on', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('idx_users_role', 'users', ['role'])
    op.create_index('idx_users_created_on', 'users', ['created_on'])

    op.create_table(
        'bugs',
        sa.Column('id', sa.String(length=24), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('steps_to_reproduce', sa.Text(), nullable=False),
        sa.Column('classification', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('closed', sa.Boolean(), nullable=False),
        sa.Column('closed_on', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_by_user_id', sa.String(length=24), nullable=True),
        sa.Column('closed_by_name', sa.String(length=200), nullable=True),
        sa.Column('assigned_to_user_id', sa.String(length=24), nullable=True),
        sa.Column('assigned_to_name', sa.String(length=200), nullable=True),
        sa.Column('assigned_on', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by_user_id', sa.String(length=24), nullable=True),
        sa.Column('created_by_name', sa.String(length=200), nullable=True),
        sa.Column('classified_on', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_on', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_updated_on', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_bugs_status', 'bugs', ['status'])
    op.create_index('idx_bugs_classification', 'bugs', ['classification'])
    op.create_index('idx_bugs_created_on', 'bugs', ['created_on'])

    op.create_table(
        'comments',
        sa.Column('id', sa.String(length=24), nullable=False),
        sa.Column('bug_id', sa.String(length=24), sa.ForeignKey('bugs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('author_id', sa.String(length=24), nullable=True),
        sa.Column('author_name', sa.String(length=200), nullable=True),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('created_on', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_comments_bug_id', 'comments', ['bug_id'])

    op.create_table(
        'edits',
        sa.Column('id', sa.String(length=24), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('col', sa.String(length=30), nullable=False),
        sa.Column('op', sa.String(length=30), nullable=False),
        sa.Column('target', _JSON, nullable=False),
        sa.Column('target_id', sa.String(length=24), nullable=True),
        sa.Column('update', _JSON, nullable=True),
        sa.Column('auth', _JSON, nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_edits_target_id', 'edits', ['target_id'])
    op.create_index('idx_edits_col_op', 'edits', ['col', 'op'])

    op.create_table(
        'roles',
        sa.Column('id', sa.String(length=24), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('permissions', _JSON, nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )


def downgrade() -> None:
    op.drop_table('roles')
    op.drop_index('idx_edits_col_op', table_name='edits')
    op.drop_index('idx_edits_target_id', table_name='edits')
    op.drop_table('edits')
    op.drop_index('idx_comments_bug_id', table_name='comments')
    op.drop_table('comments')
    op.drop_index('idx_bugs_created_on', table_name='bugs')
    op.drop_index('idx_bugs_classification', table_name='bugs')
    op.drop_index('idx_bugs_status', table_name='bugs')
    op.drop_table('bugs')
    op.drop_index('idx_users_created_on', table_name='users')
    op.drop_index('idx_users_role', table_name='users')
    op.drop_table('users')
