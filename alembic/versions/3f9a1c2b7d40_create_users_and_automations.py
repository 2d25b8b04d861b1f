"""Create users and automations tables

Revision ID: 3f9a1c2b7d40
Revises:
Create Date: 2026-10-19 10:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a1c2b7d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('proconnect_sub', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('given_name', sa.String(length=255), nullable=True),
        sa.Column('usual_name', sa.String(length=255), nullable=True),
        sa.Column('organization', sa.String(length=255), nullable=True),
        sa.Column('is_public_agent', sa.Boolean(), nullable=False, server_default=sa.false()),
        # Encrypted Grist API key and SHA-256 digest of the plaintext
        sa.Column('grist_api_key', sa.Text(), nullable=True),
        sa.Column('grist_api_key_hash', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_users_proconnect_sub'), 'users', ['proconnect_sub'], unique=True)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table(
        'automations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('source_document_id', sa.String(length=255), nullable=False),
        sa.Column('source_document_name', sa.String(length=500), nullable=False),
        sa.Column('source_table_id', sa.String(length=255), nullable=False),
        sa.Column('source_table_name', sa.String(length=500), nullable=False),
        sa.Column('target_document_id', sa.String(length=255), nullable=False),
        sa.Column('target_document_name', sa.String(length=500), nullable=False),
        sa.Column('target_table_id', sa.String(length=255), nullable=False),
        sa.Column('target_table_name', sa.String(length=500), nullable=False),
        sa.Column('selected_columns', sa.JSON(), nullable=False),
        sa.Column('last_executed', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_execution_status', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_automations_user_id'), 'automations', ['user_id'], unique=False)
    op.create_index(
        'ix_automations_user_created', 'automations', ['user_id', 'created_at'], unique=False
    )


def downgrade() -> None:
    op.drop_index('ix_automations_user_created', table_name='automations')
    op.drop_index(op.f('ix_automations_user_id'), table_name='automations')
    op.drop_table('automations')

    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_index(op.f('ix_users_proconnect_sub'), table_name='users')
    op.drop_table('users')
