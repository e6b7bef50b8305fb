"""initial schema: identities, profiles, workout tables, subscription plans

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'identities',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('email', sa.Text(), nullable=False, unique=True),
        sa.Column('password_hash', sa.Text(), nullable=True),
        sa.Column('user_metadata', sa.JSON(), nullable=False),
        sa.Column('provider', sa.Text(), nullable=False, server_default='email'),
    )

    # template_preference NULL = setup not finished
    op.create_table(
        'profiles',
        sa.Column('id', sa.Uuid(), sa.ForeignKey('identities.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('display_name', sa.Text(), nullable=True),
        sa.Column('has_buddy', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('buddy_name', sa.Text(), nullable=True),
        sa.Column('template_preference', sa.Text(), nullable=True),
        sa.Column('subscription_plan', sa.Text(), nullable=False, server_default='free'),
        sa.Column('subscription_updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('username', sa.Text(), nullable=False, unique=True),
        sa.Column('auth_id', sa.Uuid(), sa.ForeignKey('identities.id', ondelete='CASCADE'), nullable=True),
        sa.Column('is_buddy', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_users_auth_id', 'users', ['auth_id'])

    op.create_table(
        'user_days',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('username', sa.Text(), nullable=False),
        sa.Column('day', sa.Text(), nullable=False),
        sa.Column('day_order', sa.Integer(), nullable=False),
        sa.Column('auth_id', sa.Uuid(), sa.ForeignKey('identities.id', ondelete='CASCADE'), nullable=True),
        sa.UniqueConstraint('username', 'day', name='uq_user_days_username_day'),
    )
    op.create_index('ix_user_days_auth_id', 'user_days', ['auth_id'])

    op.create_table(
        'exercises',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('username', sa.Text(), nullable=False),
        sa.Column('day', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
    )
    op.create_index('ix_exercises_username_day', 'exercises', ['username', 'day'])

    op.create_table(
        'workout_sets',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('username', sa.Text(), nullable=False),
        sa.Column('exercise', sa.Text(), nullable=False),
        sa.Column('warmup', sa.Text(), nullable=False, server_default=''),
        sa.Column('weight', sa.Text(), nullable=False, server_default=''),
        sa.Column('reps', sa.Text(), nullable=False, server_default=''),
        sa.Column('goal', sa.Text(), nullable=False, server_default=''),
    )
    op.create_index('ix_workout_sets_username_exercise', 'workout_sets', ['username', 'exercise'])

    op.create_table(
        'workout_buddies',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('profile_id', sa.Uuid(), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('buddy_name', sa.Text(), nullable=False),
        sa.UniqueConstraint('profile_id', 'buddy_name', name='uq_workout_buddies_profile_buddy'),
    )

    plans = op.create_table(
        'subscription_plans',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.Text(), nullable=False, unique=True),
        sa.Column('max_workout_days', sa.Integer(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('features', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.bulk_insert(plans, [
        {
            'name': 'free',
            'max_workout_days': 3,
            'price': 0,
            'description': 'Basic plan for casual workouts',
            'features': ['Up to 3 workout days', 'Basic workout tracking', 'Single user account'],
            'is_active': True,
        },
        {
            'name': 'plus',
            'max_workout_days': None,
            'price': 5,
            'description': 'Perfect for regular gym-goers',
            'features': ['Unlimited workout days', 'Advanced workout tracking', 'Progress analytics', 'Priority support'],
            'is_active': True,
        },
        {
            # Not sold yet; checkout still accepts it.
            'name': 'pro',
            'max_workout_days': None,
            'price': 25,
            'description': 'For fitness enthusiasts and trainers',
            'features': [
                'All Plus features',
                'AI workout recommendations',
                'Personal trainer tools',
                'Workout plan creation',
                'Premium analytics',
            ],
            'is_active': False,
        },
    ])


def downgrade() -> None:
    op.drop_table('subscription_plans')
    op.drop_table('workout_buddies')
    op.drop_index('ix_workout_sets_username_exercise', table_name='workout_sets')
    op.drop_table('workout_sets')
    op.drop_index('ix_exercises_username_day', table_name='exercises')
    op.drop_table('exercises')
    op.drop_index('ix_user_days_auth_id', table_name='user_days')
    op.drop_table('user_days')
    op.drop_index('ix_users_auth_id', table_name='users')
    op.drop_table('users')
    op.drop_table('profiles')
    op.drop_table('identities')
