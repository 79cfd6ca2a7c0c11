"""create_segment_engine_tables

Revision ID: a0c1d2e3f4a5
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision: str = 'a0c1d2e3f4a5'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

FOOTPRINT_COLUMNS = (
    'min_lat', 'min_lng', 'max_lat', 'max_lng',
    'start_lat', 'start_lng', 'end_lat', 'end_lng',
)


def _footprint_columns():
    return [sa.Column(name, sa.Float(), nullable=True) for name in FOOTPRINT_COLUMNS]


def _footprint_indexes(table: str):
    for name in FOOTPRINT_COLUMNS:
        op.create_index(f'ix_{table}_{name}', table, [name])


def upgrade() -> None:
    op.create_table('user',
        sa.Column('id', sqlmodel.sql.sqltypes.GUID(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('username', sqlmodel.sql.sqltypes.AutoString(length=64), nullable=False),
        sa.Column('avatar', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('gender', sa.Enum('MALE', 'FEMALE', 'OTHER', name='gender'), nullable=True),
        sa.Column('location_lat', sa.Float(), nullable=True),
        sa.Column('location_lng', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)
    op.create_index('ix_user_location_lat', 'user', ['location_lat'])
    op.create_index('ix_user_location_lng', 'user', ['location_lng'])

    op.create_table('activity',
        sa.Column('id', sqlmodel.sql.sqltypes.GUID(), nullable=False),
        sa.Column('user_id', sqlmodel.sql.sqltypes.GUID(), nullable=False),
        sa.Column('activity_type', sa.Enum('RUN', 'RIDE', 'WALK', 'SWIM', 'GYM', 'OTHER', name='activitytype'), nullable=False),
        sa.Column('title', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('visibility', sa.Enum('PUBLIC', 'FOLLOWERS', 'PRIVATE', name='activityvisibility'), nullable=False),
        sa.Column('distance_meters', sa.Float(), nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=False),
        sa.Column('moving_time_seconds', sa.Integer(), nullable=False),
        sa.Column('elevation_gain', sa.Float(), nullable=False),
        sa.Column('elevation_loss', sa.Float(), nullable=False),
        sa.Column('avg_speed_kmh', sa.Float(), nullable=True),
        sa.Column('max_speed_kmh', sa.Float(), nullable=True),
        sa.Column('avg_heart_rate', sa.Integer(), nullable=True),
        sa.Column('max_heart_rate', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('route', sa.JSON(), nullable=True),
        sa.Column('raw_data', sa.JSON(), nullable=True),
        *_footprint_columns(),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_activity_user_id', 'activity', ['user_id'])
    op.create_index('ix_activity_completed_at', 'activity', ['completed_at'])
    op.create_index('ix_activity_deleted_at', 'activity', ['deleted_at'])
    _footprint_indexes('activity')

    op.create_table('segment',
        sa.Column('id', sqlmodel.sql.sqltypes.GUID(), nullable=False),
        sa.Column('creator_id', sqlmodel.sql.sqltypes.GUID(), nullable=False),
        sa.Column('name', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('segment_type', sa.Enum('RUN', 'RIDE', name='segmenttype'), nullable=False),
        sa.Column('distance_meters', sa.Float(), nullable=False),
        sa.Column('avg_grade_percent', sa.Float(), nullable=False),
        sa.Column('max_grade_percent', sa.Float(), nullable=False),
        sa.Column('elevation_gain', sa.Float(), nullable=False),
        sa.Column('is_hazardous', sa.Boolean(), nullable=False),
        sa.Column('city', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('state', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('route', sa.JSON(), nullable=False),
        *_footprint_columns(),
        sa.Column('total_attempts', sa.Integer(), nullable=False),
        sa.Column('unique_athletes', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['creator_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_segment_creator_id', 'segment', ['creator_id'])
    op.create_index('ix_segment_city', 'segment', ['city'])
    _footprint_indexes('segment')

    op.create_table('segment_effort',
        sa.Column('id', sqlmodel.sql.sqltypes.GUID(), nullable=False),
        sa.Column('segment_id', sqlmodel.sql.sqltypes.GUID(), nullable=False),
        sa.Column('activity_id', sqlmodel.sql.sqltypes.GUID(), nullable=False),
        sa.Column('user_id', sqlmodel.sql.sqltypes.GUID(), nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=False),
        sa.Column('avg_speed_kmh', sa.Float(), nullable=True),
        sa.Column('avg_heart_rate', sa.Integer(), nullable=True),
        sa.Column('rank_overall', sa.Integer(), nullable=True),
        sa.Column('rank_age_group', sa.Integer(), nullable=True),
        sa.Column('is_kom', sa.Boolean(), nullable=False),
        sa.Column('is_pr', sa.Boolean(), nullable=False),
        sa.Column('achieved_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['segment_id'], ['segment.id']),
        sa.ForeignKeyConstraint(['activity_id'], ['activity.id']),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('segment_id', 'activity_id', name='uq_segment_effort_segment_activity'),
    )
    op.create_index('ix_segment_effort_segment_id', 'segment_effort', ['segment_id'])
    op.create_index('ix_segment_effort_activity_id', 'segment_effort', ['activity_id'])
    op.create_index('ix_segment_effort_user_id', 'segment_effort', ['user_id'])
    op.create_index('ix_segment_effort_is_kom', 'segment_effort', ['is_kom'])
    op.create_index('ix_segment_effort_is_pr', 'segment_effort', ['is_pr'])
    op.create_index('ix_segment_effort_segment_duration', 'segment_effort', ['segment_id', 'duration_seconds'])
    op.create_index(
        'ix_segment_effort_user_segment_achieved', 'segment_effort', ['user_id', 'segment_id', 'achieved_at']
    )


def downgrade() -> None:
    op.drop_table('segment_effort')
    op.drop_table('segment')
    op.drop_table('activity')
    op.drop_table('user')
    sa.Enum(name='segmenttype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='activityvisibility').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='activitytype').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='gender').drop(op.get_bind(), checkfirst=True)
