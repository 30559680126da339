"""create judging tables

Revision ID: 3b7c2d9e41a0
Revises:
Create Date: 2026-10-19 09:12:44.105311

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3b7c2d9e41a0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('users',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('email', sa.String(), nullable=False),
                    sa.Column('name', sa.String(length=50), nullable=True),
                    sa.Column('role', sa.String(), nullable=False),
                    sa.Column('is_active', sa.Boolean(), nullable=True),
                    sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('last_submission_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('last_run_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('solved_count', sa.Integer(), nullable=False),
                    sa.Column('attempted_count', sa.Integer(), nullable=False),
                    sa.Column('easy_solved', sa.Integer(), nullable=False),
                    sa.Column('medium_solved', sa.Integer(), nullable=False),
                    sa.Column('hard_solved', sa.Integer(), nullable=False),
                    sa.Column('total_submissions', sa.Integer(), nullable=False),
                    sa.Column('accepted_submissions', sa.Integer(), nullable=False),
                    sa.Column('accuracy', sa.Integer(), nullable=False),
                    sa.Column('points', sa.Integer(), nullable=False),
                    sa.Column('level', sa.Integer(), nullable=False),
                    sa.Column('streak_current', sa.Integer(), nullable=False),
                    sa.Column('streak_longest', sa.Integer(), nullable=False),
                    sa.Column('last_active_date', sa.Date(), nullable=True),
                    sa.PrimaryKeyConstraint('id', name=op.f('pk_users'))
                    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_points'), 'users', ['points'], unique=False)

    op.create_table('problems',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('slug', sa.String(), nullable=False),
                    sa.Column('title', sa.String(length=200), nullable=False),
                    sa.Column('description', sa.Text(), nullable=False),
                    sa.Column('difficulty', sa.String(), nullable=False),
                    sa.Column('category', sa.String(), nullable=False),
                    sa.Column('time_limit_sec', sa.Float(), nullable=False),
                    sa.Column('memory_limit_mb', sa.Integer(), nullable=False),
                    sa.Column('points', sa.Integer(), nullable=True),
                    sa.Column('source', sa.String(), nullable=False),
                    sa.Column('version', sa.Integer(), nullable=False),
                    sa.Column('is_active', sa.Boolean(), nullable=False),
                    sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('total_submissions', sa.Integer(), nullable=False),
                    sa.Column('accepted_submissions', sa.Integer(), nullable=False),
                    sa.Column('acceptance_rate', sa.Integer(), nullable=False),
                    sa.Column('solved_by', sa.Integer(), nullable=False),
                    sa.Column('attempted_by', sa.Integer(), nullable=False),
                    sa.Column('average_runtime_ms', sa.Float(), nullable=True),
                    sa.Column('average_memory_mb', sa.Float(), nullable=True),
                    sa.PrimaryKeyConstraint('id', name=op.f('pk_problems'))
                    )
    op.create_index(op.f('ix_problems_id'), 'problems', ['id'], unique=False)
    op.create_index(op.f('ix_problems_slug'), 'problems', ['slug'], unique=True)
    op.create_index(op.f('ix_problems_difficulty'), 'problems', ['difficulty'], unique=False)
    op.create_index(op.f('ix_problems_category'), 'problems', ['category'], unique=False)

    op.create_table('test_cases',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('problem_id', sa.String(), nullable=False),
                    sa.Column('position', sa.Integer(), nullable=False),
                    sa.Column('name', sa.String(), nullable=False),
                    sa.Column('input', sa.Text(), nullable=False),
                    sa.Column('expected_output', sa.Text(), nullable=False),
                    sa.Column('is_hidden', sa.Boolean(), nullable=False),
                    sa.Column('weight', sa.Integer(), nullable=False),
                    sa.Column('explanation', sa.Text(), nullable=True),
                    sa.ForeignKeyConstraint(['problem_id'], ['problems.id'],
                                            name=op.f('fk_test_cases_problem_id_problems')),
                    sa.PrimaryKeyConstraint('id', name=op.f('pk_test_cases'))
                    )
    op.create_index(op.f('ix_test_cases_id'), 'test_cases', ['id'], unique=False)
    op.create_index(op.f('ix_test_cases_problem_id'), 'test_cases', ['problem_id'], unique=False)

    op.create_table('submissions',
                    sa.Column('id', sa.String(), nullable=False),
                    sa.Column('problem_id', sa.String(), nullable=False),
                    sa.Column('language', sa.String(), nullable=False),
                    sa.Column('code', sa.Text(), nullable=False),
                    sa.Column('submitter_id', sa.Integer(), nullable=False),
                    sa.Column('status', sa.String(), nullable=False),
                    sa.Column('test_cases_passed', sa.Integer(), nullable=False),
                    sa.Column('total_test_cases', sa.Integer(), nullable=False),
                    sa.Column('score', sa.Integer(), nullable=False),
                    sa.Column('runtime_ms', sa.Float(), nullable=True),
                    sa.Column('memory_mb', sa.Float(), nullable=True),
                    sa.Column('points', sa.Integer(), nullable=False),
                    sa.Column('error_message', sa.Text(), nullable=True),
                    sa.Column('results_json', sa.Text(), nullable=True),
                    sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
                    sa.Column('judged_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('stats_applied', sa.Boolean(), nullable=False),
                    sa.ForeignKeyConstraint(['problem_id'], ['problems.id'],
                                            name=op.f('fk_submissions_problem_id_problems')),
                    sa.ForeignKeyConstraint(['submitter_id'], ['users.id'],
                                            name=op.f('fk_submissions_submitter_id_users')),
                    sa.PrimaryKeyConstraint('id', name=op.f('pk_submissions'))
                    )
    op.create_index(op.f('ix_submissions_id'), 'submissions', ['id'], unique=False)
    op.create_index(op.f('ix_submissions_problem_id'), 'submissions', ['problem_id'], unique=False)
    op.create_index(op.f('ix_submissions_submitter_id'), 'submissions', ['submitter_id'], unique=False)
    op.create_index(op.f('ix_submissions_status'), 'submissions', ['status'], unique=False)
    op.create_index(op.f('ix_submissions_submitted_at'), 'submissions', ['submitted_at'], unique=False)
    op.create_index('ix_submissions_submitter_problem', 'submissions', ['submitter_id', 'problem_id'], unique=False)

    op.create_table('judge_tasks',
                    sa.Column('id', sa.Integer(), nullable=False),
                    sa.Column('submission_id', sa.String(), nullable=False),
                    sa.Column('state', sa.String(), nullable=False),
                    sa.Column('attempts', sa.Integer(), nullable=False),
                    sa.Column('available_at', sa.DateTime(timezone=True), nullable=False),
                    sa.Column('lease_expires_at', sa.DateTime(timezone=True), nullable=True),
                    sa.Column('last_error', sa.Text(), nullable=True),
                    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
                    sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
                    sa.ForeignKeyConstraint(['submission_id'], ['submissions.id'],
                                            name=op.f('fk_judge_tasks_submission_id_submissions')),
                    sa.PrimaryKeyConstraint('id', name=op.f('pk_judge_tasks')),
                    sa.UniqueConstraint('submission_id', name=op.f('uq_judge_tasks_submission_id'))
                    )
    op.create_index(op.f('ix_judge_tasks_id'), 'judge_tasks', ['id'], unique=False)
    op.create_index(op.f('ix_judge_tasks_state'), 'judge_tasks', ['state'], unique=False)
    op.create_index(op.f('ix_judge_tasks_available_at'), 'judge_tasks', ['available_at'], unique=False)

    op.create_table('user_problems',
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('problem_id', sa.String(), nullable=False),
                    sa.Column('attempted_at', sa.DateTime(timezone=True), nullable=False),
                    sa.Column('solved_at', sa.DateTime(timezone=True), nullable=True),
                    sa.ForeignKeyConstraint(['problem_id'], ['problems.id'],
                                            name=op.f('fk_user_problems_problem_id_problems')),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_user_problems_user_id_users')),
                    sa.PrimaryKeyConstraint('user_id', 'problem_id', name=op.f('pk_user_problems'))
                    )

    op.create_table('user_category_progress',
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('category', sa.String(), nullable=False),
                    sa.Column('attempted', sa.Integer(), nullable=False),
                    sa.Column('solved', sa.Integer(), nullable=False),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id'],
                                            name=op.f('fk_user_category_progress_user_id_users')),
                    sa.PrimaryKeyConstraint('user_id', 'category', name=op.f('pk_user_category_progress'))
                    )

    op.create_table('user_achievements',
                    sa.Column('user_id', sa.Integer(), nullable=False),
                    sa.Column('achievement_id', sa.String(), nullable=False),
                    sa.Column('name', sa.String(), nullable=False),
                    sa.Column('description', sa.String(), nullable=True),
                    sa.Column('icon', sa.String(), nullable=True),
                    sa.Column('category', sa.String(), nullable=False),
                    sa.Column('unlocked_at', sa.DateTime(timezone=True), nullable=False),
                    sa.ForeignKeyConstraint(['user_id'], ['users.id'],
                                            name=op.f('fk_user_achievements_user_id_users')),
                    sa.PrimaryKeyConstraint('user_id', 'achievement_id', name=op.f('pk_user_achievements'))
                    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('user_achievements')
    op.drop_table('user_category_progress')
    op.drop_table('user_problems')
    op.drop_index(op.f('ix_judge_tasks_available_at'), table_name='judge_tasks')
    op.drop_index(op.f('ix_judge_tasks_state'), table_name='judge_tasks')
    op.drop_index(op.f('ix_judge_tasks_id'), table_name='judge_tasks')
    op.drop_table('judge_tasks')
    op.drop_index('ix_submissions_submitter_problem', table_name='submissions')
    op.drop_index(op.f('ix_submissions_submitted_at'), table_name='submissions')
    op.drop_index(op.f('ix_submissions_status'), table_name='submissions')
    op.drop_index(op.f('ix_submissions_submitter_id'), table_name='submissions')
    op.drop_index(op.f('ix_submissions_problem_id'), table_name='submissions')
    op.drop_index(op.f('ix_submissions_id'), table_name='submissions')
    op.drop_table('submissions')
    op.drop_index(op.f('ix_test_cases_problem_id'), table_name='test_cases')
    op.drop_index(op.f('ix_test_cases_id'), table_name='test_cases')
    op.drop_table('test_cases')
    op.drop_index(op.f('ix_problems_category'), table_name='problems')
    op.drop_index(op.f('ix_problems_difficulty'), table_name='problems')
    op.drop_index(op.f('ix_problems_slug'), table_name='problems')
    op.drop_index(op.f('ix_problems_id'), table_name='problems')
    op.drop_table('problems')
    op.drop_index(op.f('ix_users_points'), table_name='users')
    op.drop_index(op.f('ix_users_id'), table_name='users')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
