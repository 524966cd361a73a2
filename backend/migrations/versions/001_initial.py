"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates all database tables for the assessment core:
- users, courses, enrollments: collaborator tables the core reads
- tests, test_questions, question_options: test definitions
- test_attempts, test_answers, attempt_flags: attempt lifecycle
- skills, course_skills, user_skills: skill aggregation
- notifications: in-app inbox

Also creates the unique constraints that guard attempt admission and
submission, and indexes for common query patterns.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Users Table ───────────────────────────────────────────
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.Text(), nullable=False, unique=True),
        sa.Column('full_name', sa.Text(), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='learner'),
        sa.Column('phone_number', sa.Text(), nullable=True),
        sa.Column('supervisor_id', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    # ── Courses / Enrollments ─────────────────────────────────
    op.create_table(
        'courses',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        'enrollments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id'), nullable=False),
        sa.Column('enrolled_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('user_id', 'course_id', name='uq_enrollments_user_course'),
    )

    # ── Tests / Questions / Options ───────────────────────────
    op.create_table(
        'tests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id'), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('test_type', sa.String(20), nullable=False),
        sa.Column('passing_score', sa.Integer(), nullable=False, server_default='70'),
        sa.Column('time_limit_minutes', sa.Integer(), nullable=True),
        sa.Column('max_attempts', sa.Integer(), nullable=True, server_default='3'),
        sa.Column('created_by', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("test_type IN ('multiple_choice', 'written', 'coding')",
                           name='ck_tests_test_type'),
    )
    op.create_index('ix_tests_course_id', 'tests', ['course_id'])

    op.create_table(
        'test_questions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('test_id', sa.String(36),
                  sa.ForeignKey('tests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('question_type', sa.String(20), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('order_index', sa.Integer(), nullable=False),
        sa.CheckConstraint('points > 0', name='ck_test_questions_points'),
    )
    op.create_index('ix_test_questions_test_id', 'test_questions', ['test_id'])

    op.create_table(
        'question_options',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('question_id', sa.String(36),
                  sa.ForeignKey('test_questions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('option_text', sa.Text(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('order_index', sa.Integer(), nullable=False),
    )
    op.create_index('ix_question_options_question_id', 'question_options', ['question_id'])

    # ── Attempts / Answers / Flags ────────────────────────────
    op.create_table(
        'test_attempts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('test_id', sa.String(36), sa.ForeignKey('tests.id'), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='in_progress'),
        sa.Column('attempt_number', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('graded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('graded_by', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('feedback', sa.Text(), nullable=True),
        # One attempt per number per user and test: closes the admission race
        sa.UniqueConstraint('test_id', 'user_id', 'attempt_number',
                            name='uq_test_attempts_test_user_number'),
    )
    op.create_index('ix_test_attempts_user_id', 'test_attempts', ['user_id'])
    op.create_index('ix_test_attempts_status', 'test_attempts', ['status'])

    op.create_table(
        'test_answers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('attempt_id', sa.String(36),
                  sa.ForeignKey('test_attempts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_id', sa.String(36), sa.ForeignKey('test_questions.id'), nullable=False),
        sa.Column('answer_text', sa.Text(), nullable=True),
        sa.Column('selected_option_id', sa.String(36),
                  sa.ForeignKey('question_options.id'), nullable=True),
        sa.Column('points_awarded', sa.Float(), nullable=True),
        sa.Column('feedback', sa.Text(), nullable=True),
        sa.UniqueConstraint('attempt_id', 'question_id', name='uq_test_answers_attempt_question'),
    )

    op.create_table(
        'attempt_flags',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('attempt_id', sa.String(36), sa.ForeignKey('test_attempts.id'), nullable=False),
        sa.Column('flagged_by', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_attempt_flags_attempt_id', 'attempt_flags', ['attempt_id'])

    # ── Skills ────────────────────────────────────────────────
    op.create_table(
        'skills',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
    )
    op.create_table(
        'course_skills',
        sa.Column('course_id', sa.String(36), sa.ForeignKey('courses.id'), primary_key=True),
        sa.Column('skill_id', sa.String(36), sa.ForeignKey('skills.id'), primary_key=True),
        sa.Column('weight', sa.Float(), nullable=False, server_default='1.0'),
        sa.CheckConstraint('weight >= 0 AND weight <= 1', name='ck_course_skills_weight'),
    )
    op.create_table(
        'user_skills',
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), primary_key=True),
        sa.Column('skill_id', sa.String(36), sa.ForeignKey('skills.id'), primary_key=True),
        sa.Column('level', sa.Float(), nullable=False, server_default='0'),
        sa.Column('courses_completed', sa.Integer(), nullable=True),
        sa.Column('test_average', sa.Float(), nullable=True),
        sa.Column('supervisor_rating', sa.Float(), nullable=True),
        sa.Column('last_calculated', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('level >= 0 AND level <= 5', name='ck_user_skills_level'),
    )

    # ── Notifications ─────────────────────────────────────────
    op.create_table(
        'notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('notification_type', sa.String(40), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_index('ix_notifications_user_id', table_name='notifications')
    op.drop_table('notifications')
    op.drop_table('user_skills')
    op.drop_table('course_skills')
    op.drop_table('skills')
    op.drop_index('ix_attempt_flags_attempt_id', table_name='attempt_flags')
    op.drop_table('attempt_flags')
    op.drop_table('test_answers')
    op.drop_index('ix_test_attempts_status', table_name='test_attempts')
    op.drop_index('ix_test_attempts_user_id', table_name='test_attempts')
    op.drop_table('test_attempts')
    op.drop_index('ix_question_options_question_id', table_name='question_options')
    op.drop_table('question_options')
    op.drop_index('ix_test_questions_test_id', table_name='test_questions')
    op.drop_table('test_questions')
    op.drop_index('ix_tests_course_id', table_name='tests')
    op.drop_table('tests')
    op.drop_table('enrollments')
    op.drop_table('courses')
    op.drop_table('users')
