"""Learning progress, achievements, analytics sessions and report jobs.

The courses table is owned by the catalog service and is not created here.

Revision ID: 001_learning_tables
Revises:
Create Date: 2026-10-16
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_learning_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Learning Progress ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS learning_progress (
            id VARCHAR(36) PRIMARY KEY,
            learner_id VARCHAR(64) NOT NULL,
            course_id VARCHAR(64) NOT NULL,
            completed_lessons JSONB NOT NULL DEFAULT '[]',
            current_lesson JSONB,
            overall_progress INTEGER NOT NULL DEFAULT 0,
            total_watch_time_seconds INTEGER NOT NULL DEFAULT 0,
            streak_days INTEGER NOT NULL DEFAULT 0,
            last_streak_date DATE,
            notes JSONB NOT NULL DEFAULT '[]',
            bookmarks JSONB NOT NULL DEFAULT '[]',
            weekly_stats JSONB NOT NULL DEFAULT '[]',
            study_goal JSONB NOT NULL DEFAULT '{}',
            started_at TIMESTAMPTZ NOT NULL,
            last_accessed_at TIMESTAMPTZ NOT NULL,
            completed_at TIMESTAMPTZ,
            version INTEGER NOT NULL DEFAULT 1,
            CONSTRAINT uq_progress_learner_course UNIQUE (learner_id, course_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_learning_progress_learner_id ON learning_progress(learner_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_learning_progress_course_id ON learning_progress(course_id)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_progress_last_accessed ON learning_progress(last_accessed_at)")

    # --- Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS learner_achievements (
            id VARCHAR(36) PRIMARY KEY,
            learner_id VARCHAR(64) NOT NULL,
            type VARCHAR(32) NOT NULL,
            course_id VARCHAR(64),
            scope_key VARCHAR(64) NOT NULL DEFAULT '',
            earned_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_achievement_scope UNIQUE (learner_id, type, scope_key)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_learner_achievements_learner_id ON learner_achievements(learner_id)")

    # --- Analytics Sessions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS analytics_sessions (
            id VARCHAR(36) PRIMARY KEY,
            learner_id VARCHAR(64) NOT NULL,
            course_id VARCHAR(64) NOT NULL,
            lesson_id VARCHAR(64) NOT NULL,
            start_time TIMESTAMPTZ NOT NULL,
            end_time TIMESTAMPTZ,
            duration_seconds INTEGER,
            video_progress_percent DOUBLE PRECISION NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL
        )
    """)
    # One open session per learner/course/lesson
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_analytics_open_session
        ON analytics_sessions(learner_id, course_id, lesson_id)
        WHERE end_time IS NULL
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_analytics_learner_created
        ON analytics_sessions(learner_id, created_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_analytics_course_created
        ON analytics_sessions(course_id, created_at)
    """)

    # --- Analytics Interactions (append-only) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS analytics_interactions (
            id BIGSERIAL PRIMARY KEY,
            session_id VARCHAR(36) NOT NULL REFERENCES analytics_sessions(id) ON DELETE CASCADE,
            action VARCHAR(64) NOT NULL,
            kind VARCHAR(32) NOT NULL,
            occurred_at TIMESTAMPTZ NOT NULL,
            video_timestamp_seconds DOUBLE PRECISION,
            data JSONB NOT NULL DEFAULT '{}'
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_analytics_interactions_session_id
        ON analytics_interactions(session_id)
    """)

    # --- Report Jobs ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS report_jobs (
            id VARCHAR(36) PRIMARY KEY,
            learner_id VARCHAR(64) NOT NULL,
            course_id VARCHAR(64),
            timeframe VARCHAR(8) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'processing',
            report JSONB,
            error TEXT,
            created_at TIMESTAMPTZ NOT NULL,
            completed_at TIMESTAMPTZ
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_report_jobs_learner_id ON report_jobs(learner_id)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS report_jobs")
    op.execute("DROP TABLE IF EXISTS analytics_interactions")
    op.execute("DROP TABLE IF EXISTS analytics_sessions")
    op.execute("DROP TABLE IF EXISTS learner_achievements")
    op.execute("DROP TABLE IF EXISTS learning_progress")
