# SQLAlchemy table definitions for the call store.
# Column layout follows the dashboard's existing SQLite schema.
import sqlalchemy as sa

metadata = sa.MetaData()

calls = sa.Table(
    "calls",
    metadata,
    sa.Column("id", sa.String, primary_key=True),
    sa.Column("from_number", sa.String, nullable=False, default=""),
    sa.Column("to_number", sa.String, nullable=False, default=""),
    sa.Column("duration", sa.String, nullable=False, default="0"),
    sa.Column("recording_url", sa.String, nullable=False, default=""),
    sa.Column("pii_url", sa.String, nullable=False, default=""),
    sa.Column("transcript_sid", sa.String, nullable=False, default=""),
    sa.Column("recording_type", sa.String, nullable=False, default="regular"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint("recording_type IN ('regular', 'redacted')", name="ck_calls_recording_type"),
)

transcripts = sa.Table(
    "transcripts",
    metadata,
    # Autoincrement id defines utterance order within a call
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column(
        "call_id",
        sa.String,
        sa.ForeignKey("calls.id", ondelete="CASCADE"),
        nullable=False,
    ),
    sa.Column("speaker", sa.String, nullable=False),
    sa.Column("text", sa.Text, nullable=False),
    sa.CheckConstraint("speaker IN ('customer', 'assistant')", name="ck_transcripts_speaker"),
)

sa.Index("idx_calls_created_at", calls.c.created_at)
sa.Index("idx_transcripts_call_id", transcripts.c.call_id)
