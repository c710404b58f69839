# rasuva/models.py
from sqlalchemy.sql import func

from .extensions import db


class ImportRecord(db.Model):
    """One accepted task generation."""
    __tablename__ = "imports"

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)
    source = db.Column(db.String(30), nullable=False)          # paste|file|excel
    raw_json = db.Column(db.Text, nullable=False)
    total_members = db.Column(db.Integer, nullable=False, default=0)
    total_projects = db.Column(db.Integer, nullable=False, default=0)
    total_tasks = db.Column(db.Integer, nullable=False, default=0)
    added_count = db.Column(db.Integer, nullable=False, default=0)
    updated_count = db.Column(db.Integer, nullable=False, default=0)
    archived_count = db.Column(db.Integer, nullable=False, default=0)
    invalid_count = db.Column(db.Integer, nullable=False, default=0)
    unscheduled_count = db.Column(db.Integer, nullable=False, default=0)
    warnings_count = db.Column(db.Integer, nullable=False, default=0)

    tasks = db.relationship("TaskRow", backref="import_record", cascade="all, delete-orphan", lazy=True)
    warnings = db.relationship("ImportWarningRow", backref="import_record",
                               cascade="all, delete-orphan", lazy=True)

    def to_dict(self):
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "source": self.source,
            "total_members": self.total_members,
            "total_projects": self.total_projects,
            "total_tasks": self.total_tasks,
            "added_count": self.added_count,
            "updated_count": self.updated_count,
            "archived_count": self.archived_count,
            "invalid_count": self.invalid_count,
            "unscheduled_count": self.unscheduled_count,
            "warnings_count": self.warnings_count,
        }


class TaskRow(db.Model):
    __tablename__ = "tasks"
    __table_args__ = (
        db.UniqueConstraint("import_id", "task_key_full", name="uq_tasks_import_key_full"),
    )

    id = db.Column(db.Integer, primary_key=True)
    import_id = db.Column(db.Integer, db.ForeignKey("imports.id", ondelete="CASCADE"),
                          nullable=False, index=True)
    task_key = db.Column(db.String(512), nullable=False, index=True)
    task_key_full = db.Column(db.String(520), nullable=False)
    member_name = db.Column(db.String(255), nullable=False)
    project_id = db.Column(db.String(255), nullable=False)
    project_group = db.Column(db.String(255))
    task_name = db.Column(db.String(255), nullable=False)
    assignees = db.Column(db.JSON, nullable=False, default=list)
    start = db.Column(db.String(10))
    end = db.Column(db.String(10))
    raw_date = db.Column(db.Text, nullable=False)
    note = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, index=True)


class ImportWarningRow(db.Model):
    __tablename__ = "import_warnings"

    id = db.Column(db.Integer, primary_key=True)
    import_id = db.Column(db.Integer, db.ForeignKey("imports.id", ondelete="CASCADE"),
                          nullable=False, index=True)
    code = db.Column(db.String(40), nullable=False)
    message = db.Column(db.Text, nullable=False)
    context = db.Column(db.JSON, nullable=False, default=dict)

    def to_dict(self):
        return {"code": self.code, "message": self.message, "context": self.context or {}}


class CommandHistoryRow(db.Model):
    __tablename__ = "command_history"

    id = db.Column(db.Integer, primary_key=True)
    import_id = db.Column(db.Integer, db.ForeignKey("imports.id", ondelete="CASCADE"),
                          nullable=False, index=True)
    command_type = db.Column(db.String(40), nullable=False)
    task_id = db.Column(db.Integer)
    prev_state = db.Column(db.JSON)     # full task snapshot before the mutation
    next_state = db.Column(db.JSON)     # ... and after
    undone = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
