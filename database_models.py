from sqlalchemy import Column, String, DateTime, JSON

from database import Base


class ProjectRecord(Base):
    """
    Stored project row.
    File contents and metadata are kept as JSON documents.
    """
    __tablename__ = "projects"

    id = Column(String(64), primary_key=True, index=True)
    name = Column(String, nullable=False)
    files = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    # "metadata" is reserved on declarative classes
    project_metadata = Column("metadata", JSON, nullable=False, default=dict)
