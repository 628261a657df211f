"""
Content Portal
Cross-department provenance model.

Models:
    - CrossDepartmentRef: append-only edge linking an entity in one
      department to an entity in another (promotion, reference, tracking).
"""

from datetime import datetime, timezone

from portal.models import db


RELATIONSHIPS = {"promoted_to", "references", "tracking"}
SOURCE_TYPES = {"project", "trend"}


class CrossDepartmentRef(db.Model):
    """
    Provenance edge between departments.

    ``metadata_json`` keeps the full, untruncated upstream context forwarded
    at promotion time so it can be re-derived later.
    """

    __tablename__ = "cross_department_refs"
    __table_args__ = (
        db.Index("ix_cdr_source", "source_department", "source_type", "source_id"),
        db.Index("ix_cdr_target", "target_department", "target_type", "target_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    source_department = db.Column(db.String(20), nullable=False)
    source_type = db.Column(db.String(30), nullable=False)
    source_id = db.Column(db.String(64), nullable=False)
    target_department = db.Column(db.String(20), nullable=False)
    target_type = db.Column(db.String(30), nullable=False)
    target_id = db.Column(db.String(64), nullable=False)
    relationship = db.Column(db.String(20), nullable=False, default="promoted_to")
    metadata_json = db.Column("metadata", db.JSON, nullable=False, default=dict)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "source_department": self.source_department,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "target_department": self.target_department,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "relationship": self.relationship,
            "metadata": self.metadata_json or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return (
            f"<CrossDepartmentRef {self.source_department}/{self.source_id} "
            f"-{self.relationship}-> {self.target_department}/{self.target_id}>"
        )
