"""
Content Portal
Intelligence department models consumed by promotion.

Models:
    - TrendCluster: a named cluster of related signals
    - Signal: one ingested item (article, post, video)
    - SignalClusterAssignment: signal ↔ cluster with confidence
    - ProjectTrendLink: project ↔ cluster reference
"""

from datetime import datetime, timezone

from portal.models import db


TREND_LIFECYCLES = {"emerging", "rising", "peaking", "declining", "stable"}
TREND_LINK_TYPES = {"reference", "inspiration", "tracking"}


def _utcnow():
    return datetime.now(timezone.utc)


class TrendCluster(db.Model):
    __tablename__ = "trend_clusters"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=True)
    lifecycle = db.Column(db.String(20), nullable=True)
    velocity_score = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "lifecycle": self.lifecycle,
            "velocity_score": self.velocity_score,
        }

    def __repr__(self):
        return f"<TrendCluster {self.id}: {self.name}>"


class Signal(db.Model):
    __tablename__ = "signals"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(500), nullable=False)
    content_snippet = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self):
        return f"<Signal {self.id}: {self.title[:40]}>"


class SignalClusterAssignment(db.Model):
    __tablename__ = "signal_cluster_assignments"

    id = db.Column(db.Integer, primary_key=True)
    signal_id = db.Column(
        db.Integer, db.ForeignKey("signals.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    cluster_id = db.Column(
        db.Integer, db.ForeignKey("trend_clusters.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    confidence = db.Column(db.Float, nullable=False, default=0.0)

    signal = db.relationship("Signal")

    __table_args__ = (
        db.UniqueConstraint("signal_id", "cluster_id", name="uq_signal_cluster"),
    )


class ProjectTrendLink(db.Model):
    __tablename__ = "project_trend_links"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    cluster_id = db.Column(
        db.Integer, db.ForeignKey("trend_clusters.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    link_type = db.Column(db.String(20), nullable=False, default="reference")
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    cluster = db.relationship("TrendCluster")

    __table_args__ = (
        db.UniqueConstraint("project_id", "cluster_id", name="uq_project_trend_link"),
    )
