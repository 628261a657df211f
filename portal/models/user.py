"""
Content Portal
User directory model.

Models:
    - PortalUser: id ↔ e-mail mapping for users forwarded by the auth layer.
      Used to resolve admin e-mails to the user ids notifications target.
"""

from datetime import datetime, timezone

from portal.models import db


class PortalUser(db.Model):
    __tablename__ = "portal_users"

    id = db.Column(db.String(64), primary_key=True, comment="Identity provider user id")
    email = db.Column(db.String(255), nullable=True, index=True)
    display_name = db.Column(db.String(150), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {"id": self.id, "email": self.email, "display_name": self.display_name}

    def __repr__(self):
        return f"<PortalUser {self.id} {self.email}>"
