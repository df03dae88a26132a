from datetime import datetime, timezone
import uuid

from flask_login import UserMixin

from bingo import bcrypt, db


def _utcnow():
    return datetime.now(timezone.utc)


def generate_user_id():
    return f"user_{uuid.uuid4().hex[:16]}"


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.String(32), primary_key=True, default=generate_user_id)
    # Guests have no username/password, only a display name
    username = db.Column(db.String(64), unique=True, nullable=True, index=True)
    display_name = db.Column(db.String(64), nullable=False)
    email = db.Column(db.String(120), nullable=True)
    password_hash = db.Column(db.String(256), nullable=True)
    created_at = db.Column(db.DateTime, default=_utcnow)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        if not self.password_hash:
            return False
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def is_guest(self):
        return self.username is None

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'display_name': self.display_name,
            'email': self.email,
            'is_guest': self.is_guest,
        }


class Document(db.Model):
    """One JSON document of a collection; backs SqlDocumentStore."""
    __tablename__ = 'document'
    collection = db.Column(db.String(64), primary_key=True)
    id = db.Column(db.String(64), primary_key=True)
    data = db.Column(db.JSON, nullable=False, default=dict)
    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)
