from livequiz import db, bcrypt
from flask_login import UserMixin


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(120), nullable=True)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def uid(self) -> str:
        # Document keys are strings; this is the caller identity the game engine sees
        return str(self.id)

    def to_dict(self):
        return {
            'id': self.uid,
            'username': self.username,
            'display_name': self.display_name or self.username,
            'email': self.email,
        }


class Document(db.Model):
    """One JSON document in a logical collection such as ``games/<id>/players``."""
    __tablename__ = 'document'
    collection = db.Column(db.String(255), primary_key=True)
    key = db.Column(db.String(128), primary_key=True)
    data = db.Column(db.JSON, nullable=False)
    # Bumped on every write; used for compare-and-set updates
    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.Float, nullable=False, index=True)
    updated_at = db.Column(db.Float, nullable=False)

    def to_dict(self):
        return dict(self.data or {})
