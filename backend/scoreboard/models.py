from scoreboard import db, bcrypt
import json
import secrets
import time


class ScoreboardDocument(db.Model):
    """One stored scoreboard document, keyed by its 6-digit session code."""
    __tablename__ = 'scoreboard_session'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(6), unique=True, index=True, nullable=False)
    document = db.Column(db.Text, nullable=False)  # JSON-encoded GameState document
    last_update = db.Column(db.BigInteger, default=0, nullable=False)
    host_password_hash = db.Column(db.String(128), nullable=False)
    host_token = db.Column(db.String(64), nullable=False, index=True)
    created_at = db.Column(db.Float, default=time.time, nullable=False)
    updated_at = db.Column(db.Float, default=time.time, onupdate=time.time, nullable=False)

    def set_host_password(self, password):
        self.host_password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_host_password(self, password):
        return bcrypt.check_password_hash(self.host_password_hash, password)

    def issue_host_token(self):
        self.host_token = secrets.token_urlsafe(32)
        return self.host_token

    def check_host_token(self, token):
        return bool(token) and secrets.compare_digest(self.host_token, token)

    def set_document(self, document):
        self.document = json.dumps(document)
        self.last_update = int(document.get('lastUpdate') or 0)

    def to_dict(self):
        return json.loads(self.document)
