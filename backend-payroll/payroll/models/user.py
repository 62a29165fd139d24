from payroll import db
from payroll.utils.helpers import utcnow
from werkzeug.security import generate_password_hash, check_password_hash
import uuid


class UserProfile(db.Model):
    """Dashboard account (admin or plant manager)"""
    __tablename__ = 'user_profiles'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    # admin | manager
    role = db.Column(db.String(20), nullable=False, default='manager')

    # Managers oversee one plant
    plant_id = db.Column(db.String(36), db.ForeignKey('plants.id'))

    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    last_login = db.Column(db.DateTime)

    plant = db.relationship('Plant', backref='managers')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'

    def to_dict(self):
        return {
            'id': self.id,
            'full_name': self.full_name,
            'email': self.email,
            'role': self.role,
            'plant_id': self.plant_id,
            'plant_name': self.plant.name if self.plant else None,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
