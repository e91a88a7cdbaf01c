
from datetime import datetime
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

TRANSACTION_TYPES = ('income', 'fixed', 'card', 'casual')
EXPENSE_TYPES = ('fixed', 'card', 'casual')


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    profile = db.relationship('Profile', backref='user', uselist=False, cascade="all, delete-orphan")
    transactions = db.relationship('Transaction', backref='user', lazy=True, cascade="all, delete-orphan")


class Profile(db.Model):
    __tablename__ = 'profiles'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, unique=True, index=True)
    username = db.Column(db.String(120), nullable=False)
    current_cycle = db.Column(db.String(7), nullable=False)  # YYYY-MM
    ideal_day = db.Column(db.Integer, nullable=False, default=5)
    total_saved = db.Column(db.Float, nullable=False, default=0.0)
    initial_income = db.Column(db.Float, nullable=False, default=0.0)  # added once per cycle
    monthly_salary = db.Column(db.Float, nullable=False, default=0.0)  # offered at rollover


class Transaction(db.Model):
    __tablename__ = 'transactions'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    type = db.Column(db.String(10), nullable=False, index=True)  # income, fixed, card, casual
    description = db.Column(db.Text, nullable=False)  # base description, no "(k/n)"
    amount = db.Column(db.Float, nullable=False)  # per installment / occurrence
    date = db.Column(db.Date, nullable=False, index=True)  # always day 1 of the cycle
    is_recurrent = db.Column(db.Boolean, nullable=False, default=False)
    installments = db.Column(db.Integer, nullable=False, default=1)
    current_installment = db.Column(db.Integer, nullable=False, default=1)
    purchase_group_id = db.Column(db.String(36), nullable=True, index=True)
    ideal_day = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def label(self):
        if self.installments and self.installments > 1:
            return f'{self.description} ({self.current_installment}/{self.installments})'
        return self.description
