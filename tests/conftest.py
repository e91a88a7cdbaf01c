from contextlib import contextmanager

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from models import db, User, Profile
from ledger.periods import cycle_start
from ledger.records import TransactionDraft
from ledger.store import RecordStore

EMAIL = "ana@example.com"
PASSWORD = "secret"


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SECRET_KEY": "test",
    })
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture
def user_id(app):
    with app.app_context():
        user = User(name="Ana", email=EMAIL, password_hash=generate_password_hash(PASSWORD))
        user.profile = Profile(
            username="Ana",
            current_cycle="2024-11",
            ideal_day=10,
            total_saved=0.0,
            initial_income=0.0,
            monthly_salary=0.0,
        )
        db.session.add(user)
        db.session.commit()
        return user.id


@pytest.fixture
def store(app, user_id):
    with app.app_context():
        yield RecordStore(db.session)
        db.session.remove()


@pytest.fixture
def seed(store, user_id):
    """Insert one transaction row dated to the start of ``cycle``."""
    def _seed(ttype, description, amount, cycle, **kw):
        draft = TransactionDraft(type=ttype, description=description, amount=amount,
                                 date=cycle_start(cycle), **kw)
        with store.atomic():
            return store.insert_transactions(user_id, [draft])[0]
    return _seed


@pytest.fixture
def client(app, user_id):
    c = app.test_client()
    c.post("/login", data={"email": EMAIL, "password": PASSWORD})
    return c


@pytest.fixture
def reader(app):
    """Open a store on a new app context to see what a request committed."""
    @contextmanager
    def _reader():
        with app.app_context():
            yield RecordStore(db.session)
            db.session.remove()
    return _reader
