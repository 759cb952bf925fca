import os
import tempfile

# the app reads its configuration at import time
_tmp_dir = tempfile.mkdtemp(prefix="fitrule-tests-")
os.environ["FITRULE_DATABASE_URL"] = "sqlite:///" + os.path.join(_tmp_dir, "test.db")
os.environ["FITRULE_BCRYPT_ROUNDS"] = "4"
os.environ.setdefault("FITRULE_LOG_LEVEL", "WARNING")

import pytest

from app import app as flask_app, bcrypt
from database import Base, SessionLocal, engine
from models import Program, Rule, User
from seed import seed_catalog, seed_exercises

PASSWORD = "secret123"

USERS = [
    ("Admin", "admin@fitrule.io", "male", "admin"),
    ("Budi", "budi@fitrule.io", "male", "user"),
    ("Sari", "sari@fitrule.io", "female", "user"),
]


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True)

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    seed_catalog(db)
    seed_exercises(db)
    hashed = bcrypt.generate_password_hash(PASSWORD).decode("utf-8")
    for name, email, gender, role in USERS:
        db.add(User(name=name, email=email, password_hash=hashed, gender=gender, role=role))
    db.commit()
    db.close()

    yield flask_app


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, email, password=PASSWORD):
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return client


@pytest.fixture
def admin_client(app):
    return login(app.test_client(), "admin@fitrule.io")


@pytest.fixture
def user_client(app):
    return login(app.test_client(), "budi@fitrule.io")


@pytest.fixture
def female_client(app):
    return login(app.test_client(), "sari@fitrule.io")


@pytest.fixture
def program_ids(app):
    db = SessionLocal()
    ids = {p.code: p.id for p in db.query(Program).all()}
    db.close()
    return ids


@pytest.fixture
def rule_ids(app):
    db = SessionLocal()
    ids = {(r.bmi_category, r.body_fat_category): r.id for r in db.query(Rule).all()}
    db.close()
    return ids


@pytest.fixture
def user_ids(app):
    db = SessionLocal()
    ids = {u.email: u.id for u in db.query(User).all()}
    db.close()
    return ids
