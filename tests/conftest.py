import itertools
from datetime import date, timedelta

import pytest

from app import create_app
from config import Config
from models import db
from models.space import Space
from models.user import User, Role
from security.rbac import ADMIN_ROLE, USER_ROLE
from security.session import issue_session
from utils.dates import today


@pytest.fixture
def app(tmp_path):
    class TestConfig(Config):
        TESTING = True
        AUTO_CREATE_TABLES = True
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "test.db")
        STRIPE_WEBHOOK_SECRET = "whsec_test"
        LOG_LEVEL = "DEBUG"

    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make(email=None, admin=False):
        user = User(email=email or f"user{next(counter)}@example.com")
        user.roles.append(Role.query.filter_by(name=USER_ROLE).one())
        if admin:
            user.roles.append(Role.query.filter_by(name=ADMIN_ROLE).one())
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_space(app):
    def _make(owner, base_price=100, title="Billboard on 5th"):
        space = Space(
            owner_user_id=owner.id,
            title=title,
            location="5th Avenue",
            base_price=base_price,
        )
        db.session.add(space)
        db.session.commit()
        return space

    return _make


@pytest.fixture
def login(app, client):
    def _login(user):
        token = issue_session(user.id)
        client.set_cookie(app.config["AUTH_COOKIE_NAME"], token)
        return token

    return _login


@pytest.fixture
def owner(make_user):
    return make_user("owner@example.com")


@pytest.fixture
def advertiser(make_user):
    return make_user("advertiser@example.com")


@pytest.fixture
def admin(make_user):
    return make_user("admin@example.com", admin=True)


@pytest.fixture
def space(make_space, owner):
    return make_space(owner)


def day(offset: int) -> date:
    return today() + timedelta(days=offset)


def next_january(day_of_month: int) -> date:
    return date(today().year + 1, 1, day_of_month)
