# tests/conftest.py
import os

# must be set before civicwatch.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["ENABLE_SCHEDULER"] = "0"
os.environ.setdefault("SECRET_KEY", "test-secret")

from typing import Iterable, Optional  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from civicwatch.core.config import Settings  # noqa: E402
from civicwatch.core.rbac import Capability  # noqa: E402
from civicwatch.core.security import get_password_hash  # noqa: E402
from civicwatch.db.session import make_engine, make_session_factory  # noqa: E402
from civicwatch.main import create_app  # noqa: E402
from civicwatch.models import Base  # noqa: E402
from civicwatch.models.area_code import AreaAdminAssignment, AreaCode  # noqa: E402
from civicwatch.models.incident import Incident  # noqa: E402
from civicwatch.models.message import IncidentMessage  # noqa: E402
from civicwatch.models.user import User  # noqa: E402

PASSWORD = "secret123"
SUPERADMIN_EMAIL = "root@example.com"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="sqlite://",
        secret_key="test-secret",
        superadmin_email=SUPERADMIN_EMAIL,
        app_env="test",
        enable_create_all=True,
        enable_scheduler=False,
        upload_dir=str(tmp_path / "uploads"),
        upload_base_url="/uploads",
    )


@pytest.fixture
def session_factory():
    # fresh in-memory database per test
    eng = make_engine("sqlite://")
    Base.metadata.create_all(bind=eng)
    yield make_session_factory(eng)
    eng.dispose()


@pytest.fixture
def app(settings, session_factory):
    return create_app(settings, session_factory)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def services(app):
    return app.state.services


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class Factory:
    """Creates rows directly in the store and mints tokens for them."""

    def __init__(self, db, services):
        self.db = db
        self.services = services
        self._n = 0

    def area(self, code: str = "AREA01", name: str = "Riverside", active: bool = True) -> AreaCode:
        area = AreaCode(code=code, name=name, is_active=active)
        self.db.add(area)
        self.db.commit()
        self.db.refresh(area)
        return area

    def user(
        self,
        email: Optional[str] = None,
        caps: Iterable[Capability] = (),
        area_code: Optional[str] = None,
        name: Optional[str] = None,
    ) -> User:
        self._n += 1
        email = email or f"user{self._n}@example.com"
        u = User(
            email=email,
            name=name or f"User {self._n}",
            hashed_password=get_password_hash(PASSWORD),
            area_code=area_code,
        )
        u.set_capabilities(set(caps))
        self.db.add(u)
        self.db.commit()
        self.db.refresh(u)
        return u

    def admin(self, area: Optional[AreaCode] = None, **kw) -> User:
        u = self.user(caps=[Capability.ADMIN], **kw)
        if area is not None:
            self.db.add(AreaAdminAssignment(area_id=area.id, admin_id=u.id))
            self.db.commit()
            self.db.refresh(u)
        return u

    def super_admin(self, **kw) -> User:
        return self.user(caps=[Capability.ADMIN, Capability.SUPER_ADMIN], **kw)

    def incident(self, owner: User, area_code: str = "AREA01", status: str = "pending", **kw) -> Incident:
        data = dict(
            owner_id=owner.id,
            title="Broken streetlight",
            description="The streetlight on the corner has been out for a week",
            type="infrastructure",
            location="Corner of Oak and Main",
            area_code=area_code,
            status=status,
        )
        data.update(kw)
        incident = Incident(**data)
        self.db.add(incident)
        self.db.commit()
        self.db.refresh(incident)
        return incident

    def message(self, incident: Incident, sender: User, receiver: User, content: str = "Hello there") -> IncidentMessage:
        m = IncidentMessage(incident_id=incident.id, sender_id=sender.id, receiver_id=receiver.id, content=content)
        self.db.add(m)
        self.db.commit()
        self.db.refresh(m)
        return m

    def ctx(self, user: User):
        self.db.refresh(user)
        return self.services.gate.context_for(user)

    def headers(self, user: User) -> dict:
        return {"Authorization": f"Bearer {self.services.gate.issue_token(user)}"}


@pytest.fixture
def factory(db, services):
    return Factory(db, services)
