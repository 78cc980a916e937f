import os
import pathlib
import re
import sys
import tempfile
import uuid
from dataclasses import dataclass, field
from typing import Any

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

# Must be set before ``app.main`` builds the limiter and the log handlers.
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="sales-knowledge-logs-"))

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from app.accounts.service import open_session, reset_account_settings_cache
from app.app_logging import init_logging
from app.mailer import Mailer, get_mail_settings, get_mailer, reset_mail_settings_cache
from app.models import Organization, User
from app.models.org import ROLE_MEMBER, ROLE_OWNER
from app.models.session import create_schema, get_engine
from app.monitoring import EmailMonitor
from app.security import hash_password, reset_jwt_settings_cache, reset_session_factory

PASSWORD = "Secret123"


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: dict[str, Any] | None = None):
        self.status_code = status_code
        self._payload = payload or {"id": f"msg_{uuid.uuid4().hex[:8]}"}
        self.text = str(self._payload)

    def json(self) -> dict[str, Any]:
        return self._payload


@dataclass
class FakeHttp:
    """Stand-in for ``requests.Session`` recording every POST."""

    status_code: int = 200
    error: Exception | None = None
    calls: list[dict[str, Any]] = field(default_factory=list)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        if self.error is not None:
            raise self.error
        return FakeResponse(self.status_code)

    def last_link(self, path: str) -> str:
        html = self.calls[-1]["json"]["html"]
        match = re.search(r'href="([^"]*%s[^"]*)"' % re.escape(path), html)
        assert match, html
        return match.group(1).replace("&amp;", "&")


@dataclass
class AuthContext:
    engine: object
    session_factory: sessionmaker[Session]
    organization_id: uuid.UUID
    users: dict[str, uuid.UUID]
    tokens: dict[str, str]
    http: FakeHttp
    password: str = PASSWORD

    def header(self, role: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.tokens[role]}"}

    def session(self) -> Session:
        return self.session_factory()

    def create_org(self, name: str) -> dict[str, str]:
        """Provision another organization with an owner and return its auth header."""

        with self.session_factory.begin() as session:
            organization = Organization(name=name, representative_name=f"{name} Rep")
            session.add(organization)
            session.flush()
            user = User(
                organization_id=organization.id,
                username=f"{name.lower()}-owner",
                email=f"owner@{name.lower()}.example.com",
                password_hash=hash_password(self.password),
                role=ROLE_OWNER,
                email_verified=True,
            )
            session.add(user)
            session.flush()
            organization.owner_id = user.id
            token = open_session(session, user).access_token
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def app_factory(monkeypatch):
    def _create_app(log_dir: str, log_request_bodies: bool = False):
        """Create a FastAPI app with logging initialised."""
        monkeypatch.setenv("LOG_DIR", str(log_dir))
        if log_request_bodies:
            monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
        app = FastAPI()

        @app.post("/echo")
        async def echo(request: Request):
            return await request.json()

        init_logging(app)
        return app

    return _create_app


@pytest.fixture
def token_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Configure token settings shared by the auth helpers and the middleware."""

    monkeypatch.setenv("AUTH_TOKEN_SECRET", "test-secret-key-with-enough-length")
    monkeypatch.setenv("AUTH_TOKEN_AUDIENCE", "sales-knowledge")
    monkeypatch.setenv("AUTH_TOKEN_ISSUER", "auth.sales-knowledge")
    monkeypatch.setenv("AUTH_TOKEN_ALGORITHM", "HS256")
    reset_jwt_settings_cache()
    yield
    reset_jwt_settings_cache()


@pytest.fixture
def org_auth(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path_factory: pytest.TempPathFactory,
    token_env: None,
) -> AuthContext:
    db_path = tmp_path_factory.mktemp("org-auth") / "app.db"
    db_url = f"sqlite+pysqlite:///{db_path}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("PUBLIC_APP_URL", "https://app.example.com")
    monkeypatch.setenv("RESEND_API_KEY", "re_test_key")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    reset_session_factory()
    reset_mail_settings_cache()
    reset_account_settings_cache()

    engine = get_engine(db_url)
    create_schema(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)

    users: dict[str, uuid.UUID] = {}
    tokens: dict[str, str] = {}
    with session_factory.begin() as session:
        organization = Organization(name="Acme", representative_name="Taro Yamada")
        session.add(organization)
        session.flush()
        for role in (ROLE_OWNER, ROLE_MEMBER):
            user = User(
                organization_id=organization.id,
                username=role,
                email=f"{role}@acme.example.com",
                password_hash=hash_password(PASSWORD),
                role=role,
                email_verified=True,
            )
            session.add(user)
            session.flush()
            users[role] = user.id
            tokens[role] = open_session(session, user).access_token
        organization.owner_id = users[ROLE_OWNER]
        organization_id = organization.id

    context = AuthContext(
        engine=engine,
        session_factory=session_factory,
        organization_id=organization_id,
        users=users,
        tokens=tokens,
        http=FakeHttp(),
    )

    yield context

    reset_session_factory()
    reset_mail_settings_cache()
    engine.dispose()


@pytest.fixture
def client(org_auth: AuthContext) -> TestClient:
    """Test client whose mailer posts to ``org_auth.http`` instead of Resend."""

    import app.main as main
    from app.security.auth import get_db_session

    def _mailer(request: Request, session: Session = Depends(get_db_session)) -> Mailer:
        return Mailer(
            get_mail_settings(),
            monitor=EmailMonitor(session),
            http=org_auth.http,
            user_agent=request.headers.get("User-Agent"),
        )

    main.app.dependency_overrides[get_mailer] = _mailer
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()
