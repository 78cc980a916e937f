"""Utility CLI to bootstrap a demo organization and its owner."""

from __future__ import annotations

import logging
import os
import secrets

from dotenv import load_dotenv
from sqlalchemy import select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import Session

from app.models import Organization, User
from app.models.org import ROLE_OWNER
from app.models.session import create_schema, get_engine, normalize_database_url
from app.security import hash_password
from app.security.validators import normalize_email

logger = logging.getLogger("tools.bootstrap_demo")

DEFAULT_ORG_NAME = "Demo Organization"
DEFAULT_REPRESENTATIVE_NAME = "Demo Representative"
DEFAULT_USERNAME = "demo"
DEFAULT_USER_EMAIL = "demo@example.com"


def _safe_url(db_url: str) -> str:
    """Return ``db_url`` with any password redacted for logging."""

    try:
        parsed = make_url(db_url)
    except ArgumentError:
        return db_url
    if parsed.password is None:
        return db_url
    redacted = parsed.set(password="***")
    return redacted.render_as_string(hide_password=False)


def ensure_demo_entities(
    session: Session,
    *,
    user_password: str,
    organization_name: str = DEFAULT_ORG_NAME,
    representative_name: str = DEFAULT_REPRESENTATIVE_NAME,
    username: str = DEFAULT_USERNAME,
    user_email: str = DEFAULT_USER_EMAIL,
) -> tuple[Organization, User, bool, bool]:
    """Ensure the demo organization and its owner exist in ``session``.

    Args:
        session: Active SQLAlchemy session.
        user_password: Raw password hashed when the owner is created.
        organization_name: Name used to locate or create the organization.
        representative_name: Representative stored on a new organization.
        username: Handle of the demo owner.
        user_email: Login e-mail used to locate or create the owner.

    Returns:
        Tuple containing the organization, the user, and two booleans
        indicating whether the organization and user were created.
    """

    normalized_email = normalize_email(user_email)
    name = organization_name.strip()

    created_org = False
    created_user = False

    user = session.execute(
        select(User).where(User.email == normalized_email)
    ).scalar_one_or_none()
    if user is not None:
        logger.info("User %s already exists (id=%s)", user.email, user.id)
        return user.organization, user, created_org, created_user

    org = session.execute(
        select(Organization).where(Organization.name == name).limit(1)
    ).scalar_one_or_none()
    if org is None:
        org = Organization(name=name, representative_name=representative_name.strip())
        session.add(org)
        session.flush()
        created_org = True
        logger.info("Created organization %s (id=%s)", org.name, org.id)
    else:
        logger.info("Organization %s already exists (id=%s)", org.name, org.id)

    user = User(
        organization_id=org.id,
        username=username.strip(),
        email=normalized_email,
        password_hash=hash_password(user_password),
        role=ROLE_OWNER,
        email_verified=True,
    )
    session.add(user)
    session.flush()
    if org.owner_id is None:
        org.owner_id = user.id
    created_user = True
    logger.info("Created user %s (id=%s)", user.email, user.id)

    return org, user, created_org, created_user


def main() -> None:
    """Script entrypoint for ensuring the demo organization and owner exist."""

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        raise RuntimeError("DATABASE_URL environment variable is required")

    password = os.getenv("DEMO_USER_PASSWORD")
    generated = not password
    if generated:
        password = secrets.token_urlsafe(12) + "A1"

    logger.info("Ensuring schema on %s", _safe_url(db_url))
    engine = get_engine(normalize_database_url(db_url))
    try:
        create_schema(engine)
        with Session(engine, expire_on_commit=False) as session:
            org, user, created_org, created_user = ensure_demo_entities(
                session,
                user_password=password,
                user_email=os.getenv("DEMO_USER_EMAIL", DEFAULT_USER_EMAIL),
            )
            session.commit()
    finally:
        engine.dispose()

    logger.info("Organization %s (%s)", "created" if created_org else "existing", org.name)
    logger.info("User %s (%s)", "created" if created_user else "existing", user.email)
    if created_user and generated:
        print(f"Generated password for {user.email}: {password}")


if __name__ == "__main__":  # pragma: no cover - CLI execution
    main()
