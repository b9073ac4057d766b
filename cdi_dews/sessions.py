"""
User & session store.

Users and login sessions live in two small SQL tables (SQLite by default).
The demo users are seeded the first time the store is opened on an empty
database.
"""

import secrets
import uuid

from sqlalchemy import create_engine, text

from . import config
from .models import (ADMIN, REGIONAL_OFFICER, ROLES, WOREDA_OFFICER,
                     PlaceOfInterest, Session, User)
from .regions import REGIONS, REGION_WOREDAS, is_region

DUMMY_USERS = [
    User(id="1", name="Admin User", email="admin@example.com", role=ADMIN,
         allowed_regions=["afar", "somali"],
         place_of_interest=PlaceOfInterest(region="afar")),
    User(id="2", name="Afar Officer", email="afar.officer@example.com",
         role=REGIONAL_OFFICER, allowed_regions=["afar"],
         place_of_interest=PlaceOfInterest(region="afar", woreda="Elidar")),
    User(id="3", name="Somali Officer", email="somali.officer@example.com",
         role=WOREDA_OFFICER, allowed_regions=["somali"],
         place_of_interest=PlaceOfInterest(region="somali", woreda="Gode")),
]

CREATE_USERS = """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL UNIQUE,
        role TEXT NOT NULL,
        allowed_regions TEXT NOT NULL,
        region TEXT NOT NULL,
        woreda TEXT
    )
"""

CREATE_SESSIONS = """
    CREATE TABLE IF NOT EXISTS sessions (
        token TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id)
    )
"""

USER_COLUMNS = "id, name, email, role, allowed_regions, region, woreda"


def allowed_regions_for(role: str, region: str) -> list:
    if role == ADMIN:
        return list(REGIONS)
    return [region]


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        role=row.role,
        allowed_regions=[r for r in row.allowed_regions.split(",") if r],
        place_of_interest=PlaceOfInterest(region=row.region, woreda=row.woreda or None),
    )


class SessionStore:
    """SQL-backed user list plus login sessions."""

    def __init__(self, db_url: str = None, engine=None):
        self.db_url = db_url or config.DATABASE_URL
        self.engine = engine if engine is not None else create_engine(self.db_url)
        self._init_schema()

    def _init_schema(self):
        with self.engine.begin() as conn:
            conn.execute(text(CREATE_USERS))
            conn.execute(text(CREATE_SESSIONS))
            count = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
            if not count:
                for user in DUMMY_USERS:
                    self._insert_user(conn, user)
                print(f"[sessions] seeded {len(DUMMY_USERS)} demo users")

    @staticmethod
    def _insert_user(conn, user: User):
        conn.execute(
            text(f"""
                INSERT INTO users ({USER_COLUMNS})
                VALUES (:id, :name, :email, :role, :allowed_regions, :region, :woreda)
            """),
            {
                "id": user.id,
                "name": user.name,
                "email": user.email,
                "role": user.role,
                "allowed_regions": ",".join(user.allowed_regions),
                "region": user.place_of_interest.region,
                "woreda": user.place_of_interest.woreda,
            },
        )

    # ---------------- Users ----------------
    def list_users(self) -> list:
        with self.engine.connect() as conn:
            rows = conn.execute(text(f"SELECT {USER_COLUMNS} FROM users")).fetchall()
        return [_row_to_user(r) for r in rows]

    def find_user(self, email: str):
        with self.engine.connect() as conn:
            row = conn.execute(
                text(f"SELECT {USER_COLUMNS} FROM users WHERE email = :email"),
                {"email": email},
            ).fetchone()
        return _row_to_user(row) if row else None

    # ---------------- Sessions ----------------
    def _open_session(self, conn, user: User) -> Session:
        token = secrets.token_urlsafe(24)
        conn.execute(
            text("INSERT INTO sessions (token, user_id) VALUES (:token, :user_id)"),
            {"token": token, "user_id": user.id},
        )
        return Session(token=token, user=user)

    def login_by_email(self, email: str):
        """Open a session for ``email``; ``None`` when no such user exists."""
        email = (email or "").strip()
        user = self.find_user(email)
        if user is None:
            print(f"[sessions] login rejected for unknown email {email!r}")
            return None
        with self.engine.begin() as conn:
            return self._open_session(conn, user)

    def register_user(self, name: str, email: str, role: str, region: str, woreda=None):
        """Create a user and log them in.

        Returns ``(session, None)`` on success or ``(None, message)`` when the
        input is rejected; a rejected registration writes nothing.
        """
        email = (email or "").strip()
        if not email:
            return None, "Email is required"
        if role not in ROLES:
            return None, "Unknown role"
        if not is_region(region):
            return None, "Unknown region"
        if self.find_user(email) is not None:
            return None, "Email already registered"
        if role == WOREDA_OFFICER and not woreda:
            return None, "Woreda is required for this role"
        if role != WOREDA_OFFICER:
            woreda = None
        if woreda and woreda not in REGION_WOREDAS[region]:
            return None, "Woreda does not belong to region"

        user = User(
            id=uuid.uuid4().hex[:12],
            name=(name or "").strip() or email,
            email=email,
            role=role,
            allowed_regions=allowed_regions_for(role, region),
            place_of_interest=PlaceOfInterest(region=region, woreda=woreda),
        )
        with self.engine.begin() as conn:
            self._insert_user(conn, user)
            session = self._open_session(conn, user)
        print(f"[sessions] registered {user.email} as {user.role}")
        return session, None

    def get_session(self, token):
        if not token:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(
                text(f"""
                    SELECT {", ".join("u." + c.strip() for c in USER_COLUMNS.split(","))}
                    FROM sessions s JOIN users u ON u.id = s.user_id
                    WHERE s.token = :token
                """),
                {"token": token},
            ).fetchone()
        return Session(token=token, user=_row_to_user(row)) if row else None

    def current_user(self, token):
        session = self.get_session(token)
        return session.user if session else None

    def logout(self, token) -> bool:
        if not token:
            return False
        with self.engine.begin() as conn:
            result = conn.execute(text("DELETE FROM sessions WHERE token = :token"),
                                  {"token": token})
        return result.rowcount > 0

    def close(self):
        self.engine.dispose()
