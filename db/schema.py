"""
db/schema.py -- SQLAlchemy Core table declarations.

Every table the row store may touch is registered on the shared `metadata`.
RowStore looks tables up by name here, so a typo in a table or column name is
a ValueError at call time rather than an SQL error at the database.

Uniqueness of (identifier, kind) is a real UNIQUE constraint. The credential
adapter still checks existence first for a clean error message, but the
constraint is what makes concurrent sign-ins safe: the loser of a race gets
an IntegrityError, never a second row.

Layer rule: no imports from api/, auth/, or verify/.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    UniqueConstraint,
)

metadata = MetaData()

credentials = Table(
    "credentials",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("identifier", String(320), nullable=False),  # 64 local + @ + 255 domain
    Column("kind", String(32), nullable=False),
    Column("secret_hash", LargeBinary(60), nullable=False),  # bcrypt output is 60 bytes
    Column("is_super", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("modified_at", DateTime(timezone=True), nullable=False),
    Column("last_login", DateTime(timezone=True)),
    UniqueConstraint("identifier", "kind", name="uq_credentials_identifier_kind"),
)

failed_attempts = Table(
    "failed_attempts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    # Not a foreign key: rows outlive the credential they refer to.
    Column("credential_id", Integer, nullable=False, index=True),
    Column("attempted_at", DateTime(timezone=True), nullable=False),
)

revoked_tokens = Table(
    "revoked_tokens",
    metadata,
    Column("jti", String(64), primary_key=True),
    Column("client", String(320), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=False, index=True),
    Column("revoked_at", DateTime(timezone=True), nullable=False),
)
