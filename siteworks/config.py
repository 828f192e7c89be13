import os
from dotenv import load_dotenv

load_dotenv()

# Database configuration
DB_USER = os.getenv("DB_USER", "user")
DB_PASS = os.getenv("DB_PASS", "password")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "siteworks_db")
DATABASE_URL = os.getenv(
    "DATABASE_URL", f"postgresql://{DB_USER}:{DB_PASS}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)
DB_ECHO = os.getenv("DB_ECHO", "false").lower() in ("1", "true", "yes")

# "postgres" uses the SQLAlchemy repository, "memory" keeps everything in-process
REPOSITORY_BACKEND = os.getenv("REPOSITORY_BACKEND", "postgres")

# Keycloak configuration
KEYCLOAK_SERVER_URL = os.getenv("KEYCLOAK_SERVER_URL", "http://localhost:8080/")
KEYCLOAK_REALM = os.getenv("KEYCLOAK_REALM", "siteworks")
KEYCLOAK_AUDIENCE = os.getenv("KEYCLOAK_AUDIENCE", "account")

# Audit trail retention
AUDIT_MAX_EVENTS = int(os.getenv("AUDIT_MAX_EVENTS", "10000"))
AUDIT_RETENTION_DAYS = int(os.getenv("AUDIT_RETENTION_DAYS", "90"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
