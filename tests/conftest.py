import os
import tempfile

# Every test app runs on its own in-memory SQLite database
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="classifieds-uploads-")
os.environ["JWT_SECRET"] = "test-secret-for-unit-tests"
os.environ["SENTRY_DSN"] = ""
os.environ.setdefault("APP_ENV", "test")
