import os
import tempfile

# Default to SQLite and a throwaway artifacts directory for tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("ARTIFACTS_DIR", os.path.join(tempfile.gettempdir(), "invoicing-artifacts"))
os.environ.setdefault("SELLER_STATE", "33-Tamil Nadu")
os.environ.setdefault("SELLER_GSTIN", "33BVRPS2849Q2ZG")
