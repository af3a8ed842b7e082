import sys
import os

# Set Env Vars BEFORE any imports to satisfy Pydantic Settings
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "test"
os.environ["ADMIN_USER_IDS"] = '["admin-user"]'
os.environ["TRACK_RATE_LIMIT"] = "1000/minute"

# Add the project root to the python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), ".")))
