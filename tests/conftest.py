import os
import sys
import warnings
from pathlib import Path

# Ignore warnings from app.shared
warnings.filterwarnings("ignore", category=DeprecationWarning, module="app.shared.*")

# Set test environment variables before any app module reads the config
os.environ.update(
    {
        "DEMO_MODE": "true",
        "INTERNAL_API_KEY": "test-internal-key",
        "IDENTITY_JWT_SECRET": "test-identity-secret",
        "PLAYBACK_TOKEN_SECRET": "test-playback-secret",
    }
)

# Ensure the project root is on sys.path so `app` packages resolve
PROJECT_ROOT = Path(__file__).resolve().parents[1]
project_root_str = str(PROJECT_ROOT)
if project_root_str not in sys.path:
    sys.path.insert(0, project_root_str)

# Import database fixtures so they are available to all tests
from tests.fixtures.mongo_fixtures import *  # noqa: E402, F403
from tests.fixtures.domain_fixtures import *  # noqa: E402, F403
