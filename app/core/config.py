import os
from typing import Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

_SUPABASE_URL = os.getenv('SUPABASE_URL')
_SUPABASE_KEY = os.getenv('SUPABASE_SERVICE_ROLE_KEY') or os.getenv('SUPABASE_KEY')

_OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
_OPENAI_BASE_URL = os.getenv('OPENAI_BASE_URL') or None
_OPENAI_TIMEOUT_SECONDS = float(os.getenv('OPENAI_TIMEOUT_SECONDS', '30'))

_CHAT_MODEL = os.getenv('CHAT_MODEL', 'gpt-4.1-mini')
_SUMMARIZE_MODEL = os.getenv('SUMMARIZE_MODEL', 'gpt-4.1-mini')

_EMBEDDING_MODEL = os.getenv('EMBEDDING_MODEL', 'text-embedding-3-small')
_EMBEDDING_DIMENSION = int(os.getenv('EMBEDDING_DIMENSION', '1536'))

_DEMO_MODE = os.getenv('DEMO_MODE', 'false').lower() == 'true'
_DEMO_USER_ID = os.getenv('DEMO_USER_ID', '00000000-0000-0000-0000-000000000001')


class Config:
    """Central configuration for the knowledge service."""

    SUPABASE_URL = _SUPABASE_URL
    SUPABASE_KEY = _SUPABASE_KEY

    OPENAI_API_KEY = _OPENAI_API_KEY
    OPENAI_BASE_URL = _OPENAI_BASE_URL
    OPENAI_TIMEOUT_SECONDS = _OPENAI_TIMEOUT_SECONDS

    CHAT_MODEL = _CHAT_MODEL
    SUMMARIZE_MODEL = _SUMMARIZE_MODEL

    EMBEDDING_MODEL = _EMBEDDING_MODEL
    EMBEDDING_DIMENSION = _EMBEDDING_DIMENSION

    DEMO_MODE = _DEMO_MODE
    DEMO_USER_ID = _DEMO_USER_ID

    SERVICE_NAME = "teammemory-knowledge-service"

    def resolve_user_id(self, request_user_id: Optional[str] = None) -> str:
        """Return the acting user id; demo mode pins every request to the demo user."""
        if self.DEMO_MODE:
            return self.DEMO_USER_ID
        return request_user_id or self.DEMO_USER_ID


settings = Config()
