import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Results engine configuration settings"""
    
    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///scoreboard.db')
    
    # Logging settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_TO_FILE = os.getenv('LOG_TO_FILE', 'True').lower() == 'true'
    
    # Result cache settings
    RESULT_CACHE_MAX_SIZE = int(os.getenv('RESULT_CACHE_MAX_SIZE', 500))  # Group entries
    
    # Ingestion settings
    INGEST_MAX_RETRIES = int(os.getenv('INGEST_MAX_RETRIES', 3))
    
    @classmethod
    def get_async_database_url(cls, database_url: str = None) -> str:
        """Return the configured URL with an async driver for sqlite"""
        url = database_url or cls.DATABASE_URL
        if url.startswith('sqlite:///'):
            url = url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        return url
    
    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DATABASE_URL:
            raise ValueError("DATABASE_URL is required")
        if cls.RESULT_CACHE_MAX_SIZE <= 0:
            raise ValueError("RESULT_CACHE_MAX_SIZE must be a positive integer")
        if cls.INGEST_MAX_RETRIES <= 0:
            raise ValueError("INGEST_MAX_RETRIES must be a positive integer")
