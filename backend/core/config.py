"""
Runtime configuration read from environment variables.

Values come from the process environment; a `.env` file in the backend
directory (or the repository root) is loaded first for local development.
"""
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from core.logger import logger


DEV_CORS_ORIGINS = 'http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000'


def load_environment() -> None:
    """Load `.env` files if they exist (local development only)."""
    backend_dir = Path(__file__).resolve().parent.parent
    env_path = backend_dir / '.env'
    root_env_path = backend_dir.parent / '.env'

    if env_path.exists():
        load_dotenv(dotenv_path=env_path)
        logger.info(f"Loaded environment from {env_path}")

    if root_env_path.exists():
        load_dotenv(dotenv_path=root_env_path)
        logger.info(f"Loaded environment from {root_env_path}")

    if not env_path.exists() and not root_env_path.exists():
        # In production variables are set directly on the host
        load_dotenv()


def is_development() -> bool:
    return '--dev' in sys.argv or os.getenv('FLASK_ENV') == 'development'


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


class Config:
    """Settings for the sheet backend, SMS formatting and the HTTP layer."""

    def __init__(self):
        self.sheet_id: Optional[str] = os.getenv('GOOGLE_SHEET_ID')
        self.sheets_backend: str = os.getenv('SHEETS_BACKEND', 'google').strip().lower()
        self.cache_ttl: float = _float_env('SHEETS_CACHE_TTL', 30.0)
        self.min_request_interval: float = _float_env('SHEETS_MIN_REQUEST_INTERVAL', 0.2)

        # Worksheet names follow the spreadsheet template shipped to schools
        self.students_worksheet = os.getenv('SHEETS_STUDENTS_WORKSHEET', 'Students')
        self.registrations_worksheet = os.getenv('SHEETS_REGISTRATIONS_WORKSHEET', 'Transport_Registrations')
        self.buses_worksheet = os.getenv('SHEETS_BUSES_WORKSHEET', 'Buses')
        self.routes_worksheet = os.getenv('SHEETS_ROUTES_WORKSHEET', 'Routes')
        self.teachers_worksheet = os.getenv('SHEETS_TEACHERS_WORKSHEET', 'Teachers')

        self.sms_country_code: str = os.getenv('SMS_COUNTRY_CODE', '974')
        self.school_name: str = os.getenv('SCHOOL_NAME', 'Shantiniketan Indian School')

        self.port: int = int(os.getenv('PORT', 5000))
        self.debug: bool = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'

    @property
    def worksheet_names(self) -> dict:
        return {
            'students': self.students_worksheet,
            'registrations': self.registrations_worksheet,
            'buses': self.buses_worksheet,
            'routes': self.routes_worksheet,
            'teachers': self.teachers_worksheet,
        }

    def cors_origins(self) -> List[str]:
        """CORS origins; explicit list required outside development."""
        cors_origins = os.getenv('CORS_ORIGINS', '')
        if not cors_origins:
            if is_development():
                logger.warning("Using default CORS origins for development. Set CORS_ORIGINS in production!")
                cors_origins = DEV_CORS_ORIGINS
            else:
                raise ValueError("CORS_ORIGINS environment variable must be set in production")
        return [origin.strip() for origin in cors_origins.split(',') if origin.strip()]
