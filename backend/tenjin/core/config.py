"""
Tenjin Configuration
Central configuration loaded from environment variables.
"""

from pathlib import Path
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Tenjin"
    TENJIN_ENV: str = "development"
    DEBUG: bool = True

    # Remote analysis collaborators (Gemini)
    GEMINI_API_KEY: str = ""
    LIVE_MODEL: str = "gemini-2.5-flash-native-audio-preview-12-2025"
    AUDIT_MODEL: str = "gemini-3-flash-preview"

    # Capture
    CAPTURE_SOURCE: str = "relay"   # "relay" (host UI streams media) or "camera"
    CAMERA_INDEX: int = 0
    CAMERA_WIDTH: int = 1280
    CAMERA_HEIGHT: int = 720
    AUDIO_SAMPLE_RATE: int = 16000
    AUDIO_BLOCK_SIZE: int = 4096
    ACQUISITION_TIMEOUT_SECONDS: float = 5.0

    # Pipeline cadence
    FRAME_RATE: float = 2.0                       # routine frames per second
    ROUTINE_JPEG_QUALITY: int = 60
    DEEP_ANALYSIS_INTERVAL_SECONDS: float = 10.0
    AUDIT_JPEG_QUALITY: int = 80
    OUTBOUND_MAX_PENDING: int = 32

    # Alerting
    ALERT_COOLDOWN_SECONDS: float = 30.0
    TOAST_DISMISS_SECONDS: float = 7.0
    TONE_SAMPLE_RATE: int = 24000
    OS_NOTIFICATIONS_GRANTED: bool = False

    # Report
    GUIDANCE_PRAISE_THRESHOLD: float = 8.0

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000,http://localhost:8000"

    # Telegram Notifications
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: str = ""
    TELEGRAM_ENABLED: bool = False

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",")]

    @property
    def gemini_configured(self) -> bool:
        return bool(self.GEMINI_API_KEY)

    @property
    def frame_interval_seconds(self) -> float:
        return 1.0 / self.FRAME_RATE

    class Config:
        env_file = Path(__file__).resolve().parent.parent.parent / ".env"
        extra = "allow"


settings = Settings()
