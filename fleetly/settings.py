from pydantic import BaseModel
import os

class Settings(BaseModel):
    APP_ENV: str = os.getenv("APP_ENV", "dev")
    FLEETLY_SECRET_KEY: str = os.getenv("FLEETLY_SECRET_KEY", "change-me")
    FLEETLY_ACCESS_MIN: int = int(os.getenv("FLEETLY_ACCESS_MIN", "1440"))
    FLEETLY_JWT_ALGORITHM: str = os.getenv("FLEETLY_JWT_ALGORITHM", "HS256")
    FLEETLY_DATABASE_URL: str = os.getenv("FLEETLY_DATABASE_URL", "sqlite:///./fleetly.sqlite3")
    FLEETLY_FRONTEND_ORIGIN: str = os.getenv("FLEETLY_FRONTEND_ORIGIN", "http://localhost:5173")
    FLEETLY_LOG_LEVEL: str = os.getenv("FLEETLY_LOG_LEVEL", "INFO")

settings = Settings()
