import os
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()

class Settings:
    APP_NAME: str = "FaceLocker Backend"
    SQLALCHEMY_DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./facelocker.db")
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "change_this_secret")
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Brevo Email API
    BREVO_API_KEY: str = os.getenv("BREVO_API_KEY", "")
    EMAIL_FROM_ADDRESS: str = os.getenv("EMAIL_FROM_ADDRESS", "noreply@example.com")
    EMAIL_FROM_NAME: str = os.getenv("EMAIL_FROM_NAME", "FaceLocker")

    OTP_EXPIRE_MINUTES: int = int(os.getenv("OTP_EXPIRE_MINUTES", "5"))
    OTP_RESEND_SECONDS: int = int(os.getenv("OTP_RESEND_SECONDS", "60"))

    # Locker secret hashing (bcrypt cost)
    LOCKER_HASH_ROUNDS: int = int(os.getenv("LOCKER_HASH_ROUNDS", "10"))

    # Reference image capture
    CAPTURE_WINDOW_SECONDS: float = float(os.getenv("CAPTURE_WINDOW_SECONDS", "20"))
    CAPTURE_SLOTS: int = int(os.getenv("CAPTURE_SLOTS", "5"))
    MIN_REFERENCE_FRAMES: int = int(os.getenv("MIN_REFERENCE_FRAMES", "3"))
    MIN_FACE_SIZE: int = int(os.getenv("MIN_FACE_SIZE", "100"))
    # Slightly below the 1 MiB document limit
    MAX_REFERENCE_DOCUMENT_BYTES: int = int(os.getenv("MAX_REFERENCE_DOCUMENT_BYTES", "1000000"))
    JPEG_QUALITY: int = int(os.getenv("JPEG_QUALITY", "50"))
    CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))
    CAMERA_WIDTH: int = int(os.getenv("CAMERA_WIDTH", "640"))
    CAMERA_HEIGHT: int = int(os.getenv("CAMERA_HEIGHT", "480"))
    DETECTION_MODEL: str = os.getenv("DETECTION_MODEL", "hog")

settings = Settings()

def access_token_expires():
    return timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

def otp_lifetime():
    return timedelta(minutes=settings.OTP_EXPIRE_MINUTES)
