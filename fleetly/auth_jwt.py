from datetime import datetime, timedelta
from passlib.context import CryptContext
from jose import jwt

from .settings import settings

# Password hashing and JWT token creation/decoding for the Fleetly API.

PWD = CryptContext(schemes=["bcrypt"], deprecated="auto")

SECRET_KEY = settings.FLEETLY_SECRET_KEY
ALGO = settings.FLEETLY_JWT_ALGORITHM
ACCESS_TOKEN_EXPIRE_MIN = settings.FLEETLY_ACCESS_MIN

def hash_password(plain: str) -> str:
    """Hash a plaintext password using bcrypt."""
    return PWD.hash(plain)

def verify_password(plain: str, hashed: str) -> bool:
    return PWD.verify(plain, hashed)

def create_access_token(user_id: int, role: str) -> str:
    """Create a JWT access token for the given user id and role."""
    exp = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MIN)
    payload = {"sub": str(user_id), "role": role, "exp": exp}
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGO)

def decode_access_token(token: str):
    """Decode a JWT and return the user id and role encoded within it."""
    data = jwt.decode(token, SECRET_KEY, algorithms=[ALGO])
    return int(data["sub"]), data.get("role", "customer")
