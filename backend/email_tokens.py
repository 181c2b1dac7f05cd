import hashlib
import secrets

VERIFY_TOKEN_TTL_SECONDS = 24 * 60 * 60
RESET_TOKEN_TTL_SECONDS = 30 * 60
ADMIN_INVITE_TTL_SECONDS = 7 * 24 * 60 * 60
OTP_TTL_SECONDS = 10 * 60
OTP_LENGTH = 6


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def generate_otp() -> str:
    return "".join(secrets.choice("0123456789") for _ in range(OTP_LENGTH))


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
