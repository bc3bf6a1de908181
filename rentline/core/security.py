from jose import JWTError, jwt

from rentline.core.config import settings


# ─── JWT tokens ────────────────────────────────────────
# Tokens are issued by the identity service; this API only verifies them.
def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.api_secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
