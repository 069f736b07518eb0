"""JWT verification for Supabase access tokens (HS256 shared secret)."""

import jwt

from daylight.core.config import settings
from daylight.schemas.auth import JWTClaims
from daylight.utils.logging import get_logger

LOGGER = get_logger(__name__)

REQUIRED_CLAIMS = ["sub", "exp", "iat", "iss"]


class JWTVerifier:
    """Verifies Supabase access tokens signed with the project JWT secret."""

    def __init__(self, supabase_url: str, jwt_secret: str = "", audience: str = "authenticated"):
        """
        Args:
            supabase_url: Supabase project URL for issuer validation
            jwt_secret: Supabase JWT secret for HS256 verification
            audience: Expected ``aud`` claim
        """
        self.supabase_url = supabase_url.rstrip("/")
        self.expected_issuer = f"{self.supabase_url}/auth/v1"
        self.jwt_secret = jwt_secret
        self.audience = audience

    async def verify_token(self, token: str) -> JWTClaims:
        """Verify and decode a token.

        Raises:
            jwt.InvalidTokenError: If the token is invalid, expired or misconfigured
        """
        try:
            if not self.jwt_secret:
                raise jwt.InvalidTokenError("SUPABASE_JWT_SECRET is not configured")

            header = jwt.get_unverified_header(token)
            if header.get("alg") != "HS256":
                raise jwt.InvalidTokenError(f"Unsupported algorithm: {header.get('alg')}")

            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=["HS256"],
                audience=self.audience,
                options={
                    "verify_exp": True,
                    "verify_iat": True,
                    "require": REQUIRED_CLAIMS,
                },
            )

            if payload.get("iss") != self.expected_issuer:
                raise jwt.InvalidIssuerError(f"Invalid issuer: {payload.get('iss')}")

            claims = JWTClaims(**payload)
            LOGGER.debug(f"Successfully verified token for user: {claims.sub}")
            return claims

        except jwt.ExpiredSignatureError as e:
            LOGGER.warning(f"Token expired: {e}")
            raise jwt.InvalidTokenError("Token has expired") from e
        except jwt.InvalidIssuerError as e:
            LOGGER.warning(f"Invalid issuer: {e}")
            raise jwt.InvalidTokenError("Invalid token issuer") from e
        except jwt.InvalidSignatureError as e:
            LOGGER.warning(f"Invalid signature: {e}")
            raise jwt.InvalidTokenError("Invalid token signature") from e
        except jwt.InvalidTokenError as e:
            LOGGER.warning(f"Invalid token: {e}")
            raise
        except Exception as e:
            LOGGER.error(f"Unexpected error during token verification: {e}")
            raise jwt.InvalidTokenError("Token verification failed") from e


jwt_verifier = JWTVerifier(
    supabase_url=settings.supabase_url,
    jwt_secret=settings.supabase_jwt_secret,
)
