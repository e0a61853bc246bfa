"""JWT utilities: RS256 keypair management, token signing and verification"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import ExpiredSignatureError, JWTError, jwt

from coralguard_admin.errors import INVALID_TOKEN, TOKEN_EXPIRED, AuthenticationError
from coralguard_admin.utils.logger import logger

ADMIN_TOKEN_TYPE = "admin"
USER_TOKEN_TYPE = "user"


class TokenSigner:
    """Signs and verifies access tokens with one RSA keypair.

    Built once per process (see ``api.deps.get_token_signer``). If no private key
    PEM is supplied a fresh RSA-2048 keypair is generated and its PEM is logged
    so the operator can paste it into ``.env`` to make it persistent.

    Every token carries a ``type`` claim and a matching ``aud`` claim, so an
    ordinary user token can never be verified as an admin token.
    """

    def __init__(
        self,
        private_key_pem: Optional[str] = None,
        algorithm: str = "RS256",
        key_id: Optional[str] = None,
    ):
        self.algorithm = algorithm
        self.key_id = key_id

        if private_key_pem:
            self._private_key = serialization.load_pem_private_key(
                private_key_pem.encode(), password=None, backend=default_backend()
            )
            logger.info("JWT keypair loaded from JWT_PRIVATE_KEY setting")
        else:
            self._private_key = rsa.generate_private_key(
                public_exponent=65537,
                key_size=2048,
                backend=default_backend(),
            )
            pem_str = self._private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.TraditionalOpenSSL,
                encryption_algorithm=serialization.NoEncryption(),
            ).decode()
            logger.warning(
                "JWT_PRIVATE_KEY not set; auto-generated RSA-2048 keypair for this session. "
                "All tokens will be invalidated on restart. "
                "Set the following in backend/.env to persist the key:\n"
                f"JWT_PRIVATE_KEY=\"{pem_str.strip()}\""
            )

        self._public_key = self._private_key.public_key()

    def issue(
        self,
        subject: str,
        token_type: str,
        expires_in: int,
        extra_claims: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Sign and return a JWT access token.

        Args:
            subject:      Value for the 'sub' claim (admin_id for admin tokens).
            token_type:   'admin' or 'user'; stored as both 'type' and 'aud'.
            expires_in:   Lifetime in seconds.
            extra_claims: Additional claims to embed (email, role, ...).
        """
        now = int(datetime.now(timezone.utc).timestamp())

        payload: Dict[str, Any] = {
            "sub": subject,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": now + expires_in,
            "type": token_type,
            "aud": token_type,
            **(extra_claims or {}),
        }

        headers = {"kid": self.key_id} if self.key_id else None
        return jwt.encode(payload, self._private_key, algorithm=self.algorithm, headers=headers)

    def decode(self, token: str, audience: str) -> Dict[str, Any]:
        """Verify signature, expiry and audience; return the claims.

        Raises:
            AuthenticationError: TOKEN_EXPIRED or INVALID_TOKEN.
        """
        try:
            payload = jwt.decode(
                token,
                self._public_key,
                algorithms=[self.algorithm],
                audience=audience,
            )
        except ExpiredSignatureError:
            raise AuthenticationError("Token expired", code=TOKEN_EXPIRED)
        except JWTError as exc:
            logger.debug(f"JWT decode failed: {exc}")
            raise AuthenticationError("Invalid or expired token", code=INVALID_TOKEN)

        if payload.get("type") != audience or not payload.get("sub"):
            raise AuthenticationError("Invalid token type", code=INVALID_TOKEN)

        return payload
