from __future__ import annotations
import base64, binascii, json, hmac, hashlib, secrets, time
from typing import Any, Callable, Dict, List, Optional
from .contracts import TokenSignerPort
from .errors import TokenExpired, TokenInvalid

def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")

def _unb64url(s: str) -> bytes:
    pad = '=' * (-len(s) % 4)
    return base64.urlsafe_b64decode(s + pad)

class HS256TokenSigner(TokenSignerPort):
    """
    HS256 JWT signer. Supports kid in header for future key rotation.
    verify() raises TokenExpired for a well-signed token past its exp,
    TokenInvalid for everything else.
    """
    def __init__(
        self,
        secret: str,
        kid: Optional[str] = "primary",
        *,
        alg: str = "HS256",
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        leeway_seconds: int = 0,
        now: Optional[Callable[[], int]] = None,
    ):
        if not secret:
            raise ValueError("HS256TokenSigner requires non-empty secret")
        if alg != "HS256":
            raise ValueError(f"HS256TokenSigner cannot sign with {alg}")
        self._alg = alg
        self._secret = secret.encode("utf-8")
        self._kid = kid
        self._issuer = issuer
        self._audience = audience
        self._leeway = leeway_seconds
        self._now = now or (lambda: int(time.time()))

    def sign(self, claims: Dict[str, Any], *, headers: Optional[Dict[str, Any]] = None) -> str:
        base_headers = {"alg": self._alg, "typ": "JWT"}
        if self._kid:
            base_headers["kid"] = self._kid
        if headers:
            base_headers.update(headers)
        header_b64 = _b64url(json.dumps(base_headers, separators=(",",":")).encode("utf-8"))
        payload_b64 = _b64url(json.dumps(claims, separators=(",",":")).encode("utf-8"))
        signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
        sig = hmac.new(self._secret, signing_input, hashlib.sha256).digest()
        return f"{header_b64}.{payload_b64}.{_b64url(sig)}"

    def verify(self, token: str) -> Dict[str, Any]:
        if not isinstance(token, str):
            raise TokenInvalid("Invalid token format")
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            raise TokenInvalid("Invalid token format")
        try:
            header = json.loads(_unb64url(header_b64).decode("utf-8"))
            signature = _unb64url(sig_b64)
        except (binascii.Error, ValueError, UnicodeDecodeError):
            raise TokenInvalid("Invalid token encoding")
        if not isinstance(header, dict) or header.get("alg") != self._alg:
            raise TokenInvalid("Unsupported token algorithm")

        signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
        expected_sig = hmac.new(self._secret, signing_input, hashlib.sha256).digest()
        if not hmac.compare_digest(expected_sig, signature):
            raise TokenInvalid("Signature mismatch")

        try:
            payload = json.loads(_unb64url(payload_b64).decode("utf-8"))
        except (binascii.Error, ValueError, UnicodeDecodeError):
            raise TokenInvalid("Invalid token payload")
        if not isinstance(payload, dict):
            raise TokenInvalid("Invalid token payload")

        if self._issuer and payload.get("iss") != self._issuer:
            raise TokenInvalid("Issuer mismatch")
        if self._audience and payload.get("aud") != self._audience:
            raise TokenInvalid("Audience mismatch")
        try:
            exp = int(payload["exp"])
        except (KeyError, TypeError, ValueError):
            raise TokenInvalid("Token has no expiry")
        if self._now() >= exp + self._leeway:
            raise TokenExpired()
        return payload

    def active_kid(self) -> Optional[str]:
        return self._kid

    def list_kids(self) -> List[str]:
        return [self._kid] if self._kid else []


class PasswordHasher:
    """
    Salted PBKDF2-HMAC-SHA256. Every hash() draws a fresh salt; verify() never raises.
    Encoded form: pbkdf2_sha256$<iterations>$<salt>$<hex digest>
    """
    scheme = "pbkdf2_sha256"

    def __init__(self, iterations: int = 100_000):
        self.iterations = iterations
        self._dummy: Optional[str] = None

    def _derive(self, password: str, salt: str, iterations: int) -> str:
        return hashlib.pbkdf2_hmac(
            "sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations, dklen=32
        ).hex()

    def hash(self, password: str) -> str:
        salt = secrets.token_hex(16)
        return f"{self.scheme}${self.iterations}${salt}${self._derive(password, salt, self.iterations)}"

    def verify(self, password: str, encoded: str) -> bool:
        try:
            scheme, iters_s, salt, hex_dk = encoded.split("$")
            iterations = int(iters_s)
            if scheme != self.scheme or iterations < 1:
                return False
            dk = self._derive(password, salt, iterations)
            return hmac.compare_digest(dk.encode("ascii"), hex_dk.encode("utf-8"))
        except (AttributeError, TypeError, ValueError):
            return False

    def needs_rehash(self, encoded: str) -> bool:
        try:
            return int(encoded.split("$")[1]) < self.iterations
        except (AttributeError, IndexError, ValueError):
            return True

    def dummy_verify(self, password: str) -> None:
        # same CPU cost as a real verify, for accounts that do not exist
        if self._dummy is None:
            self._dummy = self.hash(secrets.token_hex(8))
        self.verify(password, self._dummy)
