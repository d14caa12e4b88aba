"""OTP API client — async HTTP client for the OTP service.

Front ends that do not share a process with the store talk to it through
this wrapper.  ``base_url`` defaults to the configured API location.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from otp_gen.config import settings
from otp_gen.errors import OTPAlreadyExistsError, OTPServiceError

logger = logging.getLogger(__name__)


@dataclass
class IssuedOTP:
    """Value object returned by ``generate``."""

    otp: str
    expires_in_ms: int


class OTPClient:
    """Async HTTP wrapper around the OTP generate / verify API."""

    def __init__(
        self,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.api_base_url).rstrip("/")
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport)

    async def generate(self, key: str) -> IssuedOTP:
        """Request a new OTP for *key*.

        Returns the plaintext code together with the validity window the
        server applied.

        Raises ``OTPAlreadyExistsError`` if one is already outstanding and
        ``OTPServiceError`` for any other failure.
        """
        url = f"{self._base_url}/generate"
        try:
            async with self._client() as client:
                resp = await client.post(url, json={"key": key})
        except httpx.HTTPError as exc:
            logger.exception("OTP generate request error: %s", exc)
            raise OTPServiceError(f"OTP generate request failed: {exc}") from exc

        if resp.status_code == 201:
            data = resp.json()
            return IssuedOTP(otp=data["otp"], expires_in_ms=data["expires_in_ms"])
        if resp.status_code == 409:
            raise OTPAlreadyExistsError(key)
        logger.error("OTP generate failed: %s %s", resp.status_code, resp.text)
        raise OTPServiceError(f"OTP generate failed with status {resp.status_code}")

    async def verify(self, key: str, otp: str) -> bool:
        """Validate an OTP for *key*.

        Returns ``True`` if the OTP is correct and not expired.
        """
        url = f"{self._base_url}/verify"
        try:
            async with self._client() as client:
                resp = await client.post(url, json={"key": key, "otp": otp})
            if resp.status_code == 200:
                return resp.json().get("valid", False)
            logger.error("OTP verify failed: %s %s", resp.status_code, resp.text)
            return False
        except httpx.HTTPError as exc:
            logger.exception("OTP verify request error: %s", exc)
            return False
