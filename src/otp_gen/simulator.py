"""Interactive CLI prompt — issue an OTP and check it by hand."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

from otp_gen.config import settings
from otp_gen.errors import OTPAlreadyExistsError, OTPError
from otp_gen.services.client_api import IssuedOTP, OTPClient
from otp_gen.store.otp_store import OTPStore

GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
CYAN = "\033[96m"
DIM = "\033[2m"
BOLD = "\033[1m"
RESET = "\033[0m"

T = TypeVar("T")


class LocalBackend:
    """Adapts an in-process ``OTPStore`` to the ``OTPClient`` interface."""

    def __init__(self, store: OTPStore) -> None:
        self._store = store

    async def generate(self, key: str) -> IssuedOTP:
        return IssuedOTP(otp=self._store.generate(key), expires_in_ms=self._store.expiry_ms)

    async def verify(self, key: str, otp: str) -> bool:
        return self._store.verify(key, otp)


def _call(coro: Coroutine[Any, Any, T]) -> T:
    """Drive one backend call to completion.

    Prompts stay outside the event loop so Ctrl-C at ``input()`` raises
    ``KeyboardInterrupt`` straight away.
    """
    return asyncio.run(coro)


def run_once(backend: LocalBackend | OTPClient) -> bool:
    """Run one generate → verify round trip against *backend*.

    Returns the verification result.
    """
    key = input(f"{YELLOW}Enter a key: {RESET}").strip()
    try:
        issued = _call(backend.generate(key))
    except OTPAlreadyExistsError:
        print(f"{RED}An OTP is already outstanding for {key!r}{RESET}")
    else:
        print(f"{CYAN}Your OTP: {BOLD}{issued.otp}{RESET}")
        print(f"OTP is valid for {issued.expires_in_ms // 1000} seconds only")

    verify_key = input(f"{YELLOW}Enter The Key: {RESET}").strip()
    otp = input(f"{YELLOW}Enter the OTP: {RESET}").strip()

    if _call(backend.verify(verify_key, otp)):
        print(f"{GREEN}{BOLD}Validation Successful{RESET}")
        return True
    print(f"{RED}{BOLD}Invalid OTP and/or Key{RESET}")
    return False


def main() -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    print(f"{DIM}Type Ctrl-C to exit{RESET}\n")

    store: OTPStore | None = None
    if settings.simulator_remote:
        backend: LocalBackend | OTPClient = OTPClient()
    else:
        store = OTPStore().start()
        backend = LocalBackend(store)

    try:
        while True:
            try:
                run_once(backend)
            except OTPError as exc:
                print(f"{RED}{exc}{RESET}")
            print()
    except (KeyboardInterrupt, EOFError):
        print(f"\n{DIM}Goodbye!{RESET}")
    finally:
        if store is not None:
            store.stop()


if __name__ == "__main__":
    main()
