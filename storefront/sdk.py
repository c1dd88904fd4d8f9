"""PayPal JS SDK script loading, shared across widget instances on a page."""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol
from urllib.parse import urlencode

from .config import PAYPAL_SDK_URL
from .errors import ScriptLoadError

logger = logging.getLogger(__name__)


class SdkMode(str, enum.Enum):
    PURCHASE = "purchase"
    SUBSCRIPTION = "subscription"


@dataclass(frozen=True)
class ScriptSignature:
    """Identity of one SDK script: purchase and subscription scripts never mix."""

    mode: SdkMode
    currency: str

    @property
    def namespace(self) -> str:
        return f"paypal_{self.mode.value}_{self.currency.lower()}"

    def src(self, client_id: str, base_url: str = PAYPAL_SDK_URL) -> str:
        params = {"client-id": client_id, "currency": self.currency}
        if self.mode is SdkMode.SUBSCRIPTION:
            params["vault"] = "true"
            params["intent"] = "subscription"
        return f"{base_url}?{urlencode(params)}"


@dataclass
class ButtonCallbacks:
    on_approve: Callable[[Dict[str, Any]], Awaitable[None]]
    on_cancel: Callable[[Dict[str, Any]], Awaitable[None]]
    on_error: Callable[[Any], Awaitable[None]]
    create_order: Optional[Callable[[Dict[str, Any]], Awaitable[str]]] = None
    create_subscription: Optional[Callable[[Dict[str, Any], Any], Awaitable[str]]] = None


class SdkButtons(Protocol):
    async def render(self, container: Any) -> None:
        ...

    async def close(self) -> None:
        ...


class PayPalSdk(Protocol):
    def buttons(self, callbacks: ButtonCallbacks, style: Dict[str, Any]) -> SdkButtons:
        ...


class ScriptTag(Protocol):
    src: str

    async def loaded(self) -> None:
        """Resolve once the script has executed; raise ScriptLoadError on failure."""


class PaymentPage(Protocol):
    """The host document the widgets live in."""

    def find_script(self, signature: ScriptSignature) -> Optional[ScriptTag]:
        ...

    def inject_script(self, src: str, signature: ScriptSignature) -> ScriptTag:
        ...

    def remove_script(self, tag: ScriptTag) -> None:
        ...

    def sdk(self, namespace: str) -> Optional[PayPalSdk]:
        ...


class SdkLoader:
    """Loads each script signature at most once per page.

    Concurrent callers share a single readiness future. A failed load is
    surfaced to every waiter and evicted, so only a later call injects a
    fresh tag; nothing retries on its own.
    """

    def __init__(
        self,
        page: PaymentPage,
        *,
        ready_timeout: float = 5.0,
        base_url: str = PAYPAL_SDK_URL,
    ):
        self.page = page
        self.ready_timeout = ready_timeout
        self.base_url = base_url
        self._pending: Dict[ScriptSignature, asyncio.Task] = {}

    async def load(self, signature: ScriptSignature, client_id: str) -> PayPalSdk:
        task = self._pending.get(signature)
        if task is None:
            task = asyncio.ensure_future(self._acquire(signature, client_id))
            task.add_done_callback(lambda done, sig=signature: self._evict_failed(sig, done))
            self._pending[signature] = task
        return await asyncio.shield(task)

    def _evict_failed(self, signature: ScriptSignature, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is not None:
            if self._pending.get(signature) is task:
                del self._pending[signature]

    async def _acquire(self, signature: ScriptSignature, client_id: str) -> PayPalSdk:
        namespace = signature.namespace
        existing = self.page.sdk(namespace)
        if existing is not None:
            return existing

        tag = self.page.find_script(signature)
        if tag is not None:
            # Injected elsewhere; wait for it but never forever.
            try:
                await asyncio.wait_for(tag.loaded(), timeout=self.ready_timeout)
            except asyncio.TimeoutError as exc:
                self.page.remove_script(tag)
                raise ScriptLoadError(f"PayPal SDK did not become ready within {self.ready_timeout}s") from exc
            except ScriptLoadError:
                self.page.remove_script(tag)
                raise
        else:
            src = signature.src(client_id, self.base_url)
            logger.info("Injecting PayPal SDK", extra={"mode": signature.mode.value, "currency": signature.currency})
            tag = self.page.inject_script(src, signature)
            try:
                await tag.loaded()
            except ScriptLoadError:
                logger.warning("PayPal SDK failed to load", extra={"src": src})
                self.page.remove_script(tag)
                raise

        sdk = self.page.sdk(namespace)
        if sdk is None:
            self.page.remove_script(tag)
            raise ScriptLoadError(f"PayPal SDK loaded but '{namespace}' is missing")
        return sdk


__all__ = [
    "ButtonCallbacks",
    "PayPalSdk",
    "PaymentPage",
    "ScriptSignature",
    "ScriptTag",
    "SdkButtons",
    "SdkLoader",
    "SdkMode",
]
