"""PayPal checkout buttons for single purchases and subscriptions.

Each button instance walks ``UNCONFIGURED -> SCRIPT_LOADING -> SCRIPT_READY
-> WIDGET_RENDERED`` and ends in ``TERMINAL`` on unmount. The SDK render
happens at most once per instance; prop updates are read by the callbacks
without re-rendering. After unmount no state change, notice, cache
invalidation or caller hook fires.
"""
from __future__ import annotations

import enum
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from .api import CaptureResult, StorefrontApi, SubscriptionState
from .cancellation import CancellationToken
from .errors import ApiError, NotConfigured, OperationCancelled, ScriptLoadError
from .notices import LoggingNotifier, NoticeLevel, Notifier
from .query_cache import QueryCache
from .sdk import ButtonCallbacks, PayPalSdk, ScriptSignature, SdkButtons, SdkLoader, SdkMode

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = "PayPal is not configured"
SUBSCRIPTION_UNAVAILABLE_MESSAGE = "This subscription is not available for online payment yet"
SCRIPT_FAILED_MESSAGE = "Could not load PayPal. Please reload the page and try again."
PAYMENT_FAILED_MESSAGE = "Payment failed. Please try again."

SuccessHook = Callable[[Any], Awaitable[None]]
ErrorHook = Callable[[Exception], Awaitable[None]]
CancelHook = Callable[[], Awaitable[None]]


class WidgetState(str, enum.Enum):
    UNCONFIGURED = "unconfigured"
    SCRIPT_LOADING = "script_loading"
    SCRIPT_READY = "script_ready"
    WIDGET_RENDERED = "widget_rendered"
    TERMINAL = "terminal"


@dataclass
class PlanRef:
    """The bits of a subscription plan the button needs."""

    id: str
    name: str = ""
    paypal_plan_id: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "PlanRef":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            paypal_plan_id=data.get("paypal_plan_id") or data.get("paypalPlanId"),
        )


class WidgetHandle:
    """Returned by ``mount``; lets the host read state and release the widget."""

    def __init__(self, button: "_PayPalButton"):
        self._button = button

    @property
    def state(self) -> WidgetState:
        return self._button.state

    @property
    def placeholder(self) -> Optional[str]:
        return self._button.placeholder

    async def release(self) -> None:
        await self._button.unmount()


class _PayPalButton:
    mode: SdkMode
    _updatable = frozenset({"on_success", "on_error", "on_cancel", "style"})

    def __init__(
        self,
        api: StorefrontApi,
        loader: SdkLoader,
        *,
        cache: Optional[QueryCache] = None,
        notifier: Optional[Notifier] = None,
        currency: str = "EUR",
        style: Optional[Dict[str, Any]] = None,
        on_success: Optional[SuccessHook] = None,
        on_error: Optional[ErrorHook] = None,
        on_cancel: Optional[CancelHook] = None,
    ):
        self.api = api
        self.loader = loader
        self.cache = cache if cache is not None else QueryCache()
        self.notifier = notifier or LoggingNotifier()
        self.currency = currency.upper()
        self.style = style or {"layout": "vertical", "shape": "rect", "label": "paypal"}
        self.on_success = on_success
        self.on_error = on_error
        self.on_cancel = on_cancel
        self.state = WidgetState.UNCONFIGURED
        self.placeholder: Optional[str] = None
        self.last_error: Optional[Exception] = None
        self._token = CancellationToken()
        self._render_attempted = False
        self._buttons: Optional[SdkButtons] = None

    @property
    def signature(self) -> ScriptSignature:
        return ScriptSignature(self.mode, self.currency)

    @property
    def alive(self) -> bool:
        return not self._token.cancelled

    def update(self, **props: Any) -> None:
        """Swap props in place; the rendered buttons keep running."""

        for name, value in props.items():
            if name not in self._updatable:
                raise AttributeError(f"Unknown widget prop: {name}")
            setattr(self, name, value)

    def _unavailable_reason(self) -> Optional[str]:
        return None

    def _set_state(self, state: WidgetState) -> bool:
        if not self.alive:
            return False
        logger.debug("Widget state change", extra={"mode": self.mode.value, "from": self.state.value, "to": state.value})
        self.state = state
        return True

    def _notify(self, level: NoticeLevel, message: str) -> None:
        if self.alive:
            self.notifier.notify(level, message)

    async def mount(self, container: Any) -> WidgetHandle:
        handle = WidgetHandle(self)
        if self._render_attempted or self.state is not WidgetState.UNCONFIGURED:
            return handle
        try:
            await self._mount(container)
        except OperationCancelled:
            logger.debug("Mount abandoned after unmount", extra={"mode": self.mode.value})
        return handle

    async def _mount(self, container: Any) -> None:
        reason = self._unavailable_reason()
        if reason is not None:
            self.placeholder = reason
            return

        try:
            config = await self._token.guard(self.api.get_paypal_config())
        except NotConfigured:
            self.placeholder = NOT_CONFIGURED_MESSAGE
            self._notify(NoticeLevel.INFO, NOT_CONFIGURED_MESSAGE)
            return
        except ApiError as exc:
            self.last_error = exc
            logger.warning("Could not fetch PayPal config", extra={"error": str(exc)})
            self._notify(NoticeLevel.ERROR, exc.message)
            return

        self._set_state(WidgetState.SCRIPT_LOADING)
        try:
            sdk = await self._token.guard(self.loader.load(self.signature, config.client_id))
        except ScriptLoadError as exc:
            self.last_error = exc
            logger.warning("PayPal SDK unavailable", extra={"mode": self.mode.value, "error": str(exc)})
            self._notify(NoticeLevel.ERROR, SCRIPT_FAILED_MESSAGE)
            return

        self._set_state(WidgetState.SCRIPT_READY)
        await self._render(sdk, container)

    async def _render(self, sdk: PayPalSdk, container: Any) -> None:
        if self._render_attempted:
            return
        self._render_attempted = True
        try:
            self._buttons = sdk.buttons(self._callbacks(), dict(self.style))
            await self._token.guard(self._buttons.render(container))
        except OperationCancelled:
            raise
        except Exception as exc:
            # State stays SCRIPT_READY; the instance never renders twice.
            self.last_error = exc
            logger.exception("PayPal buttons failed to render", extra={"mode": self.mode.value})
            return
        self._set_state(WidgetState.WIDGET_RENDERED)

    async def unmount(self) -> None:
        if self.state is WidgetState.TERMINAL:
            return
        self._token.cancel()
        self.state = WidgetState.TERMINAL
        buttons, self._buttons = self._buttons, None
        if buttons is None:
            return
        try:
            await buttons.close()
        except Exception:
            logger.warning("PayPal buttons close failed", exc_info=True)

    @asynccontextmanager
    async def mounted(self, container: Any) -> AsyncIterator[WidgetHandle]:
        handle = await self.mount(container)
        try:
            yield handle
        finally:
            await self.unmount()

    def _callbacks(self) -> ButtonCallbacks:
        raise NotImplementedError

    async def _handle_cancel(self, data: Dict[str, Any]) -> None:
        if not self.alive:
            return
        self._notify(NoticeLevel.INFO, "Payment cancelled")
        if self.on_cancel is not None:
            await self.on_cancel()

    async def _handle_sdk_error(self, err: Any) -> None:
        if not self.alive:
            return
        exc = err if isinstance(err, Exception) else ApiError(str(err))
        logger.warning("PayPal SDK reported an error", extra={"mode": self.mode.value, "error": str(err)})
        await self._fail(exc, PAYMENT_FAILED_MESSAGE)

    async def _fail(self, exc: Exception, message: str) -> None:
        self.last_error = exc
        if not self.alive:
            return
        self._notify(NoticeLevel.ERROR, message)
        if self.on_error is not None:
            await self.on_error(exc)

    async def _succeed(self, result: Any, message: str) -> None:
        if not self.alive:
            return
        self._notify(NoticeLevel.SUCCESS, message)
        if self.on_success is not None:
            await self.on_success(result)


class PurchaseButton(_PayPalButton):
    """One-time purchase of a single audiobook."""

    mode = SdkMode.PURCHASE
    _updatable = _PayPalButton._updatable | {"audiobook_id"}

    def __init__(self, api: StorefrontApi, loader: SdkLoader, *, audiobook_id: str, **kwargs: Any):
        super().__init__(api, loader, **kwargs)
        self.audiobook_id = str(audiobook_id)

    def _callbacks(self) -> ButtonCallbacks:
        return ButtonCallbacks(
            create_order=self._create_order,
            on_approve=self._approve,
            on_cancel=self._handle_cancel,
            on_error=self._handle_sdk_error,
        )

    async def _create_order(self, data: Dict[str, Any]) -> str:
        try:
            order = await self._token.guard(self.api.create_order(self.audiobook_id))
        except OperationCancelled:
            raise
        except ApiError as exc:
            await self._fail(exc, exc.message)
            raise
        except Exception as exc:
            logger.exception("Creating the PayPal order failed", extra={"audiobook_id": self.audiobook_id})
            await self._fail(exc, PAYMENT_FAILED_MESSAGE)
            raise
        return order.order_id

    async def _approve(self, data: Dict[str, Any]) -> None:
        order_id = data.get("orderID") or data.get("order_id")
        audiobook_id = self.audiobook_id
        try:
            result: CaptureResult = await self._token.guard(self.api.capture_order(order_id))
        except OperationCancelled:
            return
        except ApiError as exc:
            await self._fail(exc, exc.message)
            return
        except Exception as exc:
            logger.exception("Capturing the PayPal order failed", extra={"order_id": order_id})
            await self._fail(exc, PAYMENT_FAILED_MESSAGE)
            return

        if not result.success:
            await self._fail(ApiError(f"Payment not completed ({result.status})"), "Payment was not completed.")
            return

        self.cache.invalidate(("/api/user/purchases",), ("/api/audiobooks", audiobook_id))
        await self._succeed(result, "Purchase complete. Enjoy your audiobook!")


class SubscriptionButton(_PayPalButton):
    """Recurring subscription to a plan that has a PayPal plan id."""

    mode = SdkMode.SUBSCRIPTION
    _updatable = _PayPalButton._updatable | {"plan"}

    def __init__(self, api: StorefrontApi, loader: SdkLoader, *, plan: Any, **kwargs: Any):
        super().__init__(api, loader, **kwargs)
        self.plan = plan if isinstance(plan, PlanRef) else PlanRef.from_mapping(plan)

    def update(self, **props: Any) -> None:
        plan = props.get("plan")
        if plan is not None and not isinstance(plan, PlanRef):
            props["plan"] = PlanRef.from_mapping(plan)
        super().update(**props)

    def _unavailable_reason(self) -> Optional[str]:
        if not self.plan.paypal_plan_id:
            return SUBSCRIPTION_UNAVAILABLE_MESSAGE
        return None

    def _callbacks(self) -> ButtonCallbacks:
        return ButtonCallbacks(
            create_subscription=self._create_subscription,
            on_approve=self._approve,
            on_cancel=self._handle_cancel,
            on_error=self._handle_sdk_error,
        )

    async def _create_subscription(self, data: Dict[str, Any], actions: Any) -> str:
        self._token.raise_if_cancelled()
        return await actions.create_subscription(self.plan.paypal_plan_id)

    async def _approve(self, data: Dict[str, Any]) -> None:
        subscription_id = data.get("subscriptionID") or data.get("subscription_id")
        try:
            state: SubscriptionState = await self._token.guard(
                self.api.activate_subscription(subscription_id, self.plan.id)
            )
        except OperationCancelled:
            return
        except ApiError as exc:
            await self._fail(exc, exc.message)
            return
        except Exception as exc:
            logger.exception("Activating the subscription failed", extra={"subscription_id": subscription_id})
            await self._fail(exc, PAYMENT_FAILED_MESSAGE)
            return

        self.cache.invalidate(("/api/user/subscription",))
        await self._succeed(state, "Subscription active. Happy listening!")


__all__ = [
    "NOT_CONFIGURED_MESSAGE",
    "PAYMENT_FAILED_MESSAGE",
    "PlanRef",
    "PurchaseButton",
    "SCRIPT_FAILED_MESSAGE",
    "SUBSCRIPTION_UNAVAILABLE_MESSAGE",
    "SubscriptionButton",
    "WidgetHandle",
    "WidgetState",
]
