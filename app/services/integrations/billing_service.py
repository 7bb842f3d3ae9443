"""Client of the billing/subscription source."""

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from app.app_config import AppEnvironConfig, get_app_environ_config
from app.schemas import SubscriptionStatus, SubscriptionTier
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class ViewerSubscription(BaseModel):
    viewer_id: str
    tier: SubscriptionTier | None = None
    status: SubscriptionStatus = SubscriptionStatus.NONE


class BillingService:
    def __init__(
        self,
        settings: AppEnvironConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings or get_app_environ_config()
        self._transport = transport

    async def get_viewer_subscription(self, viewer_id: str) -> ViewerSubscription:
        """Current subscription of a viewer.

        Raises:
            AppError: E_BILLING_UNAVAILABLE if the billing source could not be reached
                or returned a payload that is not a subscription.
        """
        if self._settings.DEMO_MODE:
            logger.info(f"BillingService DEMO_MODE=true: stubbed subscription for {viewer_id}")
            return ViewerSubscription(
                viewer_id=viewer_id,
                tier=SubscriptionTier.BASIC,
                status=SubscriptionStatus.ACTIVE,
            )

        base_url = self._settings.BILLING_API_BASE_URL
        if not base_url:
            raise AppError(
                errcode=AppErrorCode.E_BILLING_UNAVAILABLE,
                errmesg="BILLING_API_BASE_URL not configured",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )

        headers = {"X-Api-Key": self._settings.BILLING_API_KEY} if self._settings.BILLING_API_KEY else {}
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(
                    f"{base_url.rstrip('/')}/v1/subscriptions/{viewer_id}",
                    headers=headers,
                    timeout=10,
                )
                if response.status_code == 404:
                    return ViewerSubscription(viewer_id=viewer_id)
                response.raise_for_status()
                return ViewerSubscription.model_validate({**response.json(), "viewer_id": viewer_id})
        except httpx.HTTPError as e:
            logger.warning(f"Billing lookup for {viewer_id} failed: {e}")
            raise AppError(
                errcode=AppErrorCode.E_BILLING_UNAVAILABLE,
                errmesg="Subscription lookup failed",
                status_code=HttpStatusCode.BAD_GATEWAY,
            ) from e
        except (ValueError, TypeError, ValidationError) as e:
            logger.warning(f"Billing lookup for {viewer_id} returned an unusable payload: {e}")
            raise AppError(
                errcode=AppErrorCode.E_BILLING_UNAVAILABLE,
                errmesg="Subscription lookup returned an invalid response",
                status_code=HttpStatusCode.BAD_GATEWAY,
            ) from e


billing_service = BillingService()
