"""
Chat Notification Controllers (API Routes)
==========================================

The dispatch endpoint: lets another deployment hand lifecycle events to
this service's chat dispatcher.
"""

import hmac

from fastapi import APIRouter, Depends, Header, Request

from helpdesk.core import AuthenticationException
from helpdesk.notifications.application import ChatDispatcher, DispatchRequest, DispatchResponse
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/notifications", tags=["Chat Notifications"])


DISPATCH_RESPONSE_EXAMPLE = {
    "success": True,
    "results": {
        "dmSent": ["jane.doe@example.com"],
        "webhookSent": True
    }
}


# ========== Dependencies ==========

def get_dispatcher(request: Request) -> ChatDispatcher:
    """Dispatcher built at startup."""
    return request.app.state.dispatcher


def require_dispatch_token(request: Request, authorization: str = Header(default="")) -> None:
    """Checks the bearer token before the body is looked at."""
    secret = request.app.state.settings.dispatch_secret
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(token.encode(), secret.encode()):
        logger.warning("Unauthorized dispatch request", extra={"path": request.url.path})
        raise AuthenticationException("Unauthorized")


# ========== Route Handlers ==========

@router.post(
    "/dispatch",
    response_model=DispatchResponse,
    summary="Dispatch chat notifications for a ticket event",
    description="""
    Sends the Google Chat direct messages and category webhook post for one
    ticket lifecycle event.

    **Authentication**: `Authorization: Bearer <DISPATCH_SECRET>`

    **Status handling**:
    - `"Notification"`: chat message event; `message_content` and
      `sender_role` are required
    - `"Escalated"`: requester and every address in `hr_emails` get a DM
    - anything else: requester DM plus the category webhook

    Individual delivery failures do not fail the request; they are left out
    of `dmSent` / `webhookSent`.
    """,
    responses={
        200: {
            "description": "Dispatch attempted",
            "content": {"application/json": {"example": DISPATCH_RESPONSE_EXAMPLE}}
        },
        400: {"description": "Invalid payload"},
        401: {"description": "Missing or wrong bearer token"}
    }
)
async def dispatch_notification(
    payload: DispatchRequest,
    _: None = Depends(require_dispatch_token),
    dispatcher: ChatDispatcher = Depends(get_dispatcher)
):
    result = await dispatcher.dispatch(payload.to_domain())
    return DispatchResponse.from_domain(result)
