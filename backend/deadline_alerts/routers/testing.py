from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from deadline_alerts.deps import get_db
from deadline_alerts.rate_limit import limiter, TEST_SEND_RATE_LIMIT
from deadline_alerts.schemas import TriggerSingleAlertRequest, TriggerSingleAlertResponse
from deadline_alerts.services.alert_test_service import trigger_single_alert as send_test_alert

router = APIRouter(prefix="/testing", tags=["testing"])


@router.post(
    "/trigger-single-alert",
    response_model=TriggerSingleAlertResponse,
    responses={207: {"model": TriggerSingleAlertResponse}},
)
@limiter.limit(TEST_SEND_RATE_LIMIT)
def trigger_single_alert(
    request: Request,
    payload: TriggerSingleAlertRequest,
    db: Session = Depends(get_db),
):
    """
    Email the main alert and each follow-up to a test address (or the client).

    Returns 207 when some of the emails failed to send.
    """
    result = send_test_alert(db, payload.client_alert_id, payload.test_email)
    body = TriggerSingleAlertResponse(
        message=result.message,
        sent_count=result.sent_count,
        total_tasks=result.total_tasks,
        recipient=result.recipient,
        errors=result.errors,
    )
    status_code = status.HTTP_207_MULTI_STATUS if result.partial_failure else status.HTTP_200_OK
    return JSONResponse(status_code=status_code, content=body.model_dump())
