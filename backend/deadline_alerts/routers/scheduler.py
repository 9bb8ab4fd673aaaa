from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from deadline_alerts.deps import get_db, verify_cron_secret
from deadline_alerts.jobs.alert_analyzer import run_alert_analysis
from deadline_alerts.schemas import AlertAnalysisResponse, ClientTaskResponse, GapDetectionResponse
from deadline_alerts.services.gap_detector import detect_gaps

router = APIRouter(
    prefix="/scheduler",
    tags=["scheduler"],
    dependencies=[Depends(verify_cron_secret)],
)


@router.post("/run-alert-analyzer", response_model=AlertAnalysisResponse)
def run_alert_analyzer(db: Session = Depends(get_db)):
    """Run one reminder pass; called by the external cron"""
    result = run_alert_analysis(db)
    return AlertAnalysisResponse(
        message="Alert analysis complete",
        processed=result.processed,
        errors=result.errors,
        skipped=result.skipped,
        not_due=result.not_due,
    )


@router.post("/run-gap-detector", response_model=GapDetectionResponse)
def run_gap_detector(db: Session = Depends(get_db)):
    """Open CREATE_ALERT tasks for deadlines that have no active alert"""
    tasks = detect_gaps(db)
    return GapDetectionResponse(
        message="Gap detection complete",
        tasks_created=len(tasks),
        tasks=[ClientTaskResponse.model_validate(task) for task in tasks],
    )
