"""
Project intake form endpoint.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from app.dependencies import get_app_settings, get_mailer
from src.aws.ses import SESMailer, build_intake_notification
from src.config import Settings
from src.errors import Misconfiguration
from src.types.email import IntakeSubmission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["intake"])


@router.post(
    "/intake",
    responses={
        400: {"description": "Missing or invalid field"},
        500: {"description": "Notification recipient not configured or SES failure"},
    },
)
async def submit_intake(
    submission: IntakeSubmission,
    settings: Settings = Depends(get_app_settings),
    mailer: SESMailer = Depends(get_mailer),
) -> Dict[str, Any]:
    """Email a project inquiry to the operator inbox, replies going to the submitter."""
    recipient = settings.email.intake_notification_email
    if not recipient:
        raise Misconfiguration(missing=["INTAKE_NOTIFICATION_EMAIL"])

    envelope = build_intake_notification(submission, settings.email.source, recipient)
    message_id = await mailer.send(envelope)

    logger.info(f"Intake notification sent ({message_id}) for {submission.project_type}")
    return {"success": True}
