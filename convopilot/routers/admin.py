"""Admin API endpoints for the automation settings."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from convopilot.database import get_db
from convopilot.dependencies import require_admin_token
from convopilot.schemas.automation import AutomationOut, AutomationUpdate
from convopilot.services.automation_settings_service import (
    AutomationConfig,
    get_automation_config,
    update_automation_config,
)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin_token)])


def _to_out(config: AutomationConfig) -> AutomationOut:
    return AutomationOut(
        mode=config.mode.value,
        activation_words=list(config.activation_words),
        user_exit_words=list(config.user_exit_words),
        operator_exit_words=list(config.operator_exit_words),
        instructions=config.instructions,
    )


@router.get("/automation", response_model=AutomationOut)
def get_automation(db: Session = Depends(get_db)):
    return _to_out(get_automation_config(db))


@router.put("/automation", response_model=AutomationOut)
def put_automation(payload: AutomationUpdate, db: Session = Depends(get_db)):
    config = update_automation_config(
        db,
        mode=payload.mode,
        activation_words=payload.activation_words,
        user_exit_words=payload.user_exit_words,
        operator_exit_words=payload.operator_exit_words,
        instructions=payload.instructions,
    )
    db.commit()
    return _to_out(config)
