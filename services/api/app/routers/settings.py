from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from services.api.app.db.deps import get_db
from services.api.app.models.settings import CommerceSettingsOut
from services.api.app.services.errors import SettingsUnavailableError
from services.api.app.services.repositories import SqlSettingsStore
from services.api.app.services.settings import load_settings
from sqlalchemy.orm import Session

router = APIRouter()


@router.get("/v1/settings", response_model=CommerceSettingsOut)
def get_settings(db: Session = Depends(get_db)) -> CommerceSettingsOut:
    try:
        settings = load_settings(SqlSettingsStore(db))
    except SettingsUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return CommerceSettingsOut(**settings.as_dict())
