"""API route handling bank statement imports."""
from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limit import import_rate_limiter
from app.core.session import get_current_user
from app.domain.imports.schemas import ImportRequest, ImportResponse
from app.domain.imports.services import process_import
from app.domain.users.models import User

router = APIRouter()


@router.post("/transactions/import", response_model=ImportResponse)
async def import_transactions(
    file: UploadFile = File(...),
    request: str = Form(...),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ImportResponse:
    """Import a CSV/OFX statement; partial failures are reported in ``issues``."""

    retry_after = await import_rate_limiter.retry_after(
        f"import:{user.id}",
        settings.RATE_LIMIT_MAX,
        settings.RATE_LIMIT_WINDOW_SECONDS,
    )
    if retry_after:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many import attempts. Please try again later.",
            headers={"Retry-After": str(retry_after)},
        )

    try:
        import_request = ImportRequest.model_validate_json(request)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=jsonable_encoder(exc.errors(include_url=False, include_context=False)),
        ) from exc

    file_bytes = await file.read()

    return await process_import(
        db=db,
        user=user,
        filename=file.filename,
        content_type=file.content_type,
        file_bytes=file_bytes,
        request=import_request,
    )
