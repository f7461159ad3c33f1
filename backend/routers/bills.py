"""Bills router: create, list, view and cancel bills, plus receipt extraction."""

from typing import Annotated
import io
import logging
from PIL import Image, UnidentifiedImageError
from fastapi import APIRouter, Depends, HTTPException, File, UploadFile
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from dependencies import get_current_user, get_ocr_service
from ocr.service import OCRService
from utils.bills import (
    cancel_bill, create_bill, get_bill_details, get_bill_or_404, list_user_bills, verify_bill_access
)
from utils.currency import DEFAULT_CURRENCY, is_supported_currency
from utils.rate_limiter import ocr_rate_limiter

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
SUPPORTED_IMAGE_FORMATS = {"JPEG", "PNG", "WEBP"}


router = APIRouter(prefix="/bills", tags=["bills"])


@router.post("", response_model=schemas.BillWithDetails)
def create_new_bill(
    bill_in: schemas.BillCreate,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    bill = create_bill(db, current_user, bill_in)
    return get_bill_details(db, bill)


@router.get("", response_model=list[schemas.Bill])
def read_bills(
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    return list_user_bills(db, current_user.id)


@router.post("/extract", response_model=schemas.ExtractedBill, dependencies=[Depends(ocr_rate_limiter)])
async def extract_bill(
    current_user: Annotated[models.User, Depends(get_current_user)],
    ocr_service: Annotated[OCRService, Depends(get_ocr_service)],
    file: UploadFile = File(...),
    currency: str = DEFAULT_CURRENCY
):
    """
    Extract a structured bill from a receipt photo.

    The result is a draft: the client reviews it and posts it to /bills.
    Nothing is stored.
    """
    if not is_supported_currency(currency):
        raise HTTPException(status_code=400, detail=f"Unsupported currency: {currency}")

    image_content = await file.read()
    if len(image_content) > MAX_FILE_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"File size exceeds maximum allowed size of 10MB. Uploaded file size: {len(image_content) / (1024 * 1024):.2f}MB"
        )

    try:
        image = Image.open(io.BytesIO(image_content))
        img_format = image.format
        image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        logger.warning(f"Image validation failed for user {current_user.id}: {e}")
        raise HTTPException(status_code=400, detail="Invalid image file.")

    if img_format not in SUPPORTED_IMAGE_FORMATS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported image format: {img_format}. Only JPEG, PNG, and WebP are supported."
        )

    logger.info(f"Extracting bill for user {current_user.id} ({len(image_content)} bytes, {img_format})")
    return ocr_service.extract(image_content, currency)


@router.get("/{bill_id}", response_model=schemas.BillWithDetails)
def read_bill(
    bill_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    bill = get_bill_or_404(db, bill_id)
    verify_bill_access(db, bill, current_user.id)
    return get_bill_details(db, bill)


@router.post("/{bill_id}/cancel", response_model=schemas.Bill)
def cancel_existing_bill(
    bill_id: int,
    current_user: Annotated[models.User, Depends(get_current_user)],
    db: Session = Depends(get_db)
):
    return cancel_bill(db, bill_id, current_user)
