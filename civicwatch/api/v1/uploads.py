# civicwatch/api/v1/uploads.py
import logging

from fastapi import APIRouter, Depends, File, UploadFile, status

from civicwatch.core.auth import get_access_context, get_services
from civicwatch.core.errors import ErrorKind, Result, unwrap
from civicwatch.core.rbac import AccessContext
from civicwatch.services.uploads import ALLOWED_IMAGE_TYPES, MAX_IMAGE_BYTES

log = logging.getLogger("civicwatch.uploads")

router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.post("/image", status_code=status.HTTP_201_CREATED)
def upload_image(
    file: UploadFile = File(...),
    ctx: AccessContext = Depends(get_access_context),
    services=Depends(get_services),
):
    content_type = (file.content_type or "").lower()
    if content_type not in ALLOWED_IMAGE_TYPES:
        unwrap(Result.failure(ErrorKind.VALIDATION, "Only image uploads are allowed (jpeg, png, webp, gif)"))

    data = file.file.read(MAX_IMAGE_BYTES + 1)
    if not data:
        unwrap(Result.failure(ErrorKind.VALIDATION, "Uploaded file is empty"))
    if len(data) > MAX_IMAGE_BYTES:
        unwrap(Result.failure(ErrorKind.VALIDATION, "Image exceeds the 5 MB limit"))

    url = services.uploads.store(data, file.filename or "", content_type)
    log.info("user %s uploaded %s bytes -> %s", ctx.user_id, len(data), url)
    return {"url": url}
