from typing import Any, Dict, Iterable, List, Tuple

from fastapi import Request
from loguru import logger
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException

from graph.state import Attachment
from tools.errors import FileLimitError, ValidationError

MAX_FILES = 15
MAX_FILE_BYTES = 15 * 1024 * 1024
MAX_TEXT_BYTES = 5 * 1024 * 1024

LIMITS = {
    "maxFiles": MAX_FILES,
    "maxFileSizeMB": MAX_FILE_BYTES // (1024 * 1024),
    "maxTextSizeMB": MAX_TEXT_BYTES // (1024 * 1024),
}


def _field_name(name: str) -> str:
    return name[:-2] if name.endswith("[]") else name


async def read_submission(request: Request, file_fields: Iterable[str] = ()) -> Tuple[Dict[str, Any], List[Attachment]]:
    """
    Read a JSON or multipart/urlencoded body into (payload, attachments).

    Raises:
        FileLimitError: too many files, a file too large, or too much text
        ValidationError: a file under a field the route does not accept, or a bad body
    """
    content_type = request.headers.get("content-type", "")

    if "multipart/form-data" not in content_type and "application/x-www-form-urlencoded" not in content_type:
        body = await request.body()
        if len(body) > MAX_TEXT_BYTES:
            raise FileLimitError("Request body too large", LIMITS)
        if not body:
            return {}, []
        try:
            payload = await request.json()
        except ValueError:
            raise ValidationError("Invalid JSON body")
        if not isinstance(payload, dict):
            raise ValidationError("Body must be a JSON object")
        return payload, []

    allowed = {_field_name(name) for name in file_fields}
    payload: Dict[str, Any] = {}
    attachments: List[Attachment] = []
    text_bytes = 0

    # one spare file slot so the count check below answers 413 with the limits body
    try:
        form = await request.form(max_files=MAX_FILES + 1, max_part_size=MAX_TEXT_BYTES)
    except HTTPException as e:
        if "maximum" in str(e.detail).lower():
            raise FileLimitError(str(e.detail), LIMITS) from e
        raise ValidationError(f"Malformed form data: {e.detail}") from e
    try:
        for name, value in form.multi_items():
            if isinstance(value, UploadFile):
                if _field_name(name) not in allowed:
                    raise ValidationError(f"Unexpected file field: {name}")
                if len(attachments) >= MAX_FILES:
                    raise FileLimitError(f"Too many files (max {MAX_FILES})", LIMITS)
                content = await value.read()
                if len(content) > MAX_FILE_BYTES:
                    raise FileLimitError(f"File too large: {value.filename}", LIMITS)
                attachments.append(Attachment(
                    filename=value.filename or "attachment",
                    content_type=value.content_type or "application/octet-stream",
                    content=content,
                ))
                continue

            text_bytes += len(value.encode("utf-8"))
            if text_bytes > MAX_TEXT_BYTES:
                raise FileLimitError("Form text too large", LIMITS)

            key = _field_name(name)
            if key in payload:
                existing = payload[key]
                payload[key] = existing + [value] if isinstance(existing, list) else [existing, value]
            elif name.endswith("[]"):
                payload[key] = [value]
            else:
                payload[key] = value
    finally:
        await form.close()

    logger.info(f"Read multipart submission with {len(payload)} fields and {len(attachments)} files")
    return payload, attachments
