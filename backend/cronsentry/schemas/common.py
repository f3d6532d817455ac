"""Validators shared by the check and monitor schemas."""
from typing import Optional

from pydantic import HttpUrl, TypeAdapter, ValidationError

_http_url = TypeAdapter(HttpUrl)


def check_webhook_url(url: Optional[str]) -> Optional[str]:
    """Accept only absolute http(s) URLs; the stored value is kept as typed."""
    if url is None:
        return url
    try:
        _http_url.validate_python(url)
    except ValidationError:
        raise ValueError("webhook_url must be an absolute http(s) URL")
    return url


def reject_null(value):
    """For update fields backed by NOT NULL columns: omit them, never send null."""
    if value is None:
        raise ValueError("may be omitted but not null")
    return value
