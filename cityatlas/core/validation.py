from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from cityatlas.core.config import settings
from cityatlas.core.errors import ValidationError

SLUG_RE = re.compile(r"^[a-z0-9-]+$")
SLUG_MAX_LENGTH = 100

HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
ICON_NAME_MAX_LENGTH = 50

ICON_SIZE_MIN = Decimal("0.5")
ICON_SIZE_MAX = Decimal("3.0")


def normalize_slug(value: Optional[str], *, field: str = "slug") -> str:
    v = (value or "").strip().lower()
    if not v:
        raise ValidationError(f"{field} is required", field=field)
    if len(v) > SLUG_MAX_LENGTH:
        raise ValidationError(f"{field} must be at most {SLUG_MAX_LENGTH} characters", field=field)
    if not SLUG_RE.match(v):
        raise ValidationError(f"{field} must contain only lowercase letters, numbers, and hyphens", field=field)
    return v


def normalize_color(value: Optional[str]) -> str:
    if value is None:
        return settings.DEFAULT_MARKER_COLOR
    v = value.strip()
    if not HEX_COLOR_RE.match(v):
        raise ValidationError("color must be a hex color like #FFA500", field="color_hex")
    return v.upper()


def normalize_icon_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    v = value.strip()
    if not v:
        return None
    if len(v) > ICON_NAME_MAX_LENGTH:
        raise ValidationError(f"icon name must be at most {ICON_NAME_MAX_LENGTH} characters", field="icon_name")
    return v


def normalize_size_multiplier(value: Union[Decimal, float, str, None]) -> Decimal:
    if value is None:
        return Decimal("1.00")
    try:
        d = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError("icon size multiplier must be a number", field="icon_size_multiplier") from None
    if d < ICON_SIZE_MIN or d > ICON_SIZE_MAX:
        raise ValidationError(
            f"icon size multiplier must be between {ICON_SIZE_MIN} and {ICON_SIZE_MAX}",
            field="icon_size_multiplier",
        )
    return d.quantize(Decimal("0.01"))


def normalize_display_order(value: Optional[int]) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("display order must be a non-negative integer", field="display_order")
    return value


def normalize_locale(value: Optional[str]) -> str:
    v = (value or "").strip().lower()
    if v not in settings.SUPPORTED_LOCALES:
        raise ValidationError(
            f"locale must be one of {', '.join(settings.SUPPORTED_LOCALES)}",
            field="locale_code",
        )
    return v
