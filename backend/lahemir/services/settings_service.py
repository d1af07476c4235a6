from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Any

from ..errors import ValidationError
from ..models import AppSettings, BankService, ThemeColors
from .storage_service import PersistedSlot

logger = logging.getLogger(__name__)

# "H S% L%" as used by the theme, e.g. "207 89% 61%"
HSL_TRIPLE_RE = re.compile(r"^\s*\d{1,3}(?:\.\d+)?\s+\d{1,3}(?:\.\d+)?%\s+\d{1,3}(?:\.\d+)?%\s*$")

THEME_KEYS = ("primary", "background", "accent")
SOUND_KEYS = {"saleSuccessSound": "sale_success_sound", "rejectedOperationSound": "rejected_operation_sound"}


def settings_slot(key: str, backend) -> PersistedSlot[AppSettings]:
    return PersistedSlot(
        key,
        AppSettings.defaults,
        backend=backend,
        decode=AppSettings.from_dict,
        encode=lambda settings: settings.to_dict(),
    )


def _validate_theme(patch: Any, current: ThemeColors) -> ThemeColors:
    if not isinstance(patch, dict):
        raise ValidationError("themeColors must be an object")
    values = current.to_dict()
    for k, v in patch.items():
        if k not in THEME_KEYS:
            raise ValidationError(f"Unknown theme color: {k}")
        if not isinstance(v, str) or not HSL_TRIPLE_RE.match(v):
            raise ValidationError(f"themeColors.{k} must look like \"H S% L%\"")
        values[k] = v.strip()
    return ThemeColors(**values)


def _validate_sound(key: str, value: Any):
    if value in (None, ""):
        return None
    if not isinstance(value, str) or not value.startswith("data:audio"):
        raise ValidationError(f"{key} must be an audio data URI")
    return value


def _validate_bank_services(value: Any):
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValidationError("bankServices must be a list")
    services = []
    for raw in value:
        try:
            service = BankService.from_dict(raw)
        except ValueError as exc:
            raise ValidationError(f"Invalid bank service: {exc}")
        if not service.name.strip():
            raise ValidationError("Bank service name cannot be blank")
        services.append(service)
    return services


class AppSettingsService:
    """The settings singleton: read, partial update, reset."""

    def __init__(self, slot: PersistedSlot[AppSettings]):
        self.slot = slot

    def get(self) -> AppSettings:
        return self.slot.get()

    def update(self, patch: dict) -> AppSettings:
        """
        Merge a partial settings document. Theme colors merge key by key.

        Raises:
            ValidationError: On unknown keys or malformed values
        """
        if not isinstance(patch, dict):
            raise ValidationError("Invalid JSON payload")

        current = self.get()
        changes = {}
        for k, v in patch.items():
            if k == "storeName":
                if not isinstance(v, str) or not v.strip():
                    raise ValidationError("storeName cannot be blank")
                changes["store_name"] = v.strip()
            elif k == "themeColors":
                changes["theme_colors"] = _validate_theme(v, current.theme_colors)
            elif k in SOUND_KEYS:
                changes[SOUND_KEYS[k]] = _validate_sound(k, v)
            elif k == "bankServices":
                changes["bank_services"] = _validate_bank_services(v)
            else:
                raise ValidationError(f"Unknown setting: {k}")

        updated = replace(current, **changes)
        self.slot.set(updated)
        logger.info("Updated settings: %s", ", ".join(sorted(patch.keys())))
        return updated

    def reset_to_defaults(self) -> AppSettings:
        defaults = AppSettings.defaults()
        self.slot.set(defaults)
        logger.info("Settings reset to defaults")
        return defaults

    def replace_all(self, settings: AppSettings) -> None:
        self.slot.set(settings)
