"""
Runtime Settings Manager
Settings that can be changed without a restart (aggressiveness dial)
Persisted to a JSON file
"""

import json
from pathlib import Path
from typing import Dict, Any, Optional

import structlog
import asyncio

from pydantic import ValidationError

from ..domain.models import FollowupSettings
from .helpers import utc_now

logger = structlog.get_logger("followup.runtime_settings")

MIN_AGGRESSIVENESS = 1
MAX_AGGRESSIVENESS = 10

DEFAULT_SETTINGS = {
    "aggressiveness": 5,
    "updated_at": None,
    "updated_by": None
}


class RuntimeSettingsManager:
    """Runtime settings persisted to a JSON file"""

    def __init__(self, storage_path: Optional[str] = None, default_aggressiveness: Optional[int] = None):
        if storage_path is None or default_aggressiveness is None:
            from ..config import get_settings
            config = get_settings()
            storage_path = storage_path or config.runtime_settings_path
            if default_aggressiveness is None:
                default_aggressiveness = config.default_aggressiveness

        self.storage_path = Path(storage_path)
        self._defaults = {**DEFAULT_SETTINGS, "aggressiveness": default_aggressiveness}
        self._lock = asyncio.Lock()
        self._settings: Dict[str, Any] = self._load_from_file()

    def _load_from_file(self) -> Dict[str, Any]:
        """Load settings from file, merged over defaults"""
        if self.storage_path.exists():
            try:
                with open(self.storage_path, 'r') as f:
                    saved = json.load(f)
                    return {**self._defaults, **saved}
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Failed to load settings from file: {e}")

        return self._defaults.copy()

    def _save_to_file(self):
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.storage_path, 'w') as f:
            json.dump(self._settings, f, indent=2, default=str)
        logger.info("Settings saved to file", path=str(self.storage_path))

    async def get(self, key: str, default: Any = None) -> Any:
        return self._settings.get(key, default)

    async def set(self, key: str, value: Any, updated_by: str = "system") -> bool:
        async with self._lock:
            previous = dict(self._settings)
            try:
                self._settings[key] = value
                self._settings["updated_at"] = utc_now().isoformat()
                self._settings["updated_by"] = updated_by
                self._save_to_file()
            except OSError as e:
                self._settings = previous
                logger.error(f"Failed to set setting {key}: {e}")
                return False

            logger.info(f"Setting updated: {key} = {value}", updated_by=updated_by)
            return True

    async def get_aggressiveness(self) -> int:
        return int(await self.get("aggressiveness", self._defaults["aggressiveness"]))

    async def set_aggressiveness(self, value: int, updated_by: str = "admin") -> bool:
        """Set the aggressiveness dial; values outside 1-10 are rejected"""
        if isinstance(value, bool) or not isinstance(value, int) or not (
            MIN_AGGRESSIVENESS <= value <= MAX_AGGRESSIVENESS
        ):
            logger.error(f"Invalid aggressiveness: {value}")
            return False

        return await self.set("aggressiveness", value, updated_by)

    async def get_followup_settings(self) -> FollowupSettings:
        """Snapshot for one evaluation cycle; a corrupt stored value falls back to the default"""
        try:
            return FollowupSettings(aggressiveness=await self.get_aggressiveness())
        except (ValidationError, TypeError, ValueError) as e:
            logger.error(f"Stored aggressiveness is invalid, using default: {e}")
            return FollowupSettings(aggressiveness=self._defaults["aggressiveness"])

    async def export_settings(self) -> Dict[str, Any]:
        return {
            "aggressiveness": await self.get_aggressiveness(),
            "aggressiveness_range": [MIN_AGGRESSIVENESS, MAX_AGGRESSIVENESS],
            "updated_at": self._settings.get("updated_at"),
            "updated_by": self._settings.get("updated_by")
        }
