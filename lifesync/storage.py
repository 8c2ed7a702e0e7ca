"""
Local points ledger and sensor snapshots on top of the key-value store
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from lifesync.config import (
    ACTIVE_SENSORS_KEY,
    SENSOR_DATA_KEY,
    SENSOR_POINTS_KEY,
)
from lifesync.database import KeyValueStore
from lifesync.models import CategoryPoints, PointsLedgerEntry

logger = logging.getLogger(__name__)


class SensorStorage:
    """
    Reads and writes the structured records the engine persists.
    Storage errors are logged and answered with defaults; corrupt JSON is
    discarded and treated as absent.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def _read_json(self, key: str) -> Optional[Any]:
        try:
            raw = await self.store.get(key)
        except SQLAlchemyError as e:
            logger.error(f"[Storage] Error reading {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"[Storage] Discarding corrupt value for {key}")
            await self._remove(key)
            return None

    async def _write_json(self, key: str, value: Any) -> bool:
        try:
            await self.store.set(key, json.dumps(value, default=str))
            return True
        except SQLAlchemyError as e:
            logger.error(f"[Storage] Error writing {key}: {e}")
            return False

    async def _remove(self, key: str) -> None:
        try:
            await self.store.remove(key)
        except SQLAlchemyError as e:
            logger.error(f"[Storage] Error removing {key}: {e}")

    # ==================== POINTS ====================

    async def get_all_points(self) -> Dict[str, PointsLedgerEntry]:
        data = await self._read_json(SENSOR_POINTS_KEY)
        if not isinstance(data, dict):
            return {}
        ledger = {}
        for sensor_id, entry in data.items():
            try:
                ledger[sensor_id] = PointsLedgerEntry.model_validate(entry)
            except ValidationError:
                logger.warning(f"[Storage] Ignoring invalid ledger entry for sensor {sensor_id}")
        return ledger

    async def get_points(self, sensor_id: str) -> int:
        entry = (await self.get_all_points()).get(sensor_id)
        return entry.points if entry else 0

    async def save_points(self, sensor_id: str, points: int, category: Optional[str]) -> int:
        """Store a sensor total, clamped to zero. Returns the stored value."""
        ledger = await self.get_all_points()
        stored = max(0, int(points))
        ledger[sensor_id] = PointsLedgerEntry(
            points=stored,
            category=category,
            last_update=datetime.now(),
        )
        await self._write_json(
            SENSOR_POINTS_KEY,
            {key: entry.model_dump(mode="json") for key, entry in ledger.items()},
        )
        logger.debug(f"[Storage] Points for sensor {sensor_id}: {stored}")
        return stored

    async def apply_points_delta(self, sensor_id: str, delta: int, category: Optional[str]) -> int:
        """Apply one signed delta and re-clamp."""
        current = await self.get_points(sensor_id)
        return await self.save_points(sensor_id, current + delta, category)

    async def get_points_by_category(self) -> CategoryPoints:
        totals = CategoryPoints()
        for entry in (await self.get_all_points()).values():
            if entry.category is not None:
                name = entry.category.value
                setattr(totals, name, getattr(totals, name) + entry.points)
        return totals

    # ==================== SNAPSHOTS ====================

    async def save_sensor_data(self, sensor_id: str, record: dict) -> None:
        data = await self._read_json(SENSOR_DATA_KEY)
        if not isinstance(data, dict):
            data = {}
        data[sensor_id] = {**record, "last_update": datetime.now().isoformat()}
        await self._write_json(SENSOR_DATA_KEY, data)

    async def get_sensor_data(self, sensor_id: str) -> Optional[dict]:
        data = await self._read_json(SENSOR_DATA_KEY)
        if not isinstance(data, dict):
            return None
        record = data.get(sensor_id)
        return record if isinstance(record, dict) else None

    async def clear_sensor_data(self) -> None:
        await self._remove(SENSOR_POINTS_KEY)
        await self._remove(SENSOR_DATA_KEY)

    # ==================== ACTIVE SET ====================

    async def load_active_sensors(self) -> Dict[str, dict]:
        data = await self._read_json(ACTIVE_SENSORS_KEY)
        return data if isinstance(data, dict) else {}

    async def save_active_sensors(self, active: Dict[str, dict]) -> None:
        await self._write_json(ACTIVE_SENSORS_KEY, active)

    async def clear_active_sensors(self) -> None:
        await self._remove(ACTIVE_SENSORS_KEY)
