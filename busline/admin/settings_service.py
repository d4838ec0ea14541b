import logging
from typing import Dict, List, Optional
from decimal import Decimal, InvalidOperation
from fastapi import Depends
from sqlalchemy.orm import Session

from busline.database import get_db
from busline.models import Setting, DiscountedDistrict
from busline.admin.schemas import SystemConfig, SettingKey

logger = logging.getLogger(__name__)

CONFIG_VERSION_KEY = "configVersion"

SETTING_DEFAULTS: Dict[str, str] = {
    SettingKey.BOOKING_SYSTEM_ONLINE.value: "false",
    SettingKey.FREE_BOOKING_ENABLED.value: "false",
    SettingKey.DISCOUNT_SYSTEM_ENABLED.value: "false",
    SettingKey.CANCELLATION_ENABLED.value: "false",
    SettingKey.CHILD_DISCOUNT_PERCENTAGE.value: "40",
    SettingKey.SENIOR_DISCOUNT_PERCENTAGE.value: "50",
}

PERCENTAGE_KEYS = {
    SettingKey.CHILD_DISCOUNT_PERCENTAGE.value,
    SettingKey.SENIOR_DISCOUNT_PERCENTAGE.value,
}

def _as_bool(value: Optional[str]) -> bool:
    return value == "true"

def _as_percentage(value: Optional[str], default: str) -> Decimal:
    try:
        pct = Decimal(value if value is not None else default)
    except InvalidOperation:
        pct = Decimal(default)
    return min(max(pct, Decimal("0")), Decimal("100"))

class SettingsService:
    """Service for admin-controlled toggles and discount configuration"""

    def __init__(self, db: Session):
        self.db = db

    def load_snapshot(self) -> SystemConfig:
        """Read every setting and discount district into one immutable snapshot"""
        rows = {row.key: row.value for row in self.db.query(Setting).all()}
        districts = frozenset(d.district_name for d in self.db.query(DiscountedDistrict).all())

        try:
            version = int(rows.get(CONFIG_VERSION_KEY, "0"))
        except ValueError:
            version = 0

        return SystemConfig(
            version=version,
            is_booking_system_online=_as_bool(rows.get(SettingKey.BOOKING_SYSTEM_ONLINE.value)),
            is_free_booking_enabled=_as_bool(rows.get(SettingKey.FREE_BOOKING_ENABLED.value)),
            is_discount_system_enabled=_as_bool(rows.get(SettingKey.DISCOUNT_SYSTEM_ENABLED.value)),
            is_cancellation_enabled=_as_bool(rows.get(SettingKey.CANCELLATION_ENABLED.value)),
            child_discount_percentage=_as_percentage(
                rows.get(SettingKey.CHILD_DISCOUNT_PERCENTAGE.value), "40"
            ),
            senior_discount_percentage=_as_percentage(
                rows.get(SettingKey.SENIOR_DISCOUNT_PERCENTAGE.value), "50"
            ),
            discount_districts=districts
        )

    def list_settings(self) -> Dict[str, str]:
        values = dict(SETTING_DEFAULTS)
        for row in self.db.query(Setting).all():
            if row.key != CONFIG_VERSION_KEY:
                values[row.key] = row.value
        return values

    def get_setting(self, key: str) -> Optional[str]:
        """Return a setting value, persisting the default for known keys on first read"""
        row = self.db.query(Setting).filter(Setting.key == key).first()
        if row:
            return row.value

        if key not in SETTING_DEFAULTS:
            return None

        default_value = SETTING_DEFAULTS[key]
        self.db.add(Setting(key=key, value=default_value))
        self.db.commit()
        return default_value

    def update_setting(self, key: SettingKey, value) -> str:
        """Validate and store a setting; raises ValueError for malformed values"""
        key_name = key.value
        if key_name in PERCENTAGE_KEYS:
            try:
                pct = Decimal(str(value))
            except InvalidOperation:
                raise ValueError(f"{key_name} must be a number between 0 and 100")
            if isinstance(value, bool) or pct < 0 or pct > 100:
                raise ValueError(f"{key_name} must be a number between 0 and 100")
            value_to_store = format(pct.normalize(), "f")
        else:
            value_to_store = str(value).lower()
            if value_to_store not in ("true", "false"):
                raise ValueError(f"{key_name} must be true or false")

        row = self.db.query(Setting).filter(Setting.key == key_name).with_for_update().first()
        if row:
            row.value = value_to_store
        else:
            self.db.add(Setting(key=key_name, value=value_to_store))
        self._bump_version()

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Setting %s updated to %s", key_name, value_to_store)
        return value_to_store

    def get_discount_districts(self) -> List[str]:
        return sorted(d.district_name for d in self.db.query(DiscountedDistrict).all())

    def set_discount_districts(self, districts: List[str]) -> List[str]:
        """Replace the discount district set in one transaction"""
        cleaned = sorted({d.strip() for d in districts if d and d.strip()})
        try:
            self.db.query(DiscountedDistrict).delete()
            for district in cleaned:
                self.db.add(DiscountedDistrict(district_name=district))
            self._bump_version()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Discount districts replaced: %s", ", ".join(cleaned) or "(none)")
        return cleaned

    def _bump_version(self):
        row = self.db.query(Setting).filter(Setting.key == CONFIG_VERSION_KEY).with_for_update().first()
        if row is None:
            self.db.add(Setting(key=CONFIG_VERSION_KEY, value="1"))
            return
        try:
            row.value = str(int(row.value) + 1)
        except ValueError:
            row.value = "1"

def get_system_config(db: Session = Depends(get_db)) -> SystemConfig:
    """Per-request configuration snapshot"""
    return SettingsService(db).load_snapshot()
