from __future__ import annotations

import re

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from progress_api.core.errors import InvalidSettingError, UnknownSettingError
from progress_api.db.upsert import upsert_rows
from progress_api.models.reporting import CompanySetting
from progress_api.models.source import SITE_COURSE_ID, CompanyCourse, Course
from progress_api.services.field_projection import FIELD_NAMES

SYNC_MODES = ('auto', 'incremental', 'full', 'disabled')
FIRST_SYNC_HOURS_CHOICES = (0, 24, 168, 720, 2160)

_COURSE_KEY = re.compile(r'^course_(\d+)$')


class CompanyConfig(BaseModel):
    """Typed view over a company's key/value settings rows."""

    companyid: int
    fields: dict[str, bool] = Field(default_factory=dict)
    courses: dict[int, bool] = Field(default_factory=dict)
    sync_mode: str = 'auto'
    sync_window_hours: int = 24
    first_sync_hours: int = 0
    cache_enabled: bool = True
    cache_ttl_minutes: int = 30

    @property
    def enabled_fields(self) -> tuple[str, ...]:
        return tuple(name for name in FIELD_NAMES if self.fields.get(name, True))

    @property
    def has_course_settings(self) -> bool:
        return bool(self.courses)

    @property
    def enabled_course_ids(self) -> list[int]:
        return sorted(cid for cid, enabled in self.courses.items() if enabled)

    def is_course_enabled(self, course_id: int) -> bool:
        return self.courses.get(int(course_id), True)


def _flag(name: str, raw) -> bool:
    text = str(raw).strip().lower()
    if text in ('1', 'true', 'yes', 'on'):
        return True
    if text in ('0', 'false', 'no', 'off', ''):
        return False
    raise InvalidSettingError(f'{name} must be 0 or 1', details={'setting': name, 'value': raw})


def _int_in_range(name: str, raw, low: int, high: int) -> int:
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        raise InvalidSettingError(f'{name} must be an integer', details={'setting': name, 'value': raw})
    if value < low or value > high:
        raise InvalidSettingError(
            f'{name} must be between {low} and {high}',
            details={'setting': name, 'value': value, 'min': low, 'max': high},
        )
    return value


def normalize_setting(name: str, raw) -> str:
    """Validate one setting and return the value as stored. Raises on unknown keys."""
    key = str(name or '').strip()
    if key.startswith('field_'):
        if key[len('field_'):] not in FIELD_NAMES:
            raise UnknownSettingError(f'Unknown output field: {key}', details={'setting': key})
        return '1' if _flag(key, raw) else '0'
    if _COURSE_KEY.match(key):
        return '1' if _flag(key, raw) else '0'
    if key == 'sync_mode':
        value = str(raw).strip().lower()
        if value not in SYNC_MODES:
            raise InvalidSettingError(
                f'sync_mode must be one of {", ".join(SYNC_MODES)}',
                details={'setting': key, 'value': raw},
            )
        return value
    if key == 'sync_window_hours':
        return str(_int_in_range(key, raw, 1, 168))
    if key == 'first_sync_hours':
        value = _int_in_range(key, raw, 0, max(FIRST_SYNC_HOURS_CHOICES))
        if value not in FIRST_SYNC_HOURS_CHOICES:
            raise InvalidSettingError(
                'first_sync_hours must be one of 0, 24, 168, 720, 2160',
                details={'setting': key, 'value': value},
            )
        return str(value)
    if key == 'cache_enabled':
        return '1' if _flag(key, raw) else '0'
    if key == 'cache_ttl_minutes':
        return str(_int_in_range(key, raw, 5, 1440))
    raise UnknownSettingError(f'Unknown company setting: {key}', details={'setting': key})


def get_company_settings(db: Session, companyid: int) -> dict[str, str]:
    rows = db.query(CompanySetting).filter(CompanySetting.companyid == companyid).all()
    return {row.setting_name: row.setting_value for row in rows}


def get_setting(db: Session, companyid: int, name: str, default=None):
    row = (
        db.query(CompanySetting)
        .filter(CompanySetting.companyid == companyid, CompanySetting.setting_name == name)
        .first()
    )
    return row.setting_value if row else default


def set_settings(db: Session, companyid: int, values: dict, now: int) -> dict[str, str]:
    """Validate every pair first, then upsert all of them in one statement."""
    normalized = {str(name).strip(): normalize_setting(name, raw) for name, raw in values.items()}
    rows = [
        {
            'companyid': int(companyid),
            'setting_name': name,
            'setting_value': value,
            'timecreated': now,
            'timemodified': now,
        }
        for name, value in normalized.items()
    ]
    upsert_rows(
        db,
        CompanySetting,
        rows,
        index_elements=['companyid', 'setting_name'],
        update_columns=['setting_value', 'timemodified'],
    )
    db.commit()
    return normalized


def set_setting(db: Session, companyid: int, name: str, value, now: int) -> str:
    return set_settings(db, companyid, {name: value}, now)[str(name).strip()]


def load_company_config(db: Session, companyid: int) -> CompanyConfig:
    """Build the typed config; a stored key that is not recognised is an error."""
    config = CompanyConfig(companyid=int(companyid))
    for name, raw in get_company_settings(db, companyid).items():
        value = normalize_setting(name, raw)
        if name.startswith('field_'):
            config.fields[name[len('field_'):]] = value == '1'
        elif name.startswith('course_'):
            config.courses[int(name[len('course_'):])] = value == '1'
        elif name == 'cache_enabled':
            config.cache_enabled = value == '1'
        elif name == 'sync_mode':
            config.sync_mode = value
        else:
            setattr(config, name, int(value))
    return config


def has_settings(db: Session, companyid: int) -> bool:
    return db.query(CompanySetting.id).filter(CompanySetting.companyid == companyid).first() is not None


def has_course_settings(db: Session, companyid: int) -> bool:
    return (
        db.query(CompanySetting.id)
        .filter(CompanySetting.companyid == companyid, CompanySetting.setting_name.like('course\\_%', escape='\\'))
        .first()
        is not None
    )


def get_enabled_courses(db: Session, companyid: int) -> list[int]:
    out: list[int] = []
    for name, value in get_company_settings(db, companyid).items():
        match = _COURSE_KEY.match(name)
        if match and str(value).strip() == '1':
            out.append(int(match.group(1)))
    return sorted(out)


def get_company_courses(db: Session, companyid: int) -> list[Course]:
    """Visible courses assigned to the company, site course excluded."""
    return (
        db.query(Course)
        .join(CompanyCourse, CompanyCourse.courseid == Course.id)
        .filter(
            CompanyCourse.companyid == companyid,
            Course.visible == 1,
            Course.id != SITE_COURSE_ID,
        )
        .order_by(Course.fullname.asc())
        .all()
    )


def copy_company_settings(db: Session, from_companyid: int, to_companyid: int, now: int) -> int:
    """Seed a company's settings.

    ``from_companyid == 0`` applies the defaults: every output field on and
    every company course enabled. Otherwise the source company's rows are
    copied as they are. Returns the number of settings written.
    """
    if int(from_companyid) == 0:
        values: dict[str, str | int] = {f'field_{name}': 1 for name in FIELD_NAMES}
        for course in get_company_courses(db, to_companyid):
            values[f'course_{course.id}'] = 1
    else:
        values = dict(get_company_settings(db, from_companyid))
    if not values:
        return 0
    return len(set_settings(db, to_companyid, values, now))


def companies_with_settings(db: Session) -> list[int]:
    rows = db.query(CompanySetting.companyid).group_by(CompanySetting.companyid).order_by(CompanySetting.companyid).all()
    return [int(r[0]) for r in rows]
