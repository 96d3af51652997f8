from pydantic import BaseModel, Field, field_validator


class CompanySettingsOut(BaseModel):
    companyid: int
    fields: dict[str, bool] = Field(default_factory=dict)
    courses: dict[int, bool] = Field(default_factory=dict)
    sync_mode: str
    sync_window_hours: int
    first_sync_hours: int
    cache_enabled: bool
    cache_ttl_minutes: int


class CompanySettingsIn(BaseModel):
    settings: dict[str, int | str | bool] = Field(min_length=1)

    @field_validator('settings')
    @classmethod
    def normalize_keys(cls, value: dict) -> dict:
        out = {}
        for key, raw in value.items():
            name = str(key or '').strip()
            if not name:
                raise ValueError('setting names must not be empty')
            out[name] = int(raw) if isinstance(raw, bool) else raw
        return out


class CompanySettingsCopyIn(BaseModel):
    from_company_id: int = Field(default=0, ge=0)


class CompanySettingsCopyOut(BaseModel):
    companyid: int
    from_company_id: int
    written: int = 0
