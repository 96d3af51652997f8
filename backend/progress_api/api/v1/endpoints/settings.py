import logging

from fastapi import APIRouter, Depends

from progress_api.core.deps import get_env, require_permission
from progress_api.core.env import ReportingEnv
from progress_api.repositories import company_settings
from progress_api.schemas.settings import (
    CompanySettingsCopyIn,
    CompanySettingsCopyOut,
    CompanySettingsIn,
    CompanySettingsOut,
)
from progress_api.services.response_cache import ResponseCache

router = APIRouter()
logger = logging.getLogger(__name__)


def _settings_out(env: ReportingEnv, companyid: int) -> dict:
    return company_settings.load_company_config(env.db, companyid).model_dump()


@router.get('/{company_id}/settings', response_model=CompanySettingsOut)
def get_settings(
    company_id: int,
    env: ReportingEnv = Depends(get_env),
    user=Depends(require_permission('settings:read')),
):
    return _settings_out(env, company_id)


@router.put('/{company_id}/settings', response_model=CompanySettingsOut)
def update_settings(
    company_id: int,
    payload: CompanySettingsIn,
    env: ReportingEnv = Depends(get_env),
    user=Depends(require_permission('settings:write')),
):
    """Partial update; unknown keys or out-of-range values reject the whole request."""
    written = company_settings.set_settings(env.db, company_id, payload.settings, env.now())
    ResponseCache(env).invalidate_company(company_id)
    logger.info('[settings:%s] %s updated %s', company_id, user.get('sub', 'system'), sorted(written))
    return _settings_out(env, company_id)


@router.post('/{company_id}/settings/copy', response_model=CompanySettingsCopyOut)
def copy_settings(
    company_id: int,
    payload: CompanySettingsCopyIn,
    env: ReportingEnv = Depends(get_env),
    user=Depends(require_permission('settings:write')),
):
    written = company_settings.copy_company_settings(env.db, payload.from_company_id, company_id, env.now())
    ResponseCache(env).invalidate_company(company_id)
    return {'companyid': company_id, 'from_company_id': payload.from_company_id, 'written': written}
