from __future__ import annotations

import json

from sqlalchemy import func
from sqlalchemy.orm import Session

from progress_api.models.reporting import RequestLog

SECURITY_PREFIX = 'security_'


def log_api_access(
    db: Session,
    *,
    userid: int,
    companyid: int,
    endpoint: str,
    now: int,
    ipaddress: str = '',
    useragent: str = '',
    request_data: dict | None = None,
) -> RequestLog:
    row = RequestLog(
        userid=int(userid),
        companyid=int(companyid or 0),
        endpoint=str(endpoint)[:100],
        ipaddress=str(ipaddress or '')[:45],
        useragent=str(useragent or '')[:255],
        request_data=json.dumps(request_data, ensure_ascii=False) if request_data is not None else None,
        timecreated=int(now),
    )
    db.add(row)
    db.commit()
    return row


def log_security_event(
    db: Session,
    *,
    userid: int,
    companyid: int,
    event: str,
    now: int,
    ipaddress: str = '',
    details: dict | None = None,
) -> RequestLog:
    return log_api_access(
        db,
        userid=userid,
        companyid=companyid,
        endpoint=f'{SECURITY_PREFIX}{event}',
        now=now,
        ipaddress=ipaddress,
        request_data=details,
    )


def count_requests_since(db: Session, userid: int, since: int) -> int:
    """API calls only; security events do not consume quota."""
    return int(
        db.query(func.count(RequestLog.id))
        .filter(
            RequestLog.userid == userid,
            RequestLog.timecreated >= since,
            ~RequestLog.endpoint.like(f'{SECURITY_PREFIX}%'),
        )
        .scalar()
        or 0
    )


def cleanup_logs(db: Session, older_than_days: int, now: int) -> int:
    cutoff = int(now) - max(1, int(older_than_days)) * 86400
    deleted = db.query(RequestLog).filter(RequestLog.timecreated < cutoff).delete(synchronize_session=False)
    db.commit()
    return int(deleted or 0)


def usage_stats(db: Session, companyid: int | None, days: int, now: int) -> dict:
    since = int(now) - max(1, int(days)) * 86400
    base = db.query(RequestLog).filter(RequestLog.timecreated >= since)
    if companyid:
        base = base.filter(RequestLog.companyid == companyid)
    api_calls = base.filter(~RequestLog.endpoint.like(f'{SECURITY_PREFIX}%'))
    total = api_calls.count()
    unique_users = int(api_calls.with_entities(func.count(func.distinct(RequestLog.userid))).scalar() or 0)
    last = api_calls.with_entities(func.max(RequestLog.timecreated)).scalar()
    security_events = base.filter(RequestLog.endpoint.like(f'{SECURITY_PREFIX}%')).count()
    return {
        'days': int(days),
        'total_calls': int(total),
        'unique_users': unique_users,
        'security_events': int(security_events),
        'last_access': int(last) if last else None,
    }
