"""Per-(user, course) progress derived straight from the host LMS tables.

One join query feeds three callers: the sync engine (one key at a time),
the bootstrap populate (batched) and the API fallback (paginated). The
SQL only aggregates; ``derive_progress`` turns an aggregate row into the
reporting shape so the rules live in one readable place.
"""
from __future__ import annotations

from typing import Any, Iterable, Mapping

from sqlalchemy import and_, case, func, or_
from sqlalchemy.orm import Query, Session

from progress_api.models.reporting import (
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_NOT_ENROLLED,
    STATUS_NOT_STARTED,
)
from progress_api.models.source import (
    SITE_COURSE_ID,
    CompanyCourse,
    CompanyUser,
    Course,
    CourseCompletion,
    CourseModule,
    CourseModuleCompletion,
    Enrol,
    LmsUser,
    UserEnrolment,
)

COMPLETION_STATE_COMPLETE = 1
ORDER_BY_KEY = 'key'
ORDER_BY_NAME = 'name'


def _active_enrolments(db: Session):
    return (
        db.query(
            UserEnrolment.userid.label('userid'),
            Enrol.courseid.label('courseid'),
            func.min(UserEnrolment.timecreated).label('enrolled_at'),
        )
        .join(Enrol, Enrol.id == UserEnrolment.enrolid)
        .filter(UserEnrolment.status == 0)
        .group_by(UserEnrolment.userid, Enrol.courseid)
        .subquery('active_enrolments')
    )


def _module_progress(db: Session):
    state = CourseModuleCompletion.completionstate
    is_complete = state == COMPLETION_STATE_COMPLETE
    return (
        db.query(
            CourseModuleCompletion.userid.label('userid'),
            CourseModule.course.label('courseid'),
            func.max(case((is_complete, CourseModuleCompletion.timemodified), else_=None)).label('module_completed_at'),
            func.avg(case((is_complete, 100.0), else_=0.0)).label('module_pct'),
            func.sum(case((is_complete, 1), else_=0)).label('modules_completed'),
            func.sum(case((state > 0, 1), else_=0)).label('modules_touched'),
        )
        .join(CourseModule, CourseModule.id == CourseModuleCompletion.coursemoduleid)
        .group_by(CourseModuleCompletion.userid, CourseModule.course)
        .subquery('module_progress')
    )


def progress_query(
    db: Session,
    companyid: int,
    *,
    userid: int | None = None,
    courseid: int | None = None,
    course_ids: Iterable[int] | None = None,
    completed_after: int | None = None,
    order: str = ORDER_BY_KEY,
) -> Query:
    """Active enrolments of company users on visible company courses."""
    enrolments = _active_enrolments(db)
    modules = _module_progress(db)
    query = (
        db.query(
            LmsUser.id.label('userid'),
            LmsUser.firstname.label('firstname'),
            LmsUser.lastname.label('lastname'),
            LmsUser.email.label('email'),
            Course.id.label('courseid'),
            Course.fullname.label('coursename'),
            CompanyUser.companyid.label('companyid'),
            enrolments.c.enrolled_at,
            CourseCompletion.timestarted.label('completion_started_at'),
            CourseCompletion.timecompleted.label('completion_completed_at'),
            modules.c.module_completed_at,
            modules.c.module_pct,
            modules.c.modules_completed,
            modules.c.modules_touched,
        )
        .select_from(LmsUser)
        .join(CompanyUser, CompanyUser.userid == LmsUser.id)
        .join(enrolments, enrolments.c.userid == LmsUser.id)
        .join(Course, Course.id == enrolments.c.courseid)
        .join(
            CompanyCourse,
            and_(CompanyCourse.courseid == Course.id, CompanyCourse.companyid == CompanyUser.companyid),
        )
        .outerjoin(
            CourseCompletion,
            and_(CourseCompletion.userid == LmsUser.id, CourseCompletion.course == Course.id),
        )
        .outerjoin(modules, and_(modules.c.userid == LmsUser.id, modules.c.courseid == Course.id))
        .filter(
            CompanyUser.companyid == companyid,
            LmsUser.deleted == 0,
            LmsUser.suspended == 0,
            Course.visible == 1,
            Course.id != SITE_COURSE_ID,
        )
    )
    if userid is not None:
        query = query.filter(LmsUser.id == userid)
    if courseid is not None:
        query = query.filter(Course.id == courseid)
    if course_ids is not None:
        query = query.filter(Course.id.in_(list(course_ids)))
    if completed_after is not None:
        query = query.filter(
            or_(
                CourseCompletion.timecompleted > completed_after,
                CourseCompletion.timecompleted == 0,
                CourseCompletion.timecompleted.is_(None),
            )
        )
    if order == ORDER_BY_NAME:
        query = query.order_by(LmsUser.lastname.asc(), LmsUser.firstname.asc(), Course.fullname.asc())
    else:
        query = query.order_by(LmsUser.id.asc(), Course.id.asc())
    return query


def derive_progress(row: Mapping[str, Any], enrolled: bool = True) -> dict[str, Any]:
    """Reporting fields for one aggregate row.

    - timecompleted: course completion time, else the latest completed module, else 0
    - timestarted: course start time, else the enrolment time, else 0
    - percentage: 100 once the course is complete, else the share of completed modules
    - status: completed > in_progress > not_started > not_enrolled
    """
    course_completed_at = int(row.get('completion_completed_at') or 0)
    module_completed_at = int(row.get('module_completed_at') or 0)
    modules_completed = int(row.get('modules_completed') or 0)
    modules_touched = int(row.get('modules_touched') or 0)

    timecompleted = course_completed_at or module_completed_at
    timestarted = int(row.get('completion_started_at') or 0) or int(row.get('enrolled_at') or 0)

    if course_completed_at > 0:
        percentage = 100.0
    else:
        percentage = float(row.get('module_pct') or 0.0)
    percentage = min(100.0, max(0.0, round(percentage, 2)))

    if course_completed_at > 0 or modules_completed > 0:
        status = STATUS_COMPLETED
    elif modules_touched > 0:
        status = STATUS_IN_PROGRESS
    elif enrolled:
        status = STATUS_NOT_STARTED
    else:
        status = STATUS_NOT_ENROLLED

    return {
        'userid': int(row['userid']),
        'courseid': int(row['courseid']),
        'companyid': int(row['companyid']),
        'firstname': str(row.get('firstname') or ''),
        'lastname': str(row.get('lastname') or ''),
        'email': str(row.get('email') or ''),
        'coursename': str(row.get('coursename') or ''),
        'timecompleted': timecompleted,
        'timestarted': timestarted,
        'percentage': percentage,
        'status': status,
    }


def fetch_progress(db: Session, companyid: int, *, limit: int | None = None, offset: int = 0, **filters) -> list[dict[str, Any]]:
    query = progress_query(db, companyid, **filters)
    if offset:
        query = query.offset(int(offset))
    if limit is not None:
        query = query.limit(int(limit))
    return [derive_progress(row._mapping) for row in query.all()]


def changed_keys(db: Session, companyid: int, since: int) -> set[tuple[int, int]]:
    """(userid, courseid) pairs of company users touched after ``since``.

    Three sources: course completions, module completions and enrolments.
    """
    keys: set[tuple[int, int]] = set()
    members = db.query(CompanyUser.userid).filter(CompanyUser.companyid == companyid).subquery('members')

    completions = (
        db.query(CourseCompletion.userid, CourseCompletion.course)
        .join(members, members.c.userid == CourseCompletion.userid)
        .filter(CourseCompletion.timemodified > since)
        .distinct()
    )
    modules = (
        db.query(CourseModuleCompletion.userid, CourseModule.course)
        .join(CourseModule, CourseModule.id == CourseModuleCompletion.coursemoduleid)
        .join(members, members.c.userid == CourseModuleCompletion.userid)
        .filter(CourseModuleCompletion.timemodified > since)
        .distinct()
    )
    enrolments = (
        db.query(UserEnrolment.userid, Enrol.courseid)
        .join(Enrol, Enrol.id == UserEnrolment.enrolid)
        .join(members, members.c.userid == UserEnrolment.userid)
        .filter(UserEnrolment.timemodified > since)
        .distinct()
    )
    for source in (completions, modules, enrolments):
        for userid, courseid in source.all():
            keys.add((int(userid), int(courseid)))
    return keys


def company_user_ids(db: Session, companyid: int) -> list[int]:
    rows = (
        db.query(CompanyUser.userid)
        .join(LmsUser, LmsUser.id == CompanyUser.userid)
        .filter(CompanyUser.companyid == companyid, LmsUser.deleted == 0, LmsUser.suspended == 0)
        .distinct()
        .order_by(CompanyUser.userid.asc())
        .all()
    )
    return [int(r[0]) for r in rows]
