from progress_api.models.reporting import (
    CacheEntry,
    CompanySetting,
    ReportingRecord,
    RequestLog,
    SyncLock,
    SyncRun,
    SyncStatus,
)
from progress_api.models.source import (
    Company,
    CompanyCourse,
    CompanyUser,
    Course,
    CourseCompletion,
    CourseModule,
    CourseModuleCompletion,
    Enrol,
    ExternalToken,
    LmsUser,
    UserEnrolment,
)

__all__ = [
    'CacheEntry',
    'CompanySetting',
    'ReportingRecord',
    'RequestLog',
    'SyncLock',
    'SyncRun',
    'SyncStatus',
    'Company',
    'CompanyCourse',
    'CompanyUser',
    'Course',
    'CourseCompletion',
    'CourseModule',
    'CourseModuleCompletion',
    'Enrol',
    'ExternalToken',
    'LmsUser',
    'UserEnrolment',
]
