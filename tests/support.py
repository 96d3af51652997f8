"""Shared fixtures: an in-memory host database and seed helpers."""
import os
import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / 'backend'))

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('JWT_SECRET_KEY', 'test_secret_key')

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import progress_api.models  # noqa: E402,F401
from progress_api.core.config import settings  # noqa: E402
from progress_api.core.env import ReportingEnv  # noqa: E402
from progress_api.core.security import create_access_token, hash_token  # noqa: E402
from progress_api.db.base import Base  # noqa: E402
from progress_api.models.source import (  # noqa: E402
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

# 2025-10-09, mid-morning in most zones
NOW = 1760000000

test_engine = create_engine(
    'sqlite://',
    connect_args={'check_same_thread': False},
    poolclass=StaticPool,
)
TestSession = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeClock:
    def __init__(self, start: int = NOW) -> None:
        self.value = int(start)

    def __call__(self) -> int:
        return self.value

    def advance(self, seconds: int) -> int:
        self.value += int(seconds)
        return self.value


def make_settings(**overrides):
    return settings.model_copy(update=overrides)


class ReportingTestCase(unittest.TestCase):
    """Fresh schema, session and clock per test."""

    settings_overrides: dict = {}

    def setUp(self):
        Base.metadata.drop_all(bind=test_engine)
        Base.metadata.create_all(bind=test_engine)
        self.db = TestSession()
        self.clock = FakeClock()
        self.settings = make_settings(**self.settings_overrides)
        self.env = ReportingEnv(db=self.db, settings=self.settings, clock=self.clock)

    def tearDown(self):
        self.db.rollback()
        self.db.close()


def seed_company(db, companyid=10, name='Acme Training'):
    db.add(Company(id=companyid, name=name, shortname=name.split()[0].lower()))
    db.commit()
    return companyid


def seed_user(db, userid, companyid, firstname='Ana', lastname='Diaz', email=None, deleted=0, suspended=0):
    db.add(
        LmsUser(
            id=userid,
            username=f'user{userid}',
            firstname=firstname,
            lastname=lastname,
            email=email or f'user{userid}@example.com',
            deleted=deleted,
            suspended=suspended,
        )
    )
    if companyid:
        db.add(CompanyUser(companyid=companyid, userid=userid))
    db.commit()
    return userid


def seed_course(db, courseid, companyid, fullname=None, visible=1):
    db.add(Course(id=courseid, fullname=fullname or f'Course {courseid}', shortname=f'c{courseid}', visible=visible))
    if companyid:
        db.add(CompanyCourse(companyid=companyid, courseid=courseid))
    db.add(Enrol(courseid=courseid, enrol='manual', status=0))
    db.commit()
    return courseid


def enrol_user(db, userid, courseid, timecreated=NOW - 86400, status=0, timemodified=None):
    enrol = db.query(Enrol).filter(Enrol.courseid == courseid).first()
    row = UserEnrolment(
        enrolid=enrol.id,
        userid=userid,
        status=status,
        timecreated=timecreated,
        timemodified=timecreated if timemodified is None else timemodified,
    )
    db.add(row)
    db.commit()
    return row


def complete_course(db, userid, courseid, timecompleted, timestarted=0, timemodified=None):
    row = CourseCompletion(
        userid=userid,
        course=courseid,
        timeenrolled=0,
        timestarted=timestarted,
        timecompleted=timecompleted,
        timemodified=timecompleted if timemodified is None else timemodified,
    )
    db.add(row)
    db.commit()
    return row


def add_module(db, courseid):
    module = CourseModule(course=courseid)
    db.add(module)
    db.commit()
    return module.id


def complete_module(db, userid, moduleid, state=1, timemodified=NOW - 3600):
    row = CourseModuleCompletion(coursemoduleid=moduleid, userid=userid, completionstate=state, timemodified=timemodified)
    db.add(row)
    db.commit()
    return row


def issue_token(db, userid, raw='a' * 32, service=None, validuntil=0):
    db.add(
        ExternalToken(
            token_hash=hash_token(raw),
            userid=userid,
            service=service or settings.api_service_name,
            validuntil=validuntil,
            timecreated=NOW - 86400,
        )
    )
    db.commit()
    return raw


def operator_headers(role='admin', sub='ops'):
    return {'Authorization': f"Bearer {create_access_token({'sub': sub, 'role': role})}"}


class ApiTestCase(ReportingTestCase):
    """TestClient whose requests share the test engine, settings and clock."""

    def setUp(self):
        super().setUp()
        from fastapi.testclient import TestClient

        from progress_api.core.deps import get_env
        from progress_api.db.session import get_db
        from progress_api.main import app

        def override_db():
            db = TestSession()
            try:
                yield db
            finally:
                db.close()

        def override_env():
            db = TestSession()
            try:
                yield ReportingEnv(db=db, settings=self.settings, clock=self.clock)
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_db
        app.dependency_overrides[get_env] = override_env
        self.addCleanup(app.dependency_overrides.clear)
        self.client = TestClient(app)
