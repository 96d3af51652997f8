"""Read-only mirrors of the host LMS tables.

The reporting service never writes these; they exist so queries can be
composed with the ORM and so tests can seed a realistic source of truth.
All times are Unix seconds, 0 meaning "not set".
"""
from sqlalchemy import BigInteger, Column, Index, Integer, SmallInteger, String

from progress_api.db.base import Base

# Front-page pseudo course of the host; never reported.
SITE_COURSE_ID = 1


class LmsUser(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    username = Column(String(100), nullable=False, default='')
    firstname = Column(String(100), nullable=False, default='')
    lastname = Column(String(100), nullable=False, default='')
    email = Column(String(100), nullable=False, default='')
    deleted = Column(SmallInteger, nullable=False, default=0)
    suspended = Column(SmallInteger, nullable=False, default=0)


class Company(Base):
    __tablename__ = 'companies'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, default='')
    shortname = Column(String(100), nullable=False, default='')


class CompanyUser(Base):
    __tablename__ = 'company_users'

    id = Column(Integer, primary_key=True)
    companyid = Column(Integer, nullable=False, index=True)
    userid = Column(Integer, nullable=False, index=True)


class Course(Base):
    __tablename__ = 'courses'

    id = Column(Integer, primary_key=True)
    fullname = Column(String(254), nullable=False, default='')
    shortname = Column(String(255), nullable=False, default='')
    visible = Column(SmallInteger, nullable=False, default=1)


class CompanyCourse(Base):
    __tablename__ = 'company_courses'

    id = Column(Integer, primary_key=True)
    companyid = Column(Integer, nullable=False, index=True)
    courseid = Column(Integer, nullable=False, index=True)


class Enrol(Base):
    __tablename__ = 'enrol'

    id = Column(Integer, primary_key=True)
    courseid = Column(Integer, nullable=False, index=True)
    enrol = Column(String(20), nullable=False, default='manual')
    status = Column(SmallInteger, nullable=False, default=0)


class UserEnrolment(Base):
    __tablename__ = 'user_enrolments'

    id = Column(Integer, primary_key=True)
    enrolid = Column(Integer, nullable=False, index=True)
    userid = Column(Integer, nullable=False, index=True)
    # 0 = active
    status = Column(SmallInteger, nullable=False, default=0)
    timecreated = Column(BigInteger, nullable=False, default=0)
    timemodified = Column(BigInteger, nullable=False, default=0, index=True)


class CourseCompletion(Base):
    __tablename__ = 'course_completions'
    __table_args__ = (Index('ix_course_completions_user_course', 'userid', 'course'),)

    id = Column(Integer, primary_key=True)
    userid = Column(Integer, nullable=False)
    course = Column(Integer, nullable=False)
    timeenrolled = Column(BigInteger, nullable=False, default=0)
    timestarted = Column(BigInteger, nullable=False, default=0)
    timecompleted = Column(BigInteger, nullable=True)
    timemodified = Column(BigInteger, nullable=False, default=0, index=True)


class CourseModule(Base):
    __tablename__ = 'course_modules'

    id = Column(Integer, primary_key=True)
    course = Column(Integer, nullable=False, index=True)


class CourseModuleCompletion(Base):
    __tablename__ = 'course_modules_completion'
    __table_args__ = (Index('ix_cmc_user_module', 'userid', 'coursemoduleid'),)

    id = Column(Integer, primary_key=True)
    coursemoduleid = Column(Integer, nullable=False)
    userid = Column(Integer, nullable=False)
    # 0 incomplete, 1 complete, 2 complete-pass, 3 complete-fail
    completionstate = Column(SmallInteger, nullable=False, default=0)
    timemodified = Column(BigInteger, nullable=False, default=0, index=True)


class ExternalToken(Base):
    __tablename__ = 'external_tokens'

    id = Column(Integer, primary_key=True)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    userid = Column(Integer, nullable=False, index=True)
    service = Column(String(100), nullable=False)
    # 0 = never expires
    validuntil = Column(BigInteger, nullable=False, default=0)
    timecreated = Column(BigInteger, nullable=False, default=0)
