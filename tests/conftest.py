"""
Test configuration and fixtures
"""
import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from faker import Faker

# Set testing environment before the settings singleton is built
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///./test.db'
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['NOTIFICATION_BACKEND'] = 'log'

from academic_workflow.main import app
from academic_workflow.core.auth import create_access_token
from academic_workflow.core.database import Base, get_db
from academic_workflow.core.notifications import get_notifier
from academic_workflow.models.user import User, UserRole
from academic_workflow.services import assignments as assignment_service
from academic_workflow.services import classrooms as classroom_service

fake = Faker()


class RecordingNotifier:
    """Keeps every notification in memory"""

    def __init__(self):
        self.sent = []

    async def notify(self, recipient_id, title, message, category, related_id=None):
        self.sent.append({
            'recipient_id': recipient_id,
            'title': title,
            'message': message,
            'category': category,
            'related_id': related_id,
        })

    def titles_for(self, recipient_id):
        return [n['title'] for n in self.sent if n['recipient_id'] == recipient_id]


class FailingNotifier:
    async def notify(self, recipient_id, title, message, category, related_id=None):
        raise RuntimeError('notification backend unavailable')


def _enable_savepoints(engine):
    # pysqlite's own transaction handling breaks SAVEPOINT; take over BEGIN
    @event.listens_for(engine.sync_engine, 'connect')
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA journal_mode=WAL')
        cursor.close()

    @event.listens_for(engine.sync_engine, 'begin')
    def do_begin(conn):
        conn.exec_driver_sql('BEGIN')


@pytest.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    _enable_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
async def client(db_session: AsyncSession, notifier: RecordingNotifier) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database and notifier overrides"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


async def make_user(session: AsyncSession, role: UserRole, **overrides) -> User:
    user = User(
        name=overrides.pop('name', fake.name()),
        email=overrides.pop('email', fake.unique.email()),
        role=role.value,
        department=overrides.pop('department', 'Computer Science'),
        roll_number=overrides.pop('roll_number', None),
        **overrides
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


def auth_headers(user: User) -> dict:
    token = create_access_token({'sub': user.id, 'type': user.role})
    return {'Authorization': f'Bearer {token}'}


def future(days: int = 7) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


@pytest.fixture
async def teacher(db_session: AsyncSession) -> User:
    return await make_user(db_session, UserRole.TEACHER)


@pytest.fixture
async def other_teacher(db_session: AsyncSession) -> User:
    return await make_user(db_session, UserRole.TEACHER)


@pytest.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, UserRole.ADMIN)


@pytest.fixture
async def student(db_session: AsyncSession) -> User:
    return await make_user(db_session, UserRole.STUDENT, roll_number=fake.bothify('CS##??'))


@pytest.fixture
async def students(db_session: AsyncSession) -> list:
    return [
        await make_user(db_session, UserRole.STUDENT, roll_number=fake.bothify('CS##??'))
        for _ in range(3)
    ]


@pytest.fixture
async def classroom(db_session: AsyncSession, teacher: User):
    return await classroom_service.create_classroom(
        db_session, teacher.id, name='Data Structures', section='A', department='Computer Science'
    )


@pytest.fixture
async def enrolled_classroom(db_session: AsyncSession, classroom, students):
    for s in students:
        await classroom_service.join_by_code(db_session, s.id, classroom.code)
    return classroom


@pytest.fixture
async def draft_assignment(db_session: AsyncSession, teacher: User, enrolled_classroom):
    return await assignment_service.create_assignment(
        db_session,
        teacher.id,
        enrolled_classroom.id,
        {'title': 'Linked lists', 'description': 'Implement a deque', 'due_date': future(), 'max_points': 50}
    )


@pytest.fixture
async def published_assignment(db_session: AsyncSession, teacher: User, draft_assignment, notifier):
    result = await assignment_service.publish_assignment(
        db_session, teacher.id, draft_assignment.id, notifier=notifier
    )
    return result.assignment
