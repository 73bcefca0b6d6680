import os
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('ENABLE_APPOINTMENT_MAINTENANCE_JOB', 'false')

from backend.database import Base  # noqa: E402
from backend.models.appointment import Appointment  # noqa: E402
from backend.models.pet import Pet  # noqa: E402
from backend.models.user import User  # noqa: E402


def next_open_day(start: date | None = None) -> date:
    day = (start or date.today()) + timedelta(days=1)
    while day.weekday() == 6:
        day += timedelta(days=1)
    return day


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    counter = {'value': 0}

    def _make_user(role: str = 'user', name: str = 'Ana Gómez') -> User:
        counter['value'] += 1
        user = User(
            email=f'user{counter["value"]}@example.com',
            name=name,
            phone='+57 300 000 0000',
            hashed_password='',
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_pet(db):
    def _make_pet(owner: User, name: str = 'Luna') -> Pet:
        pet = Pet(name=name, species='Perro', breed='Labrador', owner_id=owner.id)
        db.add(pet)
        db.commit()
        db.refresh(pet)
        return pet

    return _make_pet


@pytest.fixture
def make_appointment(db):
    def _make_appointment(
        pet: Pet,
        slot_date: date,
        slot_time: str = '09:00',
        status: str = 'pendiente',
        appointment_type: str = 'consulta',
    ) -> Appointment:
        appointment = Appointment(
            pet_id=pet.id,
            owner_id=pet.owner_id,
            appointment_type=appointment_type,
            date=slot_date,
            time=slot_time,
            reason='Control anual',
            status=status,
            notes='',
            created_at=datetime.now(),
            updated_at=datetime.now(),
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make_appointment


@pytest.fixture
def open_day() -> date:
    return next_open_day()
