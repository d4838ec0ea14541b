import os

os.environ["DATABASE_URL"] = "sqlite://"

from datetime import date, datetime, time
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from busline.database import Base, get_db
from busline.main import app
from busline.models import User, SubAdminDistrict, Schedule, RouteStop, GovtBeneficiary, Setting, DiscountedDistrict
from busline.admin.schemas import SystemConfig
from busline.auth.schemas import CallerIdentity, UserRole
from busline.auth.utils import create_access_token

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

SCHEDULE_ID = "HR-ROH-CHD"
RUN_DATE = date(2030, 1, 10)

@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)

@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

@pytest.fixture
def now():
    """Two hours before the first run of the seeded schedule leaves Rohtak"""
    return datetime.combine(RUN_DATE, time(4, 0))

@pytest.fixture
def config():
    return SystemConfig(
        version=1,
        is_booking_system_online=True,
        is_free_booking_enabled=True,
        is_discount_system_enabled=True,
        is_cancellation_enabled=True,
        child_discount_percentage=Decimal("40"),
        senior_discount_percentage=Decimal("50"),
        discount_districts=frozenset({"Rohtak"})
    )

@pytest.fixture
def users(db):
    rows = [
        User(id="admin-1", full_name="System Admin", phone="9000000001", role="ADMIN"),
        User(id="subadmin-1", full_name="Rohtak Operator", phone="9000000002", role="SUB_ADMIN"),
        User(id="user-1", full_name="Asha Devi", phone="9000000003", role="USER"),
        User(id="user-2", full_name="Ravi Kumar", phone="9000000004", role="USER"),
    ]
    db.add_all(rows)
    db.flush()
    db.add(SubAdminDistrict(user_id="subadmin-1", district="Rohtak"))
    db.commit()
    return {user.id: user for user in rows}

@pytest.fixture
def admin():
    return CallerIdentity(user_id="admin-1", full_name="System Admin", role=UserRole.ADMIN)

@pytest.fixture
def sub_admin():
    return CallerIdentity(
        user_id="subadmin-1",
        full_name="Rohtak Operator",
        role=UserRole.SUB_ADMIN,
        assigned_districts=["Rohtak"]
    )

@pytest.fixture
def passenger():
    return CallerIdentity(user_id="user-1", full_name="Asha Devi", role=UserRole.USER)

@pytest.fixture
def other_passenger():
    return CallerIdentity(user_id="user-2", full_name="Ravi Kumar", role=UserRole.USER)

def auth_headers(user_id):
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}

def add_schedule(db, schedule_id, stops, seat_layout="2x2", booking_enabled=True):
    """stops: (name, arrival, departure, cumulative fare) in travel order"""
    schedule = Schedule(
        id=schedule_id,
        bus_name=f"Bus {schedule_id}",
        seat_layout=seat_layout,
        booking_enabled=booking_enabled
    )
    schedule.stops = [
        RouteStop(
            stop_name=name,
            stop_order=order,
            arrival_time=arrival,
            departure_time=departure,
            fare=Decimal(str(fare))
        )
        for order, (name, arrival, departure, fare) in enumerate(stops)
    ]
    db.add(schedule)
    db.commit()
    return schedule

@pytest.fixture
def schedule(db, users):
    return add_schedule(db, SCHEDULE_ID, [
        ("Rohtak", None, time(6, 0), 0),
        ("Gohana", time(6, 50), time(7, 0), 50),
        ("Panipat", time(7, 50), time(8, 0), 100),
        ("Chandigarh", time(11, 0), time(11, 10), 250),
    ])

@pytest.fixture
def beneficiary(db, users):
    row = GovtBeneficiary(
        id="bene-1",
        registration_number="HR2024000001",
        phone="9000000003",
        ticket_claimed=False
    )
    db.add(row)
    db.commit()
    return row

@pytest.fixture
def enabled_settings(db):
    """Persisted settings matching the `config` fixture, for API tests"""
    for key in ("isBookingSystemOnline", "isFreeBookingEnabled", "isDiscountSystemEnabled", "isCancellationEnabled"):
        db.add(Setting(key=key, value="true"))
    db.add(DiscountedDistrict(district_name="Rohtak"))
    db.commit()
