#!/usr/bin/env python3

from datetime import time
from decimal import Decimal

from busline.database import Base, SessionLocal, engine
from busline.models import (
    User, SubAdminDistrict, Schedule, RouteStop, Setting, DiscountedDistrict,
    GovtBeneficiary, PassengerDetail, BookedSeat, Booking
)
from busline.admin.settings_service import SETTING_DEFAULTS
from busline.auth.utils import create_access_token

SCHEDULES = [
    {
        "id": "HR-ROH-CHD-0600",
        "bus_name": "Haryana Roadways Express",
        "seat_layout": "2x2",
        "stops": [
            ("Rohtak", None, time(6, 0), 0),
            ("Gohana", time(6, 50), time(7, 0), 50),
            ("Panipat", time(7, 50), time(8, 0), 100),
            ("Chandigarh", time(11, 0), time(11, 10), 250),
        ],
    },
    {
        "id": "HR-HIS-DEL-2200",
        "bus_name": "Hisar Night Service",
        "seat_layout": "2x3",
        "stops": [
            ("Hisar", None, time(22, 0), 0),
            ("Rohtak", time(23, 40), time(23, 50), 120),
            ("Bahadurgarh", time(0, 50), time(1, 0), 170),
            ("Delhi", time(1, 45), time(1, 50), 210),
        ],
    },
    {
        "id": "HR-KNL-AMB-0930",
        "bus_name": "Karnal Local",
        "seat_layout": "2x1",
        "stops": [
            ("Karnal", None, time(9, 30), 0),
            ("Kurukshetra", time(10, 10), time(10, 15), 45),
            ("Ambala", time(11, 0), time(11, 5), 90),
        ],
    },
]

def create_seed_data():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        print("Creating seed data for the bus booking system...")

        # Clear existing data (in reverse dependency order)
        print("Clearing existing data...")
        db.query(BookedSeat).delete()
        db.query(PassengerDetail).delete()
        db.query(Booking).delete()
        db.query(RouteStop).delete()
        db.query(Schedule).delete()
        db.query(SubAdminDistrict).delete()
        db.query(User).delete()
        db.query(GovtBeneficiary).delete()
        db.query(DiscountedDistrict).delete()
        db.query(Setting).delete()

        # 1. Settings
        print("Creating settings...")
        # Every toggle on for the demo; percentages keep their defaults
        settings_rows = [
            Setting(key=key, value="true" if value in ("true", "false") else value)
            for key, value in SETTING_DEFAULTS.items()
        ]
        db.add_all(settings_rows)
        db.add(DiscountedDistrict(district_name="Rohtak"))

        # 2. Users
        print("Creating users...")
        users = [
            User(id="admin-1", full_name="System Admin", phone="9000000001", role="ADMIN"),
            User(id="subadmin-1", full_name="Rohtak Operator", phone="9000000002", role="SUB_ADMIN"),
            User(id="user-1", full_name="Asha Devi", phone="9000000003", role="USER"),
        ]
        db.add_all(users)
        db.flush()
        db.add(SubAdminDistrict(user_id="subadmin-1", district="Rohtak"))

        # 3. Schedules and stops
        print("Creating schedules...")
        for data in SCHEDULES:
            schedule = Schedule(
                id=data["id"],
                bus_name=data["bus_name"],
                seat_layout=data["seat_layout"],
                booking_enabled=True
            )
            schedule.stops = [
                RouteStop(
                    stop_name=name,
                    stop_order=order,
                    arrival_time=arrival,
                    departure_time=departure,
                    fare=Decimal(fare)
                )
                for order, (name, arrival, departure, fare) in enumerate(data["stops"])
            ]
            db.add(schedule)

        # 4. Beneficiaries
        print("Creating beneficiaries...")
        db.add(GovtBeneficiary(
            id="bene-1",
            registration_number="HR2024000001",
            phone="9000000003",
            ticket_claimed=False
        ))

        # Commit all changes
        db.commit()
        print("Successfully created seed data!")
        print("Created:")
        print(f"  - {len(settings_rows)} settings")
        print(f"  - {len(users)} users")
        print(f"  - {len(SCHEDULES)} schedules")
        print("  - 1 beneficiary")
        print("Bearer tokens:")
        for user in users:
            print(f"  {user.role:10} {create_access_token({'sub': user.id})}")

    except Exception as e:
        print(f"Error creating seed data: {e}")
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    create_seed_data()
