from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, Date, Time, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from busline.database import Base

# ================================
# Users & District Assignments
# ================================
class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(20), unique=True, nullable=False, index=True)
    email = Column(String(255))
    role = Column(String(20), nullable=False, default="USER")
    govt_exam_registration_number = Column(String(100), index=True)
    is_free_ticket_eligible = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    assigned_districts = relationship("SubAdminDistrict", back_populates="user", cascade="all, delete-orphan")
    bookings = relationship("Booking", back_populates="user")

class SubAdminDistrict(Base):
    __tablename__ = "sub_admin_districts"
    __table_args__ = (
        UniqueConstraint("district", name="uq_sub_admin_district"),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    district = Column(String(255), nullable=False)

    # Relationships
    user = relationship("User", back_populates="assigned_districts")

# ================================
# Schedules & Route Stops
# ================================
class Schedule(Base):
    __tablename__ = "schedules"

    id = Column(String(64), primary_key=True, index=True)
    bus_name = Column(String(255), nullable=False)
    seat_layout = Column(String(10), nullable=False)
    booking_enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    stops = relationship(
        "RouteStop",
        back_populates="schedule",
        order_by="RouteStop.stop_order",
        cascade="all, delete-orphan"
    )
    bookings = relationship("Booking", back_populates="schedule")

class RouteStop(Base):
    __tablename__ = "route_stops"
    __table_args__ = (
        UniqueConstraint("schedule_id", "stop_order", name="uq_route_stop_order"),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    schedule_id = Column(String(64), ForeignKey("schedules.id"), nullable=False, index=True)
    stop_name = Column(String(255), nullable=False)
    stop_order = Column(Integer, nullable=False)
    arrival_time = Column(Time)
    departure_time = Column(Time, nullable=False)
    fare = Column(Numeric(10, 2), nullable=False, default=0)

    # Relationships
    schedule = relationship("Schedule", back_populates="stops")

# ================================
# Bookings & Passenger Ledger
# ================================
class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    schedule_id = Column(String(64), ForeignKey("schedules.id"), nullable=False, index=True)
    origin = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    travel_date = Column(Date, index=True)
    fare = Column(Numeric(10, 2), nullable=False, default=0)
    original_fare = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(30), nullable=False, default="CONFIRMED", index=True)
    is_free_ticket = Column(Boolean, nullable=False, default=False)
    govt_exam_registration_number = Column(String(100))
    discount_type = Column(String(10), nullable=False, default="NONE")
    booking_date = Column(DateTime, nullable=False)

    # Relationships
    user = relationship("User", back_populates="bookings")
    schedule = relationship("Schedule", back_populates="bookings")
    passengers = relationship(
        "PassengerDetail",
        back_populates="booking",
        order_by="PassengerDetail.position",
        cascade="all, delete-orphan"
    )
    occupancies = relationship("BookedSeat", back_populates="booking", cascade="all, delete-orphan")

class PassengerDetail(Base):
    __tablename__ = "passenger_details"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    seat_id = Column(String(10), nullable=False)
    full_name = Column(String(255), nullable=False)
    category = Column(String(10), nullable=False, default="NORMAL", index=True)
    document_number = Column(String(12))
    fare = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(10), nullable=False, default="BOOKED", index=True)

    # Relationships
    booking = relationship("Booking", back_populates="passengers")

class BookedSeat(Base):
    """Live occupancy of one seat over one segment of one run.

    `origin_key` is the normalized boarding stop name. It is cleared when a
    schedule edit leaves the occupancy's segment unresolvable, so the unique
    constraint only covers occupancies that still hold their seat.
    """
    __tablename__ = "booked_seats"
    __table_args__ = (
        UniqueConstraint("schedule_id", "travel_date", "seat_id", "origin_key", name="uq_booked_seat_origin"),
    )

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    schedule_id = Column(String(64), ForeignKey("schedules.id"), nullable=False, index=True)
    travel_date = Column(Date, nullable=False)
    seat_id = Column(String(10), nullable=False)
    origin = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    origin_key = Column(String(255))

    # Relationships
    booking = relationship("Booking", back_populates="occupancies")

# ================================
# Free Ticket Beneficiaries
# ================================
class GovtBeneficiary(Base):
    __tablename__ = "govt_beneficiaries"

    id = Column(String(36), primary_key=True)
    registration_number = Column(String(100), unique=True, nullable=False, index=True)
    phone = Column(String(20), nullable=False)
    ticket_claimed = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

# ================================
# System Settings
# ================================
class Setting(Base):
    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(String(255), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class DiscountedDistrict(Base):
    __tablename__ = "discounted_districts"

    district_name = Column(String(255), primary_key=True)
