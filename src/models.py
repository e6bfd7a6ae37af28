from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, Date, Text, ForeignKey, Float, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from src.database import Base

# ================================
# Activities & Packages
# ================================
class Activity(Base):
    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    location = Column(String(255), nullable=False)
    image = Column(String(500))
    description = Column(Text)
    availability = Column(Integer, nullable=False, default=0)  # Spots per date
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    packages = relationship("ActivityPackage", back_populates="activity")

class ActivityPackage(Base):
    __tablename__ = "activity_packages"

    id = Column(Integer, primary_key=True, index=True)
    activity_id = Column(Integer, ForeignKey("activities.id"), nullable=False)
    name = Column(String(255), nullable=False)
    base_rate = Column(Float, nullable=False)
    price_foreign_adult = Column(Float)
    price_foreign_kid = Column(Float)
    price_local_adult = Column(Float)
    price_local_kid = Column(Float)
    key_includes = Column(JSON)

    # Relationships
    activity = relationship("Activity", back_populates="packages")

# ================================
# Offers
# ================================
class Offer(Base):
    __tablename__ = "offers"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    discount_percentage = Column(Float)
    active = Column(Boolean, default=True)
    activity_id = Column(Integer, ForeignKey("activities.id"))
    start_date = Column(Date)
    end_date = Column(Date)
    selected_packages = Column(JSON)  # List of package ids
    created_by = Column(String(255))

# ================================
# Bookings
# ================================
class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(64), primary_key=True)  # TICK-{timestamp}
    order_number = Column(String(64), unique=True)
    user_email = Column(String(255), nullable=False, index=True)
    activity_id = Column(Integer, nullable=False, index=True)
    package_id = Column(BigInteger)
    package_name = Column(String(255))
    title = Column(String(255), nullable=False)
    location = Column(String(255), nullable=False)
    booking_date = Column(String(32), nullable=False, index=True)
    booking_time = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")
    base_price = Column(Float)
    service_fee = Column(Float)
    tax = Column(Float)
    discount_amount = Column(Float, default=0.0)
    total_price = Column(Float, nullable=False)
    total_persons = Column(Integer, nullable=False)
    people_counts = Column(JSON)
    payment_method = Column(String(50))
    contact_email = Column(String(500))
    contact_phone = Column(String(20))
    ticket_instructions = Column(Text)
    itinerary = Column(Text)
    cancellation_policy = Column(Text)
    qr_code_data = Column(Text)
    idempotency_key = Column(String(255), index=True)
