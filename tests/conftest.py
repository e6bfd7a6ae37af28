import pytest
from datetime import date, datetime
from typing import Dict, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.database import Base, init_db
from src import models
from src.bookings.schemas import Booking, BookingStatus, CallerContext, ReservationRequest
from src.collaborators.base import BookingStore, CapacitySource, OfferSource
from src.collaborators.sql_store import SqlBookingStore
from src.exceptions import BookingNotFound
from src.pricing.schemas import HeadcountSelection, PriceBreakdown

TODAY = date(2025, 7, 1)
TRAVELER = "traveler@example.com"


class FakeCollaborators(CapacitySource, OfferSource, BookingStore):
    """In-memory capacity, offer and booking store double"""

    def __init__(self, total: int = 10, booked: int = 0, offer: Optional[Dict] = None):
        self.capacity = {"totalAvailability": total, "bookedCount": booked}
        self.offer = offer or {"hasOffer": False, "discountPercentage": 0}
        self.bookings: Dict[str, Booking] = {}
        self.created_by_key: Dict[tuple, str] = {}
        self.calls: List[str] = []

    def query_capacity(self, activity_id, package_id, date):
        self.calls.append("query_capacity")
        result = dict(self.capacity)
        result.setdefault("availableSpots", result["totalAvailability"] - result["bookedCount"])
        return result

    def query_offer(self, activity_id, package_id):
        self.calls.append("query_offer")
        return dict(self.offer)

    def create_reservation(self, request: ReservationRequest, context: CallerContext) -> Booking:
        self.calls.append("create_reservation")
        key = (context.user_email, request.idempotency_key)
        if request.idempotency_key and key in self.created_by_key:
            return self.bookings[self.created_by_key[key]]
        booking_id = f"TICK-{len(self.bookings) + 1}"
        booking = Booking(
            id=booking_id,
            order_number=f"ORD-{len(self.bookings) + 1}",
            activity_id=request.activity_id,
            package_id=request.package_id,
            package_name=request.package_name,
            title=request.activity_title,
            location=request.activity_location,
            booking_date=request.booking_date,
            status=BookingStatus.PENDING,
            price=request.price,
            people_counts=request.people_counts,
            total_persons=request.total_persons,
            payment_method=request.payment_method,
            contact_email=request.contact_email,
            user_email=context.user_email
        )
        self.bookings[booking_id] = booking
        if request.idempotency_key:
            self.created_by_key[key] = booking_id
        return booking

    def get_booking(self, booking_id, context):
        self.calls.append("get_booking")
        return self.find_booking(booking_id)

    def find_booking(self, booking_id):
        if booking_id not in self.bookings:
            raise BookingNotFound(booking_id)
        return self.bookings[booking_id]

    def list_bookings(self, context, status=None):
        self.calls.append("list_bookings")
        return [b for b in self.bookings.values() if status is None or b.status == status]

    def cancel_booking(self, booking_id, context):
        self.calls.append("cancel_booking")
        booking = self.find_booking(booking_id).model_copy(update={"status": BookingStatus.CANCELLED})
        self.bookings[booking_id] = booking
        return booking


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def caller():
    return CallerContext(user_email=TRAVELER, token="test-token")


@pytest.fixture
def fake():
    return FakeCollaborators()


@pytest.fixture
def make_booking():
    def _make(**overrides) -> Booking:
        data = dict(
            id="TICK-1753000000000",
            order_number="ORD-1753000000000",
            activity_id=1,
            package_id=11,
            package_name="Standard Climb",
            title="Sigiriya Rock Fortress Climb",
            location="Sigiriya",
            booking_date="2025-07-22",
            booking_time=datetime(2025, 7, 1, 9, 30),
            status=BookingStatus.CONFIRMED,
            price=PriceBreakdown(subtotal=2700, service_fee=135, tax=405, discount_amount=0, total=3240),
            people_counts=HeadcountSelection(foreign_adult=2, foreign_kids=1),
            total_persons=3,
            payment_method="Card",
            user_email=TRAVELER
        )
        data.update(overrides)
        return Booking(**data)
    return _make


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    init_db(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seeded_db(db):
    """One activity with 10 spots per date, two packages and a 10% offer"""
    activity = models.Activity(id=1, title="Sigiriya Rock Fortress Climb", location="Sigiriya", availability=10)
    db.add(activity)
    db.add_all([
        models.ActivityPackage(
            id=11, activity_id=1, name="Standard Climb", base_rate=1000,
            price_foreign_adult=1000, price_foreign_kid=700
        ),
        models.ActivityPackage(id=12, activity_id=1, name="Sunrise Climb", base_rate=1500),
    ])
    db.add(models.Offer(
        title="Early Bird", discount_percentage=10, active=True, activity_id=1,
        start_date=date(2025, 6, 1), end_date=date(2025, 7, 31), selected_packages=[11]
    ))
    db.commit()
    return db


@pytest.fixture
def sql_store(seeded_db):
    return SqlBookingStore(seeded_db, today=lambda: TODAY)


@pytest.fixture
def make_fake():
    return FakeCollaborators
