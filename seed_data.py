#!/usr/bin/env python3

from datetime import date, timedelta

from src.database import SessionLocal, init_db
from src.models import Activity, ActivityPackage, Offer, Booking

def create_seed_data():
    init_db()
    db = SessionLocal()

    try:
        print("🚀 Creating seed data for the activity booking engine...")

        # Clear existing data (in reverse dependency order)
        print("Clearing existing data...")
        db.query(Booking).delete()
        db.query(Offer).delete()
        db.query(ActivityPackage).delete()
        db.query(Activity).delete()

        # 1. Create Activities
        print("Creating activities...")
        activities = [
            Activity(
                title="Sigiriya Rock Fortress Climb",
                location="Sigiriya",
                image="https://images.example.com/sigiriya.jpg",
                description="Guided morning climb of the Lion Rock with the frescoes and mirror wall.",
                availability=20
            ),
            Activity(
                title="Yala Safari",
                location="Yala National Park",
                image="https://images.example.com/yala.jpg",
                description="Half-day jeep safari through Block 1 of Yala National Park.",
                availability=12
            ),
            Activity(
                title="Kandy Cultural Show",
                location="Kandy",
                image="https://images.example.com/kandy.jpg",
                description="Evening performance of traditional Kandyan dance and drumming.",
                availability=50
            ),
        ]
        db.add_all(activities)
        db.flush()

        # 2. Create Packages
        print("Creating packages...")
        sigiriya, yala, kandy = activities
        packages = [
            # Explicit rates for every category
            ActivityPackage(
                activity_id=sigiriya.id, name="Standard Climb", base_rate=5000,
                price_foreign_adult=5000, price_foreign_kid=2500,
                price_local_adult=1500, price_local_kid=750,
                key_includes=["Entrance ticket", "Guide", "Bottled water"]
            ),
            # Category rates derived from the base rate
            ActivityPackage(
                activity_id=sigiriya.id, name="Sunrise Climb", base_rate=6500,
                key_includes=["Entrance ticket", "Guide", "Breakfast box"]
            ),
            ActivityPackage(
                activity_id=yala.id, name="Half-Day Jeep Safari", base_rate=12000,
                price_foreign_adult=12000, price_local_adult=6000,
                key_includes=["Jeep", "Tracker", "Park fees"]
            ),
            ActivityPackage(
                activity_id=kandy.id, name="Reserved Seating", base_rate=1000,
                key_includes=["Reserved seat", "Programme"]
            ),
        ]
        db.add_all(packages)
        db.flush()

        # 3. Create Offers
        print("Creating offers...")
        today = date.today()
        offers = [
            Offer(
                title="Early Bird 10%", discount_percentage=10, active=True,
                activity_id=sigiriya.id, start_date=today - timedelta(days=7),
                end_date=today + timedelta(days=30),
                selected_packages=[packages[0].id, packages[1].id], created_by="admin@tickets.lk"
            ),
            Offer(
                title="Safari Season 15%", discount_percentage=15, active=True,
                activity_id=yala.id, start_date=today,
                end_date=today + timedelta(days=60),
                selected_packages=[packages[2].id], created_by="admin@tickets.lk"
            ),
            # Expired; never resolved
            Offer(
                title="Festival Week 20%", discount_percentage=20, active=True,
                activity_id=kandy.id, start_date=today - timedelta(days=30),
                end_date=today - timedelta(days=1),
                selected_packages=[packages[3].id], created_by="admin@tickets.lk"
            ),
        ]
        db.add_all(offers)

        # Commit all changes
        db.commit()
        print("✅ Successfully created seed data!")
        print(f"Created:")
        print(f"  - {len(activities)} activities")
        print(f"  - {len(packages)} packages")
        print(f"  - {len(offers)} offers")

    except Exception as e:
        print(f"❌ Error creating seed data: {e}")
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    create_seed_data()
