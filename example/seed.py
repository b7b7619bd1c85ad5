from datetime import datetime, timedelta
from decimal import Decimal

from backend.app.auth import hash_password
from shared.database import Base, SessionLocal, engine
from shared.models import Category, Event, EventStatus, User, UserRole, Venue, utcnow

CATEGORIES = [
    ("Music", "#8B5CF6"),
    ("Technology", "#06B6D4"),
    ("Sports", "#10B981"),
    ("Arts & Culture", "#F59E0B"),
    ("Food & Drink", "#EF4444"),
    ("Business", "#3B82F6"),
    ("Education", "#6366F1"),
    ("Health & Wellness", "#EC4899"),
]

VENUES = [
    ("Grand Concert Hall", "123 Music Avenue, Downtown, New York, NY 10001, USA", 40.7589, -73.9851, 2000),
    ("Tech Innovation Center", "456 Innovation Drive, San Francisco, CA 94105, USA", 37.7749, -122.4194, 500),
    ("City Sports Arena", "789 Sports Boulevard, Los Angeles, CA 90210, USA", 34.0522, -118.2437, 15000),
    ("Modern Art Gallery", "321 Art District, Cultural Quarter, Chicago, IL 60601, USA", 41.8781, -87.6298, 300),
    ("Culinary Institute", "654 Food Street, Gourmet District, Miami, FL 33101, USA", 25.7617, -80.1918, 150),
    ("Business Conference Center", "987 Business Park, Houston, TX 77001, USA", 29.7604, -95.3698, 800),
]

# name, description, venue index, days ahead, start hour, hours, price, categories
EVENTS = [
    ("Jazz Night at Grand Concert Hall",
     "An evening of smooth jazz featuring local and international artists.",
     0, 7, 19, 3, "45.00", ["Music"]),
    ("Tech Startup Pitch Competition",
     "Watch innovative startups pitch their ideas to a panel of investors and industry experts.",
     1, 14, 9, 8, "25.00", ["Technology", "Business"]),
    ("Basketball Championship Final",
     "The ultimate showdown between the city's top basketball teams.",
     2, 21, 15, 3, "75.00", ["Sports"]),
    ("Contemporary Art Exhibition Opening",
     "Opening night of a contemporary exhibition featuring emerging local artists.",
     3, 10, 18, 3, None, ["Arts & Culture"]),
    ("Wine Tasting & Food Pairing Workshop",
     "Learn wine tasting techniques and food pairings from expert sommeliers.",
     4, 5, 16, 3, "85.00", ["Food & Drink", "Education"]),
    ("Free Community Yoga Class",
     "A free outdoor yoga session suitable for all levels. Bring your own mat.",
     0, 3, 9, 1.5, None, ["Health & Wellness"]),
    ("Local Food Truck Festival",
     "Sample food from the city's best food trucks, with live music for the family.",
     2, 18, 11, 9, "15.00", ["Food & Drink"]),
    ("AI & Machine Learning Workshop",
     "Hands-on workshop on practical machine learning. No prior experience required.",
     1, 25, 13, 4, "95.00", ["Technology", "Education"]),
]

USERS = [
    ("System Administrator", "admin@example.com", UserRole.ADMIN),
    ("Event Organizer", "organizer@example.com", UserRole.ORGANIZER),
    ("Test User", "test@example.com", UserRole.PUBLIC),
]


def _day_at(days_ahead: int, hour: int) -> datetime:
    return (utcnow() + timedelta(days=days_ahead)).replace(hour=hour, minute=0, second=0, microsecond=0)


def seed(password: str = "Password123") -> None:
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()

    if session.query(Category).count():
        print("Database already seeded")
        session.close()
        return

    categories = {name: Category(name=name, color=color) for name, color in CATEGORIES}
    venues = [
        Venue(name=name, address=address, latitude=latitude, longitude=longitude, capacity=capacity)
        for name, address, latitude, longitude, capacity in VENUES
    ]
    users = {
        role: User(name=name, email=email, password_hash=hash_password(password), role=role)
        for name, email, role in USERS
    }
    session.add_all([*categories.values(), *venues, *users.values()])

    for name, description, venue_index, days_ahead, hour, hours, price, category_names in EVENTS:
        start = _day_at(days_ahead, hour)
        event = Event(
            name=name,
            description=description,
            start_date_time=start,
            end_date_time=start + timedelta(hours=hours),
            venue=venues[venue_index],
            organizer=users[UserRole.ORGANIZER],
            ticket_price=Decimal(price) if price else None,
            is_free=price is None,
            status=EventStatus.APPROVED,
            approved_at=utcnow(),
        )
        event.categories = [categories[category] for category in category_names]
        session.add(event)

    session.commit()
    session.close()
    print(f"Seeded {len(CATEGORIES)} categories, {len(VENUES)} venues, {len(USERS)} users and {len(EVENTS)} events")


if __name__ == "__main__":
    import sys
    seed(*sys.argv[1:2])
