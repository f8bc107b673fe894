#!/usr/bin/env python3
from datetime import date, time, timedelta

from dotenv import load_dotenv

from afterspace import Backend, Settings, configure_logging, trace_context
from afterspace.keys import utcnow
from afterspace.models import Experience, ExperienceStatus, ExperienceType, PaymentDetails, UserProfile

load_dotenv()
settings = Settings.from_env()
configure_logging(settings.log_level)
backend = Backend.from_settings(settings)

today = utcnow().date()
HOST = "u-host"

EXPERIENCES = [
    # (id, title, type, location, lat, lng, days from today, start)
    ("e-jazz", "Jazz at the Village", ExperienceType.ENTERTAINMENT, "Blue Note", 40.7308, -74.0006, 10, time(20, 0)),
    ("e-ferry", "Harbor ferry tour", ExperienceType.TOUR, "Pier 11", 40.7033, -74.0070, -14, time(11, 0)),
    ("e-market", "Chelsea food market", ExperienceType.DINING, "Chelsea Market", 40.7424, -74.0060, 0, None),
    ("e-museum", "Brooklyn Museum late", ExperienceType.CULTURAL, "Brooklyn Museum", 40.6712, -73.9636, 21, time(18, 30)),
]

with trace_context(principal=HOST):
    backend.save_profile(UserProfile(user_id=HOST, city="New York", bio="I run things"))
    for eid, title, kind, location, lat, lng, offset, start in EXPERIENCES:
        backend.save_experience(
            Experience(
                experience_id=eid,
                title=title,
                type=kind,
                status=ExperienceStatus.PUBLISHED,
                location=location,
                city="New York",
                country="US",
                latitude=lat,
                longitude=lng,
                experience_date=today + timedelta(days=offset),
                start_time=start,
                price_per_person=25.0,
                currency="USD",
            ),
            principal=HOST,
        )

    group = backend.create_group("Friday crew", principal=HOST, member_user_ids=["u-ada", "u-lin"], group_id="g-friday")
    print("Group", group.group_id, "members", group.member_user_ids)
    print(backend.link_group_experiences(group.group_id, ["e-jazz", "e-market", "e-nope"], principal=HOST))

for user_id in ("u-ada", "u-lin"):
    with trace_context(principal=user_id):
        backend.save_profile(UserProfile(user_id=user_id, city="New York", date_of_birth=date(1990, 1, 1)))
        backend.mark_interest(user_id, "e-museum", True, principal=user_id)

with trace_context(principal="u-ada"):
    for eid in ("e-jazz", "e-ferry", "e-market"):
        backend.mark_payment("u-ada", eid, PaymentDetails(amount=25.0, currency="USD", payment_method="card"), principal="u-ada")

print("Seeded", len(EXPERIENCES), "experiences in", settings.table)
print("Attendance for e-jazz:", backend.group_attendance("g-friday", "e-jazz"))
