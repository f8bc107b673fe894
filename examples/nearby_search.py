#!/usr/bin/env python3
import os

from dotenv import load_dotenv

from afterspace import Backend, Settings, configure_logging

load_dotenv()
settings = Settings.from_env()
configure_logging(settings.log_level)

LAT = float(os.environ.get("LAT", "40.7128"))
LNG = float(os.environ.get("LNG", "-74.0060"))
RADIUS = os.environ.get("RADIUS_KM")

backend = Backend.from_settings(settings)
hits = backend.find_nearby_experiences(LAT, LNG, float(RADIUS) if RADIUS else None)

print(f"Experiences near {LAT},{LNG}" + (f" within {RADIUS} km" if RADIUS else "") + ":")
for hit in hits:
    print(f"  {hit.distance_km:6.2f} km  {hit.title}  @ {hit.venue_name} ({hit.experience_id})")
if not hits:
    print("  nothing nearby")
