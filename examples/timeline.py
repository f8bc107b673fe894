#!/usr/bin/env python3
import os
import sys

from dotenv import load_dotenv

from afterspace import Backend, Settings, configure_logging, trace_context

load_dotenv()
settings = Settings.from_env()
configure_logging(settings.log_level)

USER = os.environ.get("USER_ID", "u-ada")
views = sys.argv[1:] or ["past", "upcoming", "interested"]

backend = Backend.from_settings(settings)
with trace_context(principal=USER):
    for view in views:
        experiences = backend.filter_experiences(USER, view)
        print(f"{view} for {USER}:")
        for e in experiences:
            print(f"  {e.experience_date} {e.start_time or '--:--'}  {e.title} ({e.experience_id})")
