"""
Seed script -- populates the database with sample rides for reviewers.

Run after migrations:
    STORAGE_BACKEND=postgres python seed.py

Goes through the lifecycle engine, so every sample obeys the same rules as
the API.  Creates:
  - 6 posted rides around campus
  - 3 passenger requests, one of them accepted
  - 1 ride taken all the way to COMPLETED with a fare
"""

import asyncio

from campus_rides.config import settings
from campus_rides.domain.entities import Coordinates
from campus_rides.domain.enums import RespondAction
from campus_rides.infrastructure.geo import StraightLineGeoResolver
from campus_rides.services.container import build_services

MAIN_GATE = Coordinates(12.9915, 80.2337)

RIDES = [
    {"driver": "driver-01", "origin": "Main Gate", "to": (12.9822, 80.2180), "dest": "Velachery Station"},
    {"driver": "driver-02", "origin": "Hostel Zone", "to": (13.0067, 80.2206), "dest": "Guindy"},
    {"driver": "driver-03", "origin": "Library", "to": (13.0418, 80.2341), "dest": "T. Nagar"},
    {"driver": "driver-04", "origin": "Main Gate", "to": (12.9941, 80.1709), "dest": "Airport"},
    {"driver": "driver-05", "origin": "Sports Complex", "to": (13.0827, 80.2707), "dest": "Central Station"},
    {"driver": "driver-06", "origin": "Main Gate", "to": (12.9716, 80.2200), "dest": "Taramani"},
]


async def seed():
    services = await build_services(settings)
    engine = services.engine
    # sample data must not depend on external geo services
    engine.geo = StraightLineGeoResolver(settings.straight_line_speed_kmh)
    try:
        if await engine.list_rides():
            print("Database already seeded. Skipping.")
            return

        # ── Rides ─────────────────────────────────────────────────────
        posted = []
        for i, r in enumerate(RIDES):
            ride = await engine.post_ride(
                driver_id=r["driver"],
                origin=r["origin"],
                destination=r["dest"],
                phone_number=f"+91-90000-000{i:02d}",
                origin_coord=MAIN_GATE,
                destination_coord=Coordinates(*r["to"]),
            )
            posted.append(ride)
        print(f"  Posted {len(posted)} rides")

        # ── Requests ──────────────────────────────────────────────────
        await engine.request_ride(
            posted[0].id, "student-11", "+91-98000-00011", "12.9910,80.2330"
        )
        await engine.request_ride(
            posted[0].id, "student-12", "+91-98000-00012", "12.9905,80.2325"
        )
        await engine.request_ride(
            posted[1].id, "student-13", "+91-98000-00013", "12.9920,80.2340"
        )
        await engine.respond_to_request(
            posted[0].id, "student-11", RespondAction.ACCEPTED
        )
        print("  Filed 3 requests, accepted 1")

        # ── Completed trip ────────────────────────────────────────────
        ride = posted[5]
        await engine.request_ride(
            ride.id, "student-14", "+91-98000-00014", "12.9912,80.2335"
        )
        await engine.respond_to_request(ride.id, "student-14", RespondAction.ACCEPTED)
        await engine.start_ride(ride.id, ride.driver_id, 12.9930, 80.2350)
        await engine.mark_arrived(ride.id, ride.driver_id)
        await engine.start_trip(ride.id, ride.driver_id)
        result = await engine.complete_trip(ride.id, ride.driver_id)
        print(f"  Completed 1 trip, fare {result.price}")

        print("\nSeed complete!")
    finally:
        await services.aclose()


async def main():
    print("Seeding database...")
    await seed()


if __name__ == "__main__":
    asyncio.run(main())
