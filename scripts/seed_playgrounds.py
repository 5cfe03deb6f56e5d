"""
Seed the playground directory.

Wipes the playgrounds collection and repopulates it with the Chennai
playgrounds below, then derives each one's active issue count from the
issue store. Takes no arguments; failures surface as an uncaught exception.
"""

import sys
from pathlib import Path

# Add parent directory to path to import playsafe modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from playsafe.core.config import assert_firebase_config_ready
from playsafe.database.database_service import database_service
from playsafe.database.collections import COLLECTIONS
from playsafe.services.playground_service import playground_service
import asyncio


CHENNAI_PLAYGROUNDS = [
    {
        "name": "Nehru Park",
        "address": "Kamarajar Salai, Triplicane, Chennai, Tamil Nadu 600005",
        "latitude": 13.0569,
        "longitude": 80.2844,
        "description": "Large park with playground facilities and sports courts",
        "amenities": ["Swings", "Slides", "Basketball Court", "Walking Track"],
        "status": "Good",
        "lastInspection": "2025-08-25",
    },
    {
        "name": "Nandanam Children's Park",
        "address": "Nandanam, Chennai, Tamil Nadu 600035",
        "latitude": 13.0338,
        "longitude": 80.2340,
        "description": "Dedicated children's park with modern play equipment",
        "amenities": ["Swings", "Slides", "Seesaw", "Sandbox", "Climbing Wall"],
        "status": "Good",
        "lastInspection": "2025-08-28",
    },
    {
        "name": "Semmozhi Poonga",
        "address": "Cathedral Rd, Gopalapuram, Chennai, Tamil Nadu 600086",
        "latitude": 13.0569,
        "longitude": 80.2472,
        "description": "Botanical garden with children's play area",
        "amenities": ["Nature Trail", "Slides", "Swings", "Garden"],
        "status": "Good",
        "lastInspection": "2025-08-27",
    },
    {
        "name": "Elliot's Beach Playground",
        "address": "Besant Nagar, Chennai, Tamil Nadu 600090",
        "latitude": 12.9988,
        "longitude": 80.2669,
        "description": "Beachside playground with ocean views",
        "amenities": ["Swings", "Slides", "Beach Access", "Walking Path"],
        "status": "Attention",
        "lastInspection": "2025-08-20",
    },
    {
        "name": "Anna Nagar Tower Park",
        "address": "2nd Ave, Anna Nagar, Chennai, Tamil Nadu 600040",
        "latitude": 13.0878,
        "longitude": 80.2085,
        "description": "Popular park with well-maintained playground facilities",
        "amenities": ["Swings", "Slides", "Monkey Bars", "Basketball Court"],
        "status": "Good",
        "lastInspection": "2025-08-29",
    },
    {
        "name": "Guindy National Park Children's Area",
        "address": "Guindy, Chennai, Tamil Nadu 600025",
        "latitude": 13.0067,
        "longitude": 80.2206,
        "description": "Nature park with dedicated children's play zone",
        "amenities": ["Nature Trail", "Swings", "Slides", "Wildlife Viewing"],
        "status": "Good",
        "lastInspection": "2025-08-26",
    },
    {
        "name": "Adyar Eco Park",
        "address": "Adyar, Chennai, Tamil Nadu 600020",
        "latitude": 13.0067,
        "longitude": 80.2572,
        "description": "Eco-friendly park with modern playground equipment",
        "amenities": ["Swings", "Slides", "Climbing Frame", "Eco Trail"],
        "status": "Good",
        "lastInspection": "2025-08-28",
    },
    {
        "name": "Velachery Lake Park",
        "address": "Velachery, Chennai, Tamil Nadu 600042",
        "latitude": 12.9756,
        "longitude": 80.2206,
        "description": "Lakeside park with children's recreational facilities",
        "amenities": ["Swings", "Slides", "Lake View", "Jogging Track"],
        "status": "Attention",
        "lastInspection": "2025-08-22",
    },
    {
        "name": "Nungambakkam YMCA Playground",
        "address": "Nungambakkam High Rd, Chennai, Tamil Nadu 600034",
        "latitude": 13.0569,
        "longitude": 80.2392,
        "description": "Well-equipped playground with sports facilities",
        "amenities": ["Swings", "Slides", "Basketball Court", "Tennis Court"],
        "status": "Good",
        "lastInspection": "2025-08-27",
    },
    {
        "name": "Kotturpuram Playground",
        "address": "Kotturpuram, Chennai, Tamil Nadu 600085",
        "latitude": 13.0206,
        "longitude": 80.2411,
        "description": "Community playground with basic facilities",
        "amenities": ["Swings", "Slides", "Seesaw"],
        "status": "Urgent",
        "lastInspection": "2025-08-15",
    },
]


async def seed_playgrounds():
    assert_firebase_config_ready()

    print("=" * 60)
    print("Seeding Chennai Playgrounds")
    print("=" * 60)

    print("\n🧹 Clearing existing playground data...")
    success, deleted, error = await database_service.delete_collection(COLLECTIONS['playgrounds'])
    if not success:
        raise RuntimeError(f"Failed to clear playgrounds: {error}")
    print(f"Deleted {deleted} existing playgrounds")

    print("\n📝 Adding playgrounds...")
    for playground in CHENNAI_PLAYGROUNDS:
        success, doc_id, error = await database_service.create_document(
            COLLECTIONS['playgrounds'], {**playground, "activeIssues": 0}
        )
        if not success:
            raise RuntimeError(f"Failed to add {playground['name']}: {error}")
        print(f"✅ Added {playground['name']} ({doc_id})")

    changed = await playground_service.refresh_active_issues()
    print(f"\n🔄 Active issue counts derived ({changed} playground(s) with open issues)")

    print("\n" + "=" * 60)
    print(f"✅ Seeded {len(CHENNAI_PLAYGROUNDS)} playgrounds")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(seed_playgrounds())
