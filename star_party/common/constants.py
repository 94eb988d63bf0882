"""Shared constants for server and client."""

import os

DEFAULT_HOST = os.environ.get("STAR_PARTY_HOST", "0.0.0.0")
DEFAULT_PORT = int(os.environ.get("STAR_PARTY_PORT", "1999"))

# Route prefixes; the path segment after the prefix names the room
SPACE_ROUTE = "party"
GLOBE_ROUTE = "globe"
SYSTEM_IDS = ("sol-system", "proxima-system")

# Query parameter a client may use to choose its own connection id
CONNECTION_ID_PARAM = "_pk"

# Visitor location headers added by the edge proxy (globe rooms)
LATITUDE_HEADER = "cf-iplatitude"
LONGITUDE_HEADER = "cf-iplongitude"

# Max queued outbound frames per connection before it counts as stalled
OUTBOX_LIMIT = 256

# Websocket close code for policy violations (bad route, duplicate id)
CLOSE_POLICY_VIOLATION = 1008

# Client tick (one position sample per tick)
TICK_INTERVAL = 1 / 30

# Local player orbit, matching the browser scene
PLAYER_ORBIT_RADIUS = 30.0
PLAYER_ORBIT_SPEED = 10.0
PLAYER_VERTICAL_SPEED = 15.0
PLAYER_VERTICAL_AMPLITUDE = 2.0
TIME_DELTA = 0.001

DEFAULT_NAMES = (
    "Alice",
    "Bob",
    "Charlie",
    "David",
    "Eve",
    "Frank",
    "Grace",
    "Heidi",
    "Ivan",
    "Judy",
    "Kevin",
    "Linda",
    "Mallory",
    "Nancy",
    "Oscar",
    "Peggy",
    "Quentin",
    "Randy",
    "Steve",
    "Trent",
    "Ursula",
    "Victor",
    "Walter",
    "Xavier",
    "Yvonne",
    "Zoe",
)
