"""
Name Catalog — Realistic display names for generated entities.

Plain data. Every list is drawn from via DeterministicRNG only.
"""

from __future__ import annotations

from typing import Tuple

FIRST_NAMES: Tuple[str, ...] = (
    "Aarav", "Anita", "Bela", "Chen", "Dara", "Elif", "Farah", "Gideon",
    "Hana", "Ines", "Jonas", "Kavya", "Leon", "Mira", "Nikhil", "Olu",
    "Priya", "Quinn", "Rajesh", "Sana", "Tomas", "Uma", "Vikram", "Wren",
    "Yusuf", "Zara",
)

LAST_NAMES: Tuple[str, ...] = (
    "Adler", "Banerjee", "Castillo", "Desai", "Eriksen", "Fontaine",
    "Gupta", "Haddad", "Iyer", "Jensen", "Kapoor", "Lindqvist", "Mehta",
    "Nakamura", "Okafor", "Patel", "Reyes", "Sharma", "Tanaka", "Varga",
)

ACCOUNT_NAMES: Tuple[str, ...] = (
    "Vardhman Textiles", "Harbor Freight Partners", "Northwind Energy",
    "Sunrise Agro", "Meridian Steel", "Crescent Logistics", "Blue Delta Power",
    "Kestrel Cement", "Orchid Pharma", "Granite Infra", "Lotus Ports",
    "Silverline Rail",
)

PARTNER_NAMES: Tuple[str, ...] = (
    "Summit Advisory", "Tata Power Solar", "Apex Engineering", "Horizon Capital",
    "Bridgewater Consulting", "Pinnacle EPC", "Evergreen Finance", "Atlas Legal",
)

# Edge types by the kinds of entities they join.
USER_CONTACT_TYPES: Tuple[str, ...] = ("Knows", "Worked With", "Alumni", "Friend")
CONTACT_CONTACT_TYPES: Tuple[str, ...] = ("Friend", "Introduced By", "Banker", "Family", "Knows")
CONTACT_PARTNER_TYPES: Tuple[str, ...] = ("Advisor To", "Banker", "Board Member")
