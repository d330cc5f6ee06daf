"""
Static code tables for the ConsumerView attributes this package enriches.

Each table maps the raw code returned by the API to a descriptor dict. The
values come from the Experian ConsumerView documentation; they are data and
are never mutated at runtime.
"""

from typing import Dict


def _match(code: str, level: str) -> Dict[str, str]:
    return {"api_code": code, "match_level": level}


def _group(code: str, description: str) -> Dict[str, str]:
    return {"api_code": code, "group": code, "description": description}


def _type(code: str, mosaic_type: str, description: str) -> Dict[str, str]:
    return {"api_code": code, "type": mosaic_type, "description": description}


def _index(*descriptors: Dict[str, str]) -> Dict[str, Dict[str, str]]:
    return {d["api_code"]: d for d in descriptors}


MATCH_ATTRIBUTE = "Match"
MOSAIC_UK_6_GROUP_ATTRIBUTE = "pc_mosaic_uk_6_group"
MOSAIC_UK_6_TYPE_ATTRIBUTE = "pc_mosaic_uk_6_type"

MATCH_CODES = _index(
    _match("PC", "postcode"),
    _match("H", "household"),
    _match("P", "person"),
)

MOSAIC_UK_6_GROUP_CODES = _index(
    _group("A", "City Prosperity"),
    _group("B", "Prestige Positions"),
    _group("C", "Country Living"),
    _group("D", "Rural Reality"),
    _group("E", "Senior Security"),
    _group("F", "Suburban Stability"),
    _group("G", "Domestic Success"),
    _group("H", "Aspiring Homemakers"),
    _group("I", "Family Basics"),
    _group("J", "Transient Renters"),
    _group("K", "Municipal Tenants"),
    _group("L", "Vintage Value"),
    _group("M", "Modest Traditions"),
    _group("N", "Urban Cohesion"),
    _group("O", "Rental Hubs"),
    _group("U", "Unclassified"),
)

# Type codes are two-digit API codes; the human-facing type prefixes the group letter.
MOSAIC_UK_6_TYPE_CODES = _index(
    _type("01", "A01", "World-Class Wealth"),
    _type("02", "A02", "Uptown Elite"),
    _type("03", "A03", "Penthouse Chic"),
    _type("04", "A04", "Metro High-Flyers"),
    _type("05", "B05", "Premium Fortunes"),
    _type("06", "B06", "Diamond Days"),
    _type("07", "B07", "Alpha Families"),
    _type("08", "B08", "Bank of Mum and Dad"),
    _type("09", "B09", "Empty-Nest Adventure"),
    _type("10", "C10", "Wealthy Landowners"),
    _type("11", "C11", "Rural Vogue"),
    _type("12", "C12", "Scattered Homesteads"),
    _type("13", "C13", "Village Retirement"),
    _type("14", "D14", "Satellite Settlers"),
    _type("15", "D15", "Local Focus"),
    _type("16", "D16", "Outlying Seniors"),
    _type("17", "D17", "Far-Flung Outposts"),
    _type("18", "E18", "Legacy Elders"),
    _type("19", "E19", "Bungalow Haven"),
    _type("20", "E20", "Classic Grandparents"),
    _type("21", "E21", "Solo Retirees"),
    _type("22", "F22", "Boomerang Boarders"),
    _type("23", "F23", "Family Ties"),
    _type("24", "F24", "Fledgling Free"),
    _type("25", "F25", "Dependable Me"),
    _type("26", "G26", "Cafés and Catchments"),
    _type("27", "G27", "Thriving Independence"),
    _type("28", "G28", "Modern Parents"),
    _type("29", "G29", "Mid-Career Convention"),
    _type("30", "H30", "Primary Ambitions"),
    _type("31", "H31", "Affordable Fringe"),
    _type("32", "H32", "First-Rung Futures"),
    _type("33", "H33", "Contemporary Starts"),
    _type("34", "H34", "New Foundations"),
    _type("35", "H35", "Flying Solo"),
    _type("36", "I36", "Solid Economy"),
    _type("37", "I37", "Budget Generations"),
    _type("38", "I38", "Economical Families"),
    _type("39", "I39", "Families on a Budget"),
    _type("40", "J40", "Value Rentals"),
    _type("41", "J41", "Youthful Endeavours"),
    _type("42", "J42", "Midlife Renters"),
    _type("43", "J43", "Renting Rooms"),
    _type("44", "K44", "Inner City Stalwarts"),
    _type("45", "K45", "City Diversity"),
    _type("46", "K46", "High Rise Residents"),
    _type("47", "K47", "Single Essentials"),
    _type("48", "K48", "Mature Workers"),
    _type("49", "L49", "Flatlet Seniors"),
    _type("50", "L50", "Pocket Pensions"),
    _type("51", "L51", "Retirement Communities"),
    _type("52", "L52", "Estate Veterans"),
    _type("53", "L53", "Seasoned Survivors"),
    _type("54", "M54", "Down-to-Earth Owners"),
    _type("55", "M55", "Back with the Folks"),
    _type("56", "M56", "Self Supporters"),
    _type("57", "N57", "Community Elders"),
    _type("58", "N58", "Culture & Comfort"),
    _type("59", "N59", "Large Family Living"),
    _type("60", "N60", "Ageing Access"),
    _type("61", "O61", "Career Builders"),
    _type("62", "O62", "Central Pulse"),
    _type("63", "O63", "Flexible Workforce"),
    _type("64", "O64", "Bus-Route Renters"),
    _type("65", "O65", "Learners & Earners"),
    _type("66", "O66", "Student Scene"),
    _type("99", "U", "Unclassified"),
)
