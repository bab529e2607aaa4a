AIRPORTS = [
    {"code": "PTY", "name": "Tocumen International", "city": "Panama City", "country": "Panama"},
    {"code": "SJO", "name": "Juan Santamaría International", "city": "San José", "country": "Costa Rica"},
    {"code": "BOG", "name": "El Dorado International", "city": "Bogotá", "country": "Colombia"},
    {"code": "MDE", "name": "José María Córdova International", "city": "Medellín", "country": "Colombia"},
    {"code": "CTG", "name": "Rafael Núñez International", "city": "Cartagena", "country": "Colombia"},
    {"code": "MIA", "name": "Miami International", "city": "Miami", "country": "USA"},
    {"code": "FLL", "name": "Fort Lauderdale-Hollywood", "city": "Fort Lauderdale", "country": "USA"},
    {"code": "GUA", "name": "La Aurora International", "city": "Guatemala City", "country": "Guatemala"},
]

PORTS = [
    {"code": "FLM", "name": "Flamenco Marina", "city": "Panama City", "country": "Panama"},
    {"code": "BLB", "name": "Balboa Yacht Club", "city": "Panama City", "country": "Panama"},
    {"code": "SBL", "name": "Shelter Bay Marina", "city": "Colón", "country": "Panama"},
    {"code": "BDT", "name": "Bocas Marina", "city": "Bocas del Toro", "country": "Panama"},
    {"code": "PVR", "name": "Puerto Velero", "city": "Barranquilla", "country": "Colombia"},
    {"code": "CTG", "name": "Club Náutico", "city": "Cartagena", "country": "Colombia"},
]


def list_airports() -> list[dict[str, str]]:
    return [dict(row) for row in AIRPORTS]


def list_ports() -> list[dict[str, str]]:
    return [dict(row) for row in PORTS]
