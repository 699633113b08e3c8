"""
Fixed vocabularies and tolerances for the price index.
"""

EARTH_RADIUS_KM = 6371.0

# Diffing tolerances: never compare floats for exact equality.
PRICE_EPSILON = 0.001
COORD_EPSILON = 1e-6

# Day/night crowd averages closer than this collapse into one entry.
CROWD_MERGE_EPSILON = 0.01

# Feed vocabulary
NIGHT_MARKER = "nocturn"
REGION_FALLBACK = "Otra"
STATION_NAME_FALLBACK = "Estación sin nombre"

FEED_COLUMNS = (
    "idempresa",
    "cuit",
    "empresa",
    "direccion",
    "localidad",
    "provincia",
    "region",
    "producto",
    "tipohorario",
    "precio",
    "fecha_vigencia",
    "empresabandera",
    "latitud",
    "longitud",
)

# Keys are casefolded product names as published in the feed.
PRODUCT_TO_FUEL_TYPE: dict[str, str] = {
    "nafta (súper) entre 92 y 95 ron": "regular",
    "nafta (premium) de más de 95 ron": "premium",
    "gas oil grado 2": "diesel",
    "gas oil grado 3": "premium_diesel",
    "gnc": "cng",
}

PROVINCE_TO_REGION: dict[str, str] = {
    "CABA": "Metropolitana",
    "Capital Federal": "Metropolitana",
    "Buenos Aires": "Metropolitana",
    "Córdoba": "Centro",
    "Santa Fe": "Centro",
    "Entre Ríos": "Centro",
    "Mendoza": "Cuyo",
    "San Juan": "Cuyo",
    "San Luis": "Cuyo",
    "La Rioja": "Norte",
    "Catamarca": "Norte",
    "Tucumán": "Norte",
    "Santiago del Estero": "Norte",
    "Salta": "Norte",
    "Jujuy": "Norte",
    "Chaco": "Norte",
    "Formosa": "Norte",
    "Corrientes": "Norte",
    "Misiones": "Norte",
    "La Pampa": "Patagonia",
    "Neuquén": "Patagonia",
    "Río Negro": "Patagonia",
    "Chubut": "Patagonia",
    "Santa Cruz": "Patagonia",
    "Tierra del Fuego": "Patagonia",
}

# Query caps
PRICE_HISTORY_ROW_CAP = 200
DETAIL_HISTORY_ROW_CAP = 100
REGIONAL_SUMMARY_ROW_CAP = 100
CROWD_REPORT_SAMPLE_CAP = 50

CONSOLIDATION_CACHE_PREFIX = "consolidation"
