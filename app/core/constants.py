import enum


class MovementAction(str, enum.Enum):
    PLACED = "COLOCADO"
    REMOVED = "RETIRADO"


# Device vocabularies, upper-cased. Singular Portuguese forms belong to the
# single-movement payload, plural forms to the batch payload.
SINGLE_ACTIONS = {
    "COLOCADO": MovementAction.PLACED,
    "PLACED": MovementAction.PLACED,
    "RETIRADO": MovementAction.REMOVED,
    "REMOVED": MovementAction.REMOVED,
}
BATCH_ACTIONS = {
    "COLOCADOS": MovementAction.PLACED,
    "PLACED": MovementAction.PLACED,
    "RETIRADOS": MovementAction.REMOVED,
    "REMOVED": MovementAction.REMOVED,
}

SHELF_NAME_MIN_LENGTH = 2
SHELF_STATUSES = ("active", "inactive")

DEFAULT_LATEST_READINGS = 10
DEFAULT_STATISTICS_DAYS = 7
MAX_STATISTICS_DAYS = 365

DEFAULT_PRODUCTS = (
    ("Arduino Uno", 25.0),
    ("Sensor de Peso", 15.5),
)
