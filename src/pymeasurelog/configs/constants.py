"""Constants for configuration handling."""

CONFIG_FILENAME = "config.json"
DEFAULT_DATABASE_NAME = "measurements.db"
DEFAULT_INSTRUMENT_MODEL = "TS60"
SUPPORTED_INSTRUMENT_MODELS = ("TS30", "TS60", "MS60")
