# custom_components/polar_performance/const.py

from __future__ import annotations

# --- Core ---
DOMAIN = "polar_performance"
PLATFORMS: list[str] = ["sensor"]

# Storage: one index file plus one file per polar table
STORAGE_VERSION = 1
STORAGE_KEY_INDEX = f"{DOMAIN}.tables"
STORAGE_KEY_TABLE = f"{DOMAIN}.table.{{}}"

SOURCE_LABEL = DOMAIN

# --- Measurement paths ---
PATH_ROT = "navigation.rateOfTurn"
PATH_STW = "navigation.speedThroughWater"
PATH_AWA = "environment.wind.angleApparent"
PATH_AWS = "environment.wind.speedApparent"
PATH_TWA = "environment.wind.angleTrueWater"
PATH_TWS = "environment.wind.speedTrue"
PATH_VMG = "performance.velocityMadeGood"
PATH_COG = "navigation.courseOverGroundTrue"
PATH_SOG = "navigation.speedOverGround"
PATH_ENGINE = "propulsion.engine"

# --- Output paths ---
OUT_BEAT_ANGLE = "performance.beatAngle"
OUT_BEAT_SPEED = "performance.beatAngleTargetSpeed"
OUT_BEAT_VMG = "performance.beatAngleVelocityMadeGood"
OUT_GYBE_ANGLE = "performance.gybeAngle"
OUT_GYBE_SPEED = "performance.gybeAngleTargetSpeed"
OUT_GYBE_VMG = "performance.gybeAngleVelocityMadeGood"
OUT_TARGET_ANGLE = "performance.targetAngle"
OUT_TARGET_SPEED = "performance.targetSpeed"
OUT_POLAR_SPEED = "performance.polarSpeed"
OUT_POLAR_RATIO = "performance.polarSpeedRatio"

# --- Source entity config keys (one per measurement path) ---
CONF_ROT = "entity_rot"
CONF_STW = "entity_stw"
CONF_AWA = "entity_awa"
CONF_AWS = "entity_aws"
CONF_TWA = "entity_twa"
CONF_TWS = "entity_tws"
CONF_VMG = "entity_vmg"
CONF_COG = "entity_cog"
CONF_SOG = "entity_sog"
CONF_ENGINE = "entity_engine"

SOURCE_PATHS: dict[str, str] = {
    CONF_ROT: PATH_ROT,
    CONF_STW: PATH_STW,
    CONF_AWA: PATH_AWA,
    CONF_AWS: PATH_AWS,
    CONF_TWA: PATH_TWA,
    CONF_TWS: PATH_TWS,
    CONF_VMG: PATH_VMG,
    CONF_COG: PATH_COG,
    CONF_SOG: PATH_SOG,
    CONF_ENGINE: PATH_ENGINE,
}

# Dynamic polar binning
CONF_TWS_INTERVAL = "tws_interval"          # m/s
CONF_MAX_WIND = "max_wind"                  # m/s
CONF_ANGLE_RESOLUTION = "angle_resolution"  # degrees
CONF_ROT_LIMIT = "rate_of_turn_limit"       # deg/min

# Engine monitoring
CONF_ENGINE_MODE = "engine_mode"
ENGINE_ALWAYS_OFF = "alwaysOff"
ENGINE_REVOLUTIONS = "revolutions"
ENGINE_STATE = "state"
ENGINE_DO_NOT_STORE = "doNotStore"
ENGINE_MODES = [ENGINE_ALWAYS_OFF, ENGINE_REVOLUTIONS, ENGINE_STATE, ENGINE_DO_NOT_STORE]
# engine indicator states meaning "running" (Signal K state, binary_sensor, input_select)
ENGINE_ON_STATES = ("started", "running", "on", "true")

# Dynamic table description
CONF_POLAR_NAME = "polar_name"
CONF_POLAR_DESCRIPTION = "polar_description"

# Gate timing (seconds)
MAX_INTERVAL = 2.0
STORE_DEBOUNCE = 1.0
ENGINE_STALE_AFTER = 10.0

QUERY_INTERVAL_SECONDS = 1

# Service names and fields
SERVICE_LIST_TABLES = "list_tables"
SERVICE_GET_TABLE = "get_table"
SERVICE_GET_ACTIVE_TABLE = "get_active_table"
SERVICE_SET_ACTIVE_TABLE = "set_active_table"
SERVICE_IMPORT_TABLE = "import_table"
SERVICE_DELETE_TABLE = "delete_table"
SERVICE_RESET_DYNAMIC = "reset_dynamic_table"
SERVICE_EXPORT_CSV = "export_csv"

ATTR_TABLE_ID = "table_id"
ATTR_NAME = "name"
ATTR_DESCRIPTION = "description"
ATTR_CSV = "csv"
ATTR_PATH = "path"
ATTR_ANGLE_UNIT = "angle_unit"
ATTR_WIND_SPEED_UNIT = "wind_speed_unit"
ATTR_BOAT_SPEED_UNIT = "boat_speed_unit"
ATTR_MIRROR = "mirror"
ATTR_ACTIVATE = "activate"

# --- Defaults used when keys are omitted ---
DEFAULTS: dict[str, float | int | bool | str] = {
    CONF_TWS_INTERVAL: 4.0,
    CONF_MAX_WIND: 15.0,
    CONF_ANGLE_RESOLUTION: 1.0,
    CONF_ROT_LIMIT: 5.0,
    CONF_ENGINE_MODE: ENGINE_DO_NOT_STORE,
    CONF_POLAR_NAME: "dynamicPolar",
    CONF_POLAR_DESCRIPTION: "Dynamic polar diagram from actual sailing",
}
