DOMAIN = "ballu_asp100"

CONF_SET_ACTIVE_TOPIC         = "set_active_topic"           # control/mode
CONF_GET_ACTIVE_TOPIC         = "get_active_topic"           # state/mode
CONF_SET_ROTATION_SPEED_TOPIC = "set_rotation_speed_topic"   # control/speed
CONF_GET_ROTATION_SPEED_TOPIC = "get_rotation_speed_topic"   # state/speed
CONF_TURBO_RECONCILE_MS       = "turbo_reconcile_ms"

TOPIC_KEYS = (
    CONF_SET_ACTIVE_TOPIC,
    CONF_GET_ACTIVE_TOPIC,
    CONF_SET_ROTATION_SPEED_TOPIC,
    CONF_GET_ROTATION_SPEED_TOPIC,
)

DEFAULT_TURBO_RECONCILE_MS = 1000

# device modes
MODE_OFF   = 0
MODE_ON    = 1
MODE_TURBO = 4
RUNNING_MODES = range(1, 6)          # 1..5

# device steps; 8 is the Turbo request, never a real step
MAX_STEP   = 7
TURBO_STEP = 8
PERCENT_PER_STEP = 12.5

# controller-facing property names
PROP_ACTIVE        = "active"
PROP_ROTATION_SPEED = "rotationSpeed"
PROP_CURRENT_STATE = "currentAirPurifierState"

PRESET_TURBO = "turbo"
