"""Shared constants for MasStock workflows."""

EXECUTION_PENDING = "pending"
EXECUTION_PROCESSING = "processing"
EXECUTION_COMPLETED = "completed"
EXECUTION_FAILED = "failed"
EXECUTION_STATUSES = (
    EXECUTION_PENDING,
    EXECUTION_PROCESSING,
    EXECUTION_COMPLETED,
    EXECUTION_FAILED,
)
TERMINAL_STATUSES = (EXECUTION_COMPLETED, EXECUTION_FAILED)

EXECUTION_PROGRESS = {
    EXECUTION_PENDING: 10,
    EXECUTION_PROCESSING: 50,
    EXECUTION_COMPLETED: 100,
    EXECUTION_FAILED: 0,
}

WORKFLOW_DRAFT = "draft"
WORKFLOW_DEPLOYED = "deployed"
WORKFLOW_ARCHIVED = "archived"
WORKFLOW_STATUSES = (WORKFLOW_DRAFT, WORKFLOW_DEPLOYED, WORKFLOW_ARCHIVED)

WORKFLOW_TYPE_NANO_BANANA = "nano_banana"
WORKFLOW_TYPE_ROOM_REDESIGNER = "room_redesigner"
WORKFLOW_TYPE_SMART_RESIZER = "smart_resizer"
WORKFLOW_TYPE_STANDARD = "standard"

USER_ROLES = ("admin", "user")
USER_STATUSES = ("active", "suspended", "deleted")
CLIENT_PLANS = ("premium_custom", "starter", "pro")
CLIENT_STATUSES = ("active", "pending", "suspended")
MEMBER_ROLES = ("owner", "collaborator")
MEMBER_STATUSES = ("pending", "active", "removed")

FLASH_MODEL = "gemini-2.5-flash-image"
PRO_MODEL = "gemini-3-pro-image-preview"
VALID_MODELS = (FLASH_MODEL, PRO_MODEL)
DEFAULT_MODEL = FLASH_MODEL

ASPECT_RATIOS = (
    "1:1",
    "2:3",
    "3:2",
    "3:4",
    "4:3",
    "4:5",
    "5:4",
    "9:16",
    "16:9",
    "21:9",
)
DEFAULT_ASPECT_RATIO = "1:1"
PRO_RESOLUTIONS = ("1K", "2K", "4K")
DEFAULT_RESOLUTION = "1K"

MAX_REFERENCE_IMAGES = 14
DEFAULT_MAX_PROMPTS = 100
MAX_PROMPT_LENGTH = 10000
DEFAULT_API_COST = 0.039
