"""Shared constants for milhouse."""

# Project state directory and its files
MILHOUSE_DIR = ".milhouse"
PRD_FILE = "prd.json"
PROGRESS_FILE = "progress.md"
PROMPT_FILE = "prompt.md"
CONFIG_FILE = "config.yaml"
STATS_FILE = "stats.jsonl"
EVIDENCE_DIR = "evidence"
PLANS_DIR = "plans"
PROMPTS_DIR = "prompts"

# Phase names
PHASE_PLANNER = "planner"
PHASE_BUILDER = "builder"
PHASE_REVIEWER = "reviewer"
PHASE_CHAT = "chat"
PHASES = (PHASE_PLANNER, PHASE_BUILDER, PHASE_REVIEWER)
AUGMENTABLE_PHASES = (PHASE_PLANNER, PHASE_BUILDER, PHASE_REVIEWER, PHASE_CHAT)

# Models accepted by the claude CLI
MODEL_HAIKU = "haiku"
MODEL_SONNET = "sonnet"
MODEL_OPUS = "opus"
VALID_MODELS = (MODEL_HAIKU, MODEL_SONNET, MODEL_OPUS)

# Config limits
MIN_TOKENS = 10000
MAX_TOKENS = 200000
MIN_PROGRESS_LINES = 10
MAX_PROGRESS_LINES = 1000

# Tools every non-interactive phase may use
DEFAULT_ALLOWED_TOOLS = (
    "Read", "Write", "Edit", "Bash", "Glob", "Grep",
    "Task", "TodoWrite", "WebSearch", "WebFetch",
)


# CLI exit codes
EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIG = 2
