"""
Configuration constants for the stackgrader system.
"""

from pathlib import Path


# Execution configuration
REQUEST_TIMEOUT_SECONDS: float = 10.0
DEPLOYMENT_TIMEOUT_SECONDS: float = 30.0
SERVER_STARTUP_TIMEOUT_SECONDS: float = 30.0
SERVER_POLL_INTERVAL_SECONDS: float = 0.5
GIT_TIMEOUT_SECONDS: int = 30
RESET_COMMAND_TIMEOUT_SECONDS: int = 60
PROCESS_SHUTDOWN_TIMEOUT_SECONDS: int = 5

# Target servers
DEFAULT_SERVER_PORT: int = 5055
WSGI_BASE_URL: str = "http://testserver"

# Project layout: student code may sit under grading-folder/ or at the root
PROJECT_PREFIXES: list[str] = ["grading-folder", ""]
SKIPPED_DIRS: set[str] = {
    "node_modules",
    ".git",
    ".next",
    "dist",
    "build",
    "coverage",
    "__pycache__",
    ".venv",
    "venv",
}
SOURCE_EXTENSIONS: set[str] = {".js", ".jsx", ".ts", ".tsx", ".py", ".mjs", ".cjs"}
FRONTEND_EXTENSIONS: set[str] = {".js", ".jsx", ".ts", ".tsx"}
COMPONENT_EXTENSIONS: set[str] = {".jsx", ".tsx"}
MAX_SOURCE_FILE_BYTES: int = 512 * 1024

# Candidate entry points, in priority order
NODE_ENTRY_CANDIDATES: list[str] = [
    "backend/server.js",
    "backend/app.js",
    "backend/index.js",
    "server/server.js",
    "server/app.js",
    "server/index.js",
    "index.js",
    "server.js",
]
PYTHON_ENTRY_CANDIDATES: list[str] = [
    "backend/app.py",
    "backend/main.py",
    "backend/wsgi.py",
    "server/app.py",
    "server/main.py",
    "app.py",
    "wsgi.py",
]
WSGI_APP_ATTRIBUTES: list[str] = ["app", "application", "create_app"]
STATE_RESET_HOOKS: list[str] = ["reset_db", "reset_state", "reset_database"]

# Files the deployment suite reads
DEPLOYMENT_URL_FILENAME: str = "DEPLOYMENT_URL.txt"

# Scoring
CRITERION_MAX_POINTS: float = 4.0
PASS_RATE_STEPS: list[tuple[float, float]] = [
    (0.90, 4.0),
    (0.75, 3.5),
    (0.60, 3.0),
    (0.50, 2.5),
    (0.40, 2.0),
    (0.25, 1.5),
]
PASS_RATE_FLOOR_SCORE: float = 1.0

# Git history analysis
GENERIC_COMMIT_MESSAGES: list[str] = [
    "update",
    "fix",
    "commit",
    "changes",
    "stuff",
    "work",
    "test",
    "wip",
    ".",
    "asdf",
    "misc",
]
MIN_MEANINGFUL_MESSAGE_LENGTH: int = 10
LARGE_COMMIT_FILE_THRESHOLD: int = 50
MAIN_BRANCH_MARKERS: list[str] = ["main", "master", "HEAD"]
TIMELINE_COMMIT_LIMIT: int = 20

# OpenAI configuration
OPENAI_MODEL: str = "gpt-4o"
MAX_TOKENS: int = 2048
JUDGE_TEMPERATURE: float = 0.3
JUDGE_DELAY_SECONDS: float = 1.0
JUDGE_TIMEOUT_SECONDS: float = 60.0
JUDGE_BATCHES: list[list[str]] = [
    ["criterion_1", "criterion_15"],
    ["criterion_2", "criterion_7"],
    ["criterion_3", "criterion_4"],
    ["criterion_8", "criterion_12"],
]

# Rubric and output
DEFAULT_RUBRIC_PATH: Path = Path(__file__).parent / "data" / "rubric.yml"
DEFAULT_CONFIG_FILENAME: str = "grader_config.yml"
REPORT_JSON_FILENAME: str = "evaluation.json"
REPORT_CSV_FILENAME: str = "criteria_scores.csv"
