"""
deploykit Constants

Centralized constants for magic values, defaults, and configuration.
"""

# Timeouts (seconds)
DEFAULT_TIMEOUT = 300
TIMEOUT_EXIT_CODE = 124
COMMAND_NOT_FOUND_EXIT_CODE = 127
OUTPUT_DRAIN_GRACE = 1
NETWORK_PROBE_TIMEOUT = 5
IDENTITY_CHECK_TIMEOUT = 30
SSO_LOGIN_TIMEOUT = 300
PROMPT_TIMEOUT = 60
SHORT_PROMPT_TIMEOUT = 30
SECRET_PROMPT_TIMEOUT = 60

# Network Classification
DEFAULT_GATING_URL = "https://contenthub.bmwgroup.net/web/start/"
DEFAULT_REGISTRY_URL = "https://registry.npmjs.org/"
PROXY_ENV_VARS = ["HTTP_PROXY", "HTTPS_PROXY", "http_proxy", "https_proxy"]
PROXY_CLEANUP_ENV_VARS = PROXY_ENV_VARS + ["ALL_PROXY", "all_proxy"]
NO_PROXY_HOSTS = [
    "localhost",
    "127.0.0.1",
    ".amazonaws.com",
    ".aws.amazon.com",
    ".amazoncognito.com",
    ".cloudfront.net",
]
TELEMETRY_ENV = {"SST_TELEMETRY_DISABLED": "1", "DO_NOT_TRACK": "1"}
FORCE_EXTERNAL_ENV = "SETUP_FORCE_EXTERNAL"

# AWS Credentials
DEFAULT_AWS_REGION = "eu-central-1"
AMBIENT_CREDENTIAL_ENV_VARS = [
    "AWS_SESSION_TOKEN",
    "AWS_SECURITY_TOKEN",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
]
SSO_CONFIG_KEYS = ["sso_start_url", "sso_session", "sso_account_id", "sso_role_name"]
MAX_AUTH_ROUNDS = 3

# Deployment Cache
CACHE_DIR_NAME = ".deployment-cache"
CACHE_MANIFEST = "manifest.json"
CACHE_PLUGINS_DIR = "pulumi-plugins"
CACHE_SST_DIR = "sst-binaries"
CACHE_NODE_MODULES_DIR = "node_modules"
AWS_PROVIDER_PREFIX = "resource-aws-"
CACHE_QUIET_ENV = {
    "PULUMI_SKIP_UPDATE_CHECK": "true",
    "PULUMI_AUTOMATION_API_SKIP_VERSION_CHECK": "true",
    "NPM_CONFIG_UPDATE_NOTIFIER": "false",
    "NPM_CONFIG_AUDIT": "false",
    "NPM_CONFIG_FUND": "false",
}

# Deployment Lock
UNLOCK_MAX_ATTEMPTS = 3
UNLOCK_ATTEMPT_TIMEOUT = 60
UNLOCK_PROPAGATION_DELAY = 5
UNLOCK_RETRY_DELAY = 2
NOT_LOCKED_MARKERS = ["not locked", "no lock", "already unlocked"]

# Deploy Engine
ENGINE_PACKAGE = "sst"
FALLBACK_INSTALL_ARGS = [
    "npm",
    "install",
    "--no-audit",
    "--no-fund",
    "--prefer-offline",
    "--legacy-peer-deps",
]

# Stages
DEFAULT_STAGES = ["dev", "int", "prod"]

# Log Configuration
LOG_DIR = "logs"
LOG_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_FORMAT = "setup-%Y%m%d-%H%M%S.log"

# Project Configuration
PROJECT_MARKER = "package.json"
CONFIG_FILE = "deploykit.yml"

# Tool Names (for prerequisite check)
REQUIRED_TOOLS = {
    "node": "Install from: https://nodejs.org/",
    "npm": "Installed together with Node.js: https://nodejs.org/",
    "aws": (
        "macOS: brew install awscli | "
        "Linux: https://awscli.amazonaws.com/awscli-exe-linux-x86_64.zip | "
        "Windows: https://awscli.amazonaws.com/AWSCLIV2.msi"
    ),
}
