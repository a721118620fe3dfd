import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(REPO_ROOT / ".env")


@dataclass(frozen=True)
class Settings:
    jira_host: str
    jira_token: str
    jira_project: str
    jira_team_field: str
    jira_severity_field: str
    jira_timeout: int
    ai_provider: str
    ai_api_key: str
    ai_model: str
    ai_base_url: str
    ai_max_tokens: int
    ai_timeout: int
    gcp_project: str
    gcp_region: str
    s3_bucket: str
    s3_prefix: str
    data_dir: str
    cors_origins: str
    log_level: str


def get_settings() -> Settings:
    def pick(key: str, default: str) -> str:
        return os.getenv(key, default)

    def pick_nonempty(key: str, default: str) -> str:
        value = pick(key, default)
        return value if str(value).strip() else default

    def pick_int(key: str, default: int) -> int:
        try:
            return int(os.getenv(key, str(default)))
        except (TypeError, ValueError):
            return default

    return Settings(
        jira_host=pick_nonempty("JIRA_HOST", "https://issues.redhat.com").rstrip("/"),
        jira_token=os.getenv("JIRA_TOKEN", ""),
        jira_project=pick_nonempty("JIRA_PROJECT", "RHOAIENG"),
        jira_team_field=pick_nonempty("JIRA_TEAM_FIELD", "customfield_12311140"),
        jira_severity_field=pick_nonempty("JIRA_SEVERITY_FIELD", "customfield_12316142"),
        jira_timeout=pick_int("JIRA_TIMEOUT", 30),
        ai_provider=pick("AI_PROVIDER", "vertex"),
        ai_api_key=os.getenv("AI_API_KEY", ""),
        ai_model=pick("AI_MODEL", "claude-3-5-haiku@20241022"),
        ai_base_url=pick("AI_BASE_URL", ""),
        ai_max_tokens=pick_int("AI_MAX_TOKENS", 200),
        ai_timeout=pick_int("AI_TIMEOUT", 30),
        gcp_project=pick("GCP_PROJECT", ""),
        gcp_region=pick_nonempty("GCP_REGION", "us-east5"),
        s3_bucket=pick("BUG_DATA_S3_BUCKET", ""),
        s3_prefix=pick("BUG_DATA_S3_PREFIX", ""),
        data_dir=pick_nonempty("DATA_DIR", str(REPO_ROOT / "data")),
        cors_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
