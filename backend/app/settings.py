"""
Workflow and AI collaborator configuration
Values come from environment variables or the .env file
"""
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class ProcurementSettings(BaseSettings):
    """Business constants that the product treats as configuration."""

    # Requests above this total need Purchasing Manager sign-off after purchase
    pm_approval_threshold: float = 5000.0

    # Department routed through the quality/projects approval chain
    projects_department: str = "Projects"
    departments: List[str] = ["Projects", "Housekeeping", "Maintenance", "F&B", "Management"]

    # First reference number handed out is reference_number_start + 1
    reference_number_start: int = 1000

    max_list_limit: int = 200

    # Gemini collaborator
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    ai_timeout_seconds: float = 30.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


settings = ProcurementSettings()
