"""survey_server — FastAPI REST API for the multi-phase survey flow."""
