from typing import Optional, Union

from pydantic import BaseModel, field_validator

from convopilot.services.automation_settings_service import ProcessMode


class AutomationUpdate(BaseModel):
    mode: Optional[str] = None
    activation_words: Optional[Union[str, list[str]]] = None
    user_exit_words: Optional[Union[str, list[str]]] = None
    operator_exit_words: Optional[Union[str, list[str]]] = None
    instructions: Optional[str] = None

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in {m.value for m in ProcessMode}:
            raise ValueError("mode must be 'manual' or 'auto'")
        return normalized


class AutomationOut(BaseModel):
    mode: str
    activation_words: list[str]
    user_exit_words: list[str]
    operator_exit_words: list[str]
    instructions: str
