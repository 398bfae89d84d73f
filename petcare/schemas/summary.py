"""
Pydantic schemas for the AI assistant summary
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class SummaryTask(str, enum.Enum):
    HEALTH_SUMMARY = "healthSummary"
    VET_SUMMARY = "vetSummary"
    REMINDER_HELPER = "reminderHelper"
    RISK_ANALYSIS = "riskAnalysis"


class SummarySource(str, enum.Enum):
    OPENAI = "openai"
    LOCAL = "local"


class SummarySection(BaseModel):
    title: StrictStr
    items: List[StrictStr]


class AssistantSummary(BaseModel):
    """Shape every summary must have, whether generated remotely or locally"""
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    title: StrictStr
    meta: StrictStr = ''
    highlights: List[StrictStr]
    sections: List[SummarySection]
    severity: Optional[StrictStr] = None
    share_text: Optional[StrictStr] = Field(None, alias='shareText')

    def to_response(self, source: SummarySource) -> Dict[str, Any]:
        payload = self.model_dump(by_alias=True, exclude_none=True)
        payload['source'] = source.value
        return payload


class SummaryRequest(BaseModel):
    """Schema for POST /api/ai/summary"""
    model_config = ConfigDict(populate_by_name=True)

    pet_id: str = Field(..., alias='petId', min_length=1, max_length=128)
    task: SummaryTask
    prompt: str = Field('', max_length=2000)


@dataclass
class PetContext:
    """Records of one pet the summaries are computed from (newest first)"""
    pet: Dict[str, Any]
    logs: List[Dict[str, Any]] = field(default_factory=list)
    reminders: List[Dict[str, Any]] = field(default_factory=list)
    weights: List[Dict[str, Any]] = field(default_factory=list)
    expenses: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def pet_name(self) -> str:
        return str(self.pet.get('name') or 'Pet')
