"""
Skill Identifier - Maps a problem statement onto skills in the graph.

Returns the primary skill (the most advanced concept tested) and every
skill required to solve the problem. Ids the model invents are dropped.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from langchain_core.messages import HumanMessage, SystemMessage

from learning.errors import ExternalServiceError, InvalidInputError
from .llm import build_chat_model, invoke_json

logger = logging.getLogger(__name__)


@dataclass
class SkillIdentification:
    primary_skill: Optional[str]
    required_skills: List[str] = field(default_factory=list)
    reasoning: str = ""

    def to_dict(self) -> dict:
        return {
            "primary_skill": self.primary_skill,
            "required_skills": list(self.required_skills),
            "reasoning": self.reasoning,
        }


class SkillIdentifier:

    def __init__(self, skill_graph, llm=None):
        self.skill_graph = skill_graph
        self.llm = llm

    def _system_prompt(self) -> str:
        skill_list = "\n".join(
            f'- {s.id}: "{s.name}" - {s.description}' for s in self.skill_graph.get_all_skills()
        )
        return f"""You are an expert math education analyst. Your job is to analyze math problems and identify which mathematical skills from a predefined list are required to solve them.

Available Skills:
{skill_list}

Return your analysis as JSON with this exact structure:
{{
  "primarySkill": "skill_id",
  "requiredSkills": ["skill_id_1", "skill_id_2"],
  "reasoning": "Brief explanation of why these skills were chosen"
}}

Important:
- primarySkill should be ONE skill ID (the most advanced skill needed)
- requiredSkills should include the primarySkill plus all prerequisites
- All skill IDs must be from the available skills list"""

    def identify(self, problem_text: str, image_url: Optional[str] = None) -> SkillIdentification:
        """
        Identify the skills a problem exercises.

        Raises:
            InvalidInputError: empty problem text
            ExternalServiceTimeout: the LLM call timed out
            ExternalServiceError: any other LLM failure or a malformed reply
        """
        if not problem_text or not problem_text.strip():
            raise InvalidInputError("problem_text is required and must be a non-empty string")

        user_prompt = f"Analyze this math problem and identify required skills:\n\nProblem: {problem_text}\n"
        if image_url:
            user_prompt += f"\nImage URL: {image_url}\n"
        user_prompt += "\nReturn your analysis as JSON."

        if self.llm is None:
            try:
                self.llm = build_chat_model(temperature=0.3)
            except Exception as e:
                raise ExternalServiceError(f"Could not create chat model: {e}") from e

        data = invoke_json(self.llm, [SystemMessage(content=self._system_prompt()), HumanMessage(content=user_prompt)])

        primary = data.get("primarySkill")
        required = data.get("requiredSkills")
        if not isinstance(required, list):
            raise ExternalServiceError("Skill analysis returned an invalid response structure")

        valid_required = [s for s in required if isinstance(s, str) and self.skill_graph.validate_exists(s)]
        invalid = [s for s in required if s not in valid_required]
        if invalid:
            logger.warning(f"[SkillIdentifier] Dropping unknown skills: {invalid}")

        if not (isinstance(primary, str) and self.skill_graph.validate_exists(primary)):
            logger.warning(f"[SkillIdentifier] Unknown primary skill {primary!r}")
            primary = valid_required[0] if valid_required else None

        identification = SkillIdentification(
            primary_skill=primary,
            required_skills=valid_required,
            reasoning=str(data.get("reasoning") or ""),
        )
        logger.info(f"[SkillIdentifier] primary={primary} required={valid_required}")
        return identification
