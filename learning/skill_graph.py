"""
Skill Graph - Static prerequisite DAG with diagnostic question banks.

Features:
    - Two pre-materialized prerequisite tiers per skill (layer1 / layer2)
    - Diagnostic question banks per tier
    - Cycle-tolerant depth computation
    - Dependents lookup for branch prioritization

The graph is loaded once and injected into every component that needs it.
Nothing here mutates after construction.
"""

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Optional, Set, Union

import networkx as nx

from .errors import InvalidInputError, NotFoundError
from .models import SkillNode, SkillSummary

logger = logging.getLogger(__name__)


class SkillGraph:
    """
    Read-only skill dependency graph.

    Edges in the underlying networkx graph point from prerequisite to the
    skill that requires it, for both layers.
    """

    def __init__(self, skills: Dict[str, SkillNode], metadata: Optional[dict] = None):
        self._skills = MappingProxyType(dict(skills))
        self.metadata = MappingProxyType(dict(metadata or {}))
        self._depth_cache: Dict[str, int] = {}

        self._graph = nx.DiGraph()
        for skill_id, skill in self._skills.items():
            self._graph.add_node(skill_id)
            for prereq in skill.layer1 + skill.layer2:
                self._graph.add_edge(prereq, skill_id)

        self._warn_on_cycles()

    # ==================== Loading ====================

    @classmethod
    def from_dict(cls, data: dict) -> "SkillGraph":
        """Build from the versioned mapping {metadata: {version}, skills: {id: {...}}}."""
        if not isinstance(data, dict):
            raise InvalidInputError("Invalid skill graph structure: expected an object")

        skills_data = data.get("skills")
        if not isinstance(skills_data, dict):
            raise InvalidInputError("Invalid skill graph structure: missing skills object")

        metadata = data.get("metadata") or {}
        if not metadata.get("version"):
            raise InvalidInputError("Invalid skill graph structure: missing metadata")

        skills = {sid: SkillNode.from_dict(sid, sdata) for sid, sdata in skills_data.items()}
        graph = cls(skills, metadata)
        logger.info(f"[SkillGraph] Loaded version {metadata['version']}, {len(skills)} skills")
        return graph

    @classmethod
    def load(cls, path: Union[str, Path]) -> "SkillGraph":
        """Load the graph from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise NotFoundError(f"Skill graph not found at {path}")

        with open(path, "r") as f:
            data = json.load(f)

        return cls.from_dict(data)

    def _warn_on_cycles(self):
        if nx.is_directed_acyclic_graph(self._graph):
            return
        cycle = nx.find_cycle(self._graph)
        logger.warning(f"[SkillGraph] Prerequisite cycle detected: {cycle}")

    # ==================== Query Methods ====================

    def __len__(self) -> int:
        return len(self._skills)

    def __contains__(self, skill_id: str) -> bool:
        return skill_id in self._skills

    def get_skill(self, skill_id: str) -> SkillNode:
        """Get full skill data by ID. Unknown ids fail fast."""
        skill = self._skills.get(skill_id)
        if skill is None:
            raise NotFoundError(f"Skill not found: {skill_id}")
        return skill

    def validate_exists(self, skill_id: str) -> bool:
        return skill_id in self._skills

    def get_all_skills(self) -> List[SkillSummary]:
        return [skill.summary() for skill in self._skills.values()]

    def get_prerequisites(self, skill_id: str, layer: int) -> List[SkillSummary]:
        """
        Resolve the stored layer1/layer2 prerequisite ids to summaries.

        Ids missing from the graph are skipped, in stored order otherwise.
        """
        if layer not in (1, 2):
            raise InvalidInputError(f"layer must be 1 or 2, got {layer}")

        skill = self.get_skill(skill_id)
        summaries = []
        for prereq_id in skill.prerequisites(layer):
            prereq = self._skills.get(prereq_id)
            if prereq is None:
                logger.warning(
                    f"[SkillGraph] Prerequisite skill not found: {prereq_id} (referenced by {skill_id})"
                )
                continue
            summaries.append(prereq.summary())
        return summaries

    def get_diagnostic_questions(self, skill_id: str, layer: int) -> List[str]:
        """Get the diagnostic question bank of a skill for one layer."""
        if layer not in (1, 2):
            raise InvalidInputError(f"layer must be 1 or 2, got {layer}")
        return list(self.get_skill(skill_id).diagnostics(layer))

    def get_dependents(self, skill_id: str) -> List[str]:
        """Skills that list this one as a layer1 or layer2 prerequisite."""
        if skill_id not in self._graph:
            return []
        return list(self._graph.successors(skill_id))

    def is_layer2_prerequisite(self, skill_id: str) -> bool:
        """Whether any skill lists this one in its layer2 tier."""
        return any(skill_id in skill.layer2 for skill in self._skills.values())

    # ==================== Depth ====================

    def compute_depth(self, skill_id: str) -> int:
        """
        Longest chain of layer1 prerequisites below a skill.

        A skill with no layer1 prerequisites has depth 0. An id seen again
        on the active path counts as 0, so cycles terminate (and can
        under-report the true depth).
        """
        self.get_skill(skill_id)
        if skill_id not in self._depth_cache:
            self._depth_cache[skill_id] = self._depth(skill_id, set())
        return self._depth_cache[skill_id]

    def _depth(self, skill_id: str, visited: Set[str]) -> int:
        if skill_id in visited:
            return 0

        skill = self._skills.get(skill_id)
        if skill is None or not skill.layer1:
            return 0

        path = visited | {skill_id}
        return 1 + max(self._depth(prereq, path) for prereq in skill.layer1)

    # ==================== Statistics ====================

    def get_stats(self) -> dict:
        """Get graph statistics."""
        return {
            "version": self.metadata.get("version"),
            "total_skills": len(self._skills),
            "total_edges": self._graph.number_of_edges(),
            "is_acyclic": nx.is_directed_acyclic_graph(self._graph),
            "max_depth": max((self.compute_depth(s) for s in self._skills), default=0),
        }
