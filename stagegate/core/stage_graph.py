"""Stage graph — ordering edges plus artifact data-dependency edges.

The graph enforces:
- Stage i+1 cannot run until stage i has SUCCEEDED (declaration order).
- A stage consuming an artifact depends on the stage that produces it.
- The graph is acyclic; a consumer declared before its producer forms a
  cycle with the ordering edges and is rejected.
"""

from __future__ import annotations

from collections import deque

from stagegate.models.stages import StageDefinition, StageState


class PrerequisiteNotMetError(RuntimeError):
    """Raised when a stage cannot run because prerequisites are not met."""


class CyclicDependencyError(ValueError):
    """Raised when the stage graph contains a cycle."""


class StageGraph:
    """Directed acyclic graph over a pipeline's stages.

    Built once from the pipeline's StageDefinitions.
    """

    def __init__(self, stage_definitions: list[StageDefinition]) -> None:
        self._order: list[str] = [sd.name for sd in stage_definitions]
        self._stages: dict[str, StageDefinition] = {
            sd.name: sd for sd in stage_definitions
        }

        producers: dict[str, str] = {}
        for sd in stage_definitions:
            for artifact in sd.output_artifacts:
                producers.setdefault(artifact, sd.name)

        # Forward edges: stage -> prerequisite stages
        self._prerequisites: dict[str, list[str]] = {}
        for index, sd in enumerate(stage_definitions):
            prereqs: list[str] = []
            if index > 0:
                prereqs.append(self._order[index - 1])
            for artifact in sd.input_artifacts:
                producer = producers.get(artifact)
                if producer and producer != sd.name and producer not in prereqs:
                    prereqs.append(producer)
            self._prerequisites[sd.name] = prereqs

        # Reverse edges: stage -> stages that depend on it
        self._dependents: dict[str, list[str]] = {name: [] for name in self._order}
        for name, prereqs in self._prerequisites.items():
            for prereq in prereqs:
                self._dependents[prereq].append(name)

        self._validate_no_cycles()

    def _validate_no_cycles(self) -> None:
        """Verify the graph is a DAG using topological sort (Kahn's algorithm)."""
        in_degree = {sid: len(prereqs) for sid, prereqs in self._prerequisites.items()}
        queue = deque(sid for sid, deg in in_degree.items() if deg == 0)
        visited = 0

        while queue:
            node = queue.popleft()
            visited += 1
            for dep in self._dependents.get(node, []):
                in_degree[dep] -= 1
                if in_degree[dep] == 0:
                    queue.append(dep)

        if visited != len(self._stages):
            raise CyclicDependencyError(
                f"Stage graph has a cycle. "
                f"Visited {visited}/{len(self._stages)} stages."
            )

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    @property
    def stage_names(self) -> list[str]:
        """All stage names in execution (declaration) order."""
        return list(self._order)

    def get_prerequisites(self, name: str) -> list[str]:
        """Direct prerequisite stages of *name*."""
        return list(self._prerequisites.get(name, []))

    # ------------------------------------------------------------------
    # Prerequisite checking
    # ------------------------------------------------------------------

    def are_prerequisites_met(
        self, name: str, states: dict[str, StageState]
    ) -> bool:
        """Check if every prerequisite of *name* has SUCCEEDED."""
        return all(
            states.get(prereq) == StageState.SUCCEEDED
            for prereq in self._prerequisites.get(name, [])
        )

    def get_blocking_reasons(
        self, name: str, states: dict[str, StageState]
    ) -> list[str]:
        """Return human-readable reasons why a stage cannot start."""
        reasons = []
        for prereq in self._prerequisites.get(name, []):
            state = states.get(prereq, StageState.PENDING)
            if state != StageState.SUCCEEDED:
                title = self._stages[prereq].title if prereq in self._stages else prereq
                reasons.append(f"{title} ({prereq}) is {state.value}")
        return reasons
