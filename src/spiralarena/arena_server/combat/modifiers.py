"""Scenario modifier tables applied to attributes during a combat round."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from spiralarena.arena_server.combat.models import ATTRIBUTE_COUNT, ATTRIBUTE_NAMES
from spiralarena.arena_server.errors import InvalidModifierTable

SCENARIO_COUNT = 5
MAX_MODIFIER = 2


@dataclass(frozen=True)
class Scenario:
    """Named set of per-attribute increments and decrements."""

    name: str
    increments: Tuple[int, ...]
    decrements: Tuple[int, ...]


class ModifierTable:
    """Validated table of five scenarios.

    For every (scenario, attribute) pair at most one of increment and
    decrement is nonzero and both lie in ``0..2``.
    """

    def __init__(self, scenarios: Sequence[Scenario]):
        scenarios = tuple(scenarios)
        if len(scenarios) != SCENARIO_COUNT:
            raise InvalidModifierTable(
                f"Modifier table needs {SCENARIO_COUNT} scenarios, got {len(scenarios)}"
            )
        for index, scenario in enumerate(scenarios):
            _validate_scenario(index, scenario)
        self._scenarios = scenarios

    def __len__(self) -> int:
        return len(self._scenarios)

    def __getitem__(self, index: int) -> Scenario:
        return self._scenarios[index]

    @property
    def scenarios(self) -> Tuple[Scenario, ...]:
        return self._scenarios

    def increment(self, scenario: int, attribute: int) -> int:
        return self._scenarios[scenario].increments[attribute]

    def decrement(self, scenario: int, attribute: int) -> int:
        return self._scenarios[scenario].decrements[attribute]

    def to_dict(self) -> Dict[str, object]:
        return {
            "scenarios": [
                {
                    "name": s.name,
                    "increments": list(s.increments),
                    "decrements": list(s.decrements),
                }
                for s in self._scenarios
            ]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "ModifierTable":
        try:
            parsed = ModifierTableConfig.model_validate(data)
        except PydanticValidationError as exc:
            raise InvalidModifierTable(f"Malformed modifier table: {exc}") from exc
        return cls(
            [
                Scenario(
                    name=entry.name,
                    increments=tuple(entry.increments),
                    decrements=tuple(entry.decrements),
                )
                for entry in parsed.scenarios
            ]
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "ModifierTable":
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise InvalidModifierTable(f"Modifier table file {path} must hold a mapping")
        return cls.from_dict(data)


class ScenarioConfig(BaseModel):
    """YAML schema for one scenario."""

    name: str
    increments: List[int] = Field(default_factory=lambda: [0] * ATTRIBUTE_COUNT)
    decrements: List[int] = Field(default_factory=lambda: [0] * ATTRIBUTE_COUNT)


class ModifierTableConfig(BaseModel):
    """YAML schema for a modifier table file."""

    scenarios: List[ScenarioConfig]


def _validate_scenario(index: int, scenario: Scenario) -> None:
    if len(scenario.increments) != ATTRIBUTE_COUNT or len(scenario.decrements) != ATTRIBUTE_COUNT:
        raise InvalidModifierTable(
            f"Scenario {index} ({scenario.name}) must list {ATTRIBUTE_COUNT} increments and decrements"
        )
    for attr, (inc, dec) in enumerate(zip(scenario.increments, scenario.decrements)):
        label = ATTRIBUTE_NAMES[attr]
        for value in (inc, dec):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidModifierTable(
                    f"Scenario {scenario.name} {label}: modifiers must be integers"
                )
            if value < 0 or value > MAX_MODIFIER:
                raise InvalidModifierTable(
                    f"Scenario {scenario.name} {label}: modifier {value} outside 0..{MAX_MODIFIER}"
                )
        if inc and dec:
            raise InvalidModifierTable(
                f"Scenario {scenario.name} {label}: increment and decrement both set"
            )


#              str agi end int per wil res for ste tac
DEFAULT_SCENARIOS: Tuple[Scenario, ...] = (
    Scenario(
        name="ambush",
        increments=(0, 2, 0, 0, 1, 0, 0, 0, 2, 0),
        decrements=(1, 0, 0, 1, 0, 0, 0, 0, 0, 1),
    ),
    Scenario(
        name="siege",
        increments=(2, 0, 2, 0, 0, 1, 0, 0, 0, 0),
        decrements=(0, 1, 0, 0, 0, 0, 0, 1, 2, 0),
    ),
    Scenario(
        name="storm",
        increments=(0, 0, 1, 0, 2, 0, 1, 0, 0, 0),
        decrements=(0, 2, 0, 0, 0, 0, 0, 1, 0, 1),
    ),
    Scenario(
        name="blackout",
        increments=(0, 0, 0, 2, 0, 0, 0, 1, 1, 0),
        decrements=(0, 0, 1, 0, 2, 0, 0, 0, 0, 0),
    ),
    Scenario(
        name="rout",
        increments=(1, 0, 0, 0, 0, 2, 2, 0, 0, 1),
        decrements=(0, 0, 2, 1, 0, 0, 0, 0, 1, 0),
    ),
)


def default_modifier_table() -> ModifierTable:
    return ModifierTable(DEFAULT_SCENARIOS)
