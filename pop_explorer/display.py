"""
Formatting for the population readout.
"""
from dataclasses import dataclass

from pop_explorer import config


@dataclass(frozen=True)
class PopulationReading:
    population_value: int
    percent_of_reference: str

    @property
    def population_text(self) -> str:
        return f"{self.population_value:,}"


def percent_of_reference(population: float, reference: float = None, label: str = None) -> str:
    reference = reference or config.REFERENCE_POPULATION
    label = label or config.REFERENCE_LABEL
    if not population:
        return ""
    pct = population / reference * 100.0
    if pct < 0.01:
        return f"< 0.01% of {label} population"
    return f"{pct:.2f}% of {label} population"


def format_population(population: float, reference: float = None, label: str = None) -> PopulationReading:
    value = int(round(population or 0))
    return PopulationReading(
        population_value=value,
        percent_of_reference=percent_of_reference(value, reference, label),
    )
