"""Scenario inventory for declaring endpoints and expectation matrices in YAML."""

from .scenario_inventory import ExpectationSpec, ScenarioInventory

__all__ = ["ExpectationSpec", "ScenarioInventory"]
