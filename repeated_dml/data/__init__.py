"""Panel data helpers for repeated_dml."""

from repeated_dml.data.panel import (
    CONTROLS,
    PanelDesign,
    add_differences,
    add_fixed_effect_dummies,
    add_initial_level_trends,
    add_lags,
    build_panel_design,
    simulate_crime_panel,
)

__all__ = [
    "CONTROLS",
    "PanelDesign",
    "add_differences",
    "add_fixed_effect_dummies",
    "add_initial_level_trends",
    "add_lags",
    "build_panel_design",
    "simulate_crime_panel",
]
