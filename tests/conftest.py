from __future__ import annotations

import math
import sys
from pathlib import Path

import pytest

pytest_plugins = "pytest_homeassistant_custom_component"

ROOT = Path(__file__).resolve().parents[1]

# Ensure the repo root is on sys.path so `custom_components.*` can be imported
# and the HA loader can discover the integration.
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from custom_components.polar_performance.builder import build_table  # noqa: E402
from custom_components.polar_performance.table import new_dynamic_table  # noqa: E402

# Speeds in m/s, one side only; mirrored on import
DESIGN_CSV = """twa/tws;4;8;12
40;2.0;3.0;3.5
45;2.5;3.6;4.2
60;3.0;4.2;4.8
90;3.2;4.6;5.4
135;2.8;4.4;5.6
150;2.6;4.0;5.2
180;2.0;3.2;4.4
"""


@pytest.fixture(autouse=True)
def _enable_custom_integrations(enable_custom_integrations: None) -> None:
    """Enable loading custom_components from this repository."""
    return None


@pytest.fixture
def design_csv() -> str:
    return DESIGN_CSV


@pytest.fixture
def design_table():
    return build_table(
        DESIGN_CSV,
        name="Design",
        wind_speed_unit="ms",
        boat_speed_unit="ms",
        mirror=True,
    )


@pytest.fixture
def dynamic_table():
    return new_dynamic_table(
        name="dynamicPolar",
        description="",
        source_label="polar_performance",
        tws_interval=5.0,
        max_wind=15.0,
        angle_resolution=math.radians(1),
    )
