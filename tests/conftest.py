#!/usr/bin/env python3
"""
Shared pytest fixtures for the test suite.

This module provides common fixtures used across test modules including:
- A cleaned, sample-oriented stormwater table
- Plot configurations writing into a temporary directory
- A quiet logger
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

# Add project root to Python path for test imports
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from stormwater_sample_type_plot import PlotConfig


# ============================================================
# DATA FIXTURES
# ============================================================

@pytest.fixture
def clean_df() -> pd.DataFrame:
    """Cleaned samples: three kept stations, one other station, a Snow sample and bad values."""
    return pd.DataFrame([
        {'Station': 'SiteName', 'sample_type': 'Base', 'TP': 0.05, 'NO3': 1.2, 'Cl': 40.0},
        {'Station': 'SiteName', 'sample_type': 'Base', 'TP': 0.07, 'NO3': 1.5, 'Cl': 55.0},
        {'Station': 'SiteName', 'sample_type': 'Rain', 'TP': 0.30, 'NO3': 0.6, 'Cl': 12.0},
        {'Station': 'SiteName2', 'sample_type': 'Rain', 'TP': 0.45, 'NO3': 0.4, 'Cl': 8.0},
        {'Station': 'SiteName2', 'sample_type': 'Melt', 'TP': 0.20, 'NO3': 0.9, 'Cl': 900.0},
        {'Station': 'SiteName3', 'sample_type': 'Melt', 'TP': 0.25, 'NO3': 1.1, 'Cl': 1200.0},
        {'Station': 'SiteName3', 'sample_type': 'Base', 'TP': 0.04, 'NO3': 2.0, 'Cl': 60.0},
        # excluded sample type
        {'Station': 'SiteName3', 'sample_type': 'Snow', 'TP': 0.10, 'NO3': 0.5, 'Cl': 300.0},
        # station not selected
        {'Station': 'Elsewhere', 'sample_type': 'Rain', 'TP': 0.50, 'NO3': 0.3, 'Cl': 5.0},
        # missing nitrate
        {'Station': 'SiteName', 'sample_type': 'Rain', 'TP': 0.35, 'NO3': np.nan, 'Cl': 10.0},
        # zero phosphorus
        {'Station': 'SiteName2', 'sample_type': 'Base', 'TP': 0.0, 'NO3': 1.3, 'Cl': 45.0},
        # negative chloride
        {'Station': 'SiteName3', 'sample_type': 'Rain', 'TP': 0.28, 'NO3': 0.7, 'Cl': -1.0},
    ])


@pytest.fixture
def two_rain_samples() -> pd.DataFrame:
    """Two Rain samples at one station."""
    return pd.DataFrame([
        {'Station': 'A', 'sample_type': 'Rain', 'TP': 0.1, 'NO3': 1.0, 'Cl': 10.0},
        {'Station': 'A', 'sample_type': 'Rain', 'TP': 0.2, 'NO3': 2.0, 'Cl': 20.0},
    ])


# ============================================================
# CONFIG FIXTURES
# ============================================================

@pytest.fixture
def config(tmp_path) -> PlotConfig:
    """Default configuration writing into a temporary directory."""
    return PlotConfig(
        output_dir=tmp_path / 'output',
        output_path=tmp_path / 'output' / 'sample_type_plot.pdf',
        jitter_seed=42,
        show_plot=False,
    )


@pytest.fixture
def station_a_config(tmp_path) -> PlotConfig:
    """Configuration selecting station 'A' only."""
    return PlotConfig(
        output_dir=tmp_path / 'output',
        output_path=tmp_path / 'output' / 'station_a.pdf',
        stations=['A'],
        jitter_seed=0,
        show_plot=False,
    )


@pytest.fixture
def logger() -> logging.Logger:
    """Logger used by the pipeline classes under test."""
    return logging.getLogger("stormwater_sample_type_plot.tests")
