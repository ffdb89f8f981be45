#!/usr/bin/env python3
"""
Stormwater Sample Type Plot
===========================
Faceted scatter plot of log-transformed stormwater concentrations, separated
by sample type (baseflow, rain event, snow melt) with dashed median lines.

Input is a cleaned, sample-oriented table: one row per sample with at least
- a station column (names of the sampling locations)
- a sample_type column (flow condition of the sample)
- one numeric column per water quality constituent of interest

Pipeline:
- Filter stations / sample types and log-transform the constituents
- Reshape to long format for faceting
- Median per constituent and sample type
- Render and save the faceted plot as a PDF

License: MIT
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.colors import is_color_like
from matplotlib.lines import Line2D
from matplotlib.ticker import FuncFormatter
from scipy import stats

LOGGER_NAME = "stormwater_sample_type_plot"

# =============================================================================
# CONFIGURATION
# =============================================================================


class ConfigurationError(ValueError):
    """Raised when the plot configuration does not fit the data."""


@dataclass
class PlotConfig:
    """Configuration settings for the sample type plot."""

    # File paths
    input_file: Path = Path("clean_stormwater_samples.csv")
    output_dir: Path = Path("stormwater_plot_output")
    output_path: Path = Path("stormwater_plot_output/sample_type_plot.pdf")

    # Column names in the cleaned data
    station_column: str = "Station"
    sample_type_column: str = "sample_type"

    # Row selection
    stations: list = field(default_factory=lambda: ["SiteName", "SiteName2", "SiteName3"])
    excluded_sample_type: str = "Snow"

    # (display name, source column), in plotting order
    constituent_transforms: list = field(default_factory=lambda: [
        ("logTP", "TP"),
        ("logNO3", "NO3"),
        ("logCl", "Cl"),
    ])

    sample_type_colors: dict = field(default_factory=lambda: {
        "Base": "blue",
        "Rain": "skyblue",
        "Melt": "#D55E00",
    })

    # Lower y-axis limit per panel; panels not listed use their own minimum
    min_y_overrides: dict = field(default_factory=lambda: {
        "logTP": -5,
        "logNO3": -3.2,
        "logCl": 0.5,
    })

    # Plotting settings
    jitter_width: float = 0.2
    jitter_seed: Optional[int] = None
    figure_width: float = 10
    figure_height: float = 8
    figure_format: str = "pdf"
    font_size: int = 14
    point_size: float = 30
    median_linewidth: float = 2.0
    y_expand_upper: float = 0.1
    x_label: str = "Sampled Variable"
    y_label: str = "log Concentration"
    legend_title: str = "Sample Type"
    show_plot: bool = True

    # Reporting
    write_reports: bool = True
    significance_level: float = 0.05
    min_group_size: int = 3

    @property
    def variable_order(self) -> list[str]:
        return [target for target, _ in self.constituent_transforms]

    @property
    def group_columns(self) -> list[str]:
        return [self.station_column, self.sample_type_column]


# =============================================================================
# LOGGING SETUP
# =============================================================================

def setup_logging(output_dir: Path) -> logging.Logger:
    """Configure logging to both file and console."""
    output_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    # File handler - detailed logging
    fh = logging.FileHandler(output_dir / "plot.log", mode='w')
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))

    # Console handler - info and above
    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO)
    ch.setFormatter(logging.Formatter('%(levelname)-8s | %(message)s'))

    logger.addHandler(fh)
    logger.addHandler(ch)

    return logger


# =============================================================================
# FILTER AND TRANSFORM
# =============================================================================

class SampleTypeDataPreparer:
    """Selects the samples of interest and log-transforms the constituents."""

    def __init__(self, config: PlotConfig, logger: logging.Logger):
        self.config = config
        self.logger = logger
        self.row_counts: dict[str, int] = {}

    def prepare(self, df: pd.DataFrame) -> pd.DataFrame:
        """Filter, transform and drop incomplete rows."""
        self.logger.info("=" * 60)
        self.logger.info("PREPARING SAMPLES")
        self.logger.info("=" * 60)

        self.row_counts = {'input': len(df)}

        df = self.filter_samples(df)
        self.row_counts['filtered'] = len(df)

        df = self.add_log_transforms(df)
        df = self.drop_incomplete(df)
        self.row_counts['complete'] = len(df)

        self.logger.info(f"Prepared {len(df):,} of {self.row_counts['input']:,} samples")
        return df

    def filter_samples(self, df: pd.DataFrame) -> pd.DataFrame:
        """Keep the configured stations and drop the excluded sample type."""
        self._require_columns(df, self.config.group_columns)
        station_col = self.config.station_column
        type_col = self.config.sample_type_column

        mask = (
            df[station_col].isin(self.config.stations) &
            (df[type_col] != self.config.excluded_sample_type)
        )
        filtered = df.loc[mask].copy()

        present = set(filtered[station_col].unique())
        for station in self.config.stations:
            if station not in present:
                self.logger.warning(f"  No samples found for station '{station}'")

        self.logger.info(
            f"  Station/sample type filter: {len(df):,} → {len(filtered):,} rows "
            f"(excluded sample type: {self.config.excluded_sample_type})"
        )
        return filtered

    def add_log_transforms(self, df: pd.DataFrame) -> pd.DataFrame:
        """Add one natural-log column per configured constituent."""
        if not self.config.constituent_transforms:
            raise ConfigurationError("No constituent transforms configured")
        self._require_columns(df, [source for _, source in self.config.constituent_transforms])

        df = df.copy()
        for target, source in self.config.constituent_transforms:
            values = pd.to_numeric(df[source], errors='coerce')

            # log of zero or a negative reading is undefined; treat as missing
            non_positive = values <= 0
            n_non_positive = int(non_positive.sum())
            if n_non_positive > 0:
                self.logger.warning(
                    f"  {source}: {n_non_positive:,} non-positive readings treated as missing"
                )

            df[target] = np.log(values.where(~non_positive))
            self.logger.debug(f"  {target} = log({source})")

        return df

    def drop_incomplete(self, df: pd.DataFrame) -> pd.DataFrame:
        """Restrict to grouping and transformed columns, dropping rows with gaps."""
        columns = self.config.group_columns + self.config.variable_order
        df = df[columns]

        complete = df.dropna()
        n_dropped = len(df) - len(complete)
        if n_dropped > 0:
            self.logger.warning(f"  Dropped {n_dropped:,} rows with missing or invalid values")
        self.row_counts['dropped'] = n_dropped

        return complete.reset_index(drop=True)

    @staticmethod
    def _require_columns(df: pd.DataFrame, columns: list) -> None:
        missing = [col for col in columns if col not in df.columns]
        if missing:
            raise ConfigurationError(f"Missing required columns: {', '.join(missing)}")


# =============================================================================
# RESHAPE
# =============================================================================

def reshape_long(df: pd.DataFrame, config: PlotConfig) -> pd.DataFrame:
    """
    Pivot the transformed columns to long format for faceted plotting.

    Returns one row per (sample, constituent) with columns station,
    sample_type, variable and value. ``variable`` is an ordered categorical in
    ``config.variable_order`` so panels follow the configured order.
    """
    order = config.variable_order
    long_df = df.melt(
        id_vars=config.group_columns,
        value_vars=order,
        var_name='variable',
        value_name='value',
    )
    long_df['variable'] = pd.Categorical(long_df['variable'], categories=order, ordered=True)
    return long_df


# =============================================================================
# STATISTICS
# =============================================================================

class SampleTypeStatistics:
    """Medians and group comparisons by constituent and sample type."""

    def __init__(self, config: PlotConfig, logger: logging.Logger):
        self.config = config
        self.logger = logger

    def compute_medians(self, long_df: pd.DataFrame) -> pd.DataFrame:
        """Median value for each observed (variable, sample_type) pair."""
        type_col = self.config.sample_type_column
        medians = (
            long_df.groupby(['variable', type_col], observed=True)['value']
            .median()
            .reset_index(name='median_value')
        )
        medians = medians.dropna(subset=['median_value']).reset_index(drop=True)

        for _, row in medians.iterrows():
            self.logger.debug(f"  median {row['variable']} / {row[type_col]}: {row['median_value']:.3f}")
        self.logger.info(f"Calculated {len(medians)} median lines")
        return medians

    def summary_statistics(self, long_df: pd.DataFrame) -> pd.DataFrame:
        """Per-group counts and descriptive statistics of the log values."""
        type_col = self.config.sample_type_column
        station_col = self.config.station_column

        grouped = long_df.dropna(subset=['value']).groupby(['variable', type_col], observed=True)
        summary = grouped.agg(
            n_samples=('value', 'size'),
            n_stations=(station_col, 'nunique'),
            median_value=('value', 'median'),
            mean_value=('value', 'mean'),
            min_value=('value', 'min'),
            max_value=('value', 'max'),
        ).reset_index()
        summary['median_concentration'] = np.exp(summary['median_value'])
        return summary

    def sample_type_tests(self, long_df: pd.DataFrame) -> pd.DataFrame:
        """Kruskal-Wallis test across sample types for each variable."""
        self.logger.info("Testing sample type differences (Kruskal-Wallis)...")
        type_col = self.config.sample_type_column
        results = []

        for variable in self.config.variable_order:
            var_data = long_df[long_df['variable'] == variable]

            groups = [
                group['value'].dropna().values
                for _, group in var_data.groupby(type_col, observed=True)
            ]
            groups = [g for g in groups if len(g) >= self.config.min_group_size]

            if len(groups) >= 2:
                try:
                    h_stat, kw_p = stats.kruskal(*groups)
                except ValueError:
                    h_stat, kw_p = np.nan, np.nan
            else:
                h_stat, kw_p = np.nan, np.nan

            significant = bool(kw_p < self.config.significance_level) if not np.isnan(kw_p) else False
            results.append({
                'variable': variable,
                'n_groups': len(groups),
                'kruskal_wallis_h': h_stat,
                'kruskal_wallis_p': kw_p,
                'significant': significant,
            })

            if not np.isnan(kw_p):
                self.logger.info(f"  {variable}: H={h_stat:.2f}, p={kw_p:.4f}")
            else:
                self.logger.info(f"  {variable}: not enough samples per sample type to test")

        return pd.DataFrame(results)


# =============================================================================
# VISUALIZATION
# =============================================================================

def validate_sample_type_colors(df: pd.DataFrame, colors: dict, column: str) -> None:
    """Raise ConfigurationError if any sample type in ``df`` has no usable color."""
    observed = pd.Series(df[column]).dropna().unique()
    unmapped = sorted(str(t) for t in observed if t not in colors)
    if unmapped:
        raise ConfigurationError(
            f"No color configured for sample type(s): {', '.join(unmapped)}"
        )

    invalid = [f"{name}={color!r}" for name, color in colors.items() if not is_color_like(color)]
    if invalid:
        raise ConfigurationError(f"Invalid sample type color(s): {', '.join(invalid)}")


def jitter_offsets(n: int, width: float, rng: np.random.Generator) -> np.ndarray:
    """Uniform horizontal offsets in [-width, width]."""
    return rng.uniform(-width, width, size=n)


def power_of_ten_label(value: float, pos: Any = None) -> str:
    """Tick label showing the axis value as a power of ten."""
    if value == 0:
        value = 0.0  # avoid "-0"
    return f"$10^{{{value:g}}}$"


def panel_limits(values: pd.Series, anchor: float, expand_upper: float = 0.1) -> tuple[float, float]:
    """
    Y limits for one panel.

    The lower limit reaches down to ``anchor`` when it is below the data; the
    upper limit is padded by ``expand_upper`` of the range. No padding below.
    """
    data_min = float(np.nanmin(values))
    data_max = float(np.nanmax(values))
    lower = min(data_min, float(anchor))
    span = data_max - lower
    if span == 0:
        span = abs(data_max) if data_max != 0 else 1.0
    return lower, data_max + expand_upper * span


def facet_grid_shape(n_panels: int) -> tuple[int, int]:
    """(nrows, ncols) for wrapping ``n_panels`` into a near-square grid."""
    ncols = math.ceil(math.sqrt(n_panels))
    nrows = math.ceil(n_panels / ncols)
    return nrows, ncols


class SampleTypePlotter:
    """Builds and saves the faceted sample type plot."""

    def __init__(self, config: PlotConfig, logger: logging.Logger):
        self.config = config
        self.logger = logger
        self.rng = np.random.default_rng(config.jitter_seed)
        plt.style.use('seaborn-v0_8-whitegrid')

    def render(self, long_df: pd.DataFrame, medians: pd.DataFrame) -> tuple[plt.Figure, dict]:
        """Validate, draw, save and (optionally) show the plot."""
        self.logger.info("=" * 60)
        self.logger.info("GENERATING PLOT")
        self.logger.info("=" * 60)

        type_col = self.config.sample_type_column
        validate_sample_type_colors(long_df, self.config.sample_type_colors, type_col)
        validate_sample_type_colors(medians, self.config.sample_type_colors, type_col)

        fig, axes = self.build_figure(long_df, medians)
        try:
            self.save(fig)
            if self.config.show_plot:
                plt.show()
        finally:
            plt.close(fig)

        return fig, axes

    def panel_lower_bounds(self, long_df: pd.DataFrame) -> dict[str, float]:
        """Configured lower y limit per variable, else the panel minimum."""
        bounds = {}
        for variable, group in long_df.groupby('variable', observed=True):
            if variable in self.config.min_y_overrides:
                bounds[variable] = float(self.config.min_y_overrides[variable])
            else:
                bounds[variable] = float(group['value'].min())
        return bounds

    def build_figure(self, long_df: pd.DataFrame, medians: pd.DataFrame) -> tuple[plt.Figure, dict]:
        """Draw one panel per variable with jittered points and median lines."""
        if long_df.empty:
            raise ValueError("No samples left to plot after filtering")

        type_col = self.config.sample_type_column
        colors = self.config.sample_type_colors
        present_types = set(long_df[type_col].unique())
        hue_order = [t for t in colors if t in present_types]

        variables = [v for v in long_df['variable'].cat.categories
                     if (long_df['variable'] == v).any()]
        lower_bounds = self.panel_lower_bounds(long_df)

        nrows, ncols = facet_grid_shape(len(variables))
        with plt.rc_context({'font.size': self.config.font_size}):
            fig, grid = plt.subplots(
                nrows, ncols,
                figsize=(self.config.figure_width, self.config.figure_height),
                squeeze=False,
            )
            flat_axes = grid.flatten()
            axes = {}

            for ax, variable in zip(flat_axes, variables):
                panel = long_df[long_df['variable'] == variable].copy()
                panel['x'] = jitter_offsets(len(panel), self.config.jitter_width, self.rng)

                sns.scatterplot(
                    data=panel,
                    x='x',
                    y='value',
                    hue=type_col,
                    hue_order=hue_order,
                    palette=colors,
                    s=self.config.point_size,
                    linewidth=0,
                    legend=False,
                    ax=ax,
                )

                panel_medians = medians[medians['variable'] == variable]
                for _, row in panel_medians.iterrows():
                    ax.axhline(
                        row['median_value'],
                        color=colors[row[type_col]],
                        linestyle='--',
                        linewidth=self.config.median_linewidth,
                    )

                ax.set_ylim(*panel_limits(panel['value'], lower_bounds[variable],
                                          self.config.y_expand_upper))
                ax.set_xlim(-0.6, 0.6)
                ax.set_xticks([0])
                ax.set_xticklabels([variable])
                ax.yaxis.set_major_formatter(FuncFormatter(power_of_ten_label))
                ax.set_xlabel('')
                ax.set_ylabel('')
                ax.set_title('')
                for spine in ax.spines.values():
                    spine.set_visible(True)
                    spine.set_color('black')
                    spine.set_linewidth(0.5)

                axes[variable] = ax
                self.logger.debug(f"  Panel {variable}: {len(panel):,} points")

            # Hide unused subplots
            for ax in flat_axes[len(variables):]:
                ax.set_visible(False)

            handles = [
                Line2D([0], [0], marker='o', linestyle='', color=colors[t], label=t)
                for t in hue_order
            ]
            fig.legend(handles=handles, title=self.config.legend_title,
                       loc='center right', frameon=False)
            fig.supxlabel(self.config.x_label)
            fig.supylabel(self.config.y_label)
            fig.tight_layout(rect=(0, 0, 0.85, 1))

        self.logger.info(f"  Drew {len(variables)} panels from {len(long_df):,} points")
        return fig, axes

    def save(self, fig: plt.Figure) -> Path:
        """Save the figure at the configured page size."""
        output_path = Path(self.config.output_path)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            fig.set_size_inches(self.config.figure_width, self.config.figure_height)
            fig.savefig(output_path, format=self.config.figure_format)
        except OSError as e:
            self.logger.error(f"Could not save plot to {output_path}: {e}")
            raise

        self.logger.info(f"  Saved: {output_path}")
        return output_path


# =============================================================================
# REPORT GENERATION
# =============================================================================

class ReportGenerator:
    """Exports the plotted summaries and a short text report."""

    def __init__(self, config: PlotConfig, logger: logging.Logger):
        self.config = config
        self.logger = logger

    def generate_reports(self, medians: pd.DataFrame, summary: pd.DataFrame,
                         tests: pd.DataFrame, row_counts: dict) -> None:
        """Write CSV exports and the text report."""
        self.logger.info("=" * 60)
        self.logger.info("GENERATING REPORTS")
        self.logger.info("=" * 60)

        output_dir = self.config.output_dir
        output_dir.mkdir(parents=True, exist_ok=True)

        medians.to_csv(output_dir / 'median_lines.csv', index=False)
        self.logger.info("  Saved: median_lines.csv")

        summary.to_csv(output_dir / 'summary_statistics.csv', index=False)
        self.logger.info("  Saved: summary_statistics.csv")

        tests.to_csv(output_dir / 'sample_type_tests.csv', index=False)
        self.logger.info("  Saved: sample_type_tests.csv")

        self._generate_text_report(summary, tests, row_counts, output_dir)

    def _generate_text_report(self, summary: pd.DataFrame, tests: pd.DataFrame,
                              row_counts: dict, output_dir: Path) -> None:
        type_col = self.config.sample_type_column
        lines = [
            "=" * 80,
            "STORMWATER SAMPLE TYPE PLOT REPORT",
            f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            f"Stations: {', '.join(self.config.stations)}",
            f"Excluded sample type: {self.config.excluded_sample_type}",
            f"Plot: {self.config.output_path}",
            "=" * 80,
            "",
            "ROW ACCOUNTING",
            "-" * 50,
            f"Input rows: {row_counts.get('input', 0):,}",
            f"After station/sample type filter: {row_counts.get('filtered', 0):,}",
            f"Dropped (missing or non-positive values): {row_counts.get('dropped', 0):,}",
            f"Plotted samples: {row_counts.get('complete', 0):,}",
            "",
            "MEDIANS BY SAMPLE TYPE",
            "-" * 50,
        ]

        for _, row in summary.iterrows():
            lines.append(
                f"{row['variable']} / {row[type_col]}: median log={row['median_value']:.3f} "
                f"(concentration {row['median_concentration']:.4g}, n={row['n_samples']:,})"
            )
        lines.append("")

        if len(tests) > 0:
            lines.extend([
                "SAMPLE TYPE DIFFERENCES (KRUSKAL-WALLIS)",
                "-" * 50,
            ])
            for _, row in tests.iterrows():
                if np.isnan(row['kruskal_wallis_p']):
                    lines.append(f"{row['variable']}: not tested ({row['n_groups']} groups)")
                else:
                    flag = " *" if row['significant'] else ""
                    lines.append(
                        f"{row['variable']}: H={row['kruskal_wallis_h']:.2f}, "
                        f"p={row['kruskal_wallis_p']:.4f}{flag}"
                    )
            lines.append("")

        lines.extend([
            "=" * 80,
            "END OF REPORT",
            "=" * 80,
        ])

        with open(output_dir / 'plot_report.txt', 'w') as f:
            f.write('\n'.join(lines))

        self.logger.info("  Saved: plot_report.txt")


# =============================================================================
# PIPELINE
# =============================================================================

@dataclass
class PlotResult:
    """Tables and figure produced by one run."""
    filtered: pd.DataFrame
    long: pd.DataFrame
    medians: pd.DataFrame
    summary: pd.DataFrame
    tests: pd.DataFrame
    figure: plt.Figure
    axes: dict
    output_path: Path
    row_counts: dict = field(default_factory=dict)


def run_sample_type_plot(clean_df: pd.DataFrame, config: Optional[PlotConfig] = None,
                         logger: Optional[logging.Logger] = None) -> PlotResult:
    """Run filter, reshape, aggregate and render on a cleaned sample table."""
    config = config or PlotConfig()
    logger = logger or logging.getLogger(LOGGER_NAME)

    preparer = SampleTypeDataPreparer(config, logger)
    filtered = preparer.prepare(clean_df)

    long_df = reshape_long(filtered, config)

    statistics = SampleTypeStatistics(config, logger)
    medians = statistics.compute_medians(long_df)
    summary = statistics.summary_statistics(long_df)
    tests = statistics.sample_type_tests(long_df)

    plotter = SampleTypePlotter(config, logger)
    fig, axes = plotter.render(long_df, medians)

    if config.write_reports:
        reporter = ReportGenerator(config, logger)
        reporter.generate_reports(medians, summary, tests, preparer.row_counts)

    return PlotResult(
        filtered=filtered,
        long=long_df,
        medians=medians,
        summary=summary,
        tests=tests,
        figure=fig,
        axes=axes,
        output_path=Path(config.output_path),
        row_counts=dict(preparer.row_counts),
    )


# =============================================================================
# MAIN EXECUTION
# =============================================================================

def main() -> None:
    """Main execution function."""
    config = PlotConfig()
    logger = setup_logging(config.output_dir)

    logger.info("=" * 60)
    logger.info("STORMWATER SAMPLE TYPE PLOT")
    logger.info(f"Stations: {', '.join(config.stations)}")
    logger.info("=" * 60)

    warnings.filterwarnings('ignore', category=FutureWarning)

    try:
        logger.info(f"Loading cleaned data from {config.input_file}")
        clean_df = pd.read_csv(config.input_file, na_values=['None', 'NA', 'N/A', '', 'null', 'NULL'])
        logger.info(f"Loaded {len(clean_df):,} samples with {len(clean_df.columns)} columns")

        result = run_sample_type_plot(clean_df, config, logger)

        logger.info("=" * 60)
        logger.info("PLOT COMPLETE")
        logger.info(f"Plot saved to: {result.output_path.absolute()}")
        logger.info("=" * 60)

    except FileNotFoundError:
        logger.error(f"Input file not found: {config.input_file}")
        raise
    except Exception as e:
        logger.exception(f"Plot failed: {e}")
        raise


if __name__ == "__main__":
    main()
