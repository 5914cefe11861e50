"""
Charts and CSV series for word-size and divergence diagnostics.

Every chart is a scatter plot either saved to a file or shown on screen
when its location is "display". Saved charts get a CSV of the plotted
series next to them.
"""

import csv
import logging
import re
from pathlib import Path
from typing import Hashable, Iterable, List, Optional, Sequence, Tuple, Union

import matplotlib.pyplot as plt
import numpy as np

from .cutpoint import divergence_distribution, empirical_cdf

logger = logging.getLogger(__name__)

DISPLAY = "display"

Location = Union[str, Path]


def _safe_name(name: str) -> str:
    return re.sub(r'[^A-Za-z0-9_.-]+', '_', str(name))


def render_chart(location: Location,
                 xs: Sequence[float],
                 ys: Sequence[float],
                 xlabel: str,
                 ylabel: str,
                 title: str,
                 series_label: Optional[str] = None,
                 legend: bool = False) -> plt.Figure:
    """
    Scatter plot of ys against xs.

    Args:
        location: Output image path, or "display" to show the chart
        xs: X values
        ys: Y values
        xlabel: Label for x-axis
        ylabel: Label for y-axis
        title: Chart title
        series_label: Legend label for the series
        legend: Whether to draw a legend

    Returns:
        matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=(6, 4.8))
    ax.scatter(list(xs), list(ys), s=12, label=series_label)
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    ax.grid(True, alpha=0.3)
    if legend or series_label:
        ax.legend()

    plt.tight_layout()

    if str(location) == DISPLAY:
        plt.show()
    else:
        fig.savefig(location, dpi=300, bbox_inches='tight')
        plt.close(fig)
        logger.info(f"Chart saved to {location}")

    return fig


def write_plot_data_csv(path: Location,
                        header: Sequence[str],
                        xs: Iterable,
                        ys: Iterable,
                        name: str) -> Path:
    """Write (x, y, name) rows under a header line."""
    path = Path(path)
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for x, y in zip(xs, ys):
            writer.writerow([x, y, name])
    return path


def plot_cres(samples, location: Location = DISPLAY) -> List[plt.Figure]:
    """One CRE curve chart per sampled sequence; location is a directory or "display"."""
    figures = []
    for sample in samples:
        ks = [l for l, _ in sample.points]
        values = [v for _, v in sample.points]
        title = f"CRE(l, F/F^), len: {sample.length} Fmax: {round(np.log(max(sample.length, 1)))}"
        if str(location) == DISPLAY:
            out = DISPLAY
        else:
            Path(location).mkdir(parents=True, exist_ok=True)
            out = Path(location) / f"cre-{_safe_name(sample.name)}.png"
        figures.append(render_chart(out, ks, values, "feature length",
                                    "Cumulative Relative Entropy", title))
    return figures


def plot_re_pmf(pairs: Sequence[Tuple[Hashable, float]],
                location: Location = DISPLAY,
                name: str = "") -> plt.Figure:
    """Histogram-style chart of sequence counts per rounded divergence."""
    distribution = divergence_distribution(pairs)
    xs = [re for re, _, _ in distribution]
    ys = [len(names) for _, _, names in distribution]
    if str(location) != DISPLAY:
        write_plot_data_csv(Path(location).with_suffix(".csv"), ["JSD", "Sq Count", "Name"], xs, ys, name)
    return render_chart(location, xs, ys, "JSD", "Sq count", f"{name} Sq RE distribution",
                        series_label="sq/hybrid JSD PMF", legend=True)


def plot_re_cdf(pairs: Sequence[Tuple[Hashable, float]],
                location: Location = DISPLAY,
                name: str = "",
                step: float = 0.005,
                points: int = 200) -> plt.Figure:
    """Empirical CDF of the divergences sampled on a regular grid."""
    cdf = empirical_cdf(pairs)
    xs = [i * step for i in range(points)]
    ys = [cdf(x) for x in xs]
    if str(location) != DISPLAY:
        write_plot_data_csv(Path(location).with_suffix(".csv"), ["JSD", "F(x)", "Name"], xs, ys, name)
    return render_chart(location, xs, ys, "JSD", "F(x)", f"{name} FFP RE CDF plot",
                        series_label="sq/hybrid JSD CDF", legend=True)


def _dists_chart(out: Location, rna_name: str, pairs, title: str) -> plt.Figure:
    xs = list(range(len(pairs)))
    ys = [d for _, d in pairs]
    if str(out) != DISPLAY:
        write_plot_data_csv(Path(out).with_suffix(".csv"), ["Seq", "JSD", "Name"],
                            xs, ys, rna_name.split("-")[0])
    return render_chart(out, xs, ys, "Sequence", "Sq RE to Hybrid", title,
                        series_label="sq/hybrid distance", legend=True)


def _chart_path(location: Location, chart_name: str, suffix: str) -> Location:
    if str(location) == DISPLAY:
        return DISPLAY
    Path(location).mkdir(parents=True, exist_ok=True)
    return Path(location) / f"{chart_name}{suffix}"


def plot_hit_dists(chart_name: str,
                   rna_name: str,
                   pairs: Sequence[Tuple[Hashable, float]],
                   word_size: int,
                   cutpoint: int,
                   location: Location = DISPLAY) -> plt.Figure:
    """Divergence of each hit to the seed hybrid, in sorted order."""
    out = _chart_path(location, chart_name, "-hitonly.png")
    title = f"{rna_name} Hits only to Hybrid. Res: {word_size}, Cutpt: {cutpoint}"
    return _dists_chart(out, rna_name, pairs, title)


def plot_cand_dists(chart_name: str,
                    rna_name: str,
                    pairs: Sequence[Tuple[Hashable, float]],
                    delta: int,
                    word_size: int,
                    mre: float,
                    cdp: float,
                    cutpoint: int,
                    location: Location = DISPLAY) -> plt.Figure:
    """Divergence of each context-extended candidate to the seed hybrid."""
    out = _chart_path(location, chart_name, "-candidates.png")
    title = (f"{rna_name} Candidate SCCS. Cutpt {cutpoint}\n"
             f" Ctx Sz: {delta} Res: {word_size}, Mre: {mre}, CD%: {cdp}")
    return _dists_chart(out, rna_name, pairs, title)
