from __future__ import annotations

from ..models.apply_result import ApplyResult

"""SUMMARY line rendering for apply runs.

Format:
SUMMARY file={name} location={id} rows={n} created={n} updated={n}
skipped={n} errors={n} elapsed_sec={s}
"""


def _format_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # avoid scientific notation for very small numbers
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_fields(filename: str, location_id: str, result: ApplyResult) -> str:
    """Render the key=value body of the SUMMARY line for one apply run.

    log_summary() prefixes the SUMMARY label when the body is logged.

    Args:
        filename: Uploaded filename the run applied
        location_id: Target location id
        result: Outcome of the run

    Returns:
        The line body, without the level label.

    Examples:
        >>> from supply_recon.models.apply_result import ApplyResult, ApplyStats
        >>> result = ApplyResult(
        ...     stats=ApplyStats(supplies_created=1, inventory_updated=2),
        ...     elapsed_seconds=2.0,
        ... )
        >>> render_summary_fields("counts.csv", "L1", result)
        'file=counts.csv location=L1 rows=2 created=1 updated=2 skipped=0 errors=0 elapsed_sec=2'
    """
    stats = result.stats
    return (
        f"file={filename} "
        f"location={location_id} "
        f"rows={result.total_rows} "
        f"created={stats.supplies_created} "
        f"updated={stats.inventory_updated} "
        f"skipped={stats.rows_skipped} "
        f"errors={stats.errors_count} "
        f"elapsed_sec={_format_seconds(result.elapsed_seconds)}"
    )
