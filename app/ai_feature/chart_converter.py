"""
Chart type converter: re-render the same result as a different chart type.

Chart -> chart conversions reuse the existing labels and data; anything
involving a table goes back to the original rows.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from app.ai_feature.chart_spec import (
    PIE_TYPES,
    build_axis_config,
    build_pie_config,
    build_table_result,
    to_label,
    to_number,
)
from app.core.errors import ValidationError
from app.core.schemas import ChartMeta, ChartType

logger = logging.getLogger(__name__)


def convert_chart_type(
    current: Optional[Dict[str, Any]],
    rows: List[Dict[str, Any]],
    target_type: Union[ChartType, str],
    meta: ChartMeta,
) -> Optional[Dict[str, Any]]:
    """
    Convert an existing chart configuration / table result to target_type.

    Args:
        current: config previously returned by to_chart_config (or this function)
        rows: the original query rows, needed whenever a table is involved
        target_type: bar, line, pie, doughnut or table
        meta: data/label keys and optional axis labels of the chart spec behind current

    Returns:
        The same object when the type does not change, None when there is
        nothing to convert, otherwise a new config.
    """
    if current is None:
        logger.warning("convert_chart_type: current config is None")
        return None

    target = ChartType(target_type)
    source_type = current.get("type")
    if source_type == target.value:
        return current

    title = meta.title or _source_title(current)

    if target == ChartType.TABLE:
        return build_table_result(rows, title)

    if source_type == ChartType.TABLE.value:
        return _build_chart_from_rows(rows, target, meta, title)

    # Chart -> chart
    data_section = _as_dict(current.get("data"), "data")
    labels = _as_list(data_section.get("labels"), "data.labels")
    datasets = _as_list(data_section.get("datasets"), "data.datasets") or [{}]
    first_dataset = _as_dict(datasets[0], "data.datasets[0]")
    data = _as_list(first_dataset.get("data"), "data.datasets[0].data")

    if target in PIE_TYPES:
        return build_pie_config(target, labels, data, title)

    x_title, y_title = _axis_titles(meta)
    source_scales = _as_dict(
        _as_dict(current.get("options"), "options").get("scales"), "options.scales"
    )
    if source_scales:
        # keep any relabelling done on the source chart
        x_title = _scale_title(source_scales, "x") or x_title
        y_title = _scale_title(source_scales, "y") or y_title

    return build_axis_config(target, labels, data, title, x_title, y_title)


def _build_chart_from_rows(
    rows: List[Dict[str, Any]], target: ChartType, meta: ChartMeta, title: str
) -> Dict[str, Any]:
    labels = [to_label(row.get(meta.label_key)) for row in rows]
    data = [to_number(row.get(meta.data_key)) for row in rows]

    if target in PIE_TYPES:
        return build_pie_config(target, labels, data, title)

    x_title, y_title = _axis_titles(meta)
    return build_axis_config(target, labels, data, title, x_title, y_title)


def _axis_titles(meta: ChartMeta):
    return meta.x_label or meta.label_key, meta.y_label or meta.data_key


def _scale_title(scales: Dict[str, Any], axis: str) -> Optional[str]:
    axis_config = _as_dict(scales.get(axis), f"options.scales.{axis}")
    return _as_dict(axis_config.get("title"), f"options.scales.{axis}.title").get("text")


def _source_title(config: Dict[str, Any]) -> str:
    if config.get("type") == ChartType.TABLE.value:
        return config.get("title") or ""
    plugins = _as_dict(
        _as_dict(config.get("options"), "options").get("plugins"), "options.plugins"
    )
    return _as_dict(plugins.get("title"), "options.plugins.title").get("text") or ""


# Client supplied configs: a section of the wrong shape is a bad request
def _as_dict(value: Any, path: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"Invalid chart configuration: {path} must be an object")
    return value


def _as_list(value: Any, path: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"Invalid chart configuration: {path} must be a list")
    return list(value)
