"""
Output formatters for signoff CLI.

Commands hand plain dictionaries (usually from ``to_dict()``) to
``format_output``, which renders them as a table, JSON or YAML.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any

import yaml


def format_output(
    data: Any,
    output_format: str = "table",
    title: str | None = None,
) -> str:
    """
    Format data for output in the specified format.

    Args:
        data: Data to format.
        output_format: Output format (table, json, yaml).
        title: Optional title for table format.

    Returns:
        Formatted string.
    """
    if output_format == "json":
        return JsonFormatter.format(data)
    elif output_format == "yaml":
        return YamlFormatter.format(data)
    else:
        return TableFormatter.format(data, title=title)


class JsonFormatter:
    """Format data as JSON."""

    @staticmethod
    def format(data: Any, indent: int = 2) -> str:
        return json.dumps(
            data,
            indent=indent,
            default=_json_serializer,
            ensure_ascii=False,
        )


class YamlFormatter:
    """Format data as YAML."""

    @staticmethod
    def format(data: Any) -> str:
        return yaml.safe_dump(
            _to_plain(data),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )


class TableFormatter:
    """Format data as a human-readable listing."""

    @staticmethod
    def format(
        data: Any,
        title: str | None = None,
        max_width: int = 80,
    ) -> str:
        """
        Format data as aligned key/value lines.

        Args:
            data: Data to format.
            title: Optional title.
            max_width: Width above which simple lists are broken into lines.

        Returns:
            Formatted string.
        """
        lines: list[str] = []

        if title:
            lines.append(title)
            lines.append("-" * len(title))
            lines.append("")

        data = _to_plain(data)
        if isinstance(data, dict):
            lines.extend(TableFormatter._format_dict(data, max_width))
        elif isinstance(data, list):
            lines.extend(TableFormatter._format_list(data, max_width))
        else:
            lines.append(str(data))

        return "\n".join(lines)

    @staticmethod
    def _format_dict(
        data: dict[str, Any],
        max_width: int,
        indent: int = 0,
    ) -> list[str]:
        lines: list[str] = []
        prefix = "  " * indent
        width = max((len(str(k)) for k in data), default=0)

        for key, value in data.items():
            key_str = str(key).ljust(width)

            if isinstance(value, dict):
                lines.append(f"{prefix}{key_str}:")
                lines.extend(TableFormatter._format_dict(value, max_width, indent + 1))
            elif isinstance(value, list):
                if not value:
                    lines.append(f"{prefix}{key_str}: []")
                elif all(isinstance(v, (str, int, float, bool)) for v in value):
                    list_str = ", ".join(str(v) for v in value)
                    if len(list_str) > max_width - len(key_str) - 4:
                        lines.append(f"{prefix}{key_str}:")
                        lines.extend(f"{prefix}  - {item}" for item in value)
                    else:
                        lines.append(f"{prefix}{key_str}: [{list_str}]")
                else:
                    lines.append(f"{prefix}{key_str}:")
                    lines.extend(TableFormatter._format_list(value, max_width, indent + 1))
            else:
                value_str = str(value) if value is not None else ""
                lines.append(f"{prefix}{key_str}: {value_str}")

        return lines

    @staticmethod
    def _format_list(
        data: list[Any],
        max_width: int,
        indent: int = 0,
    ) -> list[str]:
        lines: list[str] = []
        prefix = "  " * indent

        for i, item in enumerate(data):
            if isinstance(item, dict):
                if i > 0:
                    lines.append("")
                lines.append(f"{prefix}[{i + 1}]")
                lines.extend(TableFormatter._format_dict(item, max_width, indent + 1))
            else:
                lines.append(f"{prefix}- {item}")

        return lines

    @staticmethod
    def format_table(
        headers: list[str],
        rows: list[list[Any]],
        max_col_width: int = 40,
    ) -> str:
        """
        Format rows as an ASCII table.

        Args:
            headers: Column headers.
            rows: Data rows.
            max_col_width: Maximum column width.

        Returns:
            Formatted table string.
        """
        if not headers:
            return ""

        cells = [
            [_truncate("" if cell is None else str(cell), max_col_width) for cell in row]
            + [""] * (len(headers) - len(row))
            for row in rows
        ]
        col_widths = [len(h) for h in headers]
        for row in cells:
            for i, cell in enumerate(row[: len(headers)]):
                col_widths[i] = max(col_widths[i], len(cell))

        row_format = " | ".join(f"{{:<{w}}}" for w in col_widths)
        separator = "-+-".join("-" * w for w in col_widths)

        lines = [row_format.format(*headers), separator]
        lines.extend(row_format.format(*row[: len(headers)]) for row in cells)
        return "\n".join(lines)


def _json_serializer(obj: Any) -> Any:
    """JSON serializer for non-standard types."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def _to_plain(data: Any) -> Any:
    """Convert models, enums and datetimes into plain YAML-safe values."""
    if isinstance(data, datetime):
        return data.isoformat()
    if isinstance(data, Enum):
        return data.value
    if isinstance(data, dict):
        return {k: _to_plain(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [_to_plain(v) for v in data]
    if hasattr(data, "to_dict"):
        return _to_plain(data.to_dict())
    return data


def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
